"""
Endpoint handlers for the gateway.

Endpoints:
- GET /, /health   - Service descriptor
- GET /api/search  - Product search with trackable links (cached 5 minutes)
- GET /api/deeplink - Trackable link for a single product URL

Search pipeline, strictly sequential per request:
validate -> cache lookup -> (miss) upstream search -> link resolution ->
assemble -> cache write (background, never awaited by the response).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from aiohttp import web

from partners_gateway.__version__ import SERVICE_NAME, __version__
from partners_gateway.cache import ResponseCache, search_cache_key
from partners_gateway.config import GatewayConfig
from partners_gateway.exceptions import ConfigurationError, InputValidationError
from partners_gateway.links import LinkResolver
from partners_gateway.logging_config import get_logger
from partners_gateway.server.middleware import json_response
from partners_gateway.tasks import BackgroundTasks
from partners_gateway.upstream import UpstreamClient

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
MIN_LIMIT = 1
MAX_LIMIT = 100
_LIMIT_PREFIX = re.compile(r"[+-]?[0-9]+")


@dataclass
class GatewayServices:
    """Collaborators built once per application."""

    upstream: UpstreamClient | None
    resolver: LinkResolver | None


CONFIG_KEY = web.AppKey("config", GatewayConfig)
CACHE_KEY = web.AppKey("cache", ResponseCache)
TASKS_KEY = web.AppKey("tasks", BackgroundTasks)
SERVICES_KEY = web.AppKey("services", GatewayServices)


# =============================================================================
# Parameter parsing
# =============================================================================


def parse_keyword(raw: str | None) -> str:
    """Trimmed keyword; missing or blank is rejected. Case is preserved."""
    keyword = (raw or "").strip()
    if not keyword:
        raise InputValidationError("keyword", "keyword parameter is required")
    return keyword


def parse_limit(raw: str | None) -> int:
    """Result limit in [1, 100]; absent or non-numeric falls back to 10.

    Only a leading run of ASCII digits counts, so "50abc" is 50 and
    "1_0" is 1.
    """
    match = _LIMIT_PREFIX.match((raw or "").strip())
    if match is None:
        return DEFAULT_LIMIT
    limit = int(match.group())
    if not MIN_LIMIT <= limit <= MAX_LIMIT:
        raise InputValidationError("limit", f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
    return limit


def _services(app: web.Application) -> GatewayServices:
    services = app.get(SERVICES_KEY)
    if services is None or services.upstream is None or services.resolver is None:
        raise ConfigurationError("credentials", "API keys not configured")
    return services


# =============================================================================
# Handlers
# =============================================================================


async def handle_health(request: web.Request) -> web.Response:
    """GET / and /health."""
    app = request.app
    return json_response(
        {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "search": "/api/search?keyword={keyword}&limit={limit}&subId={subId}",
                "deeplink": "/api/deeplink?url={productUrl}&subId={subId}",
            },
            "cache": app[CACHE_KEY].stats,
            "background_tasks": app[TASKS_KEY].pending,
        }
    )


async def handle_search(request: web.Request) -> web.Response:
    """GET /api/search?keyword=&limit=&subId="""
    app = request.app
    config = app[CONFIG_KEY]
    cache = app[CACHE_KEY]

    keyword = parse_keyword(request.query.get("keyword"))
    limit = parse_limit(request.query.get("limit"))
    sub_id = (request.query.get("subId") or "").strip()
    config.require_credentials()

    key = search_cache_key(keyword, limit, sub_id)
    entry = await cache.get(key)
    if entry is not None:
        logger.info("Search served from cache", cache_key=key)
        return json_response(entry.envelope())

    services = _services(app)
    products = await services.upstream.search(keyword, limit)

    urls = [p.canonical_url for p in products if p.canonical_url]
    mapping = await services.resolver.resolve(urls, sub_id) if urls else {}
    products = LinkResolver.apply(products, mapping)

    envelope: dict[str, Any] = {
        "success": True,
        "keyword": keyword,
        "count": len(products),
        "products": [p.to_dict() for p in products],
        "cached": False,
    }

    ttl = config.cache_ttl_seconds
    app[TASKS_KEY].spawn(cache.put(key, envelope, ttl), name=f"cache-put:{key}")

    return json_response(envelope, headers={"Cache-Control": f"public, max-age={int(ttl)}"})


async def handle_deeplink(request: web.Request) -> web.Response:
    """GET /api/deeplink?url=&subId="""
    config = request.app[CONFIG_KEY]

    product_url = request.query.get("url") or ""
    if not product_url.strip():
        raise InputValidationError("url", "url parameter is required")
    sub_id = (request.query.get("subId") or "").strip()
    config.require_credentials()

    services = _services(request.app)
    mapping = await services.resolver.resolve([product_url], sub_id)

    return json_response(
        {
            "success": True,
            "originalUrl": product_url,
            "partnerLink": mapping.get(product_url) or product_url,
            "subId": sub_id or None,
        }
    )


__all__ = [
    "DEFAULT_LIMIT",
    "MIN_LIMIT",
    "MAX_LIMIT",
    "GatewayServices",
    "CONFIG_KEY",
    "CACHE_KEY",
    "TASKS_KEY",
    "SERVICES_KEY",
    "parse_keyword",
    "parse_limit",
    "handle_health",
    "handle_search",
    "handle_deeplink",
]
