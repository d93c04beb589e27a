"""
aiohttp application factory.

Usage:
    from partners_gateway.config import GatewayConfig
    from partners_gateway.server import create_app

    config = GatewayConfig.from_env()
    app = create_app(config)
    web.run_app(app, host=config.host, port=config.port)

The cache and the upstream client are injectable so tests can run the full
HTTP surface against an in-memory cache and a fake partner API.
"""

from __future__ import annotations

from aiohttp import web

from partners_gateway.cache import ResponseCache, TTLCache
from partners_gateway.config import GatewayConfig
from partners_gateway.http_client import build_timeout
from partners_gateway.links import LinkResolver
from partners_gateway.logging_config import get_logger
from partners_gateway.server.handlers import (
    CACHE_KEY,
    CONFIG_KEY,
    SERVICES_KEY,
    TASKS_KEY,
    GatewayServices,
    handle_deeplink,
    handle_health,
    handle_search,
)
from partners_gateway.server.middleware import (
    INCLUDE_TRACE_KEY,
    cors_middleware,
    error_middleware,
    logging_middleware,
)
from partners_gateway.signing import Signer
from partners_gateway.tasks import BackgroundTasks
from partners_gateway.upstream import UpstreamClient

logger = get_logger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


def _build_services(config: GatewayConfig, upstream: UpstreamClient | None) -> GatewayServices:
    if not config.has_credentials:
        return GatewayServices(upstream=None, resolver=None)
    if upstream is None:
        upstream = UpstreamClient(
            config.access_key,
            config.secret_key,
            timeout=build_timeout(config.upstream_timeout_seconds),
            signer=Signer(timestamp_format=config.timestamp_format),
        )
    resolver = LinkResolver(
        config.access_key,
        upstream=upstream,
        mode=config.link_mode,
        template=config.link_template,
    )
    return GatewayServices(upstream=upstream, resolver=resolver)


def create_app(
    config: GatewayConfig | None = None,
    *,
    cache: ResponseCache | None = None,
    upstream: UpstreamClient | None = None,
) -> web.Application:
    """Build the gateway application.

    Args:
        config: Service settings; read from the environment when omitted.
        cache: Response cache; an in-memory TTL cache when omitted.
        upstream: Partner API client. When omitted one is created here (if
            credentials are configured) and closed on cleanup.
    """
    config = config or GatewayConfig.from_env()
    if cache is None:
        cache = ResponseCache(
            TTLCache(maxsize=config.cache_maxsize, ttl_seconds=config.cache_ttl_seconds),
            default_ttl=config.cache_ttl_seconds,
        )
    owns_upstream = upstream is None

    app = web.Application(middlewares=[cors_middleware, logging_middleware, error_middleware])
    app[CONFIG_KEY] = config
    app[CACHE_KEY] = cache
    app[TASKS_KEY] = BackgroundTasks()
    app[INCLUDE_TRACE_KEY] = config.is_development
    app[SERVICES_KEY] = _build_services(config, upstream)

    async def on_startup(app: web.Application) -> None:
        if not config.has_credentials:
            logger.warning("Partner API keys not configured; API endpoints will return 500")
        logger.info(
            "Gateway started",
            environment=config.environment,
            link_mode=config.link_mode.value,
            timestamp_format=config.timestamp_format.value,
        )

    async def on_shutdown(app: web.Application) -> None:
        await app[TASKS_KEY].drain(timeout=SHUTDOWN_DRAIN_SECONDS)

    async def on_cleanup(app: web.Application) -> None:
        services = app.get(SERVICES_KEY)
        if owns_upstream and services is not None and services.upstream is not None:
            await services.upstream.close()

    app.on_startup.append(on_startup)
    app.on_shutdown.append(on_shutdown)
    app.on_cleanup.append(on_cleanup)

    app.router.add_get("/", handle_health)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/api/search", handle_search)
    app.router.add_get("/api/deeplink", handle_deeplink)

    return app


def run(config: GatewayConfig | None = None) -> None:
    """Run the gateway until interrupted."""
    config = config or GatewayConfig.from_env()
    app = create_app(config)
    logger.info("Listening", host=config.host, port=config.port)
    web.run_app(app, host=config.host, port=config.port, print=None)


__all__ = ["create_app", "run"]
