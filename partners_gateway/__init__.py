"""
partners_gateway: a signing-and-forwarding gateway for the Coupang Partners API.

Untrusted clients query product search and deeplink conversion through this
service; the affiliate's credentials never leave the server.

=== CORE FEATURES ===

SIGNING:
- Time-bound HMAC-SHA256 credential per upstream call (partners_gateway.signing)
- Injectable clock and selectable signed-date layout

UPSTREAM:
- Product search and batch deeplink conversion (partners_gateway.upstream)
- Tagged response variants; "no product list" is an empty result, not an error

LINKS:
- Batch conversion with local deterministic fallback (partners_gateway.links)
- Link failures never fail a search

CACHING:
- Read-through, 5 minute TTL, collision-free keys (partners_gateway.cache)
- Writes run as supervised background tasks (partners_gateway.tasks)

HTTP:
- aiohttp app with CORS, JSON errors and request logging (partners_gateway.server)
"""

from __future__ import annotations

import importlib
from typing import Any

from partners_gateway.__version__ import __version__

_EXPORT_MAP = {
    'GatewayConfig': ('partners_gateway.config', 'GatewayConfig'),
    'GatewayError': ('partners_gateway.exceptions', 'GatewayError'),
    'LinkMode': ('partners_gateway.links', 'LinkMode'),
    'LinkResolver': ('partners_gateway.links', 'LinkResolver'),
    'ProductRecord': ('partners_gateway.upstream', 'ProductRecord'),
    'ResponseCache': ('partners_gateway.cache', 'ResponseCache'),
    'SignedCredential': ('partners_gateway.signing', 'SignedCredential'),
    'Signer': ('partners_gateway.signing', 'Signer'),
    'TTLCache': ('partners_gateway.cache', 'TTLCache'),
    'TimestampFormat': ('partners_gateway.signing', 'TimestampFormat'),
    'UpstreamClient': ('partners_gateway.upstream', 'UpstreamClient'),
    'UpstreamError': ('partners_gateway.exceptions', 'UpstreamError'),
    'create_app': ('partners_gateway.server', 'create_app'),
}


def __getattr__(name: str) -> Any:
    """Lazily import public symbols to avoid pulling in aiohttp on import."""
    try:
        module_name, attr_name = _EXPORT_MAP[name]
    except KeyError as exc:
        raise AttributeError(f"module 'partners_gateway' has no attribute {name!r}") from exc
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))


__all__ = ["__version__", *sorted(_EXPORT_MAP)]
