"""HTTP surface of the gateway (aiohttp)."""

from partners_gateway.server.app import create_app, run

__all__ = ["create_app", "run"]
