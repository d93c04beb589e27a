"""
Standardized HTTP client configuration with bounded timeouts.

Every upstream call made by the gateway goes through a session created here,
so no call can hang on the transport's (unbounded) defaults.

Usage:
    from partners_gateway.http_client import create_client_session

    async with create_client_session() as session:
        await session.get(url)
"""

from __future__ import annotations

import aiohttp
from aiohttp import ClientTimeout

__all__ = [
    "UPSTREAM_TIMEOUT",
    "build_timeout",
    "create_client_session",
]

# Partner API calls are short; fail fast instead of holding the client.
UPSTREAM_TIMEOUT = ClientTimeout(
    total=5,  # Total time for the entire request
    connect=2,  # Time to establish connection
    sock_read=4,  # Time to read response
)


def build_timeout(total_seconds: float) -> ClientTimeout:
    """Build a timeout whose connect/read budgets scale with the total.

    Args:
        total_seconds: Total budget for one upstream call.

    Returns:
        ClientTimeout with connect at 40% and socket read at 80% of the total.
    """
    if total_seconds <= 0:
        raise ValueError("total_seconds must be positive")
    return ClientTimeout(
        total=total_seconds,
        connect=round(total_seconds * 0.4, 3),
        sock_read=round(total_seconds * 0.8, 3),
    )


def create_client_session(
    timeout: ClientTimeout | None = None,
    **kwargs,
) -> aiohttp.ClientSession:
    """Create an aiohttp ClientSession with proper timeout configuration.

    Args:
        timeout: Optional custom timeout. Uses UPSTREAM_TIMEOUT if not specified.
        **kwargs: Additional arguments passed to ClientSession.

    Returns:
        Configured aiohttp.ClientSession.
    """
    if timeout is None:
        timeout = UPSTREAM_TIMEOUT
    return aiohttp.ClientSession(timeout=timeout, **kwargs)
