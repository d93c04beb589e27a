"""
API error mapping for the partners gateway.

This module turns exceptions from the hierarchy in
partners_gateway.exceptions into HTTP status codes and JSON error payloads.

Usage:
    from partners_gateway.errors import format_error_response, get_status_code

    try:
        ...
    except Exception as e:
        status = get_status_code(e)
        payload = format_error_response(e, include_trace=config.is_development)
"""

from __future__ import annotations

import traceback
from typing import Any

from partners_gateway.exceptions import (
    CacheError,
    ConfigurationError,
    GatewayError,
    InternalError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

# Ordered most-specific first; the first isinstance match wins.
EXCEPTION_MAP: list[tuple[type[BaseException], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConfigurationError, 500),
    (UpstreamError, 500),
    (CacheError, 500),
    (InternalError, 500),
    (GatewayError, 500),
]

DEFAULT_STATUS = 500


def get_status_code(exc: BaseException) -> int:
    """Get the HTTP status code for an exception.

    Args:
        exc: The raised exception

    Returns:
        HTTP status code; 500 for anything not in EXCEPTION_MAP
    """
    for exc_type, status in EXCEPTION_MAP:
        if isinstance(exc, exc_type):
            return status
    return DEFAULT_STATUS


def safe_error_message(exc: BaseException) -> str:
    """Human-readable message for the client.

    Gateway errors carry their own message; anything else falls back to
    str(exc) or the exception class name.
    """
    if isinstance(exc, GatewayError):
        return exc.message
    return str(exc) or type(exc).__name__


def format_error_response(exc: BaseException, include_trace: bool = False) -> dict[str, Any]:
    """Build the JSON error envelope for an exception.

    Args:
        exc: The raised exception
        include_trace: Attach the formatted stack trace (development only)

    Returns:
        Dictionary with success=False, error and optional details/stack
    """
    payload: dict[str, Any] = {
        "success": False,
        "error": safe_error_message(exc),
    }
    if isinstance(exc, NotFoundError):
        payload["path"] = exc.path
    elif isinstance(exc, UpstreamError):
        payload["details"] = exc.details
    if include_trace:
        payload["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return payload


def wrap_exception(exc: BaseException) -> GatewayError:
    """Wrap a foreign exception as an InternalError, keeping gateway errors as-is."""
    if isinstance(exc, GatewayError):
        return exc
    wrapped = InternalError(str(exc) or type(exc).__name__, {"type": type(exc).__name__})
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "EXCEPTION_MAP",
    "DEFAULT_STATUS",
    "get_status_code",
    "safe_error_message",
    "format_error_response",
    "wrap_exception",
]
