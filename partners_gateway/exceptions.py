"""
Custom exception types for the partners gateway.

This module defines the hierarchy of exceptions used throughout the codebase.
Using specific exception types enables:
- More precise error handling with targeted except blocks
- A single place that decides which HTTP status each failure maps to
- Cleaner separation between client mistakes and upstream failures
"""

from __future__ import annotations

from typing import Any

# Upstream bodies can be large HTML error pages; keep diagnostics bounded.
MAX_BODY_PREVIEW = 800


class GatewayError(Exception):
    """Base exception for all gateway errors.

    All custom exceptions in the gateway should inherit from this class
    to enable catching all gateway-specific errors with a single handler.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(GatewayError):
    """Base exception for validation errors."""

    pass


class InputValidationError(ValidationError):
    """Raised when a request parameter fails validation.

    The message is the human-readable reason alone, since it is sent back
    to the client verbatim.
    """

    def __init__(self, field: str, reason: str):
        super().__init__(reason, {"field": field})
        self.field = field
        self.reason = reason

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(GatewayError):
    """Raised when a component's configuration is missing or invalid.

    Used for missing credentials and invalid settings. Missing credentials
    surface per request, never at startup.
    """

    def __init__(self, component: str, reason: str):
        super().__init__(reason, {"component": component})
        self.component = component
        self.reason = reason

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Upstream Errors
# ============================================================================


class UpstreamError(GatewayError):
    """Raised when the partner API rejects or fails a call.

    Covers both non-success HTTP statuses and HTTP 200 responses whose
    result code is not the OK code.
    """

    def __init__(self, reason: str, status: int | None = None, body: str | None = None):
        preview = body[:MAX_BODY_PREVIEW] if body else body
        message = f"Upstream API error ({status}): {reason}" if status else f"Upstream API error: {reason}"
        super().__init__(message, {"status": status, "body": preview})
        self.reason = reason
        self.status = status
        self.body = body


# ============================================================================
# Routing Errors
# ============================================================================


class NotFoundError(GatewayError):
    """Raised when no route matches the requested path."""

    def __init__(self, path: str):
        super().__init__("Not Found", {"path": path})
        self.path = path


# ============================================================================
# Internal Errors
# ============================================================================


class InternalError(GatewayError):
    """Raised for unanticipated failures inside the gateway."""

    pass


# ============================================================================
# Cache Errors
# ============================================================================


class CacheError(GatewayError):
    """Base exception for cache operations."""

    pass


class CacheKeyError(CacheError):
    """Raised when a cache key cannot be derived."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Invalid cache key '{key}': {reason}", {"key": key, "reason": reason})
        self.key = key
        self.reason = reason


__all__ = [
    "MAX_BODY_PREVIEW",
    "GatewayError",
    "ValidationError",
    "InputValidationError",
    "ConfigurationError",
    "UpstreamError",
    "NotFoundError",
    "InternalError",
    "CacheError",
    "CacheKeyError",
]
