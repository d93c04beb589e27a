"""
aiohttp middlewares: CORS, request logging and error serialization.

Order matters; ``create_app`` installs them outermost first:

1. cors_middleware      answers every OPTIONS preflight and stamps CORS
                        headers on every response, errors included
2. logging_middleware   binds request_id/path into the log context
3. error_middleware     turns any exception into the JSON error envelope
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Any, Awaitable, Callable

from aiohttp import web

from partners_gateway.errors import format_error_response, get_status_code, wrap_exception
from partners_gateway.exceptions import NotFoundError
from partners_gateway.logging_config import LogContext, get_logger

logger = get_logger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

JSON_CONTENT_TYPE = "application/json;charset=UTF-8"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}

# Set by create_app; read here to decide whether stack traces are exposed.
INCLUDE_TRACE_KEY = web.AppKey("include_trace", bool)


def json_response(
    data: Any,
    status: int = 200,
    headers: dict[str, str] | None = None,
) -> web.Response:
    """Pretty-printed UTF-8 JSON response with the gateway's content type."""
    body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    all_headers = {"Content-Type": JSON_CONTENT_TYPE}
    if headers:
        all_headers.update(headers)
    return web.Response(body=body, status=status, headers=all_headers)


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    response = await handler(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


@web.middleware
async def logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    request_id = request.headers.get("X-Request-ID") or _new_request_id()
    with LogContext(request_id=request_id, path=request.path):
        start = time.monotonic()
        logger.info(
            "Request started",
            method=request.method,
            query_params=sorted(request.query.keys()),
        )
        try:
            response = await handler(request)
        except Exception as e:
            logger.error(
                "Request failed",
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                error=str(e),
            )
            raise
        logger.info(
            "Request completed",
            status=response.status,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return json_response(format_error_response(NotFoundError(request.path)), 404)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return json_response({"success": False, "error": e.reason}, e.status)
    except Exception as e:
        error = wrap_exception(e)
        status = get_status_code(error)
        include_trace = status >= 500 and request.app.get(INCLUDE_TRACE_KEY, False)
        if status >= 500:
            logger.error("Unhandled error", exc_info=True, error_type=type(e).__name__)
        else:
            logger.info("Rejected request", error=error.message, status=status)
        return json_response(format_error_response(error, include_trace=include_trace), status)


__all__ = [
    "CORS_HEADERS",
    "JSON_CONTENT_TYPE",
    "INCLUDE_TRACE_KEY",
    "json_response",
    "cors_middleware",
    "logging_middleware",
    "error_middleware",
]
