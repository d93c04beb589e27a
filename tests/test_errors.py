"""Tests for the exception hierarchy and its HTTP mapping."""

import pytest

from partners_gateway.errors import (
    DEFAULT_STATUS,
    format_error_response,
    get_status_code,
    safe_error_message,
    wrap_exception,
)
from partners_gateway.exceptions import (
    CacheError,
    CacheKeyError,
    ConfigurationError,
    GatewayError,
    InputValidationError,
    InternalError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)


class TestExceptionHierarchy:
    """All gateway errors share one base."""

    @pytest.mark.parametrize(
        "exc",
        [
            InputValidationError("keyword", "keyword parameter is required"),
            ConfigurationError("credentials", "API keys not configured"),
            UpstreamError("non-success status", status=502),
            NotFoundError("/nope"),
            InternalError("boom"),
            CacheKeyError("", "operation name is required"),
        ],
    )
    def test_all_are_gateway_errors(self, exc):
        assert isinstance(exc, GatewayError)

    def test_input_validation_is_validation(self):
        assert isinstance(InputValidationError("limit", "bad"), ValidationError)

    def test_cache_key_error_is_cache_error(self):
        assert isinstance(CacheKeyError("k", "bad"), CacheError)

    def test_details_in_str(self):
        err = GatewayError("Something failed", {"attempt": 2})
        assert str(err) == "Something failed (details: {'attempt': 2})"

    def test_client_facing_messages_are_bare(self):
        assert str(InputValidationError("keyword", "keyword parameter is required")) == (
            "keyword parameter is required"
        )
        assert str(ConfigurationError("credentials", "API keys not configured")) == "API keys not configured"


class TestUpstreamError:
    def test_message_includes_status(self):
        err = UpstreamError("non-success status", status=503, body="down")
        assert err.message == "Upstream API error (503): non-success status"
        assert err.details == {"status": 503, "body": "down"}

    def test_without_status(self):
        err = UpstreamError("timed out")
        assert err.message == "Upstream API error: timed out"
        assert err.status is None

    def test_body_preview_bounded(self):
        err = UpstreamError("x", status=500, body="y" * 5000)
        assert len(err.body) == 5000
        assert len(err.details["body"]) == 800


class TestStatusMapping:
    """Tests for get_status_code."""

    @pytest.mark.parametrize(
        "exc,status",
        [
            (InputValidationError("limit", "limit must be between 1 and 100"), 400),
            (NotFoundError("/x"), 404),
            (ConfigurationError("credentials", "API keys not configured"), 500),
            (UpstreamError("bad", status=401), 500),
            (CacheError("bad"), 500),
            (InternalError("bad"), 500),
            (GatewayError("bad"), 500),
            (KeyError("x"), 500),
        ],
    )
    def test_status(self, exc, status):
        assert get_status_code(exc) == status

    def test_default(self):
        assert DEFAULT_STATUS == 500


class TestFormatErrorResponse:
    """Tests for the JSON error envelope."""

    def test_validation(self):
        payload = format_error_response(InputValidationError("keyword", "keyword parameter is required"))
        assert payload == {"success": False, "error": "keyword parameter is required"}

    def test_not_found_has_path(self):
        payload = format_error_response(NotFoundError("/api/unknown"))
        assert payload == {"success": False, "error": "Not Found", "path": "/api/unknown"}

    def test_upstream_has_details(self):
        payload = format_error_response(UpstreamError("non-success status", status=401, body="denied"))
        assert payload["error"] == "Upstream API error (401): non-success status"
        assert payload["details"] == {"status": 401, "body": "denied"}

    def test_no_stack_by_default(self):
        assert "stack" not in format_error_response(InternalError("x"))

    def test_stack_when_requested(self):
        try:
            raise InternalError("kaboom")
        except InternalError as e:
            payload = format_error_response(e, include_trace=True)
        assert "Traceback" in payload["stack"]
        assert "kaboom" in payload["stack"]

    def test_foreign_exception_message(self):
        assert safe_error_message(KeyError()) == "KeyError"
        assert safe_error_message(RuntimeError("broken")) == "broken"


class TestWrapException:
    def test_gateway_error_unchanged(self):
        err = NotFoundError("/x")
        assert wrap_exception(err) is err

    def test_foreign_exception_wrapped(self):
        original = ValueError("bad value")
        wrapped = wrap_exception(original)
        assert isinstance(wrapped, InternalError)
        assert wrapped.__cause__ is original
        assert wrapped.details == {"type": "ValueError"}
