"""
Shared pytest fixtures for the gateway test suite.

This module provides the fixed clock, configs, canned partner API payloads
and the fakes that stand in for the partner API, so no test touches the
network.
"""

from datetime import datetime, timezone
from typing import Any

import pytest

from partners_gateway.config import GatewayConfig
from partners_gateway.exceptions import UpstreamError
from partners_gateway.links import LinkMode
from partners_gateway.signing import Signer
from partners_gateway.upstream import parse_product

ACCESS_KEY = "73920ae9-75b9-4136-9d78-39a0de286d64"
SECRET_KEY = "540f3ad0ac3430ce695c8186e6957822d1ab0878"
FIXED_MOMENT = datetime(2025, 1, 17, 12, 34, 56, tzinfo=timezone.utc)


# ============================================================================
# Test Tier Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom pytest markers for test tiers."""
    config.addinivalue_line("markers", "unit: isolated unit tests with no external dependencies")


# ============================================================================
# Fakes
# ============================================================================


class StubResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as an async context manager."""

    def __init__(self, status: int = 200, text: str | bytes = ""):
        self.status = status
        self._body = text.encode("utf-8") if isinstance(text, str) else text

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self) -> "StubResponse":
        return self

    async def __aexit__(self, *args) -> None:
        return None


class StubSession:
    """Records requests and replays queued responses (or raises queued errors)."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class FakeUpstream:
    """In-process replacement for UpstreamClient with call counters."""

    def __init__(
        self,
        items: list[dict[str, Any]] | None = None,
        links: dict[str, str] | None = None,
        search_error: Exception | None = None,
        link_error: Exception | None = None,
    ):
        self.items = items or []
        self.links = links
        self.search_error = search_error
        self.link_error = link_error
        self.search_calls: list[tuple[str, int]] = []
        self.link_calls: list[tuple[list[str], str]] = []
        self.closed = False

    async def search(self, keyword: str, limit: int = 10):
        self.search_calls.append((keyword, limit))
        if self.search_error is not None:
            raise self.search_error
        return [parse_product(item) for item in self.items[:limit]]

    async def batch_convert_links(self, urls, sub_id: str = ""):
        urls = list(urls)
        self.link_calls.append((urls, sub_id))
        if self.link_error is not None:
            raise self.link_error
        if self.links is not None:
            return dict(self.links)
        return {url: f"https://link.coupang.com/a/{i}" for i, url in enumerate(urls)}

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fixed_clock():
    """Clock that always returns 2025-01-17T12:34:56Z."""
    return lambda: FIXED_MOMENT


@pytest.fixture
def signer(fixed_clock):
    return Signer(clock=fixed_clock)


@pytest.fixture
def credentials():
    return ACCESS_KEY, SECRET_KEY


@pytest.fixture
def gateway_config():
    """Production-mode config with credentials and batch link conversion."""
    return GatewayConfig(access_key=ACCESS_KEY, secret_key=SECRET_KEY)


@pytest.fixture
def local_link_config(gateway_config):
    """Config that builds trackable links locally (no batch upstream)."""
    return gateway_config.with_overrides(link_mode=LinkMode.LOCAL)


@pytest.fixture
def raw_products():
    """Two products as they appear in the partner API's productData list."""
    return [
        {
            "productId": 1001,
            "productName": "Laptop 14",
            "productPrice": 899000,
            "productImage": "https://img.example.com/1001.jpg",
            "productUrl": "https://www.coupang.com/vp/products/1001",
            "scoreInfo": {"avgRating": 4.5, "count": 120},
            "isRocket": True,
            "isFreeShipping": True,
            "rank": 1,
        },
        {
            "productId": 1002,
            "productName": "Laptop 16",
            "productPrice": 1299000,
            "productImage": "https://img.example.com/1002.jpg",
            "productUrl": "https://www.coupang.com/vp/products/1002",
            "rank": 2,
        },
    ]


@pytest.fixture
def search_payload(raw_products):
    return {"rCode": "0", "rMessage": "", "data": [{"productData": raw_products}]}


@pytest.fixture
def stub_response():
    return StubResponse


@pytest.fixture
def stub_session():
    return StubSession


@pytest.fixture
def fake_upstream(raw_products):
    return FakeUpstream(items=raw_products)


@pytest.fixture
def failing_link_upstream(raw_products):
    return FakeUpstream(
        items=raw_products,
        link_error=UpstreamError("deeplink conversion failed (rCode=400)", status=200, body="{}"),
    )


@pytest.fixture
def upstream_factory():
    """The FakeUpstream class, for tests that need custom items or links."""
    return FakeUpstream
