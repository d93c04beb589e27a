"""
Signed client for the Coupang Partners affiliate API.

Two upstream operations are supported:

- product search (GET, signed with its query string)
- batch deeplink conversion (POST, signed without a query component)

All assumptions about the partner API's response shapes live in this module.
Search responses are parsed into one of two explicit variants:

- ``SearchResults``: the ``data[0].productData`` list was present
- ``EmptySearch``: anything else (zero results, missing wrapper, unexpected
  types). Upstream "no results" and "unexpected shape" are deliberately
  treated the same: the caller gets an empty list, not an error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Union
from urllib.parse import quote

import aiohttp
from yarl import URL

from partners_gateway.exceptions import UpstreamError
from partners_gateway.http_client import UPSTREAM_TIMEOUT, create_client_session
from partners_gateway.logging_config import get_logger
from partners_gateway.signing import Signer

logger = get_logger(__name__)

BASE_URL = "https://api-gateway.coupang.com"
SEARCH_PATH = "/v2/providers/affiliate_open_api/apis/openapi/products/search"
DEEPLINK_PATH = "/v2/providers/affiliate_open_api/apis/openapi/v1/deeplink"

JSON_CONTENT_TYPE = "application/json;charset=UTF-8"
RESULT_CODE_OK = "0"

# Characters encodeURIComponent leaves alone; the signed query must match the
# bytes the partner API receives.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    """Percent-encode a query value the way browsers' encodeURIComponent does."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class ProductRecord:
    """A flattened product from a search response.

    Immutable; ``with_trackable_link`` returns a copy with the outbound link
    filled in, which is the only field that changes after creation.
    """

    id: Any
    name: str
    price: int
    image_url: str
    canonical_url: str
    rating: float = 0.0
    review_count: int = 0
    is_expedited: bool = False
    is_free_shipping: bool = False
    rank: int = 0
    trackable_link: str = ""

    def __post_init__(self) -> None:
        if not self.trackable_link:
            object.__setattr__(self, "trackable_link", self.canonical_url)

    def with_trackable_link(self, link: str | None) -> "ProductRecord":
        return replace(self, trackable_link=link or self.canonical_url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "image": self.image_url,
            "url": self.canonical_url,
            "rating": self.rating,
            "reviews": self.review_count,
            "isRocket": self.is_expedited,
            "isFreeShipping": self.is_free_shipping,
            "rank": self.rank,
            "trackableLink": self.trackable_link,
        }


@dataclass(frozen=True)
class SearchResults:
    """The search payload carried a product list."""

    products: list[ProductRecord]


@dataclass(frozen=True)
class EmptySearch:
    """The search payload had no product list; ``reason`` says why."""

    reason: str


SearchResponse = Union[SearchResults, EmptySearch]


@dataclass(frozen=True)
class DeeplinkResponse:
    """Parsed batch deeplink response."""

    result_code: str
    message: str = ""
    links: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.result_code == RESULT_CODE_OK


# =============================================================================
# Parsing
# =============================================================================


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_product(item: dict[str, Any]) -> ProductRecord:
    """Map one raw ``productData`` entry to a ProductRecord, applying defaults."""
    score = item.get("scoreInfo")
    if not isinstance(score, dict):
        score = {}
    url = item.get("productUrl") or ""
    return ProductRecord(
        id=item.get("productId"),
        name=item.get("productName") or "",
        price=_as_int(item.get("productPrice")),
        image_url=item.get("productImage") or "",
        canonical_url=url,
        rating=_as_float(score.get("avgRating")),
        review_count=_as_int(score.get("count")),
        is_expedited=bool(item.get("isRocket", False)),
        is_free_shipping=bool(item.get("isFreeShipping", False)),
        rank=_as_int(item.get("rank")),
    )


def parse_search_response(payload: Any) -> SearchResponse:
    """Classify a decoded search payload.

    The product list is nested under a single wrapper entry:
    ``{"data": [{"productData": [...]}]}``.
    """
    if not isinstance(payload, dict):
        return EmptySearch("payload is not an object")
    data = payload.get("data")
    if not isinstance(data, list) or not data:
        return EmptySearch("no data entries")
    wrapper = data[0]
    if not isinstance(wrapper, dict):
        return EmptySearch("data entry is not an object")
    items = wrapper.get("productData")
    if not isinstance(items, list):
        return EmptySearch("no productData list")
    return SearchResults([parse_product(item) for item in items if isinstance(item, dict)])


def parse_deeplink_response(payload: Any) -> DeeplinkResponse:
    """Parse ``{"rCode": "0", "rMessage": "", "data": [{originalUrl, shortenUrl}]}``."""
    if not isinstance(payload, dict):
        return DeeplinkResponse(result_code="", message="payload is not an object")
    links: dict[str, str] = {}
    data = payload.get("data")
    if isinstance(data, list):
        for entry in data:
            if not isinstance(entry, dict):
                continue
            original = entry.get("originalUrl")
            shortened = entry.get("shortenUrl")
            if original and shortened:
                links[original] = shortened
    return DeeplinkResponse(
        result_code=str(payload.get("rCode", "")),
        message=str(payload.get("rMessage") or ""),
        links=links,
    )


# =============================================================================
# Client
# =============================================================================


class UpstreamClient:
    """Issues signed calls to the partner API and normalizes the responses.

    The client owns its aiohttp session only when it created one itself;
    a session passed in by the caller is left open on ``close()``.

    Usage:
        async with UpstreamClient(access_key, secret_key) as client:
            products = await client.search("laptop", 10)
            links = await client.batch_convert_links([p.canonical_url for p in products])
    """

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        *,
        session: aiohttp.ClientSession | None = None,
        signer: Signer | None = None,
        base_url: str = BASE_URL,
        timeout: aiohttp.ClientTimeout | None = None,
    ):
        self.access_key = access_key
        self._secret_key = secret_key
        self.signer = signer or Signer()
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout or UPSTREAM_TIMEOUT
        self._session = session
        self._owns_session = session is None

    def __repr__(self) -> str:
        return f"UpstreamClient(base_url={self.base_url!r})"

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_client_session(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, method: str, path: str, query: str | None) -> dict[str, str]:
        credential = self.signer.sign(method, path, query, self.access_key, self._secret_key)
        return {
            "Authorization": credential.authorization_header,
            "Content-Type": JSON_CONTENT_TYPE,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: str | None = None,
        body: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        headers = self._headers(method, path, query)
        if extra_headers:
            headers.update(extra_headers)

        raw = f"{self.base_url}{path}?{query}" if query else f"{self.base_url}{path}"
        # encoded=True: send the query byte-for-byte as signed
        url = URL(raw, encoded=True)
        data = json.dumps(body, ensure_ascii=False).encode("utf-8") if body is not None else None

        session = self._get_session()
        async with session.request(method, url, headers=headers, data=data) as resp:
            # error bodies are not always UTF-8; never let decoding mask the status
            text = (await resp.read()).decode("utf-8", errors="replace")
            status = resp.status

        logger.debug("Upstream response", method=method, path=path, status=status)

        if not 200 <= status < 300:
            logger.warning("Upstream returned error status", path=path, status=status)
            raise UpstreamError("non-success status", status=status, body=text)

        try:
            return status, json.loads(text) if text else None
        except json.JSONDecodeError:
            raise UpstreamError("response body is not valid JSON", status=status, body=text) from None

    async def search(self, keyword: str, limit: int = 10) -> list[ProductRecord]:
        """Search products by keyword.

        Returns an empty list when the response carries no product list.

        Raises:
            UpstreamError: non-2xx status or a body that is not JSON
        """
        query = f"keyword={encode_uri_component(keyword)}&limit={int(limit)}"
        _, payload = await self._request(
            "GET",
            SEARCH_PATH,
            query=query,
            extra_headers={"X-Requested-By": self.access_key},
        )

        parsed = parse_search_response(payload)
        if isinstance(parsed, SearchResults):
            logger.info("Upstream search complete", count=len(parsed.products), limit=limit)
            return parsed.products
        if isinstance(parsed, EmptySearch):
            logger.info("Upstream search returned no products", reason=parsed.reason)
            return []
        raise TypeError(f"unhandled search response variant: {type(parsed).__name__}")

    async def batch_convert_links(self, urls: Iterable[str], sub_id: str = "") -> dict[str, str]:
        """Convert product URLs to trackable links in one call.

        Returns:
            Mapping of original URL to trackable (shortened) link. URLs the
            partner API did not return are simply absent.

        Raises:
            UpstreamError: non-2xx status, or a result code other than OK
        """
        url_list = [u for u in urls if u]
        if not url_list:
            return {}

        body: dict[str, Any] = {"coupangUrls": url_list}
        if sub_id:
            body["subId"] = sub_id

        status, payload = await self._request("POST", DEEPLINK_PATH, body=body)
        parsed = parse_deeplink_response(payload)
        if not parsed.ok:
            raise UpstreamError(
                f"deeplink conversion failed (rCode={parsed.result_code or 'missing'})",
                status=status,
                body=json.dumps(payload, ensure_ascii=False),
            )

        logger.info("Upstream deeplinks converted", requested=len(url_list), converted=len(parsed.links))
        return parsed.links


__all__ = [
    "BASE_URL",
    "SEARCH_PATH",
    "DEEPLINK_PATH",
    "RESULT_CODE_OK",
    "encode_uri_component",
    "ProductRecord",
    "SearchResults",
    "EmptySearch",
    "SearchResponse",
    "DeeplinkResponse",
    "parse_product",
    "parse_search_response",
    "parse_deeplink_response",
    "UpstreamClient",
]
