"""Tests for trackable link resolution."""

import asyncio
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import aiohttp
import pytest

from partners_gateway.exceptions import UpstreamError
from partners_gateway.links import LOCAL_LINK_TEMPLATE, LinkMode, LinkResolver, build_local_link
from partners_gateway.upstream import parse_product

URL_A = "https://www.coupang.com/vp/products/1001"
URL_B = "https://www.coupang.com/vp/products/1002?itemId=5&vendorItemId=9"


class TestBuildLocalLink:
    """Test deterministic local link construction."""

    def test_deterministic(self):
        assert build_local_link("ak", URL_A) == build_local_link("ak", URL_A)

    def test_url_is_fully_encoded(self):
        link = build_local_link("ak", URL_B)
        query = parse_qs(urlsplit(link).query)
        assert query["url"] == [URL_B]
        assert query["lptag"] == ["ak"]
        assert link.count("?") == 1

    def test_uses_template(self):
        link = build_local_link("ak", "https://a", "https://example.com/r?u={url}&k={access_key}")
        assert link == "https://example.com/r?u=https%3A%2F%2Fa&k=ak"

    def test_default_template_host(self):
        assert build_local_link("ak", URL_A).startswith("https://link.coupang.com/")
        assert "{url}" in LOCAL_LINK_TEMPLATE


class TestLinkMode:
    def test_parse(self):
        assert LinkMode.parse("LOCAL") is LinkMode.LOCAL
        assert LinkMode.parse(LinkMode.API) is LinkMode.API

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            LinkMode.parse("cdn")


class TestLinkResolver:
    """Test LinkResolver.resolve, which never raises."""

    @pytest.mark.asyncio
    async def test_api_mode_uses_batch_call(self, fake_upstream):
        resolver = LinkResolver("ak", upstream=fake_upstream)
        links = await resolver.resolve([URL_A, URL_B], "blog")
        assert links == {URL_A: "https://link.coupang.com/a/0", URL_B: "https://link.coupang.com/a/1"}
        assert fake_upstream.link_calls == [([URL_A, URL_B], "blog")]

    @pytest.mark.asyncio
    async def test_duplicates_and_blanks_dropped(self, fake_upstream):
        resolver = LinkResolver("ak", upstream=fake_upstream)
        await resolver.resolve([URL_A, "", URL_A, "  "])
        assert fake_upstream.link_calls == [([URL_A], "")]

    @pytest.mark.asyncio
    async def test_empty_input(self, fake_upstream):
        resolver = LinkResolver("ak", upstream=fake_upstream)
        assert await resolver.resolve([]) == {}
        assert fake_upstream.link_calls == []

    @pytest.mark.asyncio
    async def test_local_mode_skips_upstream(self, fake_upstream):
        resolver = LinkResolver("ak", upstream=fake_upstream, mode="local")
        links = await resolver.resolve([URL_A])
        assert links == {URL_A: build_local_link("ak", URL_A)}
        assert fake_upstream.link_calls == []

    @pytest.mark.asyncio
    async def test_no_upstream_is_local(self):
        resolver = LinkResolver("ak")
        assert not resolver.uses_upstream
        assert await resolver.resolve([URL_A]) == {URL_A: build_local_link("ak", URL_A)}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            UpstreamError("deeplink conversion failed (rCode=400)", status=200),
            UpstreamError("non-success status", status=503, body="down"),
            aiohttp.ClientConnectionError("refused"),
            asyncio.TimeoutError(),
            RuntimeError("bug"),
        ],
    )
    async def test_failures_fall_back_to_local(self, error):
        upstream = AsyncMock()
        upstream.batch_convert_links.side_effect = error
        resolver = LinkResolver("ak", upstream=upstream)

        links = await resolver.resolve([URL_A, URL_B])

        assert links == {
            URL_A: build_local_link("ak", URL_A),
            URL_B: build_local_link("ak", URL_B),
        }

    @pytest.mark.asyncio
    async def test_missing_urls_filled_locally(self, upstream_factory):
        upstream = upstream_factory(links={URL_A: "https://link.coupang.com/a/x"})
        resolver = LinkResolver("ak", upstream=upstream)

        links = await resolver.resolve([URL_A, URL_B])

        assert links[URL_A] == "https://link.coupang.com/a/x"
        assert links[URL_B] == build_local_link("ak", URL_B)

    @pytest.mark.asyncio
    async def test_custom_template_used_for_fallback(self, failing_link_upstream):
        template = "https://example.com/go?to={url}"
        resolver = LinkResolver("ak", upstream=failing_link_upstream, template=template)
        links = await resolver.resolve([URL_A])
        assert links[URL_A] == build_local_link("ak", URL_A, template)


class TestApply:
    """Test attaching links to products."""

    def test_apply_mapping(self, raw_products):
        products = [parse_product(item) for item in raw_products]
        linked = LinkResolver.apply(products, {products[0].canonical_url: "https://link.coupang.com/a/0"})
        assert linked[0].trackable_link == "https://link.coupang.com/a/0"
        assert linked[1].trackable_link == products[1].canonical_url

    def test_apply_preserves_order(self, raw_products):
        products = [parse_product(item) for item in raw_products]
        assert [p.id for p in LinkResolver.apply(products, {})] == [1001, 1002]
