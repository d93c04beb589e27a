"""
Trackable link resolution.

Turns product URLs into outbound links that attribute purchases to the
affiliate account. Two strategies:

- API: one batch deeplink call to the partner API (accurate attribution,
  routed through the partner's tracking server)
- LOCAL: deterministic construction from the access key and the URL using a
  fixed template (no network call; availability over attribution accuracy)

In API mode any upstream failure degrades to LOCAL construction. A failed
link-tracking call must never fail an otherwise successful search, so
``LinkResolver.resolve`` does not raise.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Iterable, Sequence
from urllib.parse import quote

import aiohttp

from partners_gateway.exceptions import GatewayError
from partners_gateway.logging_config import get_logger
from partners_gateway.upstream import ProductRecord, UpstreamClient

logger = get_logger(__name__)

LOCAL_LINK_TEMPLATE = "https://link.coupang.com/re/AFFSDP?lptag={access_key}&url={url}"


class LinkMode(str, Enum):
    """Which strategy LinkResolver tries first."""

    API = "api"
    LOCAL = "local"

    @classmethod
    def parse(cls, value: str | "LinkMode") -> "LinkMode":
        if isinstance(value, LinkMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown link mode {value!r}; expected 'api' or 'local'") from None


def build_local_link(access_key: str, url: str, template: str = LOCAL_LINK_TEMPLATE) -> str:
    """Construct a trackable link without calling the partner API.

    Both substitutions are fully percent-encoded so the result is a single
    well-formed URL whatever the inputs contain.
    """
    return template.format(
        access_key=quote(access_key, safe=""),
        url=quote(url, safe=""),
    )


def _unique(urls: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        if url and url.strip() and url not in seen:
            seen[url] = None
    return list(seen)


class LinkResolver:
    """Maps original product URLs to trackable links.

    Args:
        access_key: Affiliate access key, used by local construction.
        upstream: Client for batch conversion. Without one, only local
            construction is available.
        mode: Preferred strategy.
        template: URL template for local construction.
    """

    def __init__(
        self,
        access_key: str,
        upstream: UpstreamClient | None = None,
        mode: LinkMode | str = LinkMode.API,
        template: str = LOCAL_LINK_TEMPLATE,
    ):
        self.access_key = access_key
        self.upstream = upstream
        self.mode = LinkMode.parse(mode)
        self.template = template

    @property
    def uses_upstream(self) -> bool:
        return self.mode is LinkMode.API and self.upstream is not None

    def build_local(self, urls: Iterable[str]) -> dict[str, str]:
        return {url: build_local_link(self.access_key, url, self.template) for url in urls}

    async def resolve(self, urls: Sequence[str], sub_id: str = "") -> dict[str, str]:
        """Resolve ``urls`` to trackable links. Never raises."""
        wanted = _unique(urls)
        if not wanted:
            return {}

        if not self.uses_upstream:
            return self.build_local(wanted)

        try:
            converted = await self.upstream.batch_convert_links(wanted, sub_id)
        except (GatewayError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Deeplink conversion failed; using local links",
                error=str(e),
                error_type=type(e).__name__,
                url_count=len(wanted),
            )
            return self.build_local(wanted)
        except Exception as e:
            # Unexpected failures are contained too; only link quality degrades.
            logger.error(
                "Unexpected deeplink failure; using local links",
                exc_info=True,
                error_type=type(e).__name__,
            )
            return self.build_local(wanted)

        missing = [url for url in wanted if url not in converted]
        if missing:
            logger.info("Deeplink response missing urls; filling locally", missing=len(missing))
            converted = {**converted, **self.build_local(missing)}
        return converted

    @staticmethod
    def apply(products: Iterable[ProductRecord], mapping: dict[str, str]) -> list[ProductRecord]:
        """Attach resolved links; products absent from ``mapping`` keep their canonical URL."""
        return [p.with_trackable_link(mapping.get(p.canonical_url)) for p in products]


__all__ = [
    "LOCAL_LINK_TEMPLATE",
    "LinkMode",
    "LinkResolver",
    "build_local_link",
]
