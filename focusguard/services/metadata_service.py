"""Page metadata lookup for content sub-sessions."""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup

from focusguard.models.sessions import PageMetadata
from focusguard.services.tab_registry import TabRegistry
from focusguard.utils import is_trackable

logger = logging.getLogger(__name__)

USER_AGENT = "FocusGuardAgent/0.1"
# Titles and descriptions live in <head>; the rest of the body is never read.
MAX_PAGE_BYTES = 512 * 1024


class MetadataError(Exception):
    """Page metadata could not be obtained."""


def parse_page_metadata(html: str) -> PageMetadata:
    """Extract title and description from an HTML document.

    Prefers ``<title>`` and ``meta[name=description]``, falling back to the
    Open Graph equivalents.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string
    if not title.strip():
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title:
            title = str(og_title.get("content") or "")

    description = ""
    meta = soup.find("meta", attrs={"name": "description"}) or soup.find(
        "meta", attrs={"property": "og:description"}
    )
    if meta:
        description = str(meta.get("content") or "")

    return PageMetadata(title=" ".join(title.split()), description=" ".join(description.split()))


class PageMetadataService:
    """Resolve the title/description of the page shown in a tab.

    Metadata pushed by the extension's content script wins; otherwise the page
    is fetched over HTTP when a client is configured. Never raises to callers.
    """

    def __init__(self, registry: TabRegistry, client: httpx.AsyncClient | None = None) -> None:
        self.registry = registry
        self.client = client

    async def get_page_metadata(self, tab_id: int) -> PageMetadata:
        try:
            return await self._resolve(tab_id)
        except MetadataError as err:
            logger.warning("No metadata for tab %s: %s", tab_id, err)
            return PageMetadata()

    async def _resolve(self, tab_id: int) -> PageMetadata:
        tab = await self.registry.get_tab(tab_id)
        if tab is None or not is_trackable(tab.url):
            raise MetadataError("tab has no trackable URL")

        pushed = self.registry.pushed_metadata(tab_id, tab.url)
        if pushed is not None and pushed.has_title:
            return pushed
        if self.client is None:
            return pushed or PageMetadata()
        return await self._fetch(tab.url)

    async def _fetch(self, url: str) -> PageMetadata:
        """Download at most ``MAX_PAGE_BYTES`` of the page and parse them."""
        body = bytearray()
        try:
            async with self.client.stream(
                "GET", url, headers={"User-Agent": USER_AGENT}, follow_redirects=True
            ) as response:
                if response.status_code >= 400:
                    raise MetadataError(f"fetch returned {response.status_code} for {url}")
                if "html" not in response.headers.get("content-type", "text/html"):
                    raise MetadataError(f"{url} is not an HTML page")
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) >= MAX_PAGE_BYTES:
                        break
                encoding = response.encoding or "utf-8"
        except httpx.HTTPError as err:
            raise MetadataError(f"fetch failed for {url}: {err}") from err

        raw = bytes(body[:MAX_PAGE_BYTES])
        try:
            html = raw.decode(encoding, errors="replace")
        except LookupError:
            html = raw.decode("utf-8", errors="replace")
        return parse_page_metadata(html)
