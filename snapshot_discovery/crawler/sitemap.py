"""Fetch a sitemap and list the URLs it names."""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from snapshot_discovery.errors import SitemapFetchError, SitemapFormatError

logger = logging.getLogger(__name__)

SITEMAP_TIMEOUT = 30.0

_LOC_RE = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)
_XML_CONTENT_TYPE = re.compile(r"^(application|text)/xml$", re.IGNORECASE)


def parse_sitemap(body: str) -> list[str]:
    """Extract every <loc> URL, dropping duplicates that differ by a trailing slash."""
    urls = _LOC_RE.findall(body)

    first_seen: dict[str, int] = {}
    for i, url in enumerate(urls):
        first_seen.setdefault(url, i)

    deduped = []
    for i, url in enumerate(urls):
        stripped = url[:-1] if url.endswith("/") else url
        match = first_seen.get(stripped)
        if match is None or match == i:
            deduped.append(url)
    return deduped


async def gather_sitemap_urls(
    sitemap_url: str, client: Optional[httpx.AsyncClient] = None
) -> list[str]:
    """Fetch a sitemap and return the URLs it lists.

    Raises SitemapFetchError when the request fails and SitemapFormatError when
    the response is not an XML document.
    """
    logger.debug("Fetching sitemap %s", sitemap_url)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=SITEMAP_TIMEOUT, follow_redirects=True) as owned:
                response = await owned.get(sitemap_url)
        else:
            response = await client.get(sitemap_url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise SitemapFetchError(f"Unable to fetch sitemap {sitemap_url}: {e}") from e

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    if not _XML_CONTENT_TYPE.match(content_type):
        raise SitemapFormatError(
            "The sitemap must be an XML document, "
            f'but the content-type was "{content_type}"'
        )

    urls = parse_sitemap(response.text)
    logger.info("Sitemap %s lists %d URLs", sitemap_url, len(urls))
    return urls
