"""Canonical/AMP/Open Graph metadata lookup for article pages.

A first-seen headline is enriched with the page's canonical URL, its AMP
alternate and the Open Graph image (plus declared dimensions). Failures are
raised as :class:`LinkResolutionError`; callers log them and keep the item.
"""

from __future__ import annotations

from typing import Optional

import httpx
from lxml import etree
from lxml import html as lxml_html

from crawler.models.domain import LinkMetadata

_CANONICAL = "//head/link[@rel='canonical']/@href"
_AMPHTML = "//head/link[@rel='amphtml']/@href"
_OG = "//meta[@property='{prop}']/@content"


class LinkResolutionError(Exception):
    """The article page could not be fetched or parsed."""


def resolve_links(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = 5.0,
) -> LinkMetadata:
    if not url:
        raise LinkResolutionError("empty url")
    try:
        if client is not None:
            resp = client.get(url, timeout=timeout)
        else:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        raise LinkResolutionError(f"request to {url} failed: {exc}") from exc
    if resp.status_code >= 400:
        raise LinkResolutionError(f"{url} responded with {resp.status_code}")
    return parse_links(resp.content)


def parse_links(document: bytes | str) -> LinkMetadata:
    """Extract link relations and og:image data from an HTML document."""
    if not document:
        raise LinkResolutionError("empty document")
    try:
        root = lxml_html.fromstring(document)
    except (etree.ParserError, ValueError) as exc:
        raise LinkResolutionError(f"unparseable document: {exc}") from exc

    links = LinkMetadata()
    canonical = _first(root, _CANONICAL)
    if canonical:
        links.canonical = canonical
    amp = _first(root, _AMPHTML)
    if amp:
        links.amp = amp
        links.valid = True

    image = _first(root, _OG.format(prop="og:image"))
    if not image:
        image = _first(root, _OG.format(prop="og:image:url")) or _first(
            root, _OG.format(prop="og:image:secure_url")
        )
    links.image = image or ""
    links.image_width = _int(_first(root, _OG.format(prop="og:image:width")))
    links.image_height = _int(_first(root, _OG.format(prop="og:image:height")))
    links.locale = _first(root, _OG.format(prop="og:locale")) or ""
    return links


def _first(root, xpath: str) -> Optional[str]:
    values = root.xpath(xpath)
    for value in values:
        text = str(value).strip()
        if text:
            return text
    return None


def _int(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0
