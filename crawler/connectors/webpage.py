"""HTML section harvester driven by a CSS selector."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from crawler.models.domain import SectionDescriptor

from .base import BaseHarvester, HarvestError, standardize_spaces


FetcherFn = Callable[[str], bytes]


class HtmlHarvester(BaseHarvester):
    """Scrapes every element matching ``section.pattern``.

    The link comes from the element's own ``href`` or, failing that, from the
    first anchor inside it; relative links are resolved against the page URL.
    """

    format = "html"

    def __init__(self, fetcher: FetcherFn):
        self._fetcher = fetcher

    def _fetch_raw(self, section: SectionDescriptor, limit: int) -> List[Dict[str, Any]]:
        if not section.pattern:
            raise HarvestError(f"section {section.code!r} has no selector pattern")
        body = self._fetcher(section.raw_source)
        soup = BeautifulSoup(body, "html.parser")
        try:
            elements = soup.select(section.pattern)
        except (SelectorSyntaxError, ValueError) as exc:
            raise HarvestError(f"invalid selector {section.pattern!r}: {exc}") from exc
        return list(self._extract(elements, section.raw_source))

    def _extract(self, elements: List[Tag], base_url: str) -> Iterator[Dict[str, Any]]:
        for element in elements:
            href = _find_href(element)
            yield {
                "title": standardize_spaces(element.get_text(" ")),
                "link": urljoin(base_url, href) if href else "",
            }


def _find_href(element: Tag) -> Optional[str]:
    href = element.get("href")
    if not href:
        anchor = element.find("a", href=True)
        href = anchor.get("href") if anchor is not None else None
    if isinstance(href, list):
        href = href[0] if href else None
    return href.strip() if href else None
