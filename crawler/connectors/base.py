"""Harvester abstraction, errors, and helpers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from crawler.models.domain import HarvestedItem, SectionDescriptor
from crawler.utils.hashing import content_hash
from crawler.utils.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


class ConnectorError(Exception):
    """Base connector error."""


class HarvestError(ConnectorError):
    """A section could not be fetched or parsed."""


def standardize_spaces(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim the ends."""
    return _WHITESPACE.sub(" ", text or "").strip()


class BaseHarvester(ABC):
    """Turns one section descriptor into ranked headline items.

    Subclasses only fetch raw ``{"title", "link"}`` dicts in document order;
    filtering, truncation, ranking and hashing happen here.
    """

    format: str

    def harvest(self, section: SectionDescriptor, limit: int) -> List[HarvestedItem]:
        if not section.raw_source:
            return []
        try:
            raw = self._fetch_raw(section, limit)
        except ConnectorError as exc:
            logger.warning(
                "harvest.failed",
                extra={"section": section.code, "channel": section.channel, "url": section.raw_source, "error": str(exc)},
            )
            return []
        items = self._rank(section, raw, limit)
        logger.debug(
            "harvest.done",
            extra={"section": section.code, "channel": section.channel, "count": len(items)},
        )
        return items

    @abstractmethod
    def _fetch_raw(self, section: SectionDescriptor, limit: int) -> Iterable[Dict[str, Any]]:
        """Return raw item dicts from the upstream, in source order."""

    def _clean_title(self, value: Any) -> str:
        return str(value or "").strip()

    def _rank(self, section: SectionDescriptor, items: Iterable[Dict[str, Any]], limit: int) -> List[HarvestedItem]:
        accepted: List[HarvestedItem] = []
        now = datetime.now(timezone.utc)
        position = 1
        for item in items:
            if len(accepted) >= limit:
                break
            title = self._clean_title(item.get("title"))
            link = str(item.get("link") or "").strip()
            if not title or not link:
                continue
            accepted.append(
                HarvestedItem(
                    hash=content_hash(link),
                    title=title,
                    description=str(item.get("description") or "").strip(),
                    link=link,
                    channel=section.channel,
                    section=section.category,
                    created_at=now,
                    position=position,
                )
            )
            position += 1
        return accepted
