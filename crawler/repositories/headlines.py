"""Headline persistence: upsert-by-hash with positional history."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from crawler.db.models import Headline
from crawler.models.domain import HarvestedItem, LinkMetadata, PreparedImage


def add_position(history: Iterable[int] | None, position: int) -> List[int]:
    """Append ``position`` unless already present (set semantics, order kept)."""
    merged = list(history or [])
    if position not in merged:
        merged.append(position)
    return merged


def find_by_hash(session: Session, hash_: str) -> Optional[Headline]:
    return session.execute(select(Headline).where(Headline.hash == hash_)).scalar_one_or_none()


def insert_headline(
    session: Session,
    item: HarvestedItem,
    *,
    links: Optional[LinkMetadata] = None,
    image: Optional[PreparedImage] = None,
) -> Headline:
    entity = Headline(
        hash=item.hash,
        title=item.title,
        description=item.description,
        url=item.link,
        channel=item.channel,
        section=item.section,
        created_at=item.created_at,
        position_idx=item.position,
        history_idx=[item.position],
    )
    if links is not None:
        entity.canonical_url = links.canonical
        entity.amp_url = links.amp
        entity.original_image_url = links.image
        entity.image_width = links.image_width
        entity.image_height = links.image_height
    if image is not None:
        entity.image_uuid = image.filename
        entity.image_width = image.width
        entity.image_height = image.height
    session.add(entity)
    return entity


def merge_headline(entity: Headline, item: HarvestedItem) -> Headline:
    """Field-level update of the mutable fields; identity and history survive."""
    entity.title = item.title
    entity.url = item.link
    entity.channel = item.channel
    entity.section = item.section
    entity.created_at = item.created_at
    entity.position_idx = item.position
    entity.history_idx = add_position(entity.history_idx, item.position)
    return entity


def iter_digest_candidates(
    session: Session,
    *,
    channels: Sequence[str],
    topics: Sequence[str],
    since: datetime,
    max_position: int = 5,
    limit: int = 100,
) -> Iterator[Headline]:
    """Newest-first headlines eligible for a reader's digest.

    Position and history bounds are inclusive (0..max_position). History is a
    JSON list, so its range check runs here rather than in SQL; the limit is
    applied after it.
    """
    if not channels or not topics:
        return
    stmt = (
        select(Headline)
        .where(
            Headline.channel.in_(list(channels)),
            Headline.section.in_(list(topics)),
            Headline.created_at >= since,
            Headline.position_idx <= max_position,
        )
        .order_by(Headline.created_at.desc(), Headline.position_idx)
    )
    result = session.execute(stmt).scalars()
    yielded = 0
    try:
        for headline in result:
            if not any(0 <= idx <= max_position for idx in headline.history_idx or []):
                continue
            yield headline
            yielded += 1
            if yielded >= limit:
                break
    finally:
        result.close()
