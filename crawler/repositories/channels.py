"""Channel selection and bookkeeping."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from crawler.db.models import Channel, Section
from crawler.models.domain import SectionDescriptor


def select_due_channels(
    session: Session,
    *,
    now: datetime,
    staleness: timedelta,
    channels: Sequence[str] = (),
    sections: Sequence[str] = (),
) -> List[Channel]:
    """Return channels eligible for this sweep.

    An explicit channel/section allow-list wins; otherwise lab channels never
    processed, or processed at or before ``now - staleness``, are due.
    """
    stmt = select(Channel).order_by(Channel.id)
    if channels or sections:
        clauses = []
        if channels:
            clauses.append(Channel.code.in_(list(channels)))
        if sections:
            clauses.append(
                Channel.code.in_(select(Section.channel_code).where(Section.code.in_(list(sections))))
            )
        stmt = stmt.where(or_(*clauses))
    else:
        cutoff = now - staleness
        stmt = stmt.where(
            Channel.lab.is_(True),
            or_(Channel.processed_at.is_(None), Channel.processed_at <= cutoff),
        )
    return list(session.execute(stmt).scalars().unique().all())


def describe_sections(channels: Sequence[Channel]) -> List[SectionDescriptor]:
    """Flatten channels into detached section descriptors, channel-contiguous."""
    descriptors: List[SectionDescriptor] = []
    for channel in channels:
        for section in channel.sections:
            descriptors.append(
                SectionDescriptor(
                    code=section.code,
                    category=section.category,
                    channel=channel.code,
                    format=section.format.value if hasattr(section.format, "value") else str(section.format),
                    raw_source=section.raw_source or "",
                    pattern=section.pattern or "",
                )
            )
    return descriptors


def mark_channel_processed(session: Session, code: str, *, processed_at: datetime, import_total: int) -> bool:
    """Set ``processed_at``/``last_import_total``; never creates a channel."""
    result = session.execute(
        update(Channel)
        .where(Channel.code == code)
        .values(processed_at=processed_at, last_import_total=import_total)
    )
    return bool(result.rowcount)


def channel_names(session: Session) -> Dict[str, str]:
    return {code: name for code, name in session.execute(select(Channel.code, Channel.name))}
