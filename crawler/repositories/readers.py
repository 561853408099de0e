"""Reader (newsletter subscriber) queries."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from crawler.db.models import Reader


def due_readers(session: Session, *, now: datetime, email: Optional[str] = None) -> List[Reader]:
    stmt = select(Reader).where(Reader.next_at.is_not(None), Reader.next_at <= now).order_by(Reader.next_at)
    if email:
        stmt = stmt.where(Reader.email == email)
    return list(session.execute(stmt).scalars().all())


def mark_delivered(session: Session, reader_id, *, delivered_at: datetime, next_at: Optional[datetime]) -> None:  # noqa: ANN001
    session.execute(
        update(Reader)
        .where(Reader.id == reader_id)
        .values(delivered_at=delivered_at, next_at=next_at)
    )
