"""Digest selection and dispatch for due readers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from sqlalchemy.orm import Session, sessionmaker

from crawler.db.models import Headline, JobStage, Reader
from crawler.db.session import ensure_schema, get_sessionmaker, session_scope
from crawler.repositories.channels import channel_names
from crawler.repositories.headlines import iter_digest_candidates
from crawler.repositories.job_runs import JobRunRecorder
from crawler.repositories.readers import due_readers, mark_delivered
from crawler.settings import Settings, get_settings
from crawler.utils.clock import ensure_utc, utcnow
from crawler.utils.logging import get_logger
from publish.mailer import MailerError, SmtpTemplateMailer, TemplateMailer
from publish.schedule import ScheduleError, compute_next_send
from publish.similarity import jaro
from publish.tokens import sign_token

logger = get_logger(__name__)

TOPIC_NAMES: Dict[str, str] = {
    "latest": "Latest",
    "business": "Business",
    "politics": "Politics",
    "entertainment": "Entertainment",
    "tech": "Tech",
    "sport": "Sport",
    "gossips": "Gossips",
    "art_culture": "Art & Culture",
    "film": "Film",
    "food": "Food",
    "music": "Music",
    "science": "Science",
    "photography": "Photography",
    "travel": "Travel",
    "style": "Style",
    "health": "Health",
    "media": "Media",
    "lgbt": "LGBT+",
}


def topic_name(code: Optional[str]) -> str:
    return TOPIC_NAMES.get((code or "").lower(), "All")


def hostname(link: str) -> str:
    try:
        return urlsplit(link).hostname or link
    except ValueError:
        return link


def format_subject(names: Sequence[str]) -> str:
    """``Latest news from A, B and C``."""
    if not names:
        return "Latest news"
    if len(names) == 1:
        return f"Latest news from {names[0]}"
    return f"Latest news from {', '.join(names[:-1])} and {names[-1]}"


@dataclass(frozen=True)
class DigestItem:
    title: str
    url: str
    channel: str
    section: str
    created_at: Optional[datetime] = None
    position: int = 0

    @classmethod
    def from_headline(cls, headline: Headline) -> "DigestItem":
        return cls(
            title=headline.title,
            url=headline.url,
            channel=headline.channel or "",
            section=headline.section or "",
            created_at=ensure_utc(headline.created_at),
            position=headline.position_idx or 0,
        )

    def as_template(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "hostname": hostname(self.url),
            "channel": self.channel,
            "section": self.section,
            "created_at": self.created_at,
            "position": self.position,
        }


@dataclass
class DigestSelection:
    accepted: List[DigestItem] = field(default_factory=list)
    suppressed: List[DigestItem] = field(default_factory=list)
    channels: List[str] = field(default_factory=list)
    groups: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


def select_headlines(
    candidates: Sequence[DigestItem],
    names: Mapping[str, str],
    *,
    cap: int = 6,
    threshold: float = 0.9,
) -> DigestSelection:
    """Apply the per-channel cap and Jaro near-duplicate suppression.

    A channel's counter is bumped before the similarity check, so a suppressed
    near-duplicate still uses one of that channel's ``cap`` slots. Titles are
    only compared against already accepted titles.
    """
    selection = DigestSelection()
    counters: Dict[str, int] = {}
    for item in candidates:
        if counters.get(item.channel, 0) >= cap:
            continue
        counters[item.channel] = counters.get(item.channel, 0) + 1
        if any(jaro(title, item.title) >= threshold for title in (kept.title for kept in selection.accepted)):
            selection.suppressed.append(item)
            continue
        selection.accepted.append(item)
        display = names.get(item.channel, item.channel)
        if display not in selection.channels:
            selection.channels.append(display)
        topic = topic_name(item.section)
        selection.groups.setdefault(topic, []).append({"Topic": topic, "Items": [item.as_template()]})
    return selection


@dataclass
class DispatchReport:
    trace_id: str
    readers: int = 0
    sent: int = 0
    empty: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"readers": self.readers, "sent": self.sent, "empty": self.empty, "failed": self.failed}


def _next_send(reader: Reader, settings: Settings, now: datetime) -> Optional[datetime]:
    try:
        return compute_next_send(
            reader.days or [],
            reader.hours or [],
            reader.timezone,
            eligible=reader.unsubscribed_at is None,
            now=now,
            default_timezone=settings.default_timezone,
        )
    except ScheduleError as exc:
        logger.warning("deliver.schedule_invalid", extra={"reader": str(reader.id), "error": str(exc)})
        return None


def deliver_to_reader(
    session: Session,
    reader: Reader,
    *,
    names: Mapping[str, str],
    mailer: TemplateMailer,
    settings: Settings,
    now: datetime,
) -> Optional[str]:
    """Send one reader's digest and reschedule them.

    Returns the mail receipt, or ``None`` when nothing qualified. A failed send
    raises :class:`MailerError` and leaves the reader's schedule unchanged.
    """
    since = ensure_utc(reader.delivered_at) or now - timedelta(hours=settings.digest_lookback_hours)
    candidates = [
        DigestItem.from_headline(headline)
        for headline in iter_digest_candidates(
            session,
            channels=reader.channels or [],
            topics=reader.topics or [],
            since=since,
            max_position=settings.digest_max_position,
            limit=settings.digest_candidate_limit,
        )
    ]
    selection = select_headlines(
        candidates,
        names,
        cap=settings.digest_channel_cap,
        threshold=settings.digest_similarity_threshold,
    )
    logger.info(
        "deliver.selected",
        extra={
            "reader": str(reader.id),
            "candidates": len(candidates),
            "accepted": len(selection.accepted),
            "suppressed": len(selection.suppressed),
        },
    )

    receipt: Optional[str] = None
    if selection.accepted:
        data = {
            "Token": sign_token(str(reader.id), "unsubscribe", settings.token_secret.get_secret_value()),
            "Website": settings.website_url,
            "UserID": str(reader.id),
            "Email": reader.email,
            "Headlines": selection.groups,
        }
        receipt = mailer.send_template(settings.digest_template, reader.email, format_subject(selection.channels), data)

    mark_delivered(session, reader.id, delivered_at=now, next_at=_next_send(reader, settings, now))
    return receipt


def dispatch_digests(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    mailer: TemplateMailer | None = None,
    now: datetime | None = None,
    email: str | None = None,
) -> DispatchReport:
    """Deliver digests to every reader whose next send time has passed."""
    config = settings or get_settings()
    factory = session_factory
    if factory is None:
        ensure_schema(config)
        factory = get_sessionmaker(config)
    sender = mailer or SmtpTemplateMailer.from_settings(config)
    current = now or utcnow()
    report = DispatchReport(trace_id=uuid.uuid4().hex)

    logger.info("deliver.start", extra={"trace_id": report.trace_id, "email": email})
    with session_scope(factory=factory) as session, JobRunRecorder(
        session, stage=JobStage.DELIVER, task_name="deliver_digests", trace_id=report.trace_id
    ) as job:
        names = channel_names(session)
        readers = due_readers(session, now=current, email=email)
        report.readers = len(readers)
        for reader in readers:
            try:
                receipt = deliver_to_reader(
                    session, reader, names=names, mailer=sender, settings=config, now=current
                )
            except MailerError as exc:
                report.failed += 1
                logger.error(
                    "deliver.send_failed",
                    extra={"trace_id": report.trace_id, "reader": str(reader.id), "error": str(exc)},
                )
                continue
            session.commit()
            if receipt is None:
                report.empty += 1
            else:
                report.sent += 1
        job.item_count = report.sent
    logger.info("deliver.done", extra={"trace_id": report.trace_id, **report.as_dict()})
    return report
