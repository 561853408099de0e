from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from crawler.db.models import Channel, Headline, JobRun, JobStage, JobStatus, Reader, Section, SectionFormat
from crawler.db.session import session_scope
from crawler.models.domain import HarvestedItem, LinkMetadata
from crawler.repositories.channels import (
    channel_names,
    describe_sections,
    mark_channel_processed,
    select_due_channels,
)
from crawler.repositories.headlines import (
    add_position,
    find_by_hash,
    insert_headline,
    iter_digest_candidates,
    merge_headline,
)
from crawler.repositories.job_runs import JobRunRecorder
from crawler.repositories.readers import due_readers, mark_delivered
from crawler.utils.clock import ensure_utc
from crawler.utils.hashing import content_hash

NOW = datetime(2024, 5, 7, 10, 0, tzinfo=timezone.utc)
WINDOW = timedelta(minutes=5)


def _item(link: str, position: int, **overrides) -> HarvestedItem:
    data = {
        "hash": content_hash(link),
        "title": f"Title for {link}",
        "link": link,
        "channel": "bbc",
        "section": "latest",
        "created_at": NOW,
        "position": position,
    }
    data.update(overrides)
    return HarvestedItem(**data)


def _seed_channels(factory):
    with session_scope(factory=factory) as session:
        session.add_all(
            [
                Channel(code="fresh", name="Fresh", processed_at=NOW - timedelta(minutes=4)),
                Channel(code="edge", name="Edge", processed_at=NOW - WINDOW),
                Channel(code="never", name="Never"),
                Channel(code="offline", name="Offline", lab=False),
                Section(code="world", category="latest", channel_code="fresh", raw_source="https://f/"),
                Section(
                    code="feed",
                    category="tech",
                    channel_code="edge",
                    format=SectionFormat.RSS,
                    raw_source="https://e/rss",
                ),
            ]
        )


def test_add_position_has_set_semantics():
    assert add_position(None, 3) == [3]
    assert add_position([3, 1], 3) == [3, 1]
    assert add_position([3, 1], 2) == [3, 1, 2]


def test_default_filter_selects_stale_lab_channels(session_factory):
    _seed_channels(session_factory)

    with session_scope(factory=session_factory) as session:
        codes = [c.code for c in select_due_channels(session, now=NOW, staleness=WINDOW)]

    assert codes == ["edge", "never"]


def test_explicit_filter_overrides_staleness(session_factory):
    _seed_channels(session_factory)

    with session_scope(factory=session_factory) as session:
        by_channel = select_due_channels(session, now=NOW, staleness=WINDOW, channels=["fresh", "offline"])
        by_section = select_due_channels(session, now=NOW, staleness=WINDOW, sections=["feed"])

    assert sorted(c.code for c in by_channel) == ["fresh", "offline"]
    assert [c.code for c in by_section] == ["edge"]


def test_describe_sections_detaches_descriptors(session_factory):
    _seed_channels(session_factory)

    with session_scope(factory=session_factory) as session:
        descriptors = describe_sections(select_due_channels(session, now=NOW, staleness=WINDOW, channels=["edge"]))

    assert len(descriptors) == 1
    assert descriptors[0].channel == "edge"
    assert descriptors[0].format == "rss"
    assert descriptors[0].category == "tech"


def test_mark_channel_processed_never_creates(session_factory):
    _seed_channels(session_factory)

    with session_scope(factory=session_factory) as session:
        assert mark_channel_processed(session, "never", processed_at=NOW, import_total=7)
        assert not mark_channel_processed(session, "ghost", processed_at=NOW, import_total=1)

    with session_scope(factory=session_factory) as session:
        channel = session.execute(select(Channel).where(Channel.code == "never")).scalar_one()
        assert channel.last_import_total == 7
        assert ensure_utc(channel.processed_at) == NOW
        assert session.execute(select(Channel).where(Channel.code == "ghost")).scalar_one_or_none() is None
        assert channel_names(session)["never"] == "Never"


def test_insert_then_merge_keeps_identity_and_history(session_factory):
    first = _item("https://bbc.co.uk/a", 3)
    with session_scope(factory=session_factory) as session:
        insert_headline(session, first, links=LinkMetadata(canonical="https://bbc.co.uk/a", image="https://i/x.jpg"))

    with session_scope(factory=session_factory) as session:
        entity = find_by_hash(session, first.hash)
        original_id = entity.id
        merge_headline(entity, _item("https://bbc.co.uk/a", 1, title="Updated"))
        merge_headline(entity, _item("https://bbc.co.uk/a", 3, title="Updated"))

    with session_scope(factory=session_factory) as session:
        rows = session.execute(select(Headline)).scalars().all()
        assert len(rows) == 1
        assert rows[0].id == original_id
        assert rows[0].title == "Updated"
        assert rows[0].position_idx == 3
        assert rows[0].history_idx == [3, 1]
        assert rows[0].canonical_url == "https://bbc.co.uk/a"


def test_digest_candidates_filter_and_order(session_factory):
    with session_scope(factory=session_factory) as session:
        insert_headline(session, _item("https://bbc/old", 1, created_at=NOW - timedelta(hours=2)))
        insert_headline(session, _item("https://bbc/new", 2, created_at=NOW - timedelta(minutes=5)))
        insert_headline(session, _item("https://bbc/deep", 7))
        insert_headline(session, _item("https://bbc/stale", 1, created_at=NOW - timedelta(days=2)))
        insert_headline(session, _item("https://cnn/a", 1, channel="cnn"))
        insert_headline(session, _item("https://bbc/tech", 1, section="tech"))

    with session_scope(factory=session_factory) as session:
        links = [
            h.url
            for h in iter_digest_candidates(
                session, channels=["bbc"], topics=["latest"], since=NOW - timedelta(hours=12)
            )
        ]
        assert links == ["https://bbc/new", "https://bbc/old"]
        limited = list(
            iter_digest_candidates(session, channels=["bbc"], topics=["latest"], since=NOW - timedelta(hours=12), limit=1)
        )
        assert len(limited) == 1
        assert list(iter_digest_candidates(session, channels=[], topics=["latest"], since=NOW)) == []


def test_due_readers_and_mark_delivered(session_factory):
    with session_scope(factory=session_factory) as session:
        session.add_all(
            [
                Reader(email="due@example.com", next_at=NOW - timedelta(minutes=1)),
                Reader(email="later@example.com", next_at=NOW + timedelta(hours=1)),
                Reader(email="never@example.com"),
            ]
        )

    with session_scope(factory=session_factory) as session:
        due = due_readers(session, now=NOW)
        assert [r.email for r in due] == ["due@example.com"]
        assert due_readers(session, now=NOW, email="later@example.com") == []
        mark_delivered(session, due[0].id, delivered_at=NOW, next_at=None)

    with session_scope(factory=session_factory) as session:
        reader = session.execute(select(Reader).where(Reader.email == "due@example.com")).scalar_one()
        assert ensure_utc(reader.delivered_at) == NOW
        assert reader.next_at is None


def test_job_run_recorder_marks_failure(session_factory):
    with session_scope(factory=session_factory) as session:
        try:
            with JobRunRecorder(session, stage=JobStage.CRAWL, task_name="crawl_sweep", trace_id="t1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

    with session_scope(factory=session_factory) as session:
        job = session.execute(select(JobRun)).scalar_one()
        assert job.status == JobStatus.FAILED
        assert job.error_message == "boom"
        assert job.finished_at is not None
