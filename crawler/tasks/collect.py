"""Crawl sweep: select due channels, harvest sections, persist headlines."""

from __future__ import annotations

import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from celery import shared_task
from sqlalchemy.orm import Session, sessionmaker

from crawler.connectors.base import BaseHarvester
from crawler.connectors.rss import RSSHarvester
from crawler.connectors.webpage import HtmlHarvester
from crawler.db.models import JobStage
from crawler.db.session import ensure_schema, get_sessionmaker, session_scope
from crawler.models.domain import (
    HarvestedItem,
    LinkMetadata,
    PersistOutcome,
    PreparedImage,
    SectionDescriptor,
)
from crawler.repositories.channels import describe_sections, mark_channel_processed, select_due_channels
from crawler.repositories.headlines import find_by_hash, insert_headline, merge_headline
from crawler.repositories.job_runs import JobRunRecorder
from crawler.services.http import DomainLimiter, PoliteFetcher
from crawler.services.link_resolver import LinkResolutionError, resolve_links
from crawler.services.locks import StripedLock
from crawler.settings import Settings, SweepOptions, get_settings
from crawler.utils.clock import utcnow
from crawler.utils.logging import get_logger
from media.images import MediaError, prepare_image
from media.storage import ObjectStore, S3ObjectStore
from media.uploader import UploadReport, upload_directory

logger = get_logger(__name__)

HarvesterFactory = Callable[[SectionDescriptor], BaseHarvester]
LinkResolverFn = Callable[[str], LinkMetadata]
ImagePreparerFn = Callable[[str, Path], PreparedImage]
Enrichment = Tuple[Optional[LinkMetadata], Optional[PreparedImage]]


class CrawlConfigurationError(Exception):
    """The requested run mode is missing required inputs."""


@dataclass
class SweepReport:
    trace_id: str
    sections: int = 0
    items: List[HarvestedItem] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    failed: int = 0
    images: int = 0
    upload: Optional[UploadReport] = None

    def as_dict(self) -> Dict[str, int]:
        return {
            "sections": self.sections,
            "harvested": len(self.items),
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "images": self.images,
            "uploaded": len(self.upload.uploaded) if self.upload else 0,
            "upload_failed": len(self.upload.failed) if self.upload else 0,
        }


def build_harvester_factory(fetcher: PoliteFetcher) -> HarvesterFactory:
    html = HtmlHarvester(fetcher.get)
    rss = RSSHarvester(fetcher.get)

    def factory(section: SectionDescriptor) -> BaseHarvester:
        return rss if section.format == "rss" else html

    return factory


def harvest_sections(
    sections: Sequence[SectionDescriptor],
    *,
    limit: int,
    factory: HarvesterFactory,
    max_workers: int = 16,
) -> List[HarvestedItem]:
    """Harvest every section concurrently and join them all.

    Results keep section order, so items stay channel-contiguous. A failing
    section contributes nothing and never cancels the others.
    """
    if not sections:
        return []
    newspaper: List[HarvestedItem] = []
    with ThreadPoolExecutor(max_workers=min(max_workers, len(sections)), thread_name_prefix="harvest") as pool:
        futures = [pool.submit(factory(section).harvest, section, limit) for section in sections]
        for section, future in zip(sections, futures):
            try:
                newspaper.extend(future.result())
            except Exception:
                logger.exception("harvest.crashed", extra={"section": section.code, "channel": section.channel})
    return newspaper


class HeadlinePersister:
    """Upserts one harvested item per call; safe to call from many threads."""

    def __init__(
        self,
        factory: sessionmaker[Session],
        *,
        locks: StripedLock,
        enrich: Optional[Callable[[HarvestedItem], Enrichment]] = None,
    ) -> None:
        self._factory = factory
        self._locks = locks
        self._enrich = enrich

    def upsert(self, item: HarvestedItem) -> PersistOutcome:
        with self._locks.guard(item.hash):
            with session_scope(factory=self._factory) as session:
                existing = find_by_hash(session, item.hash)
                if existing is not None:
                    merge_headline(existing, item)
                    return PersistOutcome(hash=item.hash, created=False)
                links, image = self._enrich(item) if self._enrich else (None, None)
                insert_headline(session, item, links=links, image=image)
        return PersistOutcome(hash=item.hash, created=True, image=image)


class Enricher:
    """Resolves link metadata and, when uploads are on, prepares image variants."""

    def __init__(
        self,
        resolver: LinkResolverFn,
        *,
        image_preparer: Optional[ImagePreparerFn] = None,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self._resolver = resolver
        self._image_preparer = image_preparer
        self._temp_dir = temp_dir

    def __call__(self, item: HarvestedItem) -> Enrichment:
        try:
            links = self._resolver(item.link)
        except LinkResolutionError as exc:
            logger.info("persist.resolve_failed", extra={"hash": item.hash, "url": item.link, "error": str(exc)})
            return None, None
        image: Optional[PreparedImage] = None
        if links.image and self._image_preparer is not None and self._temp_dir is not None:
            try:
                image = self._image_preparer(links.image, self._temp_dir)
            except MediaError as exc:
                logger.warning(
                    "persist.image_failed",
                    extra={"hash": item.hash, "image": links.image, "error": str(exc)},
                )
        return links, image


def persist_newspaper(
    items: Sequence[HarvestedItem],
    persister: HeadlinePersister,
    factory: sessionmaker[Session],
    *,
    max_workers: int = 8,
    now: Callable[[], datetime] = utcnow,
) -> List[Optional[PersistOutcome]]:
    """Upsert all items concurrently and stamp each channel once.

    ``last_import_total`` is the number of items harvested for the channel in
    this sweep. The returned list matches ``items``; ``None`` marks a failure.
    """
    totals = Counter(item.channel for item in items)
    outcomes: List[Optional[PersistOutcome]] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="persist") as pool:
        futures = []
        previous: Optional[str] = None
        for item in items:
            futures.append(pool.submit(persister.upsert, item))
            if item.channel != previous:
                if item.channel:
                    with session_scope(factory=factory) as session:
                        mark_channel_processed(
                            session, item.channel, processed_at=now(), import_total=totals[item.channel]
                        )
                previous = item.channel
        for item, future in zip(items, futures):
            try:
                outcomes.append(future.result())
            except Exception:
                logger.exception("persist.failed", extra={"hash": item.hash, "url": item.link})
                outcomes.append(None)
    return outcomes


def _resolve_sections(options: SweepOptions, settings: Settings, factory: sessionmaker[Session]) -> List[SectionDescriptor]:
    if options.test:
        if not options.url or not options.pattern:
            raise CrawlConfigurationError("Missing flags. --url and --pattern are required.")
        return [SectionDescriptor(code="test", raw_source=options.url, pattern=options.pattern, format="html")]
    with session_scope(factory=factory) as session:
        channels = select_due_channels(
            session,
            now=utcnow(),
            staleness=timedelta(minutes=settings.crawl_staleness_minutes),
            channels=options.channels,
            sections=options.sections,
        )
        for channel in channels:
            logger.debug("crawl.channel", extra={"channel": channel.code, "channel_name": channel.name})
        return describe_sections(channels)


def _prepare_temp_dir(settings: Settings) -> Path:
    temp_dir = Path(settings.temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def run_sweep(
    options: SweepOptions,
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    fetcher: PoliteFetcher | None = None,
    harvester_factory: HarvesterFactory | None = None,
    resolver: LinkResolverFn | None = None,
    image_preparer: ImagePreparerFn | None = None,
    object_store: ObjectStore | None = None,
) -> SweepReport:
    """One crawl sweep driven by ``options``; collaborators are injectable."""
    config = settings or get_settings()
    report = SweepReport(trace_id=uuid.uuid4().hex)
    if not options.test and not options.all:
        logger.info("crawl.noop", extra={"hint": "use --all or --test"})
        return report

    temp_dir = _prepare_temp_dir(config)
    needs_db = options.all or options.save
    factory = session_factory
    if needs_db and factory is None:
        ensure_schema(config)
        factory = get_sessionmaker(config)

    own_fetcher = fetcher is None
    if fetcher is None:
        fetcher = PoliteFetcher(
            limiter=DomainLimiter(config.harvest_domain_parallelism),
            timeout=config.http_timeout_seconds,
            user_agent=config.http_user_agent,
        )
    try:
        logger.info("crawl.start", extra={"trace_id": report.trace_id, "options": options.model_dump()})
        sections = _resolve_sections(options, config, factory)  # type: ignore[arg-type]
        report.sections = len(sections)
        report.items = harvest_sections(
            sections,
            limit=options.limit,
            factory=harvester_factory or build_harvester_factory(fetcher),
            max_workers=config.harvest_max_workers,
        )
        logger.info(
            "crawl.harvested",
            extra={"trace_id": report.trace_id, "sections": report.sections, "items": len(report.items)},
        )

        if options.save:
            assert factory is not None
            client = fetcher.client
            enricher = Enricher(
                resolver or (lambda url: resolve_links(url, client=client, timeout=config.link_timeout_seconds)),
                image_preparer=(
                    image_preparer
                    or (lambda url, folder: prepare_image(url, folder, client=client, timeout=config.http_timeout_seconds))
                )
                if options.upload
                else None,
                temp_dir=temp_dir,
            )
            persister = HeadlinePersister(factory, locks=StripedLock(config.lock_stripes), enrich=enricher)
            with session_scope(factory=factory) as session, JobRunRecorder(
                session, stage=JobStage.CRAWL, task_name="crawl_sweep", trace_id=report.trace_id
            ) as job:
                outcomes = persist_newspaper(
                    report.items, persister, factory, max_workers=config.persist_max_workers
                )
                report.created = sum(1 for o in outcomes if o is not None and o.created)
                report.updated = sum(1 for o in outcomes if o is not None and not o.created)
                report.failed = sum(1 for o in outcomes if o is None)
                report.images = sum(1 for o in outcomes if o is not None and o.image is not None)
                job.item_count = report.created + report.updated
            logger.info(
                "persist.saved",
                extra={
                    "trace_id": report.trace_id,
                    "inserted": report.created,
                    "updated": report.updated,
                    "failed": report.failed,
                },
            )
    finally:
        if own_fetcher:
            fetcher.close()

    if options.upload:
        store = object_store or S3ObjectStore(region=config.aws_region, timeout_seconds=config.upload_timeout_seconds)
        if factory is None:
            report.upload = _upload(temp_dir, store, config, options)
        else:
            with session_scope(factory=factory) as session, JobRunRecorder(
                session, stage=JobStage.UPLOAD, task_name="upload_images", trace_id=report.trace_id
            ) as job:
                report.upload = _upload(temp_dir, store, config, options)
                job.item_count = len(report.upload.uploaded)
    logger.info("crawl.done", extra={"trace_id": report.trace_id, "summary": report.as_dict()})
    return report


def _upload(temp_dir: Path, store: ObjectStore, settings: Settings, options: SweepOptions) -> UploadReport:
    return upload_directory(
        temp_dir,
        store,
        bucket=settings.aws_bucket,
        subfolder=settings.aws_subfolder,
        acl=settings.aws_acl,
        workers=options.clusters,
    )


def format_newspaper(items: Sequence[HarvestedItem]) -> str:
    lines: List[str] = []
    for item in items:
        lines.append(f"[{item.channel or '-'}:{item.section or '-'} #{item.position}] {item.title}")
        lines.append(f" - {item.link}")
    return "\n".join(lines)


@shared_task(name="crawler.tasks.collect.crawl_sweep")
def crawl_sweep(limit: int | None = None, upload: bool = False) -> Dict[str, int]:  # pragma: no cover - wrapper
    settings = get_settings()
    options = SweepOptions(
        all=True,
        save=True,
        upload=upload,
        limit=limit or settings.harvest_limit,
        clusters=settings.upload_workers,
    )
    return run_sweep(options, settings).as_dict()
