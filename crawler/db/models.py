"""SQLAlchemy models for channels, headlines, readers and job runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import Uuid


class Base(DeclarativeBase):
    """Base class for ORM models."""


class TimestampMixin:
    """Adds created_at/updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class JobStage(str, Enum):
    CRAWL = "crawl"
    UPLOAD = "upload"
    DELIVER = "deliver"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SectionFormat(str, Enum):
    HTML = "html"
    RSS = "rss"


class Channel(Base):
    """A news site grouping one or more crawlable sections."""

    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    link: Mapped[str | None] = mapped_column(String(2048))
    lab: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_import_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    sections: Mapped[list["Section"]] = relationship(
        back_populates="channel",
        order_by="Section.id",
        lazy="selectin",
    )


class Section(Base):
    """One crawlable unit of a channel: URL, extraction pattern and format."""

    __tablename__ = "sections"
    __table_args__ = (UniqueConstraint("channel_code", "code", name="uq_sections_channel_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="latest")
    channel_code: Mapped[str] = mapped_column(
        String(64), ForeignKey("channels.code", ondelete="CASCADE"), nullable=False
    )
    format: Mapped[SectionFormat] = mapped_column(
        SAEnum(SectionFormat, name="section_format", native_enum=False, length=8),
        nullable=False,
        default=SectionFormat.HTML,
    )
    raw_source: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    pattern: Mapped[str] = mapped_column(String(512), nullable=False, default="")

    channel: Mapped[Channel] = relationship(back_populates="sections")


class Headline(Base):
    """A harvested headline/link pair identified by the hash of its link."""

    __tablename__ = "headlines"
    __table_args__ = (
        UniqueConstraint("hash", name="uq_headlines_hash"),
        Index("ix_headlines_channel_created", "channel", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    hash: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    channel: Mapped[str] = mapped_column(String(64), nullable=False)
    section: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    position_idx: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    canonical_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    amp_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    original_image_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    image_uuid: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    image_width: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_height: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    history_idx: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)


class Reader(Base):
    """Newsletter subscriber with a recurring weekly delivery pattern."""

    __tablename__ = "readers"
    __table_args__ = (Index("ix_readers_next_at", "next_at"),)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    fullname: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    hours: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    days: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    channels: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    topics: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    subscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    unsubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class JobRun(TimestampMixin, Base):
    """Represents a single sweep execution."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_stage_status", "stage", "status"),
        Index("ix_job_runs_trace", "trace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    stage: Mapped[JobStage] = mapped_column(
        SAEnum(JobStage, name="job_stage", native_enum=False, length=16),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, name="job_status", native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PENDING,
    )
    task_name: Mapped[str | None] = mapped_column(String(100))
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(String(512))
    trace_id: Mapped[str | None] = mapped_column(String(64))
