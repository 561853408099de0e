"""Database utilities for the crawl and delivery pipeline."""

from .models import (  # noqa: F401
    Base,
    Channel,
    Headline,
    JobRun,
    JobStage,
    JobStatus,
    Reader,
    Section,
    SectionFormat,
)
from .session import ensure_schema, get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "Base",
    "Channel",
    "Headline",
    "JobRun",
    "JobStage",
    "JobStatus",
    "Reader",
    "Section",
    "SectionFormat",
    "ensure_schema",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
