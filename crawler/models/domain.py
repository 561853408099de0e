"""Domain DTOs for the crawl pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SectionDescriptor(BaseModel):
    """Read-only snapshot of a section, detached from any DB session."""

    model_config = ConfigDict(frozen=True)

    code: str = ""
    category: str = ""
    channel: str = Field("", description="소유 채널 코드")
    format: str = Field("html", description="html 또는 rss")
    raw_source: str = Field("", description="수집 대상 URL")
    pattern: str = Field("", description="HTML 모드의 CSS 선택자")


class HarvestedItem(BaseModel):
    """One accepted headline from a single harvest pass."""

    hash: str = Field(..., description="링크 해시 (중복 방지 키)")
    title: str
    description: str = ""
    link: str
    channel: str = ""
    section: str = Field("", description="섹션 카테고리 (토픽 코드)")
    created_at: datetime
    position: int = Field(..., ge=1, description="수집 회차 내 1부터 시작하는 순위")


class LinkMetadata(BaseModel):
    """Canonical/AMP/Open Graph metadata resolved from an article page."""

    canonical: str = ""
    amp: str = ""
    image: str = ""
    image_width: int = 0
    image_height: int = 0
    locale: str = ""
    valid: bool = False


class PreparedImage(BaseModel):
    """Locally derived image variants waiting for upload."""

    filename: str
    width: int
    height: int
    files: List[str] = Field(default_factory=list, description="임시 폴더 기준 파일명 목록")


class PersistOutcome(BaseModel):
    hash: str
    created: bool
    image: Optional[PreparedImage] = None
