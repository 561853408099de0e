"""Configuration models for the crawl and delivery pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_codes(value: object) -> List[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError("코드 목록은 콤마 구분 문자열 또는 리스트여야 합니다.")


class SweepOptions(BaseModel):
    """Run-mode flags for one crawl sweep, built once and passed down."""

    model_config = ConfigDict(frozen=True)

    log: bool = Field(False, description="디버그 로그 출력 여부.")
    test: bool = Field(False, description="url/pattern 으로 단일 섹션만 수집.")
    all: bool = Field(False, description="저장소의 채널 전체를 대상으로 수집.")
    save: bool = Field(False, description="수집 결과를 저장소에 반영.")
    display: bool = Field(False, description="수집 결과를 화면에 출력.")
    upload: bool = Field(False, description="이미지 변형본 생성 및 업로드.")
    limit: PositiveInt = Field(10, description="섹션당 최대 수집 건수.")
    clusters: PositiveInt = Field(4, description="업로드 워커 수.")
    url: str = ""
    pattern: str = ""
    channels: List[str] = Field(default_factory=list)
    sections: List[str] = Field(default_factory=list)

    @field_validator("channels", "sections", mode="before")
    @classmethod
    def _parse_codes(cls, value: object) -> List[str]:
        return _split_codes(value)

    @property
    def has_explicit_filter(self) -> bool:
        return bool(self.channels or self.sections)


class Settings(BaseSettings):
    """크롤러/뉴스레터 파이프라인 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database_dsn: str = Field(..., alias="DATABASE_DSN", description="SQLAlchemy 연결 문자열.")
    broker_url: str = Field(
        "redis://localhost:6379/0",
        alias="CELERY_BROKER_URL",
        description="Celery 브로커/백엔드 Redis DSN.",
    )
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")

    crawl_staleness_minutes: PositiveInt = Field(
        5, alias="CRAWL_STALENESS_MINUTES", description="채널 재수집까지 최소 경과 시간(분)."
    )
    harvest_limit: PositiveInt = Field(10, alias="HARVEST_LIMIT", description="섹션당 기본 수집 건수.")
    harvest_domain_parallelism: PositiveInt = Field(
        5, alias="HARVEST_DOMAIN_PARALLELISM", description="도메인별 동시 요청 상한."
    )
    harvest_max_workers: PositiveInt = Field(16, alias="HARVEST_MAX_WORKERS", description="섹션 수집 스레드 수.")
    persist_max_workers: PositiveInt = Field(8, alias="PERSIST_MAX_WORKERS", description="업서트 스레드 수.")
    lock_stripes: PositiveInt = Field(64, alias="LOCK_STRIPES", description="해시별 락 스트라이프 수.")
    http_timeout_seconds: PositiveFloat = Field(10.0, alias="HTTP_TIMEOUT_SECONDS", description="HTTP 타임아웃(초).")
    link_timeout_seconds: PositiveFloat = Field(5.0, alias="LINK_TIMEOUT_SECONDS", description="메타데이터 조회 타임아웃(초).")
    http_user_agent: str = Field(
        "pressreview/1.0 (+headline crawler)", alias="HTTP_USER_AGENT", description="HTTP User-Agent."
    )
    temp_dir: str = Field("./tmp", alias="TEMP_DIR", description="이미지 임시 저장 경로.")

    aws_region: str = Field("us-east-1", alias="AWS_REGION", description="S3 리전.")
    aws_bucket: str = Field("thepressreview", alias="AWS_BUCKET", description="S3 버킷.")
    aws_acl: str = Field("public-read", alias="AWS_ACL", description="업로드 객체 ACL.")
    aws_subfolder: str = Field("images/", alias="AWS_SUBFOLDER", description="업로드 키 접두사.")
    upload_workers: PositiveInt = Field(4, alias="UPLOAD_WORKERS", description="업로드 워커 수.")
    upload_timeout_seconds: PositiveInt = Field(30, alias="UPLOAD_TIMEOUT_SECONDS", description="업로드 타임아웃(초).")

    website_url: str = Field("", alias="WEBSITE_URL", description="뉴스레터에 삽입되는 웹사이트 주소.")
    token_secret: SecretStr = Field(SecretStr(""), alias="TOKEN_SECRET", description="구독 해지 토큰 서명 키.")
    smtp_host: str = Field("localhost", alias="SMTP_HOST")
    smtp_port: PositiveInt = Field(587, alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(None, alias="SMTP_USER")
    smtp_password: Optional[SecretStr] = Field(None, alias="SMTP_PASSWORD")
    smtp_from_email: str = Field("newsletter@localhost", alias="SMTP_FROM_EMAIL")
    smtp_timeout_seconds: PositiveInt = Field(30, alias="SMTP_TIMEOUT_SECONDS")

    digest_template: str = Field("newsletter_001.html", alias="DIGEST_TEMPLATE")
    digest_lookback_hours: PositiveInt = Field(12, alias="DIGEST_LOOKBACK_HOURS")
    digest_channel_cap: PositiveInt = Field(6, alias="DIGEST_CHANNEL_CAP")
    digest_similarity_threshold: PositiveFloat = Field(0.9, alias="DIGEST_SIMILARITY_THRESHOLD")
    digest_candidate_limit: PositiveInt = Field(100, alias="DIGEST_CANDIDATE_LIMIT")
    digest_max_position: PositiveInt = Field(5, alias="DIGEST_MAX_POSITION")
    default_timezone: str = Field("Europe/London", alias="DEFAULT_TIMEZONE")

    crawl_interval_minutes: int = Field(5, ge=0, alias="CRAWL_INTERVAL_MINUTES", description="0이면 crawl beat 비활성화.")
    deliver_interval_minutes: int = Field(15, ge=0, alias="DELIVER_INTERVAL_MINUTES", description="0이면 deliver beat 비활성화.")
    celery_worker_concurrency: PositiveInt = Field(
        4,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        900,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("database_dsn")
    @classmethod
    def _validate_database_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("DATABASE_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator("temp_dir")
    @classmethod
    def _validate_temp_dir(cls, value: str) -> str:
        root = value.strip()
        if not root:
            raise ValueError("TEMP_DIR는 공백일 수 없습니다.")
        return root

    @field_validator("digest_similarity_threshold")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if value > 1:
            raise ValueError("DIGEST_SIMILARITY_THRESHOLD는 1 이하여야 합니다.")
        return value

    @field_validator("aws_subfolder")
    @classmethod
    def _normalize_subfolder(cls, value: str) -> str:
        folder = value.strip().lstrip("/")
        if folder and not folder.endswith("/"):
            folder += "/"
        return folder


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
