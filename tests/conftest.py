from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from crawler.db.session import ensure_schema, get_sessionmaker  # noqa: E402
from crawler.settings import Settings, reset_settings_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_dsn=f"sqlite:///{tmp_path / 'pressreview.db'}",
        temp_dir=str(tmp_path / "tmp"),
        token_secret="test-secret",
        website_url="https://thepressreview.test",
        harvest_max_workers=4,
        persist_max_workers=4,
    )


@pytest.fixture
def session_factory(settings: Settings):
    ensure_schema(settings)
    return get_sessionmaker(settings)
