"""
Shared pytest fixtures for cache-sync tests.

This module provides:
- A file-backed SQLite source database with the production schema
- An in-memory redis stand-in and a store adapter bound to it
- Settings built without reading ``.env`` files

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(source_engine, extraction, store):
            insert(source_engine, "company_app", {"id": 1, "app_key": "k1", "company_id": 9})
            ...
"""

import sys
from pathlib import Path
from typing import Any, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

# Ensure cachesync is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cachesync.core.settings import CacheSyncSettings, clear_settings_cache
from cachesync.source.extraction import ExtractionLayer
from cachesync.source.reader import SourceReader
from cachesync.store.adapter import KeyValueStore
from tests._support.fake_redis import FakeRedis
from tests._support.source_db import create_schema


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so env changes in one test never leak."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def make_settings():
    """Factory for settings that ignore ``.env`` and the process environment defaults."""

    def _make(**overrides: Any) -> CacheSyncSettings:
        values: dict[str, Any] = {"max_workers": 4, "timeout_seconds": 30, "log_level": "DEBUG"}
        values.update(overrides)
        return CacheSyncSettings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> CacheSyncSettings:
    return make_settings()


@pytest.fixture
def source_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """SQLite database with the source schema; one connection per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'source.db'}",
        connect_args={"check_same_thread": False},
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def reader(source_engine: Engine) -> SourceReader:
    return SourceReader(source_engine, batch_size=2)


@pytest.fixture
def extraction(reader: SourceReader) -> ExtractionLayer:
    return ExtractionLayer(reader)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis: FakeRedis) -> KeyValueStore:
    return KeyValueStore(fake_redis, cluster=False, pipeline_batch_size=3)
