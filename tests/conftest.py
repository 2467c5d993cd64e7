"""Shared pytest fixtures for all tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from packager.archive_builder import ArchiveBuilder
from packager.chunk_store import ChunkStore
from packager.database import init_database
from packager.services.package_service import PackageService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def test_db(tmp_path, monkeypatch) -> Generator[Path, None, None]:
    """
    Create a temporary test database for each test.
    """
    db_path = tmp_path / "packages.db"
    monkeypatch.setattr("packager.database.DATABASE_PATH", str(db_path))
    monkeypatch.setattr("packager.config.DATABASE_PATH", str(db_path))
    init_database()
    yield db_path


@pytest.fixture
def staging_dir(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "chunks"
    monkeypatch.setattr("packager.config.STAGING_PATH", str(path))
    return path


@pytest.fixture
def archive_dir(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "zips"
    monkeypatch.setattr("packager.config.ARCHIVE_PATH", str(path))
    return path


@pytest.fixture
def chunk_store(staging_dir) -> ChunkStore:
    return ChunkStore(staging_dir)


@pytest.fixture
def archive_builder(archive_dir) -> ArchiveBuilder:
    return ArchiveBuilder(archive_dir)


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    """
    Fake clock also installed as packager.utils.utc_now, so services built
    inside request handlers see the same time.
    """
    fake = FakeClock()
    monkeypatch.setattr("packager.utils.utc_now", fake)
    return fake


@pytest.fixture
def package_service(test_db, chunk_store, archive_builder, clock) -> PackageService:
    return PackageService(chunk_store=chunk_store, archive_builder=archive_builder, clock=clock)
