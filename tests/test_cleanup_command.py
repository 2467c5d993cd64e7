"""Tests for the one-shot cleanup command."""

from datetime import timedelta

from packager import cleanup_command
from packager.repositories.package_repository import PackageRepository
from packager.types import EntryType, ManifestEntry
from packager.utils import generate_token


def make_package(archive_builder, created_at):
    token = generate_token()
    filename = f"{token}.zip"
    archive_builder.build(filename, [ManifestEntry(EntryType.DIRECTORY, "d")], lambda entry: [])
    return PackageRepository.create_package(token, filename, created_at, timedelta(days=7))


def test_parse_args_defaults():
    args = cleanup_command.parse_args([])
    assert args.staging_ttl_hours is None


def test_parse_args_staging_ttl():
    args = cleanup_command.parse_args(['--staging-ttl-hours', '12'])
    assert args.staging_ttl_hours == 12


def test_main_deletes_expired(test_db, staging_dir, archive_builder, clock):
    expired = make_package(archive_builder, clock.now - timedelta(days=10))
    live = make_package(archive_builder, clock.now)

    assert cleanup_command.main([]) == 0

    assert PackageRepository.get_by_token(expired.token) is None
    assert not archive_builder.exists(expired.filename)
    assert PackageRepository.get_by_token(live.token) is not None


def test_main_reports_failure(test_db, staging_dir, archive_builder, clock, monkeypatch):
    make_package(archive_builder, clock.now - timedelta(days=10))

    def refuse(self, filename):
        raise PermissionError("read-only")

    monkeypatch.setattr("packager.archive_builder.ArchiveBuilder.delete", refuse)

    assert cleanup_command.main([]) == 1
