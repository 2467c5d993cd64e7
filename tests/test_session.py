"""Tests for upload sessions: chunk receipt and finalize."""

import os
import threading
import zipfile
from datetime import timedelta

import pytest

from packager.exceptions import (
    ArchiveEntryError,
    InvalidChunkError,
    InvalidManifestError,
    InvalidPathError,
    MissingChunkError,
    UnknownUploadError,
    UploadAlreadyFinalizedError,
)
from packager.repositories.package_repository import PackageRepository
from packager.session import UploadSession
from packager.utils import generate_token, is_valid_token


@pytest.fixture
def session(test_db, chunk_store, archive_builder, clock):
    return UploadSession.begin(chunk_store, archive_builder, clock=clock)


def upload_file(session, path, data, chunk_size):
    pieces = [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)] or [b""]
    for index, piece in enumerate(pieces):
        session.receive_chunk(path, index, len(pieces), piece)
    return len(pieces)


class TestBegin:
    def test_issues_token_with_clean_namespace(self, session, chunk_store):
        assert is_valid_token(session.token)
        assert len(session.token) >= 40
        assert chunk_store.has_namespace(session.token)
        assert list((chunk_store.root / session.token).iterdir()) == []

    def test_tokens_are_unique(self, test_db, chunk_store, archive_builder):
        tokens = {UploadSession.begin(chunk_store, archive_builder).token for _ in range(20)}
        assert len(tokens) == 20


class TestReceiveChunk:
    def test_rejects_index_outside_range(self, session):
        with pytest.raises(InvalidChunkError):
            session.receive_chunk("f.bin", 2, 2, b"x")
        with pytest.raises(InvalidChunkError):
            session.receive_chunk("f.bin", -1, 2, b"x")
        with pytest.raises(InvalidChunkError):
            session.receive_chunk("f.bin", 0, 0, b"x")

    def test_rejects_traversing_path(self, session, chunk_store):
        with pytest.raises(InvalidPathError):
            session.receive_chunk("../f.bin", 0, 1, b"x")

    def test_rejects_unknown_upload(self, test_db, chunk_store, archive_builder):
        session = UploadSession(generate_token(), chunk_store, archive_builder)
        with pytest.raises(UnknownUploadError):
            session.receive_chunk("f.bin", 0, 1, b"x")

    def test_chunk_arriving_during_finalize_is_rejected(self, session, chunk_store, monkeypatch):
        session.receive_chunk("f.txt", 0, 1, b"x")
        manifest = [{"type": "file", "relative_path": "f.txt", "total_chunks": 1}]
        original_has_namespace = chunk_store.has_namespace

        def finalize_after_check(token):
            present = original_has_namespace(token)
            monkeypatch.setattr(chunk_store, "has_namespace", original_has_namespace)
            session.finalize(manifest)
            return present

        monkeypatch.setattr(chunk_store, "has_namespace", finalize_after_check)

        with pytest.raises(UnknownUploadError):
            session.receive_chunk("late.txt", 0, 1, b"late")

        assert not chunk_store.has_namespace(session.token)
        assert PackageRepository.get_by_token(session.token) is not None

    def test_concurrent_chunks(self, session, archive_builder):
        data = os.urandom(64 * 100)
        errors = []

        def send(index):
            try:
                session.receive_chunk("big.bin", index, 100, data[index * 64:(index + 1) * 64])
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=send, args=(i,)) for i in reversed(range(100))]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        package = session.finalize([{"type": "file", "relative_path": "big.bin", "total_chunks": 100}])
        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.read("big.bin") == data


class TestFinalize:
    def test_hello_scenario(self, session, archive_builder, clock):
        session.receive_chunk("a/b.txt", 1, 2, b"lo")
        session.receive_chunk("a/b.txt", 0, 2, b"hel")

        package = session.finalize([
            {"type": "file", "relative_path": "a/b.txt", "total_chunks": 2},
            {"type": "directory", "relative_path": "a/empty"},
        ])

        assert package.token == session.token
        assert package.filename == f"{session.token}.zip"
        assert package.created_at == clock.now
        assert package.expires_at == clock.now + timedelta(days=7)

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            infos = {info.filename: info for info in zf.infolist()}
            assert set(infos) == {"a/b.txt", "a/empty/"}
            assert zf.read("a/b.txt") == b"hello"
            assert infos["a/empty/"].is_dir()

    @pytest.mark.parametrize("total_chunks,chunk_size", [
        (1, 1),
        (2, 1),
        (50, 1),
        (1, 3 * 1024 * 1024),
        (2, 3 * 1024 * 1024 + 7),
        (50, 4096),
    ])
    def test_round_trip(self, session, archive_builder, total_chunks, chunk_size):
        data = os.urandom(total_chunks * chunk_size - (chunk_size // 2 if chunk_size > 1 else 0))
        assert upload_file(session, "dir/file.bin", data, chunk_size) == total_chunks

        package = session.finalize([
            {"type": "file", "relative_path": "dir/file.bin", "total_chunks": total_chunks}
        ])

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.read("dir/file.bin") == data

    def test_overwritten_chunk_uses_last_write(self, session, archive_builder):
        session.receive_chunk("f.txt", 0, 2, b"old")
        session.receive_chunk("f.txt", 1, 2, b"-tail")
        session.receive_chunk("f.txt", 0, 2, b"new")

        package = session.finalize([{"type": "file", "relative_path": "f.txt", "total_chunks": 2}])

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.read("f.txt") == b"new-tail"

    def test_entries_follow_manifest_order(self, session, archive_builder):
        session.receive_chunk("z.txt", 0, 1, b"z")
        session.receive_chunk("a.txt", 0, 1, b"a")

        package = session.finalize([
            {"type": "file", "relative_path": "z.txt", "total_chunks": 1},
            {"type": "directory", "relative_path": "m"},
            {"type": "file", "relative_path": "a.txt", "total_chunks": 1},
        ])

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.namelist() == ["z.txt", "m/", "a.txt"]

    def test_undeclared_chunks_are_ignored(self, session, archive_builder):
        session.receive_chunk("keep.txt", 0, 1, b"k")
        session.receive_chunk("stray.txt", 0, 1, b"s")

        package = session.finalize([{"type": "file", "relative_path": "keep.txt", "total_chunks": 1}])

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.namelist() == ["keep.txt"]

    def test_purges_chunks_on_success(self, session, chunk_store):
        session.receive_chunk("f.txt", 0, 1, b"x")
        session.finalize([{"type": "file", "relative_path": "f.txt", "total_chunks": 1}])

        assert not chunk_store.has_namespace(session.token)

    def test_missing_chunk_fails_without_package(self, session, chunk_store, archive_dir):
        session.receive_chunk("ok.txt", 0, 1, b"ok")
        session.receive_chunk("f.bin", 0, 3, b"a")
        session.receive_chunk("f.bin", 2, 3, b"c")

        with pytest.raises(MissingChunkError) as exc_info:
            session.finalize([
                {"type": "file", "relative_path": "ok.txt", "total_chunks": 1},
                {"type": "file", "relative_path": "f.bin", "total_chunks": 3},
            ])

        assert exc_info.value.path == "f.bin"
        assert exc_info.value.index == 1
        assert PackageRepository.get_by_token(session.token) is None
        assert not archive_dir.exists() or list(archive_dir.iterdir()) == []
        assert chunk_store.missing_chunk(session.token, "f.bin", 3) == 1

    def test_finalize_can_be_retried_after_missing_chunk(self, session, archive_builder):
        session.receive_chunk("f.bin", 0, 2, b"a")
        manifest = [{"type": "file", "relative_path": "f.bin", "total_chunks": 2}]

        with pytest.raises(MissingChunkError):
            session.finalize(manifest)

        session.receive_chunk("f.bin", 1, 2, b"b")
        package = session.finalize(manifest)

        with zipfile.ZipFile(archive_builder.archive_path(package.filename)) as zf:
            assert zf.read("f.bin") == b"ab"

    def test_chunk_vanishing_during_build_leaves_nothing(self, session, chunk_store, archive_dir, monkeypatch):
        session.receive_chunk("f.bin", 0, 1, b"a")

        def vanished(token, relative_path, total_chunks):
            raise MissingChunkError(relative_path, 0)
            yield

        monkeypatch.setattr(chunk_store, "chunks_for", vanished)

        with pytest.raises(MissingChunkError):
            session.finalize([{"type": "file", "relative_path": "f.bin", "total_chunks": 1}])

        assert list(archive_dir.iterdir()) == []
        assert PackageRepository.get_by_token(session.token) is None
        assert chunk_store.has_namespace(session.token)

    def test_storage_error_during_build_reports_path(self, session, chunk_store, archive_dir, monkeypatch):
        session.receive_chunk("f.bin", 0, 1, b"a")

        def unreadable(token, relative_path, total_chunks):
            raise OSError("I/O error")
            yield

        monkeypatch.setattr(chunk_store, "chunks_for", unreadable)

        with pytest.raises(ArchiveEntryError) as exc_info:
            session.finalize([{"type": "file", "relative_path": "f.bin", "total_chunks": 1}])

        assert exc_info.value.path == "f.bin"
        assert list(archive_dir.iterdir()) == []

    @pytest.mark.parametrize("bad_path", ["../evil.txt", "a/../../evil.txt", "/etc/passwd"])
    def test_invalid_path_performs_no_writes(self, session, chunk_store, archive_dir, bad_path):
        session.receive_chunk("ok.txt", 0, 1, b"ok")

        with pytest.raises(InvalidPathError):
            session.finalize([
                {"type": "file", "relative_path": "ok.txt", "total_chunks": 1},
                {"type": "directory", "relative_path": bad_path},
            ])

        assert not archive_dir.exists()
        assert PackageRepository.get_by_token(session.token) is None
        assert chunk_store.missing_chunk(session.token, "ok.txt", 1) is None

    @pytest.mark.parametrize("manifest", [
        [],
        [{"type": "symlink", "relative_path": "x"}],
        [{"type": "file", "relative_path": "x"}],
        [{"type": "file", "relative_path": "x", "total_chunks": -1}],
        [{"type": "directory", "relative_path": "x"}, {"type": "directory", "relative_path": "x/"}],
        [{"type": "file", "relative_path": "a", "total_chunks": 1}, {"type": "file", "relative_path": "a/b", "total_chunks": 1}],
        [{"type": "directory", "relative_path": "a/b/c"}, {"type": "file", "relative_path": "a", "total_chunks": 1}],
    ])
    def test_malformed_manifest(self, session, manifest):
        with pytest.raises(InvalidManifestError):
            session.finalize(manifest)

    def test_second_finalize_fails_with_missing_chunk(self, session):
        session.receive_chunk("f.txt", 0, 1, b"x")
        manifest = [{"type": "file", "relative_path": "f.txt", "total_chunks": 1}]
        session.finalize(manifest)

        with pytest.raises(MissingChunkError):
            session.finalize(manifest)

    def test_second_directory_only_finalize_fails(self, session):
        manifest = [{"type": "directory", "relative_path": "d"}]
        session.finalize(manifest)

        with pytest.raises(UploadAlreadyFinalizedError):
            session.finalize(manifest)

    def test_finalize_unbegun_token(self, test_db, chunk_store, archive_builder):
        session = UploadSession(generate_token(), chunk_store, archive_builder)

        with pytest.raises(UnknownUploadError):
            session.finalize([{"type": "directory", "relative_path": "d"}])

    def test_concurrent_finalize_publishes_once(self, session):
        session.receive_chunk("f.txt", 0, 1, b"x")
        manifest = [{"type": "file", "relative_path": "f.txt", "total_chunks": 1}]
        results = []

        def run():
            try:
                results.append(session.finalize(manifest))
            except MissingChunkError as e:
                results.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        packages = [r for r in results if not isinstance(r, Exception)]
        assert len(packages) == 1
        assert len(results) == 4

    def test_existing_archive_is_never_replaced(self, session, chunk_store, archive_builder, archive_dir):
        session.receive_chunk("f.txt", 0, 1, b"x")
        archive_dir.mkdir()
        published = archive_builder.archive_path(session.archive_filename)
        published.write_bytes(b"already published")

        with pytest.raises(UploadAlreadyFinalizedError):
            session.finalize([{"type": "file", "relative_path": "f.txt", "total_chunks": 1}])

        assert published.read_bytes() == b"already published"
        assert list(archive_dir.iterdir()) == [published]
        assert PackageRepository.get_by_token(session.token) is None
        assert chunk_store.missing_chunk(session.token, "f.txt", 1) is None
