"""Upload session: issues tokens, stages chunks and finalizes uploads into packages."""

import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, Mapping, Optional, Union

from common.constants import ARCHIVE_SUFFIX, DEFAULT_PACKAGE_TTL_DAYS
from common.logging_config import get_logger
from packager import utils
from packager.archive_builder import ArchiveBuilder
from packager.chunk_store import ChunkStore
from packager.exceptions import (
    ArchiveExistsError,
    InvalidChunkError,
    InvalidManifestError,
    MissingChunkError,
    StorageIOError,
    UnknownUploadError,
    UploadAlreadyFinalizedError,
)
from packager.paths import validate_relative_path
from packager.repositories.package_repository import Package, PackageRepository
from packager.types import ManifestEntry, parse_manifest

logger = get_logger(__name__)

MAX_BEGIN_ATTEMPTS = 5

_locks_guard = threading.Lock()
_finalize_locks: Dict[str, list] = {}


@contextmanager
def finalize_lock(token: str):
    """
    Serialize finalize calls for one token; different tokens never block each other.
    """
    with _locks_guard:
        slot = _finalize_locks.setdefault(token, [threading.Lock(), 0])
        slot[1] += 1

    try:
        with slot[0]:
            yield
    finally:
        with _locks_guard:
            slot[1] -= 1
            if slot[1] == 0:
                del _finalize_locks[token]


class UploadSession:
    """
    One upload, addressed by its token.

    Chunk receipt only touches the chunk store. finalize() is the only
    operation that writes archives or package records.
    """

    def __init__(
        self,
        token: str,
        chunk_store: ChunkStore,
        archive_builder: ArchiveBuilder,
        package_repo: Optional[PackageRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl: timedelta = timedelta(days=DEFAULT_PACKAGE_TTL_DAYS),
    ):
        self.token = token
        self.chunk_store = chunk_store
        self.archive_builder = archive_builder
        self.package_repo = package_repo or PackageRepository()
        self.clock = clock or utils.utc_now
        self.ttl = ttl

    @property
    def archive_filename(self) -> str:
        return f"{self.token}{ARCHIVE_SUFFIX}"

    @classmethod
    def begin(
        cls,
        chunk_store: ChunkStore,
        archive_builder: ArchiveBuilder,
        package_repo: Optional[PackageRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl: timedelta = timedelta(days=DEFAULT_PACKAGE_TTL_DAYS),
    ) -> "UploadSession":
        """
        Start a new upload with a fresh token and an empty staging namespace.

        Raises:
            StorageIOError: If no unused token could be allocated
        """
        package_repo = package_repo or PackageRepository()

        for _ in range(MAX_BEGIN_ATTEMPTS):
            token = utils.generate_token()
            if package_repo.get_by_token(token) is not None:
                continue
            if chunk_store.create_namespace(token):
                logger.info(f"Upload started [upload={utils.short_token(token)}]")
                return cls(token, chunk_store, archive_builder, package_repo, clock, ttl)

        raise StorageIOError("Could not allocate an upload token")

    def receive_chunk(
        self,
        relative_path: str,
        chunk_index: int,
        total_chunks: int,
        data: Union[bytes, BinaryIO],
    ) -> Path:
        """
        Stage one chunk of a file. Safe to call in any order and concurrently.

        Raises:
            InvalidPathError: If the path escapes the upload root
            InvalidChunkError: If the index is outside [0, total_chunks)
            UnknownUploadError: If the upload was never begun or is already finalized
        """
        relative_path = validate_relative_path(relative_path)

        if total_chunks < 1:
            raise InvalidChunkError("total_chunks must be at least 1")
        if not 0 <= chunk_index < total_chunks:
            raise InvalidChunkError(
                f"Chunk index {chunk_index} is outside [0, {total_chunks}) for '{relative_path}'"
            )

        if not self.chunk_store.has_namespace(self.token):
            raise UnknownUploadError("Upload does not exist or was already finalized")

        path = self.chunk_store.put(self.token, relative_path, chunk_index, data)
        logger.debug(
            f"Stored chunk {chunk_index + 1}/{total_chunks} of '{relative_path}' "
            f"[upload={utils.short_token(self.token)}]"
        )
        return path

    def finalize(self, manifest: Iterable[Mapping[str, Any]]) -> Package:
        """
        Assemble the staged chunks into an archive and publish it as a package.

        On failure no archive or record is left behind and staged chunks stay
        in place so finalize can be retried.

        Args:
            manifest: Entries with type, relative_path and total_chunks

        Returns:
            The created Package

        Raises:
            InvalidPathError, InvalidManifestError: Manifest rejected, nothing written
            MissingChunkError: A declared chunk is absent
            UnknownUploadError: No staging namespace exists for the token
            UploadAlreadyFinalizedError: A package already exists for the token
            ArchiveCreateError, ArchiveEntryError, ArchiveCloseError: Archive build failed
            StorageIOError: Publishing or registry write failed
        """
        entries = parse_manifest(manifest)
        if not entries:
            raise InvalidManifestError("Manifest has no entries")

        with finalize_lock(self.token):
            started = time.monotonic()

            for entry in entries:
                if entry.is_directory:
                    continue
                missing = self.chunk_store.missing_chunk(self.token, entry.relative_path, entry.total_chunks)
                if missing is not None:
                    raise MissingChunkError(entry.relative_path, missing)

            if self.package_repo.get_by_token(self.token) is not None:
                raise UploadAlreadyFinalizedError("Upload was already finalized")

            if not self.chunk_store.has_namespace(self.token):
                raise UnknownUploadError("Upload does not exist or was already finalized")

            filename = self.archive_filename
            try:
                self.archive_builder.build(filename, entries, self._open_chunks)
            except ArchiveExistsError:
                raise UploadAlreadyFinalizedError("Upload was already finalized") from None

            try:
                package = self.package_repo.create_package(
                    token=self.token,
                    filename=filename,
                    created_at=self.clock(),
                    ttl=self.ttl,
                )
            except UploadAlreadyFinalizedError:
                raise
            except sqlite3.Error as e:
                self._discard_archive(filename)
                raise StorageIOError(f"Failed to record package: {e}") from e
            except BaseException:
                self._discard_archive(filename)
                raise

            try:
                self.chunk_store.purge(self.token)
            except OSError as e:
                logger.error(
                    f"Package published but staged chunks were not purged "
                    f"[upload={utils.short_token(self.token)}]: {e}"
                )

            duration = time.monotonic() - started
            logger.info(
                f"Upload finalized [upload={utils.short_token(self.token)}] "
                f"entries={len(entries)} duration={duration:.3f}s"
            )
            return package

    def _open_chunks(self, entry: ManifestEntry):
        return self.chunk_store.chunks_for(self.token, entry.relative_path, entry.total_chunks)

    def _discard_archive(self, filename: str) -> None:
        try:
            self.archive_builder.delete(filename)
        except OSError as e:
            logger.error(f"Failed to discard unpublished archive {filename[:8]}: {e}")
