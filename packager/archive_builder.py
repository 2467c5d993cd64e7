"""Builds ZIP archives from manifest entries, streaming file data chunk by chunk."""

import os
import shutil
import time
import uuid
import zipfile
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, Sequence, Tuple, Union

from common.constants import ARCHIVE_SUFFIX, COPY_BUFFER_BYTES, DOWNLOAD_PIECE_BYTES, PARTIAL_SUFFIX
from common.logging_config import get_logger
from packager.exceptions import (
    ArchiveCloseError,
    ArchiveCreateError,
    ArchiveEntryError,
    ArchiveExistsError,
    MissingChunkError,
    StorageIOError,
)
from packager.paths import is_safe_path
from packager.types import ManifestEntry

logger = get_logger(__name__)

ChunkOpener = Callable[[ManifestEntry], Iterable[BinaryIO]]

_ENTRY_ERRORS = (OSError, ValueError, zipfile.LargeZipFile)


class ArchiveBuilder:
    """
    Writes one archive per build into the archive root.

    The archive is written to a uniquely named ".partial" file and linked to its final name
    only after the ZIP central directory has been written successfully. A
    published archive is never replaced.
    """

    def __init__(
        self,
        root: Union[str, Path],
        compression: int = zipfile.ZIP_DEFLATED,
        zip_factory: Callable[..., zipfile.ZipFile] = zipfile.ZipFile,
    ):
        self.root = Path(root)
        self.compression = compression
        self.zip_factory = zip_factory

    def archive_path(self, filename: str) -> Path:
        """
        Resolve an archive filename inside the archive root.

        Raises:
            StorageIOError: If the filename would resolve outside the root
        """
        path = self.root / filename
        if "/" in filename or "\\" in filename or not is_safe_path(self.root, path):
            raise StorageIOError(f"Archive name '{filename}' is not allowed")
        return path

    def build(self, filename: str, entries: Sequence[ManifestEntry], open_chunks: ChunkOpener) -> Path:
        """
        Build an archive containing the entries in the given order.

        Args:
            filename: Final archive name, e.g. "<token>.zip"
            entries: Validated manifest entries
            open_chunks: Returns the ordered chunk readers of a file entry

        Returns:
            Path of the completed archive

        Raises:
            ArchiveCreateError: If the target cannot be created
            ArchiveEntryError: If an entry cannot be written
            MissingChunkError: If a file entry lacks a chunk
            ArchiveCloseError: If the archive cannot be finalized
            ArchiveExistsError: If an archive named filename was already published
        """
        target = self.archive_path(filename)
        partial = target.with_name(f"{target.name}.{uuid.uuid4().hex}{PARTIAL_SUFFIX}")

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            archive = self.zip_factory(partial, "w", compression=self.compression, allowZip64=True)
        except _ENTRY_ERRORS as e:
            self._discard(partial)
            raise ArchiveCreateError(f"Failed to create archive '{filename}': {e}") from e

        date_time = time.localtime()[:6]

        try:
            for entry in entries:
                if entry.is_directory:
                    self._add_directory(archive, entry.relative_path, date_time)
                else:
                    self._add_file(archive, entry, open_chunks(entry), date_time)
        except BaseException:
            self._abandon(archive, partial)
            raise

        try:
            archive.close()
        except _ENTRY_ERRORS as e:
            self._discard(partial)
            raise ArchiveCloseError(f"Failed to close archive '{filename}': {e}") from e

        try:
            os.link(partial, target)
        except FileExistsError:
            self._discard(partial)
            raise ArchiveExistsError(f"Archive '{filename}' was already published") from None
        except OSError as e:
            self._discard(partial)
            raise StorageIOError(f"Failed to publish archive '{filename}': {e}") from e
        self._discard(partial)

        logger.info(f"Built archive {filename[:8]} with {len(entries)} entries")
        return target

    def _add_directory(self, archive: zipfile.ZipFile, relative_path: str, date_time) -> None:
        info = zipfile.ZipInfo(relative_path + "/", date_time=date_time)
        info.compress_type = zipfile.ZIP_STORED
        info.external_attr = (0o40755 << 16) | 0x10
        try:
            archive.writestr(info, b"")
        except _ENTRY_ERRORS as e:
            raise ArchiveEntryError(relative_path, e) from e

    def _add_file(self, archive: zipfile.ZipFile, entry: ManifestEntry,
                  chunks: Iterable[BinaryIO], date_time) -> None:
        info = zipfile.ZipInfo(entry.relative_path, date_time=date_time)
        info.compress_type = self.compression
        info.external_attr = 0o644 << 16
        try:
            with archive.open(info, "w", force_zip64=True) as dest:
                for chunk in chunks:
                    shutil.copyfileobj(chunk, dest, COPY_BUFFER_BYTES)
        except MissingChunkError:
            raise
        except _ENTRY_ERRORS as e:
            raise ArchiveEntryError(entry.relative_path, e) from e

    def _abandon(self, archive: zipfile.ZipFile, partial: Path) -> None:
        try:
            archive.close()
        except _ENTRY_ERRORS as e:
            logger.warning(f"Error closing abandoned archive {partial.name[:8]}: {e}")
        self._discard(partial)

    def _discard(self, partial: Path) -> None:
        try:
            partial.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove partial archive {partial.name[:8]}: {e}")

    def exists(self, filename: str) -> bool:
        return self.archive_path(filename).is_file()

    def delete(self, filename: str) -> bool:
        """
        Delete a published archive.

        Returns:
            True if the file was deleted, False if it did not exist

        Raises:
            OSError: If the file exists but cannot be removed
        """
        try:
            self.archive_path(filename).unlink()
        except FileNotFoundError:
            return False
        return True

    def open_archive(self, filename: str) -> Tuple[BinaryIO, int]:
        """
        Open a published archive for reading.

        Returns:
            The open handle and the size of the file it refers to

        Raises:
            FileNotFoundError: If no archive with that name exists
        """
        handle = open(self.archive_path(filename), "rb")
        return handle, os.fstat(handle.fileno()).st_size

    def stream(self, handle: BinaryIO, piece_size: int = DOWNLOAD_PIECE_BYTES) -> Iterator[bytes]:
        """
        Stream archive data in pieces from an open handle, closing it when done.

        Yields:
            Archive data pieces
        """
        with handle as f:
            while True:
                piece = f.read(piece_size)
                if not piece:
                    break
                yield piece

    def delete_all(self) -> int:
        """
        Delete every archive and leftover partial file in the archive root.

        Returns:
            Number of files removed
        """
        if not self.root.exists():
            return 0
        removed = 0
        for path in self.root.iterdir():
            if path.is_file() and (path.name.endswith(ARCHIVE_SUFFIX) or path.name.endswith(PARTIAL_SUFFIX)):
                path.unlink()
                removed += 1
        return removed
