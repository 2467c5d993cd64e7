"""Stages uploaded chunks on disk, keyed by (token, relative path, chunk index)."""

import os
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from common.constants import CHUNK_FILE_PREFIX, COPY_BUFFER_BYTES, PARTIAL_SUFFIX
from common.logging_config import get_logger
from packager.exceptions import MissingChunkError, StorageIOError, UnknownUploadError
from packager.paths import validate_relative_path
from packager.utils import is_valid_token, short_token

logger = get_logger(__name__)


class ChunkStore:
    """
    Durable staging area for chunks.

    Layout: <root>/<token>/<relative_path>/chunk_<index>. Each chunk is its own
    file so chunks can arrive out of order, in parallel, and be retried.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def namespace_path(self, token: str) -> Path:
        """
        Get the staging directory for a token.

        Raises:
            UnknownUploadError: If the token is not well formed
        """
        if not is_valid_token(token):
            raise UnknownUploadError("Upload token is not valid")
        return self.root / token

    def get_chunk_path(self, token: str, relative_path: str, chunk_index: int) -> Path:
        """
        Get file path for a chunk.

        Args:
            token: Upload token
            relative_path: Validated path of the logical file
            chunk_index: Zero based chunk index

        Returns:
            Path object for chunk file
        """
        relative_path = validate_relative_path(relative_path)
        return self.namespace_path(token) / relative_path / f"{CHUNK_FILE_PREFIX}{chunk_index}"

    def create_namespace(self, token: str) -> bool:
        """
        Create an empty staging directory for a fresh token.

        Returns:
            True if created, False if the directory already existed
        """
        namespace = self.namespace_path(token)
        try:
            namespace.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to create staging area: {e}") from e
        return True

    def has_namespace(self, token: str) -> bool:
        """Check whether a staging directory exists for the token."""
        return self.namespace_path(token).is_dir()

    def put(self, token: str, relative_path: str, chunk_index: int,
            data: Union[bytes, BinaryIO]) -> Path:
        """
        Write one chunk, replacing any earlier data for the same key.

        The bytes are written to a uniquely named temporary file and renamed
        over the chunk path, so concurrent or retried writes never leave a
        partially written chunk behind.

        Args:
            token: Upload token
            relative_path: Path of the logical file
            chunk_index: Zero based chunk index
            data: Chunk bytes or a readable binary stream

        Returns:
            Path of the stored chunk

        Raises:
            UnknownUploadError: If the namespace is gone, e.g. purged by finalize
            StorageIOError: If the write fails
        """
        chunk_path = self.get_chunk_path(token, relative_path, chunk_index)
        namespace = self.namespace_path(token)
        tmp_path = chunk_path.with_name(f"{chunk_path.name}.{uuid.uuid4().hex}{PARTIAL_SUFFIX}")

        try:
            self._make_dirs_below(namespace, chunk_path.parent)
            with open(tmp_path, "wb") as f:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f, COPY_BUFFER_BYTES)
            os.replace(tmp_path, chunk_path)
            os.utime(namespace)
        except FileNotFoundError:
            self._remove_quietly(tmp_path)
            raise UnknownUploadError("Upload does not exist or was already finalized") from None
        except OSError as e:
            self._remove_quietly(tmp_path)
            raise StorageIOError(f"Failed to store chunk {chunk_index} of '{relative_path}': {e}") from e

        return chunk_path

    @staticmethod
    def _make_dirs_below(namespace: Path, directory: Path) -> None:
        # Never recreates the namespace itself.
        current = namespace
        for part in directory.relative_to(namespace).parts:
            current = current / part
            try:
                current.mkdir()
            except FileExistsError:
                pass

    @staticmethod
    def _remove_quietly(path: Path) -> None:
        try:
            path.unlink()
        except OSError:
            pass

    def missing_chunk(self, token: str, relative_path: str, total_chunks: int) -> Optional[int]:
        """
        Find the first index in [0, total_chunks) with no stored data.

        Returns:
            The missing index, or None if every chunk is present
        """
        for index in range(total_chunks):
            if not self.get_chunk_path(token, relative_path, index).is_file():
                return index
        return None

    def chunks_for(self, token: str, relative_path: str, total_chunks: int) -> Iterator[BinaryIO]:
        """
        Lazily open chunks 0..total_chunks-1 in order.

        Each reader is closed before the next one is opened, so at most one
        chunk file is open at a time.

        Yields:
            Open binary reader positioned at the start of the chunk

        Raises:
            MissingChunkError: When an index has no stored data
        """
        for index in range(total_chunks):
            chunk_path = self.get_chunk_path(token, relative_path, index)
            try:
                handle = open(chunk_path, "rb")
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
                raise MissingChunkError(relative_path, index) from None
            with handle:
                yield handle

    def purge(self, token: str) -> bool:
        """
        Delete every chunk belonging to a token.

        Returns:
            True if staged data was deleted, False if nothing existed
        """
        namespace = self.namespace_path(token)
        if not namespace.exists():
            return False
        shutil.rmtree(namespace)
        logger.debug(f"Purged staged chunks [upload={short_token(token)}]")
        return True

    def list_tokens(self) -> List[str]:
        """
        List tokens that currently have staged data.
        """
        if not self.root.exists():
            return []
        return [entry.name for entry in self.root.iterdir()
                if entry.is_dir() and is_valid_token(entry.name)]

    def stale_tokens(self, older_than_seconds: float) -> List[str]:
        """
        List tokens whose staging directory saw no writes for the given age.
        """
        cutoff = time.time() - older_than_seconds
        stale = []
        for token in self.list_tokens():
            try:
                if (self.root / token).stat().st_mtime < cutoff:
                    stale.append(token)
            except FileNotFoundError:
                continue
        return stale

    def purge_all(self) -> int:
        """
        Delete every staged chunk for every token.

        Returns:
            Number of entries removed from the staging root
        """
        if not self.root.exists():
            return 0
        removed = 0
        for entry in self.root.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        logger.info(f"Purged {removed} staging entries")
        return removed
