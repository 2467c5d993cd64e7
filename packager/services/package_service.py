"""Package service for upload and download business logic."""

import logging
from datetime import timedelta
from typing import Any, BinaryIO, Iterator, List, Mapping, Optional, Tuple, Union

from packager import config, utils
from packager.archive_builder import ArchiveBuilder
from packager.chunk_store import ChunkStore
from packager.exceptions import PackageExpiredError, PackageNotFoundError
from packager.repositories.package_repository import Package, PackageRepository
from packager.session import UploadSession

logger = logging.getLogger(__name__)


class PackageService:
    def __init__(
        self,
        chunk_store: Optional[ChunkStore] = None,
        archive_builder: Optional[ArchiveBuilder] = None,
        clock=None,
    ):
        self.package_repo = PackageRepository()
        self.chunk_store = chunk_store or ChunkStore(config.STAGING_PATH)
        self.archive_builder = archive_builder or ArchiveBuilder(config.ARCHIVE_PATH)
        self.clock = clock or utils.utc_now
        self.ttl = timedelta(days=config.PACKAGE_TTL_DAYS)

    def session(self, token: str) -> UploadSession:
        return UploadSession(
            token,
            self.chunk_store,
            self.archive_builder,
            package_repo=self.package_repo,
            clock=self.clock,
            ttl=self.ttl,
        )

    def begin_upload(self) -> str:
        session = UploadSession.begin(
            self.chunk_store,
            self.archive_builder,
            package_repo=self.package_repo,
            clock=self.clock,
            ttl=self.ttl,
        )
        return session.token

    def upload_chunk(
        self,
        token: str,
        relative_path: str,
        chunk_index: int,
        total_chunks: int,
        data: Union[bytes, BinaryIO],
    ) -> None:
        self.session(token).receive_chunk(relative_path, chunk_index, total_chunks, data)

    def finalize_upload(self, token: str, manifest: List[Mapping[str, Any]]) -> Package:
        return self.session(token).finalize(manifest)

    def get_package(self, token: str) -> Package:
        """
        Look up a servable package.

        Expiry is checked against the current time on every call, even though
        the sweeper removes expired records.

        Raises:
            PackageNotFoundError: If the token is unknown
            PackageExpiredError: If the package has expired
        """
        package = None
        if utils.is_valid_token(token):
            package = self.package_repo.get_by_token(token)

        if package is None:
            logger.info(f"Package lookup miss [upload={utils.short_token(str(token))}] reason=not_found")
            raise PackageNotFoundError("Package not found")

        if package.is_expired(self.clock()):
            logger.info(f"Package lookup miss [upload={utils.short_token(token)}] reason=expired")
            raise PackageExpiredError("Package has expired")

        return package

    def open_download(self, token: str) -> Tuple[Package, int, Iterator[bytes]]:
        """
        Prepare a package archive for streaming.

        The archive is opened here, so a sweep that deletes it afterwards
        does not cut the download short.

        Returns:
            The package, the archive size in bytes and an iterator over its data
        """
        package = self.get_package(token)

        try:
            handle, size = self.archive_builder.open_archive(package.filename)
        except FileNotFoundError:
            logger.error(f"Archive missing for live package [upload={utils.short_token(token)}]")
            raise PackageNotFoundError("Package not found") from None

        logger.info(f"Starting download [upload={utils.short_token(token)}] size={size}")
        return package, size, self.archive_builder.stream(handle)
