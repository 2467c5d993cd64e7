"""Background task that reclaims expired packages."""

import asyncio
import logging
import sqlite3
import time
from typing import Optional

from packager import config, utils
from packager.archive_builder import ArchiveBuilder
from packager.chunk_store import ChunkStore
from packager.exceptions import StorageIOError
from packager.repositories.package_repository import Package, PackageRepository
from packager.session import finalize_lock
from packager.types import SweepReport

logger = logging.getLogger(__name__)


class PackageSweeper:
    """
    Deletes expired packages: archive file first, then the registry record.
    """

    def __init__(
        self,
        chunk_store: Optional[ChunkStore] = None,
        archive_builder: Optional[ArchiveBuilder] = None,
        clock=None,
        interval_seconds: Optional[int] = None,
        staging_ttl_hours: Optional[int] = None,
    ):
        """
        Initialize sweeper.

        Args:
            chunk_store: Staging area, used for abandoned upload reclamation
            archive_builder: Owner of the archive root
            clock: Returns the current UTC datetime
            interval_seconds: Time between sweeps (default from config)
            staging_ttl_hours: Age after which idle staged uploads are purged, 0 disables
        """
        self.package_repo = PackageRepository()
        self.chunk_store = chunk_store or ChunkStore(config.STAGING_PATH)
        self.archive_builder = archive_builder or ArchiveBuilder(config.ARCHIVE_PATH)
        self.clock = clock or utils.utc_now
        self.interval_seconds = config.SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.staging_ttl_hours = config.STAGING_TTL_HOURS if staging_ttl_hours is None else staging_ttl_hours
        self._running = False
        self._task = None

    def run_once(self) -> SweepReport:
        """
        Execute one sweep over the registry.

        A failure on one package is logged and does not stop the others.

        Returns:
            SweepReport with counts and duration
        """
        started = time.monotonic()

        try:
            expired = self.package_repo.list_expired(self.clock())
        except sqlite3.Error as e:
            logger.error(f"Sweep could not list expired packages: {e}", exc_info=True)
            expired = []

        deleted = 0
        failed = 0
        for package in expired:
            try:
                if self._reclaim(package):
                    deleted += 1
            except Exception as e:
                failed += 1
                logger.error(f"Failed to reclaim package [upload={utils.short_token(package.token)}]: {e}")

        stale_uploads = self._reclaim_stale_uploads()

        report = SweepReport(
            expired=len(expired),
            deleted=deleted,
            failed=failed,
            stale_uploads=stale_uploads,
            duration_seconds=time.monotonic() - started,
        )
        logger.info(
            f"Sweep complete: expired={report.expired} deleted={report.deleted} "
            f"failed={report.failed} stale_uploads={report.stale_uploads} "
            f"duration={report.duration_seconds:.3f}s"
        )
        return report

    def _reclaim(self, package: Package) -> bool:
        now = self.clock()

        current = self.package_repo.get_by_token(package.token)
        if current is None:
            return False
        if not current.is_expired(now):
            logger.warning(f"Skipping package no longer expired [upload={utils.short_token(package.token)}]")
            return False

        try:
            self.archive_builder.delete(current.filename)
        except OSError as e:
            raise StorageIOError(f"archive could not be deleted, record kept: {e}") from e

        return self.package_repo.delete_package(current.token, expired_as_of=now)

    def _reclaim_stale_uploads(self) -> int:
        if self.staging_ttl_hours <= 0:
            return 0

        purged = 0
        try:
            stale = self.chunk_store.stale_tokens(self.staging_ttl_hours * 3600)
        except OSError as e:
            logger.error(f"Failed to scan staged uploads: {e}")
            return 0

        for token in stale:
            try:
                with finalize_lock(token):
                    if self.chunk_store.purge(token):
                        purged += 1
            except OSError as e:
                logger.warning(f"Failed to purge stale upload [upload={utils.short_token(token)}]: {e}")

        return purged

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._running:
            logger.warning("Sweep task already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started package sweep task (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Stopped package sweep task")

    async def _run(self) -> None:
        """Main loop for sweep task."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await asyncio.to_thread(self.run_once)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sweep task: {e}", exc_info=True)
