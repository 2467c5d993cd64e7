"""Administrative operations. Destructive; not reachable from client flows."""

import logging
from typing import Dict, List, Optional

from packager import config
from packager.archive_builder import ArchiveBuilder
from packager.chunk_store import ChunkStore
from packager.repositories.package_repository import Package, PackageRepository
from packager.sweeper import PackageSweeper
from packager.types import SweepReport

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        chunk_store: Optional[ChunkStore] = None,
        archive_builder: Optional[ArchiveBuilder] = None,
        clock=None,
    ):
        self.package_repo = PackageRepository()
        self.chunk_store = chunk_store or ChunkStore(config.STAGING_PATH)
        self.archive_builder = archive_builder or ArchiveBuilder(config.ARCHIVE_PATH)
        self.clock = clock

    def list_packages(self) -> List[Package]:
        return self.package_repo.list_all()

    def clear_all(self) -> Dict[str, int]:
        """
        Delete every package record, archive and staged chunk.

        Returns:
            Counts of removed records, archive files and staging entries
        """
        logger.warning("Clearing all packages and staged uploads")

        packages = self.package_repo.delete_all()
        archives = self.archive_builder.delete_all()
        uploads = self.chunk_store.purge_all()

        logger.warning(f"Cleared {packages} packages, {archives} archives, {uploads} staged uploads")
        return {"packages": packages, "archives": archives, "uploads": uploads}

    def sweep_now(self) -> SweepReport:
        sweeper = PackageSweeper(
            chunk_store=self.chunk_store,
            archive_builder=self.archive_builder,
            clock=self.clock,
        )
        return sweeper.run_once()
