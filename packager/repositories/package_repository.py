"""Package repository for database operations."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from common.logging_config import get_logger
from packager.database import get_db_connection
from packager.exceptions import UploadAlreadyFinalizedError
from packager.utils import from_timestamp, short_token, to_timestamp

logger = get_logger(__name__)


@dataclass
class Package:
    token: str
    filename: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """A package whose expiry equals now is already expired."""
        return self.expires_at <= now


def _row_to_package(row: sqlite3.Row) -> Package:
    return Package(
        token=row["token"],
        filename=row["filename"],
        created_at=from_timestamp(row["created_at"]),
        expires_at=from_timestamp(row["expires_at"]),
    )


class PackageRepository:
    @staticmethod
    def create_package(token: str, filename: str, created_at: datetime, ttl: timedelta) -> Package:
        """
        Insert a package record.

        Raises:
            UploadAlreadyFinalizedError: If a record already exists for the token
        """
        expires_at = created_at + ttl

        with get_db_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    """
                    INSERT INTO packages (token, filename, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (token, filename, to_timestamp(created_at), to_timestamp(expires_at))
                )
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise UploadAlreadyFinalizedError("A package already exists for this upload") from None

        logger.info(f"Package created [upload={short_token(token)}] expires_at={expires_at.isoformat()}")
        return Package(token=token, filename=filename, created_at=created_at, expires_at=expires_at)

    @staticmethod
    def get_by_token(token: str) -> Optional[Package]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT token, filename, created_at, expires_at FROM packages WHERE token = ?",
                (token,)
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return _row_to_package(row)

    @staticmethod
    def delete_package(token: str, expired_as_of: Optional[datetime] = None) -> bool:
        """
        Delete a package record.

        Args:
            token: Package token
            expired_as_of: When given, only delete if the record is expired at this time

        Returns:
            True if a record was deleted
        """
        with get_db_connection() as conn:
            cursor = conn.cursor()
            if expired_as_of is None:
                cursor.execute("DELETE FROM packages WHERE token = ?", (token,))
            else:
                cursor.execute(
                    "DELETE FROM packages WHERE token = ? AND expires_at <= ?",
                    (token, to_timestamp(expired_as_of))
                )
            deleted = cursor.rowcount > 0
            conn.commit()

        if deleted:
            logger.debug(f"Package record deleted [upload={short_token(token)}]")
        return deleted

    @staticmethod
    def list_expired(as_of: datetime) -> List[Package]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT token, filename, created_at, expires_at
                FROM packages
                WHERE expires_at <= ?
                ORDER BY expires_at
                """,
                (to_timestamp(as_of),)
            )
            return [_row_to_package(row) for row in cursor.fetchall()]

    @staticmethod
    def list_all() -> List[Package]:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT token, filename, created_at, expires_at FROM packages ORDER BY created_at"
            )
            return [_row_to_package(row) for row in cursor.fetchall()]

    @staticmethod
    def delete_all() -> int:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM packages")
            count = cursor.rowcount
            conn.commit()

        logger.warning(f"Deleted all {count} package records")
        return count
