"""Configuration settings for the packager server."""

import os

from common.constants import DEFAULT_PACKAGE_TTL_DAYS, DEFAULT_SWEEP_INTERVAL_SECONDS


DATABASE_PATH = os.environ.get("PACKAGER_DATABASE_PATH", "/app/data/packages.db")

STAGING_PATH = os.environ.get("PACKAGER_STAGING_PATH", "/app/data/chunks")

ARCHIVE_PATH = os.environ.get("PACKAGER_ARCHIVE_PATH", "/app/data/zips")

PACKAGER_HOST = os.environ.get("PACKAGER_HOST", "0.0.0.0")

PACKAGER_PORT = int(os.environ.get("PACKAGER_PORT", "8000"))

PACKAGE_TTL_DAYS = int(os.environ.get("PACKAGER_TTL_DAYS", str(DEFAULT_PACKAGE_TTL_DAYS)))

SWEEP_INTERVAL_SECONDS = int(
    os.environ.get("PACKAGER_SWEEP_INTERVAL_SECONDS", str(DEFAULT_SWEEP_INTERVAL_SECONDS))
)

# 0 keeps abandoned uploads until an explicit clear
STAGING_TTL_HOURS = int(os.environ.get("PACKAGER_STAGING_TTL_HOURS", "0"))

ADMIN_TOKEN = os.environ.get("PACKAGER_ADMIN_TOKEN", "")
