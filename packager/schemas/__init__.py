"""Pydantic schemas for API requests and responses."""

from packager.schemas.common import ErrorResponse, InvalidPathResponse, MissingChunkResponse
from packager.schemas.packages import (
    BeginUploadResponse,
    ClearAllResponse,
    FinalizeUploadRequest,
    FinalizeUploadResponse,
    ListPackagesResponse,
    ManifestEntryRequest,
    PackageResponse,
    PackageSummaryResponse,
    SweepResponse,
    UploadChunkResponse,
)

__all__ = [
    "BeginUploadResponse",
    "UploadChunkResponse",
    "ManifestEntryRequest",
    "FinalizeUploadRequest",
    "FinalizeUploadResponse",
    "PackageResponse",
    "PackageSummaryResponse",
    "ListPackagesResponse",
    "ClearAllResponse",
    "SweepResponse",
    "ErrorResponse",
    "MissingChunkResponse",
    "InvalidPathResponse",
]
