"""Pydantic schemas for upload and package endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class BeginUploadResponse(BaseModel):
    """Response model for starting an upload."""
    token: str


class UploadChunkResponse(BaseModel):
    """Acknowledgement for a stored chunk."""
    token: str
    relative_path: str
    chunk_index: int
    total_chunks: int


class ManifestEntryRequest(BaseModel):
    """One file or directory declared at finalize time."""
    type: str
    relative_path: str
    total_chunks: Optional[int] = None


class FinalizeUploadRequest(BaseModel):
    """Request model for finalizing an upload."""
    token: str
    manifest: List[ManifestEntryRequest]


class FinalizeUploadResponse(BaseModel):
    """Response model for a finalized upload."""
    token: str
    public_link: str
    expires_at: datetime


class PackageResponse(BaseModel):
    """Response model for a servable package."""
    token: str
    download_link: str
    expires_at: datetime


class PackageSummaryResponse(BaseModel):
    """Response model for one package in the admin listing."""
    token: str
    filename: str
    created_at: datetime
    expires_at: datetime


class ListPackagesResponse(BaseModel):
    """Response model for the admin package listing."""
    packages: List[PackageSummaryResponse]


class ClearAllResponse(BaseModel):
    """Response model for the admin clear operation."""
    packages: int
    archives: int
    uploads: int


class SweepResponse(BaseModel):
    """Response model for a manual sweep."""
    expired: int
    deleted: int
    failed: int
    stale_uploads: int
    duration_seconds: float
