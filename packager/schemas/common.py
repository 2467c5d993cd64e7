"""Common schemas used across multiple endpoints."""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str


class MissingChunkResponse(ErrorResponse):
    """Response model for finalize failures caused by an absent chunk."""
    path: str
    index: int


class InvalidPathResponse(ErrorResponse):
    """Response model for rejected relative paths."""
    path: Optional[str] = None
