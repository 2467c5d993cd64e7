"""Chunked upload API routes."""

from fastapi import APIRouter, File, Form, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from packager.schemas.common import ErrorResponse, InvalidPathResponse, MissingChunkResponse
from packager.schemas.packages import (
    BeginUploadResponse,
    FinalizeUploadRequest,
    FinalizeUploadResponse,
    UploadChunkResponse,
)
from packager.services.package_service import PackageService

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post("", response_model=BeginUploadResponse, status_code=status.HTTP_201_CREATED)
async def begin_upload():
    """
    Start a new upload.

    Returns:
        - token: Upload token used for every later chunk and for finalize
    """
    package_service = PackageService()

    token = await run_in_threadpool(package_service.begin_upload)

    return BeginUploadResponse(token=token)


@router.post(
    "/chunks",
    response_model=UploadChunkResponse,
    responses={400: {"model": InvalidPathResponse}, 404: {"model": ErrorResponse}},
)
async def upload_chunk(
    token: str = Form(...),
    relative_path: str = Form(...),
    chunk_index: int = Form(...),
    total_chunks: int = Form(...),
    chunk: UploadFile = File(...),
):
    """
    Store one chunk of a file. Chunks may arrive in any order and may be retried.

    Parameters:
        - token: Upload token from POST /uploads
        - relative_path: Path of the file inside the upload (e.g. "photos/a.jpg")
        - chunk_index: Zero based index of this chunk
        - total_chunks: Number of chunks the file was split into
        - chunk: Chunk bytes (multipart/form-data)

    Raises:
        - 400: Invalid path or chunk index
        - 404: Unknown or already finalized upload
        - 500: Storage failure
    """
    package_service = PackageService()

    await run_in_threadpool(
        package_service.upload_chunk,
        token,
        relative_path,
        chunk_index,
        total_chunks,
        chunk.file,
    )

    return UploadChunkResponse(
        token=token,
        relative_path=relative_path,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
    )


@router.post(
    "/finalize",
    response_model=FinalizeUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": InvalidPathResponse},
        404: {"model": ErrorResponse},
        409: {"model": MissingChunkResponse},
        500: {"model": ErrorResponse},
    },
)
async def finalize_upload(request: Request, body: FinalizeUploadRequest):
    """
    Assemble the uploaded chunks into one ZIP archive and publish it.

    Parameters:
        - token: Upload token
        - manifest: Ordered list of {type: file|directory, relative_path, total_chunks}

    Returns:
        - token: Package token
        - public_link: URL of the package page
        - expires_at: Expiry time of the package

    Raises:
        - 400: Invalid path or malformed manifest
        - 404: Unknown upload
        - 409: Missing chunk or upload already finalized
        - 500: Archive or storage failure
    """
    package_service = PackageService()

    manifest = [entry.model_dump() for entry in body.manifest]
    package = await run_in_threadpool(package_service.finalize_upload, body.token, manifest)

    return FinalizeUploadResponse(
        token=package.token,
        public_link=str(request.url_for("show_package", token=package.token)),
        expires_at=package.expires_at,
    )
