"""Entry point for the packager service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from packager import config
from packager.database import init_database
from packager.exceptions import (
    ArchiveCloseError,
    ArchiveCreateError,
    ArchiveEntryError,
    InvalidChunkError,
    InvalidManifestError,
    InvalidPathError,
    MissingChunkError,
    PackageGoneError,
    PackagerException,
    StorageIOError,
    UnknownUploadError,
    UploadAlreadyFinalizedError,
)
from packager.routes.admin_routes import router as admin_router
from packager.routes.package_routes import router as package_router
from packager.routes.upload_routes import router as upload_router
from packager.sweeper import PackageSweeper

logger = setup_logging('packager')

app = FastAPI(
    title="Packager",
    description="Chunked upload service publishing expiring ZIP packages",
    version="1.0.0"
)

sweeper = None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Initialize database and start the sweep task on application startup.
    """
    global sweeper

    logger.info("Packager service starting up...")

    init_database()
    logger.info("Database initialized")

    if config.SWEEP_INTERVAL_SECONDS > 0:
        sweeper = PackageSweeper()
        await sweeper.start()
    else:
        logger.info("Package sweep task disabled")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Stop background tasks on application shutdown.
    """
    logger.info("Packager service shutting down...")

    if sweeper:
        await sweeper.stop()
        logger.info("Sweep task stopped")


def _error(status_code: int, code: str, detail: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code, **extra})


@app.exception_handler(InvalidPathError)
async def invalid_path_handler(request: Request, exc: InvalidPathError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Invalid path error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_400_BAD_REQUEST, "INVALID_PATH", str(exc), path=exc.path)


@app.exception_handler(InvalidManifestError)
async def invalid_manifest_handler(request: Request, exc: InvalidManifestError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Invalid manifest error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_400_BAD_REQUEST, "INVALID_MANIFEST", str(exc))


@app.exception_handler(InvalidChunkError)
async def invalid_chunk_handler(request: Request, exc: InvalidChunkError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Invalid chunk error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_400_BAD_REQUEST, "INVALID_CHUNK", str(exc))


@app.exception_handler(UnknownUploadError)
async def unknown_upload_handler(request: Request, exc: UnknownUploadError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Unknown upload error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_404_NOT_FOUND, "UNKNOWN_UPLOAD", str(exc))


@app.exception_handler(UploadAlreadyFinalizedError)
async def already_finalized_handler(request: Request, exc: UploadAlreadyFinalizedError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Already finalized error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_409_CONFLICT, "ALREADY_FINALIZED", str(exc))


@app.exception_handler(MissingChunkError)
async def missing_chunk_handler(request: Request, exc: MissingChunkError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(f"Missing chunk error: {exc} [request_id={request_id}] path={request.url.path}")
    return _error(status.HTTP_409_CONFLICT, "MISSING_CHUNK", str(exc), path=exc.path, index=exc.index)


@app.exception_handler(ArchiveCreateError)
async def archive_create_handler(request: Request, exc: ArchiveCreateError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Archive create error: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "ARCHIVE_CREATE_FAILED", str(exc))


@app.exception_handler(ArchiveEntryError)
async def archive_entry_handler(request: Request, exc: ArchiveEntryError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Archive entry error: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "ARCHIVE_ENTRY_FAILED", str(exc), path=exc.path)


@app.exception_handler(ArchiveCloseError)
async def archive_close_handler(request: Request, exc: ArchiveCloseError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Archive close error: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "ARCHIVE_CLOSE_FAILED", str(exc))


@app.exception_handler(PackageGoneError)
async def package_gone_handler(request: Request, exc: PackageGoneError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.info(f"Package gone: {type(exc).__name__} [request_id={request_id}]")
    return _error(status.HTTP_404_NOT_FOUND, "PACKAGE_GONE", "Package is not available")


@app.exception_handler(StorageIOError)
async def storage_io_handler(request: Request, exc: StorageIOError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Storage I/O error: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_IO_FAILED", "Storage operation failed")


@app.exception_handler(PackagerException)
async def packager_exception_handler(request: Request, exc: PackagerException):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Packager exception: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", str(exc))


app.include_router(upload_router)
app.include_router(package_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "Packager API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker healthcheck.
    """
    return {"status": "healthy", "service": "packager"}


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "packager.main:app",
        host=config.PACKAGER_HOST,
        port=config.PACKAGER_PORT,
    )


if __name__ == "__main__":
    main()
