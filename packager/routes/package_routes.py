"""Package lookup and download API routes."""

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from packager.schemas.common import ErrorResponse
from packager.schemas.packages import PackageResponse
from packager.services.package_service import PackageService

router = APIRouter(prefix="/packages", tags=["Packages"])


@router.get("/{token}", response_model=PackageResponse, name="show_package",
            responses={404: {"model": ErrorResponse}})
async def show_package(token: str, request: Request):
    """
    Get the download link of a package.

    Raises:
        - 404: Package unknown or expired
    """
    package_service = PackageService()

    package = package_service.get_package(token)

    return PackageResponse(
        token=package.token,
        download_link=str(request.url_for("download_package", token=package.token)),
        expires_at=package.expires_at,
    )


@router.get("/{token}/download", name="download_package", responses={404: {"model": ErrorResponse}})
async def download_package(token: str):
    """
    Download the package archive as <token>.zip.

    Returns:
        - StreamingResponse with archive data

    Raises:
        - 404: Package unknown or expired
    """
    package_service = PackageService()

    package, size, stream_generator = package_service.open_download(token)

    return StreamingResponse(
        stream_generator,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{package.filename}"',
            "Content-Length": str(size),
        }
    )
