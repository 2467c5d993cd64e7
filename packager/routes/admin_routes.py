"""Administrative API routes. Disabled unless PACKAGER_ADMIN_TOKEN is set."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from packager.auth import require_admin
from packager.schemas.packages import (
    ClearAllResponse,
    ListPackagesResponse,
    PackageSummaryResponse,
    SweepResponse,
)
from packager.services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/packages", response_model=ListPackagesResponse)
async def list_packages():
    """
    List every package record, expired or not.
    """
    admin_service = AdminService()

    packages = admin_service.list_packages()

    return ListPackagesResponse(
        packages=[
            PackageSummaryResponse(
                token=package.token,
                filename=package.filename,
                created_at=package.created_at,
                expires_at=package.expires_at,
            )
            for package in packages
        ]
    )


@router.post("/clear", response_model=ClearAllResponse)
async def clear_all():
    """
    Delete all packages, archives and staged chunks. Intended for test/reset use.
    """
    admin_service = AdminService()

    counts = await run_in_threadpool(admin_service.clear_all)

    return ClearAllResponse(**counts)


@router.post("/sweep", response_model=SweepResponse)
async def sweep_now():
    """
    Run one reclamation sweep immediately.
    """
    admin_service = AdminService()

    report = await run_in_threadpool(admin_service.sweep_now)

    return SweepResponse(**asdict(report))
