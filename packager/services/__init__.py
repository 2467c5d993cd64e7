"""Service layer for business logic."""

from packager.services.admin_service import AdminService
from packager.services.package_service import PackageService

__all__ = [
    "AdminService",
    "PackageService",
]
