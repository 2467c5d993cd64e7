"""API routes package."""

from packager.routes.admin_routes import router as admin_router
from packager.routes.package_routes import router as package_router
from packager.routes.upload_routes import router as upload_router

__all__ = ["admin_router", "package_router", "upload_router"]
