"""Repository layer for data access."""

from packager.repositories.package_repository import Package, PackageRepository

__all__ = [
    "Package",
    "PackageRepository",
]
