"""
Security utilities for relative path validation.
"""
from pathlib import Path, PurePosixPath

from packager.exceptions import InvalidPathError

MAX_PATH_LENGTH = 1024


def validate_relative_path(path) -> str:
    """
    Validate a client supplied relative path and return its normalized form.

    Args:
        path: Slash separated path relative to the upload root

    Returns:
        str: The path with any trailing slash removed

    Raises:
        InvalidPathError: If the path is empty, absolute or escapes the root
    """
    if not isinstance(path, str) or not path.strip():
        raise InvalidPathError(str(path), "path is empty")

    if len(path) > MAX_PATH_LENGTH:
        raise InvalidPathError(path, "path is too long")

    for char in ('\0', '\\', '\n', '\r'):
        if char in path:
            raise InvalidPathError(path, f"path contains forbidden character {char!r}")

    if path.startswith('/') or PurePosixPath(path).is_absolute():
        raise InvalidPathError(path, "path is absolute")

    # Windows drive letters such as "C:" would escape when unpacked there
    if len(path) >= 2 and path[1] == ':':
        raise InvalidPathError(path, "path is absolute")

    trimmed = path[:-1] if path.endswith('/') else path
    segments = trimmed.split('/')

    for segment in segments:
        if segment == '..':
            raise InvalidPathError(path, "path contains a parent directory segment")
        if segment in ('', '.'):
            raise InvalidPathError(path, "path contains an empty segment")

    return trimmed


def is_safe_path(base_dir, path) -> bool:
    """
    Check that a path resolves inside base_dir.

    Args:
        base_dir: The directory the path must stay within
        path: The path to check

    Returns:
        bool: True if path is safe, False otherwise
    """
    try:
        base = Path(base_dir).resolve()
        return Path(path).resolve().is_relative_to(base)
    except (ValueError, OSError):
        return False
