"""Admin access guard."""

import secrets

from fastapi import Header, HTTPException, status

from packager import config


async def require_admin(x_admin_token: str = Header(default="")) -> None:
    """
    FastAPI dependency guarding the admin router.

    Args:
        x_admin_token: X-Admin-Token header value

    Raises:
        HTTPException: 404 when admin access is disabled, 403 on a wrong token
    """
    if not config.ADMIN_TOKEN:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    if not secrets.compare_digest(x_admin_token.encode("utf-8"), config.ADMIN_TOKEN.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")
