"""
Security guards for admin-only endpoints.

Admins authenticate with a shared key sent in the X-Admin-Key header.
"""

import hmac
from typing import Optional
from fastapi import Header, HTTPException, status
from fleet_dashboard.app.core.config import settings


def require_admin(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> str:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/vehicles")
        async def create_vehicle(admin: str = Depends(require_admin)):
            ...

    Returns:
        The actor name recorded in the audit log

    Raises:
        HTTPException 403 if the key is missing or wrong
    """
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return "admin"
