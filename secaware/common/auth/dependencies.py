"""
Authentication dependencies for the engagement API.

Authentication happens upstream; requests carry ``Authorization: Bearer <token>``
where the token is the opaque user id issued by the identity service.
"""

from fastapi import Header, HTTPException, status
from typing import Optional

from secaware.common.auth.roles import RoleProvider, StaticRoleProvider
from secaware.config import settings


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Get the current user ID from the authorization header.

    Raises:
        HTTPException: 401 if the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )
    return token


_role_provider: Optional[RoleProvider] = None


def get_role_provider() -> RoleProvider:
    """Role provider dependency; defaults to the configured administrator ids."""
    global _role_provider
    if _role_provider is None:
        _role_provider = StaticRoleProvider(settings.ADMIN_USER_IDS)
    return _role_provider

