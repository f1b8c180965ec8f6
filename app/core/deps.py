"""
FastAPI Dependencies
Authentication and permission checks for the operation layer.

A request without a usable session fails with AuthenticationRequired (401).
An authenticated request lacking a permission fails with AuthorizationDenied
(403). The two are never interchanged.
"""

from typing import Optional

import structlog
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import AuthenticationRequired, AuthorizationDenied
from app.core.permission_resolver import permission_resolver
from app.core.rbac import PermissionName, RoleName, coerce_permission_name, coerce_role_name
from app.core.security import ACCESS_TOKEN_TYPE, SessionClaims, decode_session_token
from app.models.user import User
from app.repositories.user import user_repository

logger = structlog.get_logger()

# auto_error=False so a missing header is rendered by our own 401 handler
security = HTTPBearer(auto_error=False)


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> SessionClaims:
    """
    Decode the bearer access token

    Raises:
        AuthenticationRequired: If no token was sent or it does not validate
    """
    if not credentials:
        logger.info("Missing authentication credentials")
        raise AuthenticationRequired()
    return decode_session_token(credentials.credentials, token_type=ACCESS_TOKEN_TYPE)


async def get_current_user_id(session: SessionClaims = Depends(get_current_session)) -> int:
    return session.user_id


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
) -> User:
    """
    Load the user behind the session

    A session whose user has been deleted is treated as no session at all.
    """
    user = await user_repository.get(db, user_id)
    if user is None:
        logger.info("Session refers to missing user", user_id=user_id)
        raise AuthenticationRequired()
    return user


def require_permission(permission: PermissionName):
    """
    Dependency factory guarding an operation with one permission

    Args:
        permission: Permission the caller must hold through any of their roles

    Returns:
        Dependency resolving to the caller's user id
    """
    permission_name = coerce_permission_name(permission)

    async def permission_checker(
        db: AsyncSession = Depends(get_db),
        user_id: int = Depends(get_current_user_id),
    ) -> int:
        if not await permission_resolver.check_permission(db, user_id, permission_name):
            # Audit trail only; the response never names the permission
            logger.warning("Permission denied", user_id=user_id, permission=permission_name)
            raise AuthorizationDenied()

        logger.debug("Permission check passed", user_id=user_id, permission=permission_name)
        return user_id

    return permission_checker


def require_role(role: RoleName):
    role_name = coerce_role_name(role)

    async def role_checker(
        db: AsyncSession = Depends(get_db),
        user_id: int = Depends(get_current_user_id),
    ) -> int:
        if not await permission_resolver.check_role(db, user_id, role_name):
            logger.warning("Role required", user_id=user_id, role=role_name)
            raise AuthorizationDenied()
        return user_id

    return role_checker
