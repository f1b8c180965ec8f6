"""
User role administration endpoints
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_permission
from app.core.rbac import PermissionName, RoleName
from app.schemas.rbac import RoleAssignmentRequest, RoleAssignmentResponse, UserRolesResponse
from app.services.role_assignment import assign_role, list_role_names, remove_role, require_user

logger = structlog.get_logger()
router = APIRouter()


@router.get("/{user_id}/roles", response_model=UserRolesResponse)
async def get_user_roles(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _: int = Depends(require_permission(PermissionName.USERS_READ)),
) -> Any:
    await require_user(db, user_id)
    return UserRolesResponse(user_id=user_id, roles=sorted(await list_role_names(db, user_id)))


@router.post("/{user_id}/roles", response_model=RoleAssignmentResponse)
async def add_user_role(
    user_id: int,
    assignment: RoleAssignmentRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_permission(PermissionName.USERS_UPDATE)),
) -> Any:
    await require_user(db, user_id)
    created = await assign_role(db, user_id, assignment.role)
    logger.info("Role assignment requested", actor_id=actor_id, user_id=user_id, role=assignment.role, created=created)
    return RoleAssignmentResponse(
        user_id=user_id,
        roles=sorted(await list_role_names(db, user_id)),
        changed=created,
    )


@router.delete("/{user_id}/roles/{role}", response_model=RoleAssignmentResponse)
async def remove_user_role(
    user_id: int,
    role: RoleName,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_permission(PermissionName.USERS_UPDATE)),
) -> Any:
    await require_user(db, user_id)
    removed = await remove_role(db, user_id, role)
    logger.info("Role removal requested", actor_id=actor_id, user_id=user_id, role=role.value, removed=removed)
    return RoleAssignmentResponse(
        user_id=user_id,
        roles=sorted(await list_role_names(db, user_id)),
        changed=removed,
    )
