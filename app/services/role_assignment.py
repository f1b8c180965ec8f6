"""
User-Role Assignment service
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit as commit_session
from app.core.exceptions import LastRoleRemoval, UserNotFound
from app.core.rbac import RoleName
from app.repositories.catalog import role_repository
from app.repositories.user import user_repository
from app.repositories.user_role import user_role_repository

logger = structlog.get_logger()


async def assign_role(db: AsyncSession, user_id: int, role: RoleName | str, *, commit: bool = True) -> bool:
    """
    Give ``role`` to a user.

    Idempotent: assigning a held role is a no-op. Returns True only when a new
    assignment row was written.

    Raises:
        CatalogEntryNotFound: when the role name is not in the catalog
    """
    role_row = await role_repository.require_by_name(db, role)
    created = await user_role_repository.insert_if_absent(db, user_id=user_id, role_id=role_row.id)
    if commit:
        await commit_session(db)
    if created:
        logger.info("Role assigned", user_id=user_id, role=role_row.name)
    return created


async def remove_role(db: AsyncSession, user_id: int, role: RoleName | str, *, commit: bool = True) -> bool:
    """
    Take ``role`` away from a user.

    Removing a role the user does not hold returns False. Removing the only
    role a user holds raises LastRoleRemoval, since every user keeps at least
    one role.
    """
    role_row = await role_repository.require_by_name(db, role)
    held = await user_role_repository.role_names(db, user_id)
    if role_row.name not in held:
        return False
    if len(held) == 1:
        logger.warning("Refused to remove last role", user_id=user_id, role=role_row.name)
        raise LastRoleRemoval()

    removed = await user_role_repository.delete_link(db, user_id=user_id, role_id=role_row.id)
    if removed and await user_role_repository.count_for_user(db, user_id) == 0:
        # A concurrent removal took the other role in the meantime
        await db.rollback()
        raise LastRoleRemoval()
    if commit:
        await commit_session(db)
    if removed:
        logger.info("Role removed", user_id=user_id, role=role_row.name)
    return removed


async def list_role_names(db: AsyncSession, user_id: int) -> set[str]:
    return await user_role_repository.role_names(db, user_id)


async def require_user(db: AsyncSession, user_id: int):
    user = await user_repository.get(db, user_id)
    if user is None:
        raise UserNotFound()
    return user
