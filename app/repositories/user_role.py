"""
User-Role Repository
Rows of the user_roles association table.
"""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.rbac import Role, UserRole
from app.repositories.base import BaseRepository


class UserRoleRepository(BaseRepository[UserRole]):
    async def insert_if_absent(self, db: AsyncSession, *, user_id: int, role_id: int) -> bool:
        """Returns True when a new row was written, False when it already existed"""
        stmt = (
            self.insert(db)
            .values(user_id=user_id, role_id=role_id)
            .on_conflict_do_nothing(index_elements=["user_id", "role_id"])
            .returning(UserRole.user_id)
        )
        result = await self.execute(db, stmt)
        return result.first() is not None

    async def delete_link(self, db: AsyncSession, *, user_id: int, role_id: int) -> bool:
        stmt = (
            delete(UserRole)
            .where(UserRole.user_id == user_id, UserRole.role_id == role_id)
            .returning(UserRole.user_id)
        )
        result = await self.execute(db, stmt)
        return result.first() is not None

    async def role_names(self, db: AsyncSession, user_id: int) -> set[str]:
        result = await self.execute(
            db,
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id),
        )
        return set(result.scalars().all())

    async def count_for_user(self, db: AsyncSession, user_id: int) -> int:
        result = await self.execute(
            db, select(func.count()).select_from(UserRole).where(UserRole.user_id == user_id)
        )
        return result.scalar() or 0


user_role_repository = UserRoleRepository(UserRole)
