"""
Permission resolver seam.

Answers "may this user do X" from the role tables. This is the operation-layer
contract consumed by the HTTP endpoints (``check_permission``/``check_role``).

An unknown permission name is simply held by nobody, so checks fail closed
without raising. Storage failures are not answers: they propagate as
``StorageError`` and never turn into a ``False``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import PermissionName, RoleName, coerce_permission_name, coerce_role_name
from app.models.rbac import Permission, RolePermission, UserRole
from app.repositories.catalog import permission_repository
from app.repositories.user_role import user_role_repository

logger = structlog.get_logger()


@dataclass(frozen=True)
class EffectivePermissions:
    """Snapshot of a user's permission set; set operations only, no further queries"""

    user_id: int
    names: tuple[str, ...]

    def has(self, permission: PermissionName | str) -> bool:
        return coerce_permission_name(permission) in self.names

    def has_any(self, permissions: Iterable[PermissionName | str]) -> bool:
        wanted = {coerce_permission_name(p) for p in permissions}
        return not wanted.isdisjoint(self.names)

    def has_all(self, permissions: Iterable[PermissionName | str]) -> bool:
        wanted = {coerce_permission_name(p) for p in permissions}
        return wanted.issubset(self.names)


class PermissionResolver(ABC):
    @abstractmethod
    async def has_permission(self, db: AsyncSession, user_id: int, permission: PermissionName | str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def list_effective_permissions(self, db: AsyncSession, user_id: int) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    async def list_role_names(self, db: AsyncSession, user_id: int) -> list[str]:
        raise NotImplementedError

    async def snapshot(self, db: AsyncSession, user_id: int) -> EffectivePermissions:
        names = await self.list_effective_permissions(db, user_id)
        return EffectivePermissions(user_id=user_id, names=tuple(names))

    async def has_any(
        self, db: AsyncSession, user_id: int, permissions: Iterable[PermissionName | str]
    ) -> bool:
        return (await self.snapshot(db, user_id)).has_any(permissions)

    async def has_all(
        self, db: AsyncSession, user_id: int, permissions: Iterable[PermissionName | str]
    ) -> bool:
        return (await self.snapshot(db, user_id)).has_all(permissions)

    async def check_permission(self, db: AsyncSession, user_id: int, permission: PermissionName | str) -> bool:
        return await self.has_permission(db, user_id, permission)

    async def check_role(self, db: AsyncSession, user_id: int, role: RoleName | str) -> bool:
        return coerce_role_name(role) in await self.list_role_names(db, user_id)


class DBPermissionResolver(PermissionResolver):
    async def has_permission(self, db: AsyncSession, user_id: int, permission: PermissionName | str) -> bool:
        permission_name = coerce_permission_name(permission)
        catalog_entry = await permission_repository.get_by_name(db, permission_name)
        if catalog_entry is None:
            logger.warning("Permission check for unknown permission", permission=permission_name, user_id=user_id)
            return False

        query = (
            select(func.count())
            .select_from(UserRole)
            .join(RolePermission, RolePermission.role_id == UserRole.role_id)
            .where(UserRole.user_id == user_id, RolePermission.permission_id == catalog_entry.id)
        )
        result = await permission_repository.execute(db, query)
        return (result.scalar() or 0) > 0

    async def list_effective_permissions(self, db: AsyncSession, user_id: int) -> list[str]:
        query = (
            select(Permission.name)
            .distinct()
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.user_id == user_id)
            .order_by(Permission.name)
        )
        result = await permission_repository.execute(db, query)
        return list(result.scalars().all())

    async def list_role_names(self, db: AsyncSession, user_id: int) -> list[str]:
        return sorted(await user_role_repository.role_names(db, user_id))


permission_resolver = DBPermissionResolver()
