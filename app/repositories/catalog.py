"""
Catalog Repositories
Read-mostly lookups over roles, permissions and the role_permissions mapping.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CatalogEntryNotFound
from app.core.rbac import PermissionName, RoleName, coerce_permission_name, coerce_role_name, parse_permission_name
from app.models.rbac import Permission, Role, RolePermission
from app.repositories.base import BaseRepository

logger = structlog.get_logger()


class RoleRepository(BaseRepository[Role]):
    async def get_by_name(self, db: AsyncSession, name: RoleName | str) -> Optional[Role]:
        result = await self.execute(db, select(Role).where(Role.name == coerce_role_name(name)))
        return result.scalar_one_or_none()

    async def require_by_name(self, db: AsyncSession, name: RoleName | str) -> Role:
        role = await self.get_by_name(db, name)
        if role is None:
            logger.error("Role missing from catalog", role=coerce_role_name(name))
            raise CatalogEntryNotFound("role", coerce_role_name(name))
        return role

    async def list_all(self, db: AsyncSession) -> list[Role]:
        return await self.get_all(db, order_by=Role.name)

    async def ensure(self, db: AsyncSession, name: RoleName | str, description: Optional[str]) -> Role:
        """Insert the role if missing and return the stored row"""
        stmt = self.insert(db).values(name=coerce_role_name(name), description=description)
        await self.execute(db, stmt.on_conflict_do_nothing(index_elements=["name"]))
        return await self.require_by_name(db, name)


class PermissionRepository(BaseRepository[Permission]):
    async def get_by_name(self, db: AsyncSession, name: PermissionName | str) -> Optional[Permission]:
        result = await self.execute(
            db, select(Permission).where(Permission.name == coerce_permission_name(name))
        )
        return result.scalar_one_or_none()

    async def require_by_name(self, db: AsyncSession, name: PermissionName | str) -> Permission:
        permission = await self.get_by_name(db, name)
        if permission is None:
            logger.error("Permission missing from catalog", permission=coerce_permission_name(name))
            raise CatalogEntryNotFound("permission", coerce_permission_name(name))
        return permission

    async def list_by_resource(self, db: AsyncSession, resource: str) -> list[Permission]:
        result = await self.execute(
            db,
            select(Permission).where(Permission.resource == resource).order_by(Permission.action),
        )
        return list(result.scalars().all())

    async def list_all(self, db: AsyncSession) -> list[Permission]:
        result = await self.execute(
            db, select(Permission).order_by(Permission.resource, Permission.action)
        )
        return list(result.scalars().all())

    async def ensure(self, db: AsyncSession, name: PermissionName | str, description: Optional[str]) -> Permission:
        """Insert the permission if missing and return the stored row"""
        permission_name = coerce_permission_name(name)
        resource, action = parse_permission_name(permission_name)
        stmt = self.insert(db).values(
            name=permission_name,
            resource=resource,
            action=action,
            description=description,
        )
        await self.execute(db, stmt.on_conflict_do_nothing(index_elements=["name"]))
        return await self.require_by_name(db, permission_name)


class RolePermissionRepository(BaseRepository[RolePermission]):
    async def attach(self, db: AsyncSession, *, role_id: int, permission_id: int) -> bool:
        stmt = (
            self.insert(db)
            .values(role_id=role_id, permission_id=permission_id)
            .on_conflict_do_nothing(index_elements=["role_id", "permission_id"])
            .returning(RolePermission.role_id)
        )
        result = await self.execute(db, stmt)
        return result.first() is not None

    async def mapping(self, db: AsyncSession) -> dict[str, set[str]]:
        """Role name -> permission names, for every role in the catalog"""
        result = await self.execute(
            db,
            select(Role.name, Permission.name)
            .select_from(Role)
            .outerjoin(RolePermission, RolePermission.role_id == Role.id)
            .outerjoin(Permission, Permission.id == RolePermission.permission_id),
        )
        mapping: dict[str, set[str]] = {}
        for role_name, permission_name in result.all():
            names = mapping.setdefault(role_name, set())
            if permission_name is not None:
                names.add(permission_name)
        return mapping


role_repository = RoleRepository(Role)
permission_repository = PermissionRepository(Permission)
role_permission_repository = RolePermissionRepository(RolePermission)
