"""
Role/permission catalog provisioning.

Seeding is idempotent and runs at startup, followed by a validation pass that
refuses to start when the stored catalog and ``app.core.rbac`` disagree.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit
from app.core.rbac import (
    FULL_ACCESS_ROLE,
    PERMISSION_DESCRIPTIONS,
    ROLE_DESCRIPTIONS,
    ROLE_PERMISSIONS,
    PermissionName,
    RoleName,
    parse_permission_name,
)
from app.models.rbac import Permission
from app.repositories.catalog import permission_repository, role_permission_repository, role_repository

logger = structlog.get_logger()


class CatalogValidationError(RuntimeError):
    """The stored catalog does not match the enumerated roles and permissions"""


async def seed_catalog(db: AsyncSession) -> None:
    permissions: dict[PermissionName, Permission] = {}
    for permission_name in PermissionName:
        permissions[permission_name] = await permission_repository.ensure(
            db, permission_name, PERMISSION_DESCRIPTIONS.get(permission_name)
        )

    attached = 0
    for role_name in RoleName:
        role = await role_repository.ensure(db, role_name, ROLE_DESCRIPTIONS.get(role_name))
        for permission_name in ROLE_PERMISSIONS[role_name]:
            if await role_permission_repository.attach(
                db, role_id=role.id, permission_id=permissions[permission_name].id
            ):
                attached += 1

    await commit(db)
    logger.info(
        "Catalog seeded",
        roles=len(RoleName),
        permissions=len(PermissionName),
        new_role_permission_links=attached,
    )


async def provision_permission(db: AsyncSession, name: str, description: Optional[str] = None) -> Permission:
    """
    Add a permission to the catalog.

    The full-access role receives the permission in the same transaction, so it
    stays a superset of every other role.
    """
    parse_permission_name(name)
    owner = await role_repository.require_by_name(db, FULL_ACCESS_ROLE)
    permission = await permission_repository.ensure(db, name, description)
    await role_permission_repository.attach(db, role_id=owner.id, permission_id=permission.id)
    await commit(db)
    logger.info("Permission provisioned", permission=name)
    return permission


async def grant_permission(db: AsyncSession, role: RoleName | str, permission: PermissionName | str) -> bool:
    role_row = await role_repository.require_by_name(db, role)
    permission_row = await permission_repository.require_by_name(db, permission)
    created = await role_permission_repository.attach(db, role_id=role_row.id, permission_id=permission_row.id)
    await commit(db)
    return created


async def validate_catalog(db: AsyncSession) -> None:
    """
    Check the stored catalog against the enumeration.

    Raises:
        CatalogValidationError: when an enumerated role or permission is missing,
            or the full-access role is not a superset of every other role
    """
    stored_permissions = {p.name for p in await permission_repository.list_all(db)}
    missing_permissions = {p.value for p in PermissionName} - stored_permissions
    if missing_permissions:
        raise CatalogValidationError(f"Permissions missing from catalog: {sorted(missing_permissions)}")

    mapping = await role_permission_repository.mapping(db)
    missing_roles = {r.value for r in RoleName} - set(mapping)
    if missing_roles:
        raise CatalogValidationError(f"Roles missing from catalog: {sorted(missing_roles)}")

    full_access = mapping[FULL_ACCESS_ROLE.value]
    not_granted = stored_permissions - full_access
    if not_granted:
        raise CatalogValidationError(
            f"Full-access role '{FULL_ACCESS_ROLE.value}' lacks permissions: {sorted(not_granted)}"
        )

    logger.info("Catalog validated", roles=sorted(mapping), permissions=len(stored_permissions))
