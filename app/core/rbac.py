"""
RBAC helpers and canonical role/permission definitions for Calendar Hub.

Role and permission names are a closed enumeration. Code refers to them through
``RoleName`` and ``PermissionName`` only; the catalog tables are seeded from,
and validated against, the definitions in this module at startup.
"""

from __future__ import annotations

import re
from enum import Enum

PERMISSION_NAME_PATTERN = re.compile(r"^[a-z]+:[a-z]+$")


class RoleName(str, Enum):
    GUEST = "guest"
    OWNER = "owner"


class PermissionName(str, Enum):
    # Calendar
    CALENDAR_READ = "calendar:read"
    CALENDAR_CREATE = "calendar:create"
    CALENDAR_UPDATE = "calendar:update"
    CALENDAR_DELETE = "calendar:delete"

    # Settings
    SETTINGS_READ = "settings:read"
    SETTINGS_UPDATE = "settings:update"

    # Auth
    AUTH_READ = "auth:read"
    AUTH_UPDATE = "auth:update"
    AUTH_DELETE = "auth:delete"

    # Users
    USERS_READ = "users:read"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


# Full-access role granted to every new account
DEFAULT_ROLE = RoleName.OWNER
FULL_ACCESS_ROLE = RoleName.OWNER
READ_ONLY_ROLE = RoleName.GUEST

ROLE_DESCRIPTIONS: dict[RoleName, str] = {
    RoleName.OWNER: "Full access to every resource",
    RoleName.GUEST: "Read-only access",
}

PERMISSION_DESCRIPTIONS: dict[PermissionName, str] = {
    PermissionName.CALENDAR_READ: "View calendar events",
    PermissionName.CALENDAR_CREATE: "Create calendar events",
    PermissionName.CALENDAR_UPDATE: "Edit calendar events",
    PermissionName.CALENDAR_DELETE: "Delete calendar events",
    PermissionName.SETTINGS_READ: "View settings",
    PermissionName.SETTINGS_UPDATE: "Change settings",
    PermissionName.AUTH_READ: "View own sign-in methods",
    PermissionName.AUTH_UPDATE: "Change own password and sign-in methods",
    PermissionName.AUTH_DELETE: "Delete own account",
    PermissionName.USERS_READ: "View users and their roles",
    PermissionName.USERS_UPDATE: "Change the roles of users",
    PermissionName.USERS_DELETE: "Delete users",
}


def parse_permission_name(name: str) -> tuple[str, str]:
    """
    Split a permission name into (resource, action).

    Raises:
        ValueError: if the name does not follow the lowercase resource:action form
    """
    if not PERMISSION_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid permission name {name!r}: expected lowercase 'resource:action'")
    resource, action = name.split(":", 1)
    return resource, action


def read_only_permissions() -> list[PermissionName]:
    return sorted(
        (p for p in PermissionName if p.action == "read"),
        key=lambda p: p.value,
    )


def full_access_permissions() -> list[PermissionName]:
    return sorted(PermissionName, key=lambda p: p.value)


ROLE_PERMISSIONS: dict[RoleName, list[PermissionName]] = {
    RoleName.OWNER: full_access_permissions(),
    RoleName.GUEST: read_only_permissions(),
}


def coerce_permission_name(permission: PermissionName | str) -> str:
    return permission.value if isinstance(permission, PermissionName) else permission


def coerce_role_name(role: RoleName | str) -> str:
    return role.value if isinstance(role, RoleName) else role


# Import-time guard: a typo in the enumeration fails here, not as a silent deny later
for _permission in PermissionName:
    parse_permission_name(_permission.value)
del _permission
