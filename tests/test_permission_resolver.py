"""
Tests for the Permission Resolver
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import StorageError
from app.core.permission_resolver import DBPermissionResolver, EffectivePermissions, permission_resolver
from app.core.rbac import PermissionName, RoleName
from app.repositories.base import BaseRepository
from app.services.account import account_service
from app.services.role_assignment import assign_role, remove_role

PASSWORD = "longenough1"


async def _guest_only_user(db) -> int:
    registration = await account_service.register(db, email="guest@x.com", password=PASSWORD)
    user_id = registration.user.id
    await assign_role(db, user_id, RoleName.GUEST)
    await remove_role(db, user_id, RoleName.OWNER)
    return user_id


# ==================== Single checks ====================


class TestHasPermission:
    """Tests for has_permission"""

    @pytest.mark.asyncio
    async def test_guest_can_read_but_not_delete(self, db):
        user_id = await _guest_only_user(db)

        assert await permission_resolver.has_permission(db, user_id, "calendar:read") is True
        assert await permission_resolver.has_permission(db, user_id, PermissionName.CALENDAR_DELETE) is False

    @pytest.mark.asyncio
    async def test_new_account_holds_every_permission(self, db, verified_user):
        for permission in PermissionName:
            assert await permission_resolver.has_permission(db, verified_user.id, permission) is True

    @pytest.mark.asyncio
    async def test_unknown_permission_is_false_not_an_error(self, db, verified_user):
        assert await permission_resolver.has_permission(db, verified_user.id, "calendar:share") is False
        assert await permission_resolver.has_permission(db, verified_user.id, "not a permission") is False

    @pytest.mark.asyncio
    async def test_user_without_roles_has_nothing(self, db):
        assert await permission_resolver.has_permission(db, 999_999, PermissionName.CALENDAR_READ) is False

    @pytest.mark.asyncio
    async def test_consistent_with_effective_permissions(self, db):
        user_id = await _guest_only_user(db)
        effective = set(await permission_resolver.list_effective_permissions(db, user_id))

        for permission in PermissionName:
            held = await permission_resolver.has_permission(db, user_id, permission)
            assert held == (permission.value in effective)


# ==================== Effective permissions ====================


class TestEffectivePermissions:
    """Tests for list_effective_permissions and set helpers"""

    @pytest.mark.asyncio
    async def test_union_is_deduplicated_and_sorted(self, db, verified_user):
        await assign_role(db, verified_user.id, RoleName.GUEST)

        names = await permission_resolver.list_effective_permissions(db, verified_user.id)

        assert names == sorted(p.value for p in PermissionName)

    @pytest.mark.asyncio
    async def test_has_any_and_has_all(self, db):
        user_id = await _guest_only_user(db)

        assert await permission_resolver.has_any(db, user_id, ["calendar:delete", "settings:read"]) is True
        assert await permission_resolver.has_any(db, user_id, ["calendar:delete", "users:update"]) is False
        assert await permission_resolver.has_all(db, user_id, ["calendar:read", "settings:read"]) is True
        assert await permission_resolver.has_all(db, user_id, ["calendar:read", "settings:update"]) is False

    def test_snapshot_set_operations(self):
        snapshot = EffectivePermissions(user_id=1, names=("auth:read", "calendar:read"))

        assert snapshot.has(PermissionName.CALENDAR_READ)
        assert not snapshot.has("calendar:update")
        assert snapshot.has_any(["calendar:update", "auth:read"])
        assert not snapshot.has_all(["calendar:update", "auth:read"])
        assert snapshot.has_all([])

    @pytest.mark.asyncio
    async def test_has_any_and_has_all_share_one_query(self, db):
        resolver = DBPermissionResolver()
        resolver.list_effective_permissions = AsyncMock(return_value=["calendar:read"])

        snapshot = await resolver.snapshot(db, 1)

        assert snapshot.has_any(["calendar:read"]) and snapshot.has_all(["calendar:read"])
        resolver.list_effective_permissions.assert_awaited_once_with(db, 1)


# ==================== Roles ====================


class TestCheckRole:
    @pytest.mark.asyncio
    async def test_check_role(self, db, verified_user):
        assert await permission_resolver.check_role(db, verified_user.id, RoleName.OWNER) is True
        assert await permission_resolver.check_role(db, verified_user.id, "guest") is False


# ==================== Storage failures ====================


class TestStorageFailures:
    """Storage problems surface as StorageError, never as a denial"""

    @pytest.mark.asyncio
    async def test_query_error_propagates(self):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(StorageError):
            await permission_resolver.has_permission(db, 1, PermissionName.CALENDAR_READ)

    @pytest.mark.asyncio
    async def test_query_timeout_propagates(self, monkeypatch):
        async def slow_execute(*args, **kwargs):
            await asyncio.sleep(1)

        db = AsyncMock()
        db.execute.side_effect = slow_execute
        monkeypatch.setattr(BaseRepository, "timeout", property(lambda self: 0.01))

        with pytest.raises(StorageError):
            await permission_resolver.list_effective_permissions(db, 1)
