"""
Tests for User-Role Assignment
"""

import pytest

from app.core.exceptions import CatalogEntryNotFound, LastRoleRemoval
from app.core.rbac import DEFAULT_ROLE, RoleName
from app.services.role_assignment import assign_role, list_role_names, remove_role


class TestAssignRole:
    """Tests for assign_role"""

    @pytest.mark.asyncio
    async def test_new_account_has_default_role(self, db, verified_user):
        assert await list_role_names(db, verified_user.id) == {DEFAULT_ROLE.value}

    @pytest.mark.asyncio
    async def test_assign_reports_whether_row_was_created(self, db, verified_user):
        assert await assign_role(db, verified_user.id, RoleName.GUEST) is True
        assert await assign_role(db, verified_user.id, RoleName.GUEST) is False

    @pytest.mark.asyncio
    async def test_assign_twice_same_as_once(self, db, verified_user):
        await assign_role(db, verified_user.id, RoleName.GUEST)
        once = await list_role_names(db, verified_user.id)

        await assign_role(db, verified_user.id, RoleName.GUEST)

        assert await list_role_names(db, verified_user.id) == once == {"owner", "guest"}

    @pytest.mark.asyncio
    async def test_unknown_role_raises_not_found(self, db, verified_user):
        with pytest.raises(CatalogEntryNotFound):
            await assign_role(db, verified_user.id, "superadmin")


class TestRemoveRole:
    """Tests for remove_role"""

    @pytest.mark.asyncio
    async def test_remove_held_role(self, db, verified_user):
        await assign_role(db, verified_user.id, RoleName.GUEST)

        assert await remove_role(db, verified_user.id, RoleName.OWNER) is True
        assert await list_role_names(db, verified_user.id) == {"guest"}

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, db, verified_user):
        await assign_role(db, verified_user.id, RoleName.GUEST)

        assert await remove_role(db, verified_user.id, RoleName.GUEST) is True
        assert await remove_role(db, verified_user.id, RoleName.GUEST) is False
        assert await list_role_names(db, verified_user.id) == {"owner"}

    @pytest.mark.asyncio
    async def test_removing_role_never_held_is_not_an_error(self, db, verified_user):
        assert await remove_role(db, verified_user.id, RoleName.GUEST) is False

    @pytest.mark.asyncio
    async def test_last_role_cannot_be_removed(self, db, verified_user):
        with pytest.raises(LastRoleRemoval):
            await remove_role(db, verified_user.id, RoleName.OWNER)

        assert await list_role_names(db, verified_user.id) == {"owner"}
