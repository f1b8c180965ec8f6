"""
HTTP tests for the authentication, role and calendar endpoints
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.core.deps import require_role
from app.core.exceptions import AuthorizationDenied
from app.core.rbac import RoleName
from app.core.security import create_access_token
from app.services.account import account_service
from app.services.role_assignment import assign_role, remove_role

PASSWORD = "longenough1"


def _auth(user_id: int, **claims) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, additional_claims=claims)}"}


async def _verified_account(database, email="a@x.com") -> int:
    async with database.session_factory() as session:
        registration = await account_service.register(session, email=email, password=PASSWORD, name="Ada")
        await account_service.verify_email(session, registration.verification_token)
        return registration.user.id


async def _guest_account(database, email="guest@x.com") -> int:
    user_id = await _verified_account(database, email)
    async with database.session_factory() as session:
        await assign_role(session, user_id, RoleName.GUEST)
        await remove_role(session, user_id, RoleName.OWNER)
    return user_id


# ==================== Registration and login ====================


class TestRegistrationFlow:
    """Register, verify, log in"""

    @pytest.mark.asyncio
    async def test_register_verify_login(self, client):
        with patch("app.api.v1.endpoints.auth.email_service.send_verification_email") as send:
            response = await client.post(
                "/api/v1/auth/register", json={"email": "a@x.com", "password": PASSWORD, "name": "Ada"}
            )

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "a@x.com"
        assert body["email_verified"] is False
        send.assert_called_once()
        token = send.call_args.kwargs["token"]
        assert send.call_args.kwargs["to_email"] == "a@x.com"

        response = await client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})
        assert response.status_code == 403
        assert response.json()["error"] == "email_not_verified"

        response = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert response.status_code == 200

        response = await client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})
        assert response.status_code == 200
        tokens = response.json()
        assert tokens["user_id"] == body["user_id"]
        assert tokens["token_type"] == "bearer"

        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )
        assert response.status_code == 200
        profile = response.json()
        assert profile["roles"] == ["owner"]
        assert "calendar:read" in profile["permissions"]
        assert profile["has_password"] is True and profile["has_google"] is False

    @pytest.mark.asyncio
    async def test_email_failure_does_not_undo_registration(self, client, database):
        with patch(
            "app.api.v1.endpoints.auth.email_service.send_verification_email",
            side_effect=RuntimeError("smtp down"),
        ):
            response = await client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": PASSWORD})

        assert response.status_code == 201
        response = await client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": PASSWORD})
        assert response.status_code == 409
        assert response.json()["error"] == "email_already_registered"

    @pytest.mark.asyncio
    async def test_short_password_is_a_validation_error(self, client):
        response = await client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": "short"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert "at least 8 characters" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_missing_field_is_a_validation_error(self, client):
        response = await client.post("/api/v1/auth/login", json={"email": "a@x.com"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_login_failures_share_one_shape(self, client, database):
        await _verified_account(database)

        unknown = await client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": PASSWORD})
        wrong = await client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "wrongpassword"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {"error": "invalid_credentials", "message": "Invalid email or password"}

    @pytest.mark.asyncio
    async def test_verify_with_bad_token(self, client):
        response = await client.post("/api/v1/auth/verify-email", json={"token": "nope"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_or_expired_token"

    @pytest.mark.asyncio
    async def test_resend_verification(self, client, database):
        await _verified_account(database)

        response = await client.post("/api/v1/auth/resend-verification", json={"email": "a@x.com"})
        assert response.status_code == 409
        assert response.json()["error"] == "already_verified"

        response = await client.post("/api/v1/auth/resend-verification", json={"email": "nobody@x.com"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_refresh(self, client, database):
        await _verified_account(database)
        login = (await client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})).json()

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert response.status_code == 200

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": login["access_token"]})
        assert response.status_code == 401


# ==================== Google sign-in ====================


class TestGoogleSignIn:
    @pytest.mark.asyncio
    async def test_authorization_url_carries_state(self, client):
        response = await client.get("/api/v1/auth/oauth/google/authorize")

        assert response.status_code == 200
        body = response.json()
        assert f"state={body['state']}" in body["authorization_url"]

    @pytest.mark.asyncio
    async def test_new_then_returning_google_user(self, client, provider_assertion):
        with patch(
            "app.api.v1.endpoints.auth.google_oauth_client.sign_in",
            AsyncMock(return_value=provider_assertion(email="b@x.com")),
        ):
            first = await client.post("/api/v1/auth/oauth/google", json={"code": "c1"})
            second = await client.post("/api/v1/auth/oauth/google", json={"code": "c2"})

        assert first.status_code == second.status_code == 200
        assert first.json()["is_new_account"] is True
        assert second.json()["is_new_account"] is False
        assert first.json()["user_id"] == second.json()["user_id"]

        me = await client.get(
            "/api/v1/auth/login-methods",
            headers={"Authorization": f"Bearer {first.json()['access_token']}"},
        )
        assert me.json() == {"has_password": False, "has_google": True}


# ==================== Authentication vs authorization ====================


class TestAccessControl:
    """401 for a missing session, 403 for a missing permission"""

    @pytest.mark.asyncio
    async def test_no_session_is_401(self, client):
        response = await client.get("/api/v1/auth/login-methods")

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_invalid_session_is_401(self, client):
        response = await client.delete("/api/v1/auth/account", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_permission_is_403_without_naming_it(self, client, database):
        guest_id = await _guest_account(database)

        response = await client.delete("/api/v1/auth/account", headers=_auth(guest_id))

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "authorization_denied"
        assert "auth:delete" not in body["message"]

    @pytest.mark.asyncio
    async def test_read_permission_is_enough_for_reads(self, client, database):
        guest_id = await _guest_account(database)

        response = await client.get("/api/v1/auth/login-methods", headers=_auth(guest_id))

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_deleted_user_session_is_401(self, client, database):
        user_id = await _verified_account(database)
        headers = _auth(user_id)

        assert (await client.delete("/api/v1/auth/account", headers=headers)).status_code == 200
        assert (await client.get("/api/v1/auth/me", headers=headers)).status_code == 401

    @pytest.mark.asyncio
    async def test_role_dependency(self, db, database):
        guest_id = await _guest_account(database)

        assert await require_role(RoleName.GUEST)(db=db, user_id=guest_id) == guest_id
        with pytest.raises(AuthorizationDenied):
            await require_role(RoleName.OWNER)(db=db, user_id=guest_id)


# ==================== Password management ====================


class TestPasswordEndpoints:
    @pytest.mark.asyncio
    async def test_change_password_wrong_current_is_400(self, client, database):
        user_id = await _verified_account(database)

        response = await client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "wrongpassword", "new_password": "evenlonger22"},
            headers=_auth(user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_set_password_when_one_exists_is_409(self, client, database):
        user_id = await _verified_account(database)

        response = await client.post(
            "/api/v1/auth/set-password", json={"new_password": "evenlonger22"}, headers=_auth(user_id)
        )

        assert response.status_code == 409
        assert response.json()["error"] == "password_already_set"


# ==================== Role administration ====================


class TestRoleEndpoints:
    @pytest.mark.asyncio
    async def test_owner_manages_roles(self, client, database):
        admin_id = await _verified_account(database)
        target_id = await _verified_account(database, email="t@x.com")

        response = await client.post(
            f"/api/v1/users/{target_id}/roles", json={"role": "guest"}, headers=_auth(admin_id)
        )
        assert response.status_code == 200
        assert response.json() == {"user_id": target_id, "roles": ["guest", "owner"], "changed": True}

        response = await client.delete(f"/api/v1/users/{target_id}/roles/owner", headers=_auth(admin_id))
        assert response.json()["roles"] == ["guest"]

        response = await client.delete(f"/api/v1/users/{target_id}/roles/guest", headers=_auth(admin_id))
        assert response.status_code == 409
        assert response.json()["error"] == "last_role_removal"

    @pytest.mark.asyncio
    async def test_unknown_role_name_is_400(self, client, database):
        admin_id = await _verified_account(database)

        response = await client.post(
            f"/api/v1/users/{admin_id}/roles", json={"role": "superadmin"}, headers=_auth(admin_id)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, client, database):
        admin_id = await _verified_account(database)

        response = await client.get("/api/v1/users/999999/roles", headers=_auth(admin_id))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_guest_cannot_change_roles(self, client, database):
        guest_id = await _guest_account(database)

        response = await client.post(
            f"/api/v1/users/{guest_id}/roles", json={"role": "owner"}, headers=_auth(guest_id)
        )

        assert response.status_code == 403


# ==================== Calendar and health ====================


class TestCalendarEndpoint:
    @pytest.mark.asyncio
    async def test_events_use_google_token_from_session(self, client, database):
        user_id = await _guest_account(database)
        list_events = AsyncMock(return_value=[{"id": "e1"}])

        with patch("app.api.v1.endpoints.calendar.calendar_service.list_upcoming_events", list_events):
            response = await client.get(
                "/api/v1/calendar/events", headers=_auth(user_id, provider_access_token="ya29.abc")
            )

        assert response.status_code == 200
        assert response.json() == {"items": [{"id": "e1"}], "count": 1}
        assert list_events.call_args.args[0] == "ya29.abc"


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_reports_database(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["checks"]["database"]["status"] == "healthy"
