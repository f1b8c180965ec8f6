"""
Tests for password hashing, verification tokens and session tokens
"""

from datetime import datetime, timedelta, timezone

import pytest
from joserfc import jwt as jose_jwt
from joserfc.jwk import OctKey

from app.core.config import settings
from app.core.exceptions import AuthenticationRequired
from app.core.logging import redact_secrets
from app.core.security import (
    PROVIDER_ACCESS_TOKEN_CLAIM,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_session_token,
    generate_verification_token,
    get_password_hash,
    hash_password_async,
    verify_password,
    verify_password_async,
)


class TestPasswordHashing:
    def test_hash_is_salted_and_verifiable(self):
        first = get_password_hash("longenough1")
        second = get_password_hash("longenough1")

        assert first != second
        assert "longenough1" not in first
        assert verify_password("longenough1", first)
        assert not verify_password("longenough2", first)

    def test_long_passwords_are_accepted(self):
        password = "ü" * 100
        assert verify_password(password, get_password_hash(password))

    @pytest.mark.asyncio
    async def test_async_helpers(self):
        hashed = await hash_password_async("longenough1")

        assert await verify_password_async("longenough1", hashed) is True
        assert await verify_password_async("wrong-password", hashed) is False


class TestVerificationToken:
    def test_tokens_are_unique_and_expire_in_a_day(self):
        token, expires = generate_verification_token()
        other, _ = generate_verification_token()

        assert token != other
        assert len(token) >= 32
        expected = datetime.now(timezone.utc) + timedelta(hours=settings.VERIFICATION_TOKEN_TTL_HOURS)
        assert abs((expires - expected).total_seconds()) < 5


class TestSessionTokens:
    def test_access_token_round_trip(self):
        token = create_access_token(42)

        session = decode_session_token(token)

        assert session.user_id == 42
        assert session.claims["sub"] == "42"
        assert session.claims["iss"] == settings.JWT_ISSUER
        assert session.provider_access_token is None

    def test_provider_tokens_ride_along_as_claims(self):
        token = create_access_token(42, additional_claims={PROVIDER_ACCESS_TOKEN_CLAIM: "ya29.abc", "unused": None})

        session = decode_session_token(token)

        assert session.provider_access_token == "ya29.abc"
        assert "unused" not in session.claims

    def test_refresh_token_is_not_an_access_token(self):
        refresh = create_refresh_token(42)

        assert decode_session_token(refresh, token_type=REFRESH_TOKEN_TYPE).user_id == 42
        with pytest.raises(AuthenticationRequired):
            decode_session_token(refresh)

    def test_expired_token_is_rejected(self):
        token = create_access_token(42, expires_delta=timedelta(seconds=-60))

        with pytest.raises(AuthenticationRequired):
            decode_session_token(token)

    def test_token_signed_with_another_key_is_rejected(self):
        foreign_key = OctKey.import_key("a-completely-different-secret-key-of-sufficient-length")
        now = int(datetime.now(timezone.utc).timestamp())
        token = jose_jwt.encode(
            {"alg": "HS256"},
            {"sub": "42", "type": "access", "iss": settings.JWT_ISSUER, "iat": now, "exp": now + 60},
            foreign_key,
        )

        with pytest.raises(AuthenticationRequired):
            decode_session_token(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_is_rejected(self, token):
        with pytest.raises(AuthenticationRequired):
            decode_session_token(token)


class TestLogRedaction:
    def test_secrets_are_redacted(self):
        event = redact_secrets(None, "info", {"event": "x", "password": "p", "token": "t", "user_id": 1})

        assert event == {"event": "x", "password": "[redacted]", "token": "[redacted]", "user_id": 1}
