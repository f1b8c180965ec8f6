"""
Security utilities for password hashing, verification tokens and session JWTs
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from joserfc import jwt as jose_jwt
from joserfc.errors import JoseError
from joserfc.jwk import OctKey
from joserfc.jwt import JWTClaimsRegistry
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher

from app.core.config import settings
from app.core.exceptions import AuthenticationRequired, StorageError

logger = structlog.get_logger()

# Password hashing context (pwdlib replaces abandoned passlib)
pwd_context = PasswordHash((BcryptHasher(rounds=settings.PASSWORD_BCRYPT_ROUNDS),))

# Bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Claim names carrying the Google tokens when the calendar scope was granted
PROVIDER_ACCESS_TOKEN_CLAIM = "provider_access_token"
PROVIDER_REFRESH_TOKEN_CLAIM = "provider_refresh_token"

_jwt_key = OctKey.import_key(settings.JWT_SECRET_KEY)


def _truncate_for_bcrypt(password: str) -> str:
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        logger.debug("Password truncated to 72 bytes for bcrypt")
        return password_bytes[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")
    return password


def get_password_hash(password: str) -> str:
    """
    Hash a password

    Args:
        password: Plain text password

    Returns:
        Salted bcrypt hash
    """
    return pwd_context.hash(_truncate_for_bcrypt(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    The comparison is delegated to the hashing library, which compares in
    constant time.
    """
    return pwd_context.verify(_truncate_for_bcrypt(plain_password), hashed_password)


async def hash_password_async(password: str) -> str:
    """Hash off the event loop, bounded by PASSWORD_HASH_TIMEOUT_SECONDS"""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(get_password_hash, password),
            timeout=settings.PASSWORD_HASH_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        logger.error("Password hashing timed out")
        raise StorageError(detail="password hashing timed out") from e


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(verify_password, plain_password, hashed_password),
            timeout=settings.PASSWORD_HASH_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        logger.error("Password verification timed out")
        raise StorageError(detail="password verification timed out") from e


def generate_verification_token() -> tuple[str, datetime]:
    """
    Create a single-use email verification token

    Returns:
        (token, expiry) where expiry is VERIFICATION_TOKEN_TTL_HOURS from now
    """
    token = secrets.token_urlsafe(32)
    expires = datetime.now(timezone.utc) + timedelta(hours=settings.VERIFICATION_TOKEN_TTL_HOURS)
    return token, expires


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    token_type: str
    claims: dict = field(default_factory=dict)

    @property
    def provider_access_token(self) -> Optional[str]:
        return self.claims.get(PROVIDER_ACCESS_TOKEN_CLAIM)

    @property
    def provider_refresh_token(self) -> Optional[str]:
        return self.claims.get(PROVIDER_REFRESH_TOKEN_CLAIM)


def _encode(subject: int, token_type: str, expires_delta: timedelta, extra: Optional[dict]) -> str:
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = {
        "sub": str(subject),
        "type": token_type,
        "iss": settings.JWT_ISSUER,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    if extra:
        to_encode.update({key: value for key, value in extra.items() if value is not None})
    return jose_jwt.encode({"alg": settings.JWT_ALGORITHM}, to_encode, _jwt_key)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict] = None,
) -> str:
    """
    Create JWT access token

    Args:
        user_id: Numeric user id, stored as the ``sub`` claim
        expires_delta: Custom expiration time
        additional_claims: Additional claims to include in token

    Returns:
        Encoded JWT token
    """
    expires_delta = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    token = _encode(user_id, ACCESS_TOKEN_TYPE, expires_delta, additional_claims)
    logger.debug("Access token created", user_id=user_id)
    return token


def create_refresh_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict] = None,
) -> str:
    expires_delta = expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    token = _encode(user_id, REFRESH_TOKEN_TYPE, expires_delta, additional_claims)
    logger.debug("Refresh token created", user_id=user_id)
    return token


_claims_registry = JWTClaimsRegistry(
    iss={"essential": True, "value": settings.JWT_ISSUER},
    sub={"essential": True},
    exp={"essential": True},
)


def decode_session_token(token: str, token_type: str = ACCESS_TOKEN_TYPE) -> SessionClaims:
    """
    Validate a session token and return its claims

    Raises:
        AuthenticationRequired: for any malformed, expired, foreign or mistyped token
    """
    try:
        token_obj = jose_jwt.decode(token, _jwt_key, algorithms=[settings.JWT_ALGORITHM])
        _claims_registry.validate(token_obj.claims)
    except (JoseError, ValueError) as e:
        logger.info("Session token rejected", error=type(e).__name__)
        raise AuthenticationRequired() from e

    claims = dict(token_obj.claims)
    if claims.get("type") != token_type:
        logger.info("Session token has wrong type", expected=token_type, actual=claims.get("type"))
        raise AuthenticationRequired()

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as e:
        raise AuthenticationRequired() from e

    return SessionClaims(user_id=user_id, token_type=token_type, claims=claims)
