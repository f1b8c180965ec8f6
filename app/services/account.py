"""
Account Service
Sign-in resolution for password and Google identities.

An identity is in one of these states when a sign-in arrives:

* unknown: no row for the email
* pending verification: password set, email not verified
* verified: password set, email verified, no Google id
* linked: Google id set (with or without a password)

Account creation is an atomic insert keyed by the unique email; when the email
is taken the provider path falls through to an in-place merge. Nothing here
checks for existence before inserting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit
from app.core.exceptions import (
    AlreadyVerified,
    EmailAlreadyRegistered,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    PasswordAlreadySet,
    StorageError,
    UserNotFound,
    ValidationError,
)
from app.core.rbac import DEFAULT_ROLE
from app.core.security import generate_verification_token, hash_password_async, verify_password_async
from app.models.user import User
from app.repositories.user import user_repository
from app.services.role_assignment import assign_role

logger = structlog.get_logger()

# A merge that finds no row means the account was deleted between our insert
# attempt and the update; the insert is retried this many times in total.
PROVIDER_SIGN_IN_ATTEMPTS = 3


@dataclass(frozen=True)
class CredentialsAssertion:
    email: str
    password: str


@dataclass(frozen=True)
class ProviderAssertion:
    """What an identity provider vouches for after a successful sign-in"""

    provider: str
    subject: str
    email: Optional[str]
    name: Optional[str] = None
    image: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


SignInAssertion = Union[CredentialsAssertion, ProviderAssertion]


@dataclass(frozen=True)
class SignInResult:
    user_id: int
    is_new_account: bool
    user: User


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    verification_token: str


@dataclass(frozen=True)
class LoginMethods:
    has_password: bool
    has_google: bool


class AccountService:
    async def register(
        self,
        db: AsyncSession,
        *,
        email: str,
        password: str,
        name: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Create an unverified password account holding the default role.

        The password is expected to have passed the length policy at the
        boundary already. The caller owns sending the verification email.

        Raises:
            EmailAlreadyRegistered: when any account already uses the email
        """
        password_hash = await hash_password_async(password)
        token, expires = generate_verification_token()

        try:
            user = await user_repository.insert_password_user(
                db,
                email=email,
                password_hash=password_hash,
                name=name,
                verification_token=token,
                verification_token_expires=expires,
            )
            if user is None:
                logger.info("Registration rejected, email in use", email=email)
                raise EmailAlreadyRegistered()

            await assign_role(db, user.id, DEFAULT_ROLE, commit=False)
            await commit(db)
        except Exception:
            await db.rollback()
            raise

        logger.info("Password account registered", user_id=user.id, email=email)
        return RegistrationResult(user=user, verification_token=token)

    async def authenticate_credentials(self, db: AsyncSession, assertion: CredentialsAssertion) -> SignInResult:
        """
        Password login.

        Unknown email, an account without a password and a wrong password all
        raise the same InvalidCredentials. The verification state is only
        revealed once the password has been confirmed.
        """
        user = await user_repository.get_by_email(db, assertion.email)
        if user is None or user.password_hash is None:
            logger.info("Login failed", reason="unknown_or_passwordless")
            raise InvalidCredentials()

        if not await verify_password_async(assertion.password, user.password_hash):
            logger.info("Login failed", reason="bad_password", user_id=user.id)
            raise InvalidCredentials()

        if not user.email_verified:
            logger.info("Login blocked, email not verified", user_id=user.id)
            raise EmailNotVerified()

        logger.info("Password login succeeded", user_id=user.id)
        return SignInResult(user_id=user.id, is_new_account=False, user=user)

    async def resolve_provider_sign_in(self, db: AsyncSession, assertion: ProviderAssertion) -> SignInResult:
        """
        Create or merge the account for a provider-attested email.

        New accounts are verified (the provider vouches for the email) and get
        the default role in the same transaction. Existing accounts get the
        provider id, and name/image where the provider sent them; password hash
        and verification state are left alone. The local verification flag
        never blocks provider sign-in.
        """
        if not assertion.email:
            logger.warning("Provider sign-in without email", provider=assertion.provider)
            raise InvalidCredentials()

        try:
            for attempt in range(1, PROVIDER_SIGN_IN_ATTEMPTS + 1):
                user = await user_repository.insert_provider_user(
                    db,
                    email=assertion.email,
                    google_id=assertion.subject,
                    name=assertion.name,
                    image=assertion.image,
                )
                if user is not None:
                    await assign_role(db, user.id, DEFAULT_ROLE, commit=False)
                    await commit(db)
                    logger.info("Provider account created", user_id=user.id, provider=assertion.provider)
                    return SignInResult(user_id=user.id, is_new_account=True, user=user)

                user = await user_repository.merge_provider_identity(
                    db,
                    email=assertion.email,
                    google_id=assertion.subject,
                    name=assertion.name,
                    image=assertion.image,
                )
                if user is not None:
                    await commit(db)
                    logger.info("Provider identity merged", user_id=user.id, provider=assertion.provider)
                    return SignInResult(user_id=user.id, is_new_account=False, user=user)

                logger.warning("Account vanished during provider sign-in, retrying", attempt=attempt)
        except Exception:
            await db.rollback()
            raise

        await db.rollback()
        raise StorageError(detail="provider sign-in did not converge")

    async def resolve_sign_in(self, db: AsyncSession, assertion: SignInAssertion) -> SignInResult:
        if isinstance(assertion, ProviderAssertion):
            return await self.resolve_provider_sign_in(db, assertion)
        if isinstance(assertion, CredentialsAssertion):
            return await self.authenticate_credentials(db, assertion)
        raise ValidationError(detail=f"Unsupported sign-in assertion {type(assertion).__name__}")

    async def verify_email(self, db: AsyncSession, token: str) -> User:
        """
        Consume a verification token.

        Raises:
            InvalidOrExpiredToken: token unknown, already used or expired
        """
        if not token:
            raise InvalidOrExpiredToken()

        user = await user_repository.consume_verification_token(
            db, token=token, now=datetime.now(timezone.utc)
        )
        if user is None:
            await db.rollback()
            logger.info("Email verification rejected")
            raise InvalidOrExpiredToken()

        await commit(db)
        logger.info("Email verified", user_id=user.id)
        return user

    async def resend_verification(self, db: AsyncSession, email: str) -> RegistrationResult:
        """Replace the pending token of an unverified account"""
        user = await user_repository.get_by_email(db, email)
        if user is None:
            raise UserNotFound()
        if user.email_verified:
            raise AlreadyVerified()

        token, expires = generate_verification_token()
        updated = await user_repository.replace_verification_token(
            db, user_id=user.id, token=token, expires=expires
        )
        if updated is None:
            # Verified (or deleted) since the read above
            await db.rollback()
            raise AlreadyVerified()

        await commit(db)
        logger.info("Verification token reissued", user_id=user.id)
        return RegistrationResult(user=updated, verification_token=token)

    async def change_password(
        self,
        db: AsyncSession,
        user_id: int,
        *,
        current_password: str,
        new_password: str,
    ) -> None:
        user = await user_repository.get(db, user_id)
        if user is None:
            raise UserNotFound()
        if user.password_hash is None:
            raise ValidationError("No password is set for this account")
        if not await verify_password_async(current_password, user.password_hash):
            logger.info("Password change rejected, wrong current password", user_id=user_id)
            raise ValidationError("Current password is incorrect")

        new_hash = await hash_password_async(new_password)
        await user_repository.set_password_hash(db, user_id=user_id, password_hash=new_hash)
        await commit(db)
        logger.info("Password changed", user_id=user_id)

    async def set_password(self, db: AsyncSession, user_id: int, *, new_password: str) -> None:
        """Add a password to an account that only signs in with Google"""
        new_hash = await hash_password_async(new_password)
        updated = await user_repository.set_password_hash(
            db, user_id=user_id, password_hash=new_hash, only_if_unset=True
        )
        if not updated:
            await db.rollback()
            if await user_repository.get(db, user_id) is None:
                raise UserNotFound()
            raise PasswordAlreadySet()

        await commit(db)
        logger.info("Password set", user_id=user_id)

    async def delete_account(self, db: AsyncSession, user_id: int) -> None:
        """Delete the user; role assignments go with it"""
        if not await user_repository.delete(db, id=user_id):
            await db.rollback()
            raise UserNotFound()
        await commit(db)
        logger.info("Account deleted", user_id=user_id)

    async def login_methods(self, db: AsyncSession, user_id: int) -> LoginMethods:
        user = await user_repository.get(db, user_id)
        if user is None:
            raise UserNotFound()
        return LoginMethods(has_password=user.has_password, has_google=user.has_google)


account_service = AccountService()
