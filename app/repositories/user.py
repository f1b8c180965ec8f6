"""
User Repository
Identity store operations. Account creation and merging are single conditional
writes keyed by the unique email, never a read followed by a write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import false, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.base import BaseRepository

logger = structlog.get_logger()

# Refresh identity-map copies from RETURNING rows instead of trusting stale state
_RETURNING_OPTIONS = {"populate_existing": True}
_UPDATE_OPTIONS = {"populate_existing": True, "synchronize_session": "fetch"}


def _coalesce_values(**provided: Any) -> dict[str, Any]:
    """Keep only non-null values, so an update never overwrites a stored value with null"""
    return {key: value for key, value in provided.items() if value is not None}


class UserRepository(BaseRepository[User]):
    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await self.execute(db, select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def insert_provider_user(
        self,
        db: AsyncSession,
        *,
        email: str,
        google_id: str,
        name: Optional[str],
        image: Optional[str],
    ) -> Optional[User]:
        """
        Insert a Google-backed user unless the email is already taken.

        Returns the new row, or None when another row owns the email.
        """
        stmt = (
            self.insert(db)
            .values(
                email=email,
                google_id=google_id,
                name=name,
                image=image,
                password_hash=None,
                email_verified=True,
            )
            .on_conflict_do_nothing(index_elements=["email"])
            .returning(User)
        )
        result = await self.execute(db, stmt, execution_options=_RETURNING_OPTIONS)
        return result.scalars().first()

    async def merge_provider_identity(
        self,
        db: AsyncSession,
        *,
        email: str,
        google_id: str,
        name: Optional[str],
        image: Optional[str],
    ) -> Optional[User]:
        """
        Attach provider data to the row owning ``email``.

        Non-null provider values win; null ones keep the stored value. Password
        hash and email_verified are never touched. Returns None if no row has the
        email (it was deleted concurrently).
        """
        values = _coalesce_values(google_id=google_id, name=name, image=image)
        values["updated_at"] = func.now()
        stmt = update(User).where(User.email == email).values(**values).returning(User)
        result = await self.execute(db, stmt, execution_options=_UPDATE_OPTIONS)
        return result.scalars().first()

    async def insert_password_user(
        self,
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        name: Optional[str],
        verification_token: str,
        verification_token_expires: datetime,
    ) -> Optional[User]:
        """Insert an unverified password user; None when the email is already registered"""
        stmt = (
            self.insert(db)
            .values(
                email=email,
                name=name,
                password_hash=password_hash,
                google_id=None,
                email_verified=False,
                verification_token=verification_token,
                verification_token_expires=verification_token_expires,
            )
            .on_conflict_do_nothing(index_elements=["email"])
            .returning(User)
        )
        result = await self.execute(db, stmt, execution_options=_RETURNING_OPTIONS)
        return result.scalars().first()

    async def consume_verification_token(self, db: AsyncSession, *, token: str, now: datetime) -> Optional[User]:
        """Mark the owner of a live token verified and clear the token, in one statement"""
        stmt = (
            update(User)
            .where(
                User.verification_token == token,
                User.verification_token_expires > now,
                User.email_verified == false(),
            )
            .values(
                email_verified=True,
                verification_token=None,
                verification_token_expires=None,
                updated_at=func.now(),
            )
            .returning(User)
        )
        result = await self.execute(db, stmt, execution_options=_UPDATE_OPTIONS)
        return result.scalars().first()

    async def replace_verification_token(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        token: str,
        expires: datetime,
    ) -> Optional[User]:
        """Issue a new token for a still-unverified user, invalidating the previous one"""
        stmt = (
            update(User)
            .where(User.id == user_id, User.email_verified == false())
            .values(
                verification_token=token,
                verification_token_expires=expires,
                updated_at=func.now(),
            )
            .returning(User)
        )
        result = await self.execute(db, stmt, execution_options=_UPDATE_OPTIONS)
        return result.scalars().first()

    async def set_password_hash(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        password_hash: str,
        only_if_unset: bool = False,
    ) -> bool:
        stmt = update(User).where(User.id == user_id)
        if only_if_unset:
            stmt = stmt.where(User.password_hash.is_(None))
        stmt = stmt.values(password_hash=password_hash, updated_at=func.now()).returning(User.id)
        result = await self.execute(db, stmt, execution_options={"synchronize_session": "fetch"})
        return result.first() is not None


user_repository = UserRepository(User)
