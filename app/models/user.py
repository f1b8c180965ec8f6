"""
User Model
Identity records for password and Google sign-in
"""

from sqlalchemy import Boolean, Column, DateTime, String, false
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, TimestampMixin


class User(BaseModel, TimestampMixin):
    """A person who can sign in with a password, with Google, or with both"""
    __tablename__ = "users"

    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    image = Column(String(1024), nullable=True)

    # Credentials; null means the credential type is not configured
    google_id = Column(String(255), nullable=True, unique=True)
    password_hash = Column(String(255), nullable=True)

    # Email verification, only meaningful for the password credential
    email_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    verification_token = Column(String(255), nullable=True, unique=True)
    verification_token_expires = Column(DateTime(timezone=True), nullable=True)

    role_links = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    @property
    def has_google(self) -> bool:
        return self.google_id is not None
