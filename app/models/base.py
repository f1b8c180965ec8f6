"""
Base Model Classes
Common fields and functionality for all models
"""

from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.sql import func

from app.core.database import Base

# BIGINT on PostgreSQL, plain INTEGER on SQLite so autoincrement keeps working
IdType = BigInteger().with_variant(Integer(), "sqlite")


class CreatedAtMixin:
    """Mixin for the created_at timestamp"""
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin for created_at and updated_at timestamps"""
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class IntegerIdMixin:
    """Mixin for a numeric, immutable primary key"""
    id = Column(IdType, primary_key=True, autoincrement=True)


class BaseModel(Base, IntegerIdMixin, CreatedAtMixin):
    """Base model with common fields"""
    __abstract__ = True
