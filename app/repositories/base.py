"""
Base Repository
Shared query execution with bounded timeouts and uniform storage errors
"""

import asyncio
from typing import Any, Generic, List, Optional, Type, TypeVar

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import Base
from app.core.exceptions import StorageError

logger = structlog.get_logger()

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic database operations

    Every statement goes through ``execute`` so that a slow or failed query
    surfaces as ``StorageError`` and is never mistaken for an empty result.
    """

    def __init__(self, model: Type[ModelType], timeout: Optional[float] = None):
        """
        Initialize repository

        Args:
            model: SQLAlchemy model class
            timeout: Per-statement timeout in seconds (defaults to settings)
        """
        self.model = model
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout or settings.DB_QUERY_TIMEOUT_SECONDS

    async def execute(self, db: AsyncSession, statement: Any, **kwargs: Any) -> Result:
        """
        Execute a statement with the repository timeout

        Args:
            db: Database session
            statement: SQLAlchemy statement

        Returns:
            SQLAlchemy result

        Raises:
            StorageError: on any driver/SQLAlchemy failure or timeout
        """
        try:
            return await asyncio.wait_for(db.execute(statement, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("Database query timed out", model=self.model.__name__, timeout=self.timeout)
            raise StorageError(detail=f"{self.model.__name__} query timed out") from e
        except SQLAlchemyError as e:
            logger.error("Database query failed", model=self.model.__name__, error=str(e))
            raise StorageError(detail=f"{self.model.__name__} query failed: {e!r}") from e

    async def flush(self, db: AsyncSession) -> None:
        try:
            await asyncio.wait_for(db.flush(), timeout=self.timeout)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error("Database flush failed", model=self.model.__name__, error=str(e))
            raise StorageError(detail=f"{self.model.__name__} flush failed: {e!r}") from e

    def insert(self, db: AsyncSession):
        """
        Dialect specific INSERT supporting ON CONFLICT clauses

        Args:
            db: Database session, used to pick the dialect

        Returns:
            An ``Insert`` construct for this repository's model
        """
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(self.model)
        if dialect == "sqlite":
            return sqlite.insert(self.model)
        raise StorageError(detail=f"Upserts are not supported on dialect '{dialect}'")

    async def get(self, db: AsyncSession, id: int) -> Optional[ModelType]:
        """
        Get a single record by ID

        Args:
            db: Database session
            id: Record ID

        Returns:
            Model instance or None
        """
        result = await self.execute(db, select(self.model).where(self.model.id == id))
        record = result.scalar_one_or_none()
        if record is None:
            logger.debug("Record not found", model=self.model.__name__, id=id)
        return record

    async def get_all(self, db: AsyncSession, *, order_by: Any = None) -> List[ModelType]:
        query = select(self.model)
        if order_by is not None:
            query = query.order_by(order_by)
        result = await self.execute(db, query)
        return list(result.scalars().all())

    async def delete(self, db: AsyncSession, *, id: int) -> bool:
        """
        Hard delete a record

        Args:
            db: Database session
            id: Record ID

        Returns:
            True if a row was deleted
        """
        result = await self.execute(
            db,
            delete(self.model).where(self.model.id == id).returning(self.model.id),
        )
        deleted = result.scalar_one_or_none() is not None
        logger.info("Record deleted", model=self.model.__name__, id=id, deleted=deleted)
        return deleted
