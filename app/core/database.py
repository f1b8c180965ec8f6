"""
Database Configuration and Session Management

The engine is owned by a ``Database`` handle created by the process entry point
(the application lifespan, or a test fixture) and disposed at shutdown.
"""

import asyncio
from typing import Any, AsyncIterator, Optional

import structlog
from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings, DATABASE_CONFIG
from app.core.exceptions import StorageError

logger = structlog.get_logger()

# Create declarative base
Base = declarative_base()


def normalize_database_url(url: str) -> str:
    """Map plain driver URLs onto their async drivers"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Database:
    """Explicit handle around the async engine and its session factory"""

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = normalize_database_url(url)
        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._register_listeners()

    @classmethod
    def from_settings(cls) -> "Database":
        engine_kwargs: dict[str, Any] = {}
        url = normalize_database_url(settings.DATABASE_URL)
        if url.startswith("postgresql"):
            engine_kwargs.update(DATABASE_CONFIG)
            engine_kwargs["connect_args"] = {
                "timeout": settings.DB_POOL_TIMEOUT,
                "command_timeout": settings.DB_QUERY_TIMEOUT_SECONDS,
                "server_settings": {"application_name": "calendar-hub-api"},
            }
        return cls(url, **engine_kwargs)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def _register_listeners(self) -> None:
        sync_engine = self.engine.sync_engine

        @event.listens_for(sync_engine, "connect")
        def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            """SQLite only enforces ON DELETE CASCADE with this pragma"""
            if sync_engine.dialect.name == "sqlite":
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        @event.listens_for(sync_engine, "checkout")
        def receive_checkout(dbapi_connection, connection_record, connection_proxy):
            logger.debug("Database connection checked out", connection_id=id(dbapi_connection))

        @event.listens_for(sync_engine, "checkin")
        def receive_checkin(dbapi_connection, connection_record):
            logger.debug("Database connection checked in", connection_id=id(dbapi_connection))

    async def create_all(self) -> None:
        # Import models so they are registered on the metadata
        from app.models import rbac, user  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def check_health(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                result = await asyncio.wait_for(
                    conn.execute(text("SELECT 1")),
                    timeout=settings.DB_QUERY_TIMEOUT_SECONDS,
                )
                return result.scalar() == 1
        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Database session dependency for FastAPI endpoints

    The session (and the pooled connection behind it) is released on every
    exit path, before any background task of the request runs.
    """
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def commit(db: AsyncSession, timeout: Optional[float] = None) -> None:
    """Commit the session, surfacing any failure as ``StorageError``"""
    try:
        await asyncio.wait_for(db.commit(), timeout=timeout or settings.DB_QUERY_TIMEOUT_SECONDS)
    except (SQLAlchemyError, asyncio.TimeoutError) as e:
        await db.rollback()
        logger.error("Database commit failed", error=str(e))
        raise StorageError(detail=f"commit failed: {e!r}") from e
