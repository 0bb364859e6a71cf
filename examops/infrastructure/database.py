"""Database Session Manager — async engine, per-operation sessions, and failure translation.

Invariants:
    - A session that exits with an exception is rolled back before the error propagates
    - Driver and SQLAlchemy failures leave this module only as examops errors:
      connection-level failures become StoreUnavailableError (transient, retried by the
      publication pipeline), everything else becomes DatabaseError
    - IntegrityError caught inside a repository's own try/except (unique-key races) never
      reaches this layer; only unexpected constraint violations are translated here

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: records are converted after commit, no lazy loads
    - Repositories open one short session per operation (one unit of work per call)
    - SQLite URLs skip pool sizing (aiosqlite uses its own single-connection pools)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from examops.core.errors import DatabaseError, ExamOpsError, StoreUnavailableError

logger = logging.getLogger(__name__)


def translate_db_error(exc: BaseException) -> ExamOpsError:
    """Map a driver/SQLAlchemy failure onto the examops error hierarchy."""
    if isinstance(exc, IntegrityError):
        return DatabaseError("Integrity constraint violated", "commit")
    if isinstance(exc, OperationalError):
        return StoreUnavailableError("execute")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return StoreUnavailableError("execute")
    if isinstance(exc, OSError):
        # Socket-level failure before SQLAlchemy wrapped it (connect refused, reset)
        return StoreUnavailableError("connect")
    if isinstance(exc, DBAPIError):
        return DatabaseError("Database driver error", "query")
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions that roll back on failure."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        engine_kwargs: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self._bind(create_async_engine(database_url, **engine_kwargs))

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "DatabaseSessionManager":
        """Wrap an existing engine (tests, scripts)."""
        manager = cls.__new__(cls)
        manager._bind(engine)
        return manager

    def _bind(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except (SQLAlchemyError, OSError) as e:
            await session.rollback()
            error = translate_db_error(e)
            log = logger.warning if isinstance(error, StoreUnavailableError) else logger.error
            log(f"DB failure mapped to {error.code}: {e}", extra={"error_code": error.code})
            raise error from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Readiness probe: a round-trip SELECT 1."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except ExamOpsError as e:
            logger.error(f"DB health check failed: {e.message}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager
