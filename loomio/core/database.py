"""
Async database manager for SQLAlchemy
- PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for development and tests
- Table initialization from the registered model modules
- Commit/rollback handling for request-scoped sessions
"""
import logging
from importlib import import_module
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine
)
from loomio.core.config import settings
from loomio.models.base import Base

logger = logging.getLogger(__name__)


def _configure_sqlite_connection(dbapi_connection, connection_record):
    # The driver's implicit BEGIN is turned off; _begin_immediate issues its own.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn):
    """
    Take SQLite's write lock when the transaction starts, not at its first write.
    SQLite ignores FOR UPDATE; this lock is what serializes a capacity check
    and the insert that follows against other sessions.
    """
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseSessionManager:
    """Manages async database sessions and schema setup."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    async def init(self, db_url: Optional[str] = None):
        """Create the engine and session factory, then make sure all tables exist."""
        db_url = db_url or settings.ASYNC_DATABASE_URL
        backend = make_url(db_url).get_backend_name()

        if backend == "sqlite":
            self.engine = create_async_engine(db_url, echo=settings.DB_ECHO)
            event.listen(self.engine.sync_engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine.sync_engine, "begin", _begin_immediate)
        else:
            self.engine = create_async_engine(
                db_url,
                pool_size=15,
                max_overflow=5,
                pool_timeout=30,
                pool_recycle=300,
                pool_pre_ping=True,
                echo=settings.DB_ECHO,
            )

        try:
            async with self.engine.begin() as conn:
                await self._setup_database(conn)
        except Exception as e:
            logger.critical(f"Database initialization failed: {e}")
            await self.close()
            raise

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False
        )

    async def _setup_database(self, conn):
        """Initialize database schema"""
        for model in settings.DB_MODELS:
            import_module(model)

        logger.info(f"Models registered: {list(Base.metadata.tables.keys())}")
        await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Context manager for safe session handling"""
        if not self.session_factory:
            raise RuntimeError("DatabaseSessionManager not initialized")
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        """Cleanup connection pool"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None


# Initialize session manager
session_manager = DatabaseSessionManager()


async def aget_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions
    Usage:
    @router.get("/")
    async def endpoint(db: AsyncSession = Depends(aget_db)):
        ...
    """
    async with session_manager.get_session() as session:
        yield session
