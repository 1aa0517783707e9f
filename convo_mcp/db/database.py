"""
convo_mcp/db/database.py

Purpose: Relational store handle

- Owns the SQLAlchemy async engine and session factory
- TLS auto-detected from the connection string
- Scoped sessions: commit on success, rollback on error
- Health checks and retry logic on connect
- Proper connection lifecycle management
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from convo_mcp.core.config import Settings, settings
from convo_mcp.core.logging import get_logger
from convo_mcp.db.base import Base

logger = get_logger(__name__)


def build_connect_args(config: Settings) -> dict:
    """
    Driver connect arguments for the configured database.

    sslmode=verify-ca checks the certificate chain and verify-full also the
    host name. Otherwise hosted PostgreSQL providers present certificates the
    container does not trust, so TLS is used without verification.
    """
    if not config.async_database_url.startswith("postgresql+asyncpg"):
        return {}
    if not config.database_requires_ssl:
        return {"ssl": False}

    context = ssl.create_default_context()
    if config.database_verifies_ssl:
        context.check_hostname = config.database_sslmode == "verify-full"
        return {"ssl": context}

    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return {"ssl": context}


class Database:
    """
    Explicit store handle, constructed once at process start and passed to
    whatever needs persistence.
    """

    def __init__(self, url: Optional[str] = None, config: Optional[Settings] = None, engine: Optional[AsyncEngine] = None):
        self.config = config or settings
        self.url = url or self.config.async_database_url
        self._engine: Optional[AsyncEngine] = engine
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None
        if engine is not None:
            self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() during startup.")
        return self._engine

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self, max_retries: int = 3, retry_delay: float = 2.0):
        """
        Creates the engine and verifies connectivity, retrying with
        exponential backoff.
        """
        if self._engine is not None:
            logger.warning("Database engine already initialized")
            return

        engine_kwargs = {
            "echo": self.config.DATABASE_ECHO,
            "connect_args": build_connect_args(self.config) if self.url == self.config.async_database_url else {},
        }
        if self.url.startswith("postgresql"):
            engine_kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)

        engine = create_async_engine(self.url, **engine_kwargs)

        for attempt in range(1, max_retries + 1):
            try:
                logger.info(f"Connecting to database (attempt {attempt}/{max_retries})")
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
                break
            except (OperationalError, InterfaceError, OSError) as e:
                logger.error(f"Failed to connect to database (attempt {attempt}/{max_retries}): {e}")
                if attempt < max_retries:
                    logger.info(f"Retrying in {retry_delay} seconds...")
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2
                else:
                    await engine.dispose()
                    logger.critical("Failed to connect to database after all retries")
                    raise ConnectionError("Could not establish database connection") from e

        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
        logger.info(f"✅ Connected to database ({engine.dialect.name})")

    async def close(self):
        """Disposes the engine and its pool."""
        if self._engine is not None:
            logger.info("Closing database connection")
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database connection closed")

    async def create_schema(self):
        """
        Creates all tables, unique constraints and indexes.
        Idempotent - safe to run on every startup.
        """
        import convo_mcp.models  # noqa: F401  (registers the tables on Base.metadata)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def check_health(self) -> bool:
        """
        Checks if the database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        if self._engine is None:
            logger.error("Database engine not initialized")
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {str(e)}")
            return False

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Yields a session wrapped in a transaction.
        Commits when the block exits cleanly, rolls back and re-raises otherwise.
        """
        if self._sessionmaker is None:
            raise RuntimeError("Database not connected. Call connect() during startup.")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise


# Process-wide handle, owned by the application lifespan
_database: Optional[Database] = None


async def connect_to_database(config: Optional[Settings] = None) -> Database:
    """
    Creates and connects the process-wide store handle.
    Called during application startup.
    """
    global _database

    if _database is not None and _database.is_connected:
        logger.warning("Database already initialized")
        return _database

    database = Database(config=config)
    await database.connect()
    _database = database
    return database


async def close_database_connection():
    """
    Closes the process-wide store handle.
    Called during application shutdown.
    """
    global _database
    if _database is not None:
        await _database.close()
        _database = None


def set_database(database: Optional[Database]):
    """Installs a store handle (used by tests and scripts)."""
    global _database
    _database = database


def get_database() -> Database:
    """
    Returns the process-wide store handle.

    Raises:
        RuntimeError: If the database is not initialized
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_database() during startup."
        )
    return _database


async def check_database_health() -> bool:
    if _database is None:
        logger.error("Database not initialized")
        return False
    return await _database.check_health()
