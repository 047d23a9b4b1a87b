"""
Async engine and session factory construction.

This module provides:
- Engine creation from settings (PostgreSQL via asyncpg, SQLite via aiosqlite)
- Session factory with commit-time expiry disabled
- Table creation and health check utilities
"""

import logging

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from wagerbook.config import DatabaseConfig
from wagerbook.database.base import Base

logger = logging.getLogger(__name__)


def _normalize_url(url: str) -> str:
    """Convert sync driver URLs to their async equivalents."""
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # Hand transaction control to _begin_immediate instead of the driver
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn) -> None:
    """Take the write lock up front so row reads inside a transaction stay current.

    SQLite ignores FOR UPDATE; without this, two transactions can read the
    same rows and both commit.
    """
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_settings(config: DatabaseConfig) -> AsyncEngine:
    """
    Build the async engine for the entity store.

    In-memory SQLite gets a StaticPool so every session shares the one
    connection that holds the schema. SQLite transactions start with
    BEGIN IMMEDIATE, so they serialize the way row locks do on PostgreSQL.
    """
    url = _normalize_url(config.url)

    if url.startswith("sqlite"):
        kwargs = {"echo": config.echo}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(url, **kwargs)
        event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)
        event.listen(engine.sync_engine, "begin", _begin_immediate)
    else:
        engine = create_async_engine(
            url,
            echo=config.echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_pre_ping=True,
            pool_recycle=config.pool_recycle_seconds,
        )

    logger.debug(f"Created database engine for {_sanitize_url(url)}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on the declarative base."""
    # Registers the models on Base.metadata
    import wagerbook.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def check_db_connection(engine: AsyncEngine) -> bool:
    """Check if the database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return False


def get_db_info(config: DatabaseConfig) -> dict:
    """Get database connection information for safe logging."""
    url = _normalize_url(config.url)
    return {
        "url": _sanitize_url(url),
        "driver": url.split("://", 1)[0],
    }


def _sanitize_url(url: str) -> str:
    """
    Hide password in a database URL for safe logging.
    """
    if "@" not in url or "://" not in url:
        return url

    protocol, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    if ":" in credentials:
        username = credentials.split(":", 1)[0]
        return f"{protocol}://{username}:***@{host}"
    return url
