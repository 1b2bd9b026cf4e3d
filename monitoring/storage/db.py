"""Database engine and session configuration."""

import os
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware (UTC).  SQLite stores naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_utc(dt: datetime) -> datetime:
    """Convert to aware UTC before binding; naive input is taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _get_database_url() -> str:
    """Get database URL from environment or config."""
    # Environment first (Alembic/migrations)
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    from monitoring.config import config
    return config.database_url


def _get_log_level() -> str:
    """Get log level from environment or config."""
    level = os.getenv("LOG_LEVEL")
    if level:
        return level.upper()

    from monitoring.config import config
    return config.log_level


def get_engine() -> AsyncEngine:
    """Get or create the database engine.

    Returns:
        AsyncEngine instance configured for the application
    """
    global _engine

    if _engine is None:
        from monitoring.logging import get_logger
        logger = get_logger(__name__)

        database_url = _get_database_url()
        logger.info(f"Creating database engine for {database_url}")
        _engine = create_async_engine(
            database_url,
            echo=_get_log_level() == "DEBUG",
            pool_pre_ping=True,
        )

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory.

    Returns:
        Session factory for creating database sessions
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_factory


async def create_tables() -> None:
    """Create all tables that do not exist yet."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_engine() -> None:
    """Close the database engine and dispose connections."""
    global _engine, _session_factory

    if _engine is not None:
        from monitoring.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Closing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None
