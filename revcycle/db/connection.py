"""
Database Connection Management
Async SQLAlchemy with connection pooling
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from revcycle.api.config import settings
from revcycle.models import Base
from revcycle.utils.logging import get_logger

logger = get_logger(__name__)


# Global engine instance
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def build_engine(url: str, *, echo: bool = False, testing: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite (used for tests and local demos) does not take pool sizing
    arguments; PostgreSQL gets a pre-pinged QueuePool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    if testing:
        # NullPool for testing: no connection pooling, no pool parameters
        return create_async_engine(url, echo=echo, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before using
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with explicit transaction control."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,  # Manual flush control
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the global async engine.

    Returns:
        AsyncEngine instance
    """
    global _engine

    if _engine is None:
        logger.info(f"Creating database engine: {settings.database_url.split('@')[-1]}")
        _engine = build_engine(
            settings.database_url,
            echo=settings.DEBUG,
            testing=settings.is_testing,
        )
        logger.info("Database engine created successfully")

    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the global session maker.

    Returns:
        Async session maker
    """
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = build_session_maker(get_engine())
        logger.info("Session maker created successfully")

    return _async_session_maker


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create all tables (tests and local demo databases; production uses Alembic)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connection() -> None:
    """
    Close database connection pool.
    """
    global _engine, _async_session_maker

    if _engine is not None:
        logger.info("Closing database connection pool...")
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database connection pool closed")


async def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
