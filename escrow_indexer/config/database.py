"""
Database configuration.

Async SQLAlchemy engine and session factories. Long-lived handles are
created by the caller at process start and disposed at shutdown.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from escrow_indexer.config.settings import settings


def create_engine(
    database_url: str | None = None,
    *,
    echo: bool | None = None,
    null_pool: bool = False,
) -> AsyncEngine:
    """
    Create async engine.

    Args:
        database_url: Connection string (defaults to settings.database_url)
        echo: SQL echo (defaults to settings.database_echo)
        null_pool: Disable pooling (worker threads each own an event loop)

    Returns:
        AsyncEngine instance
    """
    kwargs: dict = {
        "echo": settings.database_echo if echo is None else echo,
    }
    if null_pool:
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_pre_ping"] = True

    return create_async_engine(database_url or settings.database_url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
