"""
Async runner for dramatiq tasks.

Provides a thread-safe way to run async code in dramatiq actors.
Each worker thread owns an event loop, and each job gets a NullPool
engine bound to that loop.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from escrow_indexer.config.database import create_engine, create_session_maker

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create event loop for current thread.

    Creates a new event loop for each thread and reuses it.
    This prevents "Future attached to a different loop" errors.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(f"Created new event loop for thread {threading.current_thread().name}")
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in the thread's event loop.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    return get_event_loop().run_until_complete(coro)


@asynccontextmanager
async def local_session_maker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Create a session maker for the current event loop.

    The engine uses NullPool so no connection outlives the job.

    Usage:
        async with local_session_maker() as session_maker:
            async with session_maker() as session:
                ...

    Yields:
        Session maker bound to a fresh engine
    """
    engine = create_engine(null_pool=True, echo=False)
    try:
        yield create_session_maker(engine)
    finally:
        await engine.dispose()
