"""
Async runner for dramatiq tasks.

Runs async service code inside synchronous dramatiq actors, one event loop
per worker thread so SQLAlchemy and Redis connections never cross loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from jobs.utils.database import create_task_engine, create_task_session_maker
from referral_core.utils.distributed_lock import DistributedLock
from referral_core.utils.redis_utils import get_redis_client

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create event loop for current thread.

    Reusing the loop per thread prevents "Future attached to a different
    loop" errors.
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
    loop = get_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Error running async coroutine: {e}")
        raise


@asynccontextmanager
async def create_local_session() -> AsyncIterator[AsyncSession]:
    """
    Create a database session bound to the current event loop.

    Uses a throwaway NullPool engine so worker threads never share pooled
    connections.

    Yields:
        AsyncSession bound to the current event loop
    """
    local_engine = create_task_engine()
    local_session_maker = create_task_session_maker(local_engine)

    try:
        async with local_session_maker() as session:
            yield session
    finally:
        await local_engine.dispose()


@asynccontextmanager
async def create_job_lock() -> AsyncIterator[DistributedLock]:
    """
    Distributed lock backed by a task-local Redis client.

    Yields:
        DistributedLock shared by the job and the services it calls
    """
    redis_client = await get_redis_client()
    try:
        yield DistributedLock(redis_client=redis_client)
    finally:
        await redis_client.aclose()
