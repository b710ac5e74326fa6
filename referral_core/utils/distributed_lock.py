"""
Distributed lock.

Serializes critical sections (slot claims, payout transfers, scheduled
jobs) across workers. Uses Redis SET NX when a client is supplied and an
in-process asyncio lock registry otherwise (single worker, tests).
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

from referral_core.config.constants import (
    DISTRIBUTED_LOCK_BLOCKING_TIMEOUT,
    DISTRIBUTED_LOCK_POLL_INTERVAL,
    DISTRIBUTED_LOCK_TIMEOUT,
)

LOCK_KEY_PREFIX = "referral_core:lock:"

# Compare-and-delete so a lock is only released by its holder
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Process-wide registry shared by every DistributedLock without Redis,
# keyed per event loop since asyncio locks bind to the loop they wait on
_local_locks: dict[tuple[int, str], asyncio.Lock] = {}


class LockNotAcquired(TimeoutError):
    """Lock could not be acquired within the blocking timeout."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Could not acquire lock '{key}'")


class DistributedLock:
    """
    Async context-manager lock keyed by name.

    Example:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("payout_batch", timeout=300):
            ...
    """

    def __init__(self, redis_client: Any | None = None) -> None:
        """
        Initialize lock.

        Args:
            redis_client: redis.asyncio client, None for in-process locking
        """
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: int = DISTRIBUTED_LOCK_TIMEOUT,
        blocking_timeout: float = DISTRIBUTED_LOCK_BLOCKING_TIMEOUT,
    ) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of the block.

        Args:
            key: Lock name
            timeout: Lock TTL in seconds (Redis only)
            blocking_timeout: Max seconds to wait for acquisition

        Raises:
            LockNotAcquired: If the lock is held elsewhere for too long
        """
        if self.redis_client is None:
            async with self._local_lock(key, blocking_timeout):
                yield
            return

        async with self._redis_lock(key, timeout, blocking_timeout):
            yield

    @asynccontextmanager
    async def _local_lock(
        self, key: str, blocking_timeout: float
    ) -> AsyncIterator[None]:
        """In-process lock from the shared registry."""
        loop_id = id(asyncio.get_running_loop())
        local = _local_locks.setdefault((loop_id, key), asyncio.Lock())
        try:
            await asyncio.wait_for(local.acquire(), timeout=blocking_timeout)
        except TimeoutError as e:
            raise LockNotAcquired(key) from e

        try:
            yield
        finally:
            local.release()

    @asynccontextmanager
    async def _redis_lock(
        self, key: str, timeout: int, blocking_timeout: float
    ) -> AsyncIterator[None]:
        """Redis SET NX PX lock with holder token."""
        redis_key = f"{LOCK_KEY_PREFIX}{key}"
        token = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + blocking_timeout

        while True:
            acquired = await self.redis_client.set(
                redis_key, token, nx=True, px=int(timeout * 1000)
            )
            if acquired:
                break
            if loop.time() >= deadline:
                raise LockNotAcquired(key)
            await asyncio.sleep(DISTRIBUTED_LOCK_POLL_INTERVAL)

        logger.debug(f"Lock acquired: {key}")
        try:
            yield
        finally:
            try:
                await self.redis_client.eval(_RELEASE_SCRIPT, 1, redis_key, token)
                logger.debug(f"Lock released: {key}")
            except Exception as e:
                # TTL still frees the key
                logger.warning(f"Failed to release lock {key}: {e}")
