"""
Qualification sweep task.

Recalculates structure qualification of every member, catching activation
or deactivation events that never reached the engine.

Runs daily via scheduler.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from referral_core.config.constants import JOB_TIME_LIMIT_MS
from referral_core.services.qualification import QualificationEngine


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_MS)
def sweep_qualifications() -> dict:
    """
    Recalculate every member.

    Returns:
        {"checked": int, "raised": int}
    """
    logger.info("Starting qualification sweep...")

    result = run_async(_sweep_qualifications_async())
    logger.info(f"Qualification sweep complete: {result}")
    return result


async def _sweep_qualifications_async() -> dict:
    """Async implementation of the qualification sweep."""
    async with create_job_lock() as lock:
        async with lock.lock("qualification_sweep", timeout=600):
            async with create_local_session() as session:
                return await QualificationEngine(session).sweep()
