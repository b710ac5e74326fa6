"""
Payment intent sweep task.

Finalises unpaid intents whose deadline and late-payment grace elapsed.

Runs every 30 minutes via scheduler.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from jobs.utils.providers import get_chain_observer
from referral_core.config.constants import JOB_TIME_LIMIT_MS
from referral_core.services.reconciliation import ReconciliationMonitor


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_MS)
def sweep_expired_intents() -> int:
    """
    Sweep expired payment intents.

    Returns:
        Number of swept intents
    """
    swept = run_async(_sweep_expired_intents_async())
    if swept:
        logger.info(f"Payment intent sweep complete: {swept} swept")
    return swept


async def _sweep_expired_intents_async() -> int:
    """Async implementation of the intent sweep."""
    observer = get_chain_observer()

    async with create_job_lock() as lock:
        # Same key as the monitor: a sweep never races a status check
        async with lock.lock("payment_intent_monitor", timeout=300):
            async with create_local_session() as session:
                monitor = ReconciliationMonitor(session, observer)
                return await monitor.sweep_expired()
