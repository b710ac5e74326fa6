"""
Ambiguous payout reconciliation task.

Resolves commissions whose transfer outcome was unknown (timeout, lost
response, or a worker lost after claiming them) by looking their
idempotency key up at the provider.

Runs every 15 minutes via scheduler.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from jobs.utils.providers import get_transfer_executor
from referral_core.config.constants import JOB_TIME_LIMIT_MS
from referral_core.services.payout import PayoutBatchProcessor


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_MS)
def reconcile_ambiguous_payouts() -> dict:
    """
    Reconcile every flagged commission.

    Returns:
        {"paid": int, "failed": int, "errors": int}
    """
    logger.info("Starting ambiguous payout reconciliation...")

    result = run_async(_reconcile_ambiguous_payouts_async())
    logger.info(f"Ambiguous payout reconciliation complete: {result}")
    return result


async def _reconcile_ambiguous_payouts_async() -> dict:
    """Async implementation of payout reconciliation."""
    executor = get_transfer_executor()

    async with create_job_lock() as lock:
        async with lock.lock("payout_reconciliation", timeout=300):
            async with create_local_session() as session:
                processor = PayoutBatchProcessor(session, executor, lock=lock)
                return await processor.reconcile_all_ambiguous()
