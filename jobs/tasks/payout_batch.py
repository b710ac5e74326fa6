"""
Payout batch task.

Pays every pending and retryable failed commission of a period through
the configured payment provider.

Runs on the 1st of every month after residuals, and on demand.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from jobs.utils.providers import get_transfer_executor
from referral_core.config.constants import PAYOUT_JOB_TIME_LIMIT_MS
from referral_core.services.payout import PayoutBatchProcessor

PAYOUT_BATCH_LOCK_TTL = PAYOUT_JOB_TIME_LIMIT_MS // 1000


@dramatiq.actor(max_retries=0, time_limit=PAYOUT_JOB_TIME_LIMIT_MS)
def process_payout_batch(period: str | None = None, triggered_by: str = "scheduler") -> dict:
    """
    Run a bulk payout.

    No automatic actor retry: failed records are retried by the next
    batch, ambiguous ones by the reconciliation task.

    Args:
        period: Settlement period YYYY-MM (None for every period)
        triggered_by: Scheduler or operator identifier

    Returns:
        Batch summary with the batch ID
    """
    logger.info(f"Starting payout batch for {period or 'all periods'}...")

    try:
        result = run_async(_process_payout_batch_async(period, triggered_by))
    except Exception as e:
        logger.exception(f"Payout batch failed: {e}")
        raise

    logger.info(f"Payout batch complete: {result}")
    return result


async def _process_payout_batch_async(period: str | None, triggered_by: str) -> dict:
    """Async implementation of the payout batch."""
    executor = get_transfer_executor()

    async with create_job_lock() as lock:
        async with lock.lock("payout_batch", timeout=PAYOUT_BATCH_LOCK_TTL):
            async with create_local_session() as session:
                processor = PayoutBatchProcessor(session, executor, lock=lock)
                result = await processor.process_bulk(period, triggered_by=triggered_by)

    return {"batch_id": result.batch_id, **result.summary}
