"""
Monthly residual commissions task.

Closes the previous settlement period: one residual record per eligible
member. Safe to re-run, existing records are never duplicated.

Runs on the 1st of every month via scheduler.
"""

from datetime import datetime

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from referral_core.config.constants import JOB_TIME_LIMIT_MS
from referral_core.services.commission import CommissionCalculator
from referral_core.utils.datetime_utils import (
    ensure_utc,
    period_of,
    previous_period_end,
    utc_now,
)
from referral_core.utils.formatters import format_amount


@dramatiq.actor(max_retries=3, time_limit=JOB_TIME_LIMIT_MS)
def compute_monthly_residuals(period_end: str | None = None) -> dict:
    """
    Compute residual commissions for a closed period.

    Args:
        period_end: ISO timestamp inside the period to close
            (default: end of the previous month)

    Returns:
        {"period": str, "created": int, "total_amount": int}
    """
    end = (
        ensure_utc(datetime.fromisoformat(period_end)) if period_end
        else previous_period_end(utc_now())
    )
    logger.info(f"Starting residual computation for {period_of(end)}...")

    result = run_async(_compute_monthly_residuals_async(end))
    logger.info(
        f"Residual computation complete: {result['created']} records, "
        f"{format_amount(result['total_amount'])}"
    )
    return result


async def _compute_monthly_residuals_async(period_end: datetime) -> dict:
    """Async implementation of residual computation."""
    period = period_of(period_end)

    async with create_job_lock() as lock:
        async with lock.lock(f"commissions:residuals:{period}", timeout=600):
            async with create_local_session() as session:
                calculator = CommissionCalculator(session)
                records = await calculator.compute_monthly_residuals(period_end)

    return {
        "period": period,
        "created": len(records),
        "total_amount": sum(record.amount for record in records),
    }
