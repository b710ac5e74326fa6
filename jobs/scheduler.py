"""
Task scheduler.

APScheduler process that enqueues the periodic dramatiq actors. Workers
run separately (dramatiq jobs.tasks).

Usage:
    python -m jobs.scheduler
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks import (
    compute_monthly_residuals,
    monitor_payment_intents,
    process_payout_batch,
    reconcile_ambiguous_payouts,
    sweep_expired_intents,
    sweep_qualifications,
)
from referral_core.config.settings import settings
from referral_core.utils.datetime_utils import period_of, previous_period_end, utc_now

scheduler_instance: AsyncIOScheduler | None = None


def _enqueue_payout_batch() -> None:
    """Pay the period that just closed."""
    period = period_of(previous_period_end(utc_now()))
    process_payout_batch.send(period)


def create_scheduler() -> AsyncIOScheduler:
    """
    Create the scheduler with every periodic job registered.

    Returns:
        Configured (not started) scheduler
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        compute_monthly_residuals.send,
        CronTrigger(day=1, hour=0, minute=10),
        id="monthly_residuals",
        name="Monthly residual commissions",
        replace_existing=True,
    )
    scheduler.add_job(
        _enqueue_payout_batch,
        CronTrigger(day=1, hour=2, minute=0),
        id="payout_batch",
        name="Monthly payout batch",
        replace_existing=True,
    )
    scheduler.add_job(
        reconcile_ambiguous_payouts.send,
        IntervalTrigger(minutes=15),
        id="payout_reconciliation",
        name="Ambiguous payout reconciliation",
        replace_existing=True,
    )
    scheduler.add_job(
        monitor_payment_intents.send,
        IntervalTrigger(minutes=1),
        id="payment_intent_monitor",
        name="Payment intent monitor",
        replace_existing=True,
    )
    scheduler.add_job(
        sweep_expired_intents.send,
        IntervalTrigger(minutes=30),
        id="intent_sweep",
        name="Expired payment intent sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        sweep_qualifications.send,
        CronTrigger(hour=3, minute=0),
        id="qualification_sweep",
        name="Qualification sweep",
        replace_existing=True,
    )

    return scheduler


async def main() -> None:
    """Run the scheduler and its health server until cancelled."""
    global scheduler_instance

    scheduler_instance = create_scheduler()
    scheduler_instance.start()
    set_scheduler(scheduler_instance)
    logger.info(f"Scheduler started with {len(scheduler_instance.get_jobs())} jobs")

    runner, _ = await start_health_server(settings.health_host, settings.health_port)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler_instance.shutdown(wait=False)
        await stop_health_server(runner)
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
