"""
Payment intent monitor task.

Polls deposit addresses of open payment intents and activates members
(or renews subscriptions) for intents completed during the pass.

Runs every minute via scheduler.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import create_job_lock, create_local_session, run_async
from jobs.utils.providers import get_chain_observer
from referral_core.config.constants import JOB_TIME_LIMIT_MS
from referral_core.services.activation_service import ActivationService
from referral_core.services.reconciliation import ReconciliationMonitor
from referral_core.utils.exceptions import must_raise


@dramatiq.actor(max_retries=2, time_limit=JOB_TIME_LIMIT_MS)
def monitor_payment_intents() -> dict:
    """
    Check open payment intents.

    Returns:
        {"checked": int, "completed": int, "activated": int, "errors": int}
    """
    logger.info("Starting payment intent monitoring...")

    result = run_async(_monitor_payment_intents_async())
    if result["checked"]:
        logger.info(f"Payment intent monitoring complete: {result}")
    return result


async def _monitor_payment_intents_async() -> dict:
    """Async implementation of payment intent monitoring."""
    observer = get_chain_observer()

    async with create_job_lock() as lock:
        async with lock.lock("payment_intent_monitor", timeout=120):
            async with create_local_session() as session:
                monitor = ReconciliationMonitor(session, observer)
                stats = await monitor.check_open_intents()

                activation = ActivationService(session, lock=lock)
                activated = 0
                errors = stats["errors"]
                for intent_id in stats["completed"]:
                    try:
                        await activation.handle_completed_intent(intent_id)
                        activated += 1
                    except Exception as e:
                        # Intent stays completed, operator re-runs activation
                        if must_raise(e):
                            logger.error(
                                f"Activation after intent {intent_id} needs "
                                f"an operator: {e}",
                                extra={"intent_id": intent_id},
                            )
                        else:
                            logger.exception(
                                f"Activation after intent {intent_id} failed"
                            )
                        errors += 1

    return {
        "checked": stats["checked"],
        "completed": len(stats["completed"]),
        "activated": activated,
        "errors": errors,
    }
