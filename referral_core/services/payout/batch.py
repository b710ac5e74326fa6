"""
Payout Service - Batch Module.

Bulk settlement of a period's payable commissions. One failing record
never stops the batch; every outcome lands in the persisted report.
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from referral_core.models.enums import CommissionStatus, PayoutBatchStatus
from referral_core.models.payout_batch import PayoutBatch
from referral_core.services.payout.core import PayoutCore
from referral_core.services.payout.processor import PayoutProcessor
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.distributed_lock import LockNotAcquired
from referral_core.utils.exceptions import (
    DestinationMissing,
    InvalidStateTransition,
    RetryLimitExceeded,
    TransferAmbiguous,
    TransferFailed,
    is_retryable,
)
from referral_core.utils.formatters import format_amount


# Not attempted: somebody else owns the record or it left the payable set
SKIP_ERRORS = (InvalidStateTransition, RetryLimitExceeded, LockNotAcquired)


@dataclass
class BulkPayoutResult:
    """Report of one bulk payout run."""

    batch_id: int
    period: str | None
    items: list[dict[str, Any]] = field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    total_amount: int = 0
    required_amount: int = 0
    available_balance: int | None = None
    balance_warning: bool = False

    @property
    def summary(self) -> dict[str, int]:
        """Aggregate counters."""
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_amount": self.total_amount,
        }


class PayoutBatchRunner:
    """Runs bulk payouts and records them as PayoutBatch rows."""

    def __init__(self, core: PayoutCore, processor: PayoutProcessor) -> None:
        """Initialize batch runner."""
        self.core = core
        self.processor = processor
        self.session = core.session
        self.commission_repo = core.commission_repo
        self.batch_repo = core.batch_repo

    async def process_bulk(
        self, period: str | None, triggered_by: str | None = None
    ) -> BulkPayoutResult:
        """
        Pay every pending or retryable failed record of a period.

        Args:
            period: Settlement period YYYY-MM (None for every period)
            triggered_by: Job or operator that started the run

        Returns:
            Per-item results and summary
        """
        payable = await self.commission_repo.get_payable(period, self.core.max_retries)
        record_ids = [record.id for record in payable]
        required = sum(record.amount for record in payable)

        available = await self._get_available_balance()
        balance_warning = available is not None and available < required

        batch = await self.batch_repo.create(
            period=period or "all",
            status=PayoutBatchStatus.RUNNING.value,
            triggered_by=triggered_by,
            total_records=len(record_ids),
            required_amount=required,
            available_balance=available,
            balance_warning=balance_warning,
        )
        await self.session.commit()

        if balance_warning:
            logger.warning(
                f"Payout balance shortfall for {period or 'all periods'}: "
                f"required {format_amount(required, self.core.plan.currency)}, "
                f"available {format_amount(available, self.core.plan.currency)}",
                extra={
                    "batch_id": batch.id,
                    "required": required,
                    "available": available,
                },
            )

        logger.info(
            f"Processing payout batch {batch.id}: {len(record_ids)} records, "
            f"{format_amount(required, self.core.plan.currency)}",
            extra={"batch_id": batch.id, "period": period},
        )

        result = BulkPayoutResult(
            batch_id=batch.id,
            period=period,
            required_amount=required,
            available_balance=available,
            balance_warning=balance_warning,
        )
        for record_id in record_ids:
            item = await self._process_item(record_id)
            result.items.append(item)
            if item["skipped"]:
                result.skipped += 1
            elif item["success"]:
                result.succeeded += 1
                result.total_amount += item["amount"]
            else:
                result.failed += 1

        await self._finish_batch(batch, result)
        return result

    async def get_pending_summary(self, period: str | None = None) -> dict[str, Any]:
        """
        Counts and amounts per status for operator dashboards.

        Args:
            period: Settlement period (None for every period)

        Returns:
            Dict with per-status breakdown and the ambiguous record count
        """
        by_status = await self.commission_repo.get_status_summary(period)
        for status in CommissionStatus:
            by_status.setdefault(status.value, {"count": 0, "amount": 0})

        ambiguous = await self.commission_repo.get_needing_reconciliation()
        return {
            "period": period,
            "by_status": by_status,
            "needs_reconciliation": len(ambiguous),
            "payable_amount": (
                by_status[CommissionStatus.PENDING.value]["amount"]
                + by_status[CommissionStatus.FAILED.value]["amount"]
            ),
        }

    async def _process_item(self, record_id: int) -> dict[str, Any]:
        """Process one record and describe the outcome."""
        item: dict[str, Any] = {
            "id": record_id,
            "success": False,
            "error": None,
            "skipped": False,
            "amount": 0,
        }
        try:
            record = await self.processor.process_single(record_id)
            item["success"] = True
            item["amount"] = record.amount
        except SKIP_ERRORS as e:
            item["skipped"] = True
            item["error"] = str(e)
        except TransferAmbiguous as e:
            item["error"] = str(e)
            item["needs_reconciliation"] = True
        except (DestinationMissing, TransferFailed) as e:
            item["error"] = str(e)
            item["retryable"] = is_retryable(e)
        except Exception as e:
            logger.error(
                f"Error processing commission {record_id}: {e}",
                extra={"commission_id": record_id},
            )
            item["error"] = f"{type(e).__name__}: {e}"
        return item

    async def _get_available_balance(self) -> int | None:
        """Provider balance, None when it cannot be read."""
        try:
            return await self.core.executor.get_available_balance(self.core.plan.currency)
        except Exception as e:
            logger.warning(f"Could not read payout balance: {e}")
            return None

    async def _finish_batch(self, batch: PayoutBatch, result: BulkPayoutResult) -> None:
        """Persist the batch summary."""
        await self.batch_repo.update(
            batch.id,
            status=PayoutBatchStatus.FINISHED.value,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
            total_amount=result.total_amount,
            finished_at=utc_now(),
        )
        await self.session.commit()

        logger.info(
            f"Payout batch {batch.id} complete: {result.succeeded} succeeded, "
            f"{result.failed} failed, {result.skipped} skipped, "
            f"{format_amount(result.total_amount, self.core.plan.currency)} paid",
            extra={"batch_id": batch.id, **result.summary},
        )
