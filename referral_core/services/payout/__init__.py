"""
Payout Service - Main Module.

Settlement of commission records through an abstract payment provider.

Module Structure:
- interfaces.py: TransferExecutor contract and TransferResult
- core.py: Shared collaborators and lock keys
- processor.py: Single-record state machine, retries, reconciliation
- batch.py: Bulk runs, balance pre-flight, summaries
- manual.py: Operator manual completion

Public Interface:
- PayoutBatchProcessor: Facade over all components
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.models.commission import CommissionRecord
from referral_core.utils.distributed_lock import DistributedLock

from .batch import BulkPayoutResult, PayoutBatchRunner
from .core import PayoutCore, payout_lock_key
from .interfaces import TransferExecutor, TransferResult
from .manual import ManualPayoutManager
from .processor import PayoutProcessor


class PayoutBatchProcessor:
    """
    Payout batch processor.

    Main entry point for settlement; delegates to the processor, batch
    runner and manual manager.
    """

    def __init__(
        self,
        session: AsyncSession,
        executor: TransferExecutor,
        lock: DistributedLock | None = None,
        plan: CompensationPlan = DEFAULT_PLAN,
        max_retries: int | None = None,
        transfer_timeout: float | None = None,
    ) -> None:
        """Initialize payout batch processor."""
        self.session = session

        self.core = PayoutCore(
            session,
            executor,
            lock=lock,
            plan=plan,
            max_retries=max_retries,
            transfer_timeout=transfer_timeout,
        )
        self.processor = PayoutProcessor(self.core)
        self.batch_runner = PayoutBatchRunner(self.core, self.processor)
        self.manual = ManualPayoutManager(self.core)

        self.commission_repo = self.core.commission_repo
        self.batch_repo = self.core.batch_repo

    async def process_single(self, record_id: int) -> CommissionRecord:
        """Pay one commission record."""
        return await self.processor.process_single(record_id)

    async def process_bulk(
        self, period: str | None, triggered_by: str | None = None
    ) -> BulkPayoutResult:
        """Pay every payable record of a period."""
        return await self.batch_runner.process_bulk(period, triggered_by)

    async def retry_failed(self, record_id: int) -> CommissionRecord:
        """Operator retry of a failed record."""
        return await self.processor.retry_failed(record_id)

    async def reconcile_ambiguous(self, record_id: int) -> CommissionRecord:
        """Resolve one ambiguous transfer."""
        return await self.processor.reconcile_ambiguous(record_id)

    async def reconcile_all_ambiguous(
        self, now: datetime | None = None
    ) -> dict[str, int]:
        """Flag stale claims, then resolve every flagged record."""
        return await self.processor.reconcile_all_ambiguous(now)

    async def mark_manually_completed(
        self, record_id: int, note: str, completed_by: str | None = None
    ) -> CommissionRecord:
        """Mark a commission as settled out-of-band."""
        return await self.manual.mark_manually_completed(record_id, note, completed_by)

    async def get_pending_summary(self, period: str | None = None) -> dict:
        """Counts and amounts per status."""
        return await self.batch_runner.get_pending_summary(period)


__all__ = [
    "BulkPayoutResult",
    "ManualPayoutManager",
    "PayoutBatchProcessor",
    "PayoutBatchRunner",
    "PayoutCore",
    "PayoutProcessor",
    "TransferExecutor",
    "TransferResult",
    "payout_lock_key",
]
