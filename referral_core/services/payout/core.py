"""
Payout Service - Core Module.

Shared state of the payout components: session, repositories, provider
and lock.
"""

import math

from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.config.constants import (
    DISTRIBUTED_LOCK_TIMEOUT,
    PAYOUT_LOCK_TIMEOUT_FACTOR,
)
from referral_core.config.settings import settings
from referral_core.repositories.commission_repository import CommissionRepository
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.payout_batch_repository import PayoutBatchRepository
from referral_core.services.payout.interfaces import TransferExecutor
from referral_core.utils.distributed_lock import DistributedLock


def payout_lock_key(record_id: int) -> str:
    """Lock key held for the whole transfer of one record."""
    return f"payout:record:{record_id}"


class PayoutCore:
    """Collaborators shared by payout processing, batching and manual ops."""

    def __init__(
        self,
        session: AsyncSession,
        executor: TransferExecutor,
        lock: DistributedLock | None = None,
        plan: CompensationPlan = DEFAULT_PLAN,
        max_retries: int | None = None,
        transfer_timeout: float | None = None,
    ) -> None:
        """
        Initialize payout core.

        Args:
            session: Database session
            executor: Payment provider
            lock: Distributed lock (in-process lock if omitted)
            plan: Compensation plan (settlement currency)
            max_retries: Retry limit (default from settings)
            transfer_timeout: Transfer timeout seconds (default from settings)
        """
        self.session = session
        self.executor = executor
        self.lock = lock or DistributedLock()
        self.plan = plan
        self.max_retries = (
            max_retries if max_retries is not None else settings.payout_max_retries
        )
        self.transfer_timeout = (
            transfer_timeout if transfer_timeout is not None
            else settings.transfer_timeout_seconds
        )
        # The record lock must outlive the transfer call, including its timeout
        self.lock_timeout = max(
            DISTRIBUTED_LOCK_TIMEOUT,
            math.ceil(self.transfer_timeout * PAYOUT_LOCK_TIMEOUT_FACTOR),
        )

        self.commission_repo = CommissionRepository(session)
        self.member_repo = MemberRepository(session)
        self.batch_repo = PayoutBatchRepository(session)
