"""
Commission repository.

Data access layer for CommissionRecord model.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import CommissionStatus
from referral_core.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[CommissionRecord]):
    """Commission repository with payout-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(CommissionRecord, session)

    async def get_by_dedupe_key(
        self, referrer_id: int, dedupe_key: str
    ) -> CommissionRecord | None:
        """
        Get the commission identified by its idempotency key.

        Args:
            referrer_id: Earning member ID
            dedupe_key: residual:YYYY-MM or direct_bonus:<referred_id>

        Returns:
            Existing record or None
        """
        return await self.get_by(referrer_id=referrer_id, dedupe_key=dedupe_key)

    async def get_existing_keys(
        self, dedupe_key: str, referrer_ids: Iterable[int]
    ) -> set[int]:
        """
        Referrers that already hold a record with the given key.

        Args:
            dedupe_key: Idempotency key shared by the batch
            referrer_ids: Candidate referrers

        Returns:
            Set of referrer IDs with an existing record
        """
        ids = list(referrer_ids)
        if not ids:
            return set()
        stmt = select(CommissionRecord.referrer_id).where(
            CommissionRecord.dedupe_key == dedupe_key,
            CommissionRecord.referrer_id.in_(ids),
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def get_payable(
        self, period: str | None, max_retries: int
    ) -> list[CommissionRecord]:
        """
        Get records a payout batch may attempt.

        Pending records, plus failed records with retries left. Records
        flagged for reconciliation are never returned.

        Args:
            period: Settlement period (None for every period)
            max_retries: Retry limit of failed records

        Returns:
            Payable records ordered by ID
        """
        stmt = select(CommissionRecord).where(
            CommissionRecord.needs_reconciliation.is_(False),
            or_(
                CommissionRecord.status == CommissionStatus.PENDING.value,
                and_(
                    CommissionRecord.status == CommissionStatus.FAILED.value,
                    CommissionRecord.retry_count < max_retries,
                ),
            ),
        )
        if period is not None:
            stmt = stmt.where(CommissionRecord.period == period)
        stmt = stmt.order_by(CommissionRecord.id)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def claim_for_processing(
        self,
        record_id: int,
        from_statuses: tuple[str, ...],
        transfer_key: str,
        now: datetime,
    ) -> bool:
        """
        Atomically move a record to processing.

        Conditional UPDATE: only one caller can win the transition, a
        concurrent claim sees zero affected rows.

        Args:
            record_id: Commission record ID
            from_statuses: Statuses the claim may start from
            transfer_key: Idempotency key of this attempt
            now: Claim timestamp

        Returns:
            True if this caller claimed the record
        """
        stmt = (
            update(CommissionRecord)
            .where(CommissionRecord.id == record_id)
            .where(CommissionRecord.status.in_(from_statuses))
            .where(CommissionRecord.needs_reconciliation.is_(False))
            .values(
                status=CommissionStatus.PROCESSING.value,
                transfer_key=transfer_key,
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def flag_stale_processing(
        self, claimed_before: datetime, now: datetime, reason: str
    ) -> list[int]:
        """
        Flag processing records abandoned by their worker.

        A record claimed before the cutoff and never resolved lost its
        worker mid-transfer; it joins the ambiguous records so the
        provider's log decides its outcome.

        Args:
            claimed_before: Claims older than this are stale
            now: Update timestamp
            reason: Error message stored on flagged records

        Returns:
            IDs of the flagged records
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.status == CommissionStatus.PROCESSING.value,
                CommissionRecord.needs_reconciliation.is_(False),
                CommissionRecord.processed_at < claimed_before,
            )
            .values(
                needs_reconciliation=True,
                error_message=reason,
                updated_at=now,
            )
            .returning(CommissionRecord.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return sorted(result.scalars().all())

    async def get_needing_reconciliation(self) -> list[CommissionRecord]:
        """Records stuck in processing after an ambiguous transfer."""
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.needs_reconciliation.is_(True),
                CommissionRecord.status == CommissionStatus.PROCESSING.value,
            )
            .order_by(CommissionRecord.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_status_summary(
        self, period: str | None = None
    ) -> dict[str, dict[str, Any]]:
        """
        Aggregate count and amount per status.

        Args:
            period: Settlement period (None for every period)

        Returns:
            Dict mapping status to {"count", "amount"}
        """
        stmt = select(
            CommissionRecord.status,
            func.count(CommissionRecord.id).label("record_count"),
            func.coalesce(func.sum(CommissionRecord.amount), 0).label("total_amount"),
        ).group_by(CommissionRecord.status)
        if period is not None:
            stmt = stmt.where(CommissionRecord.period == period)

        result = await self.session.execute(stmt)
        return {
            row.status: {"count": row.record_count, "amount": int(row.total_amount)}
            for row in result.all()
        }
