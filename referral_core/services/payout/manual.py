"""
Payout Service - Manual Operations Module.

Operator actions on records that cannot be settled automatically.
"""

from loguru import logger

from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import CommissionStatus
from referral_core.services.payout.core import PayoutCore, payout_lock_key
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.exceptions import (
    InvalidStateTransition,
    ManualNoteRequired,
    RecordNotFound,
)
from referral_core.utils.formatters import format_amount


class ManualPayoutManager:
    """Manual completion of commissions paid out-of-band."""

    def __init__(self, core: PayoutCore) -> None:
        """Initialize manual payout manager."""
        self.core = core
        self.session = core.session
        self.commission_repo = core.commission_repo

    @with_rollback_on_error
    async def mark_manually_completed(
        self, record_id: int, note: str, completed_by: str | None = None
    ) -> CommissionRecord:
        """
        Mark a commission as settled outside the system.

        Allowed from pending, failed, and processing records flagged for
        reconciliation. A transfer still in flight cannot be overridden.

        Args:
            record_id: Commission record ID
            note: Justification (required, stored with the record)
            completed_by: Operator identifier

        Returns:
            The completed record

        Raises:
            ManualNoteRequired: Empty note
            RecordNotFound: Unknown record
            InvalidStateTransition: Record is terminal or in flight
        """
        if not note or not note.strip():
            raise ManualNoteRequired(
                f"A note is required to complete commission {record_id} manually"
            )

        async with self.core.lock.lock(
            payout_lock_key(record_id), timeout=self.core.lock_timeout
        ):
            record = await self.commission_repo.get_by_id(record_id, for_update=True)
            if record is None:
                raise RecordNotFound(f"Commission {record_id} not found")
            await self.session.refresh(record)

            status = record.status_enum
            if status.is_terminal:
                raise InvalidStateTransition(
                    f"Commission {record_id} is already {status}"
                )
            if status == CommissionStatus.PROCESSING and not record.needs_reconciliation:
                raise InvalidStateTransition(
                    f"Commission {record_id} has a transfer in flight"
                )

            previous_status = record.status
            record.status = CommissionStatus.COMPLETED.value
            record.manual_note = note.strip()
            record.completed_by = completed_by
            record.paid_at = utc_now()
            record.needs_reconciliation = False
            await self.session.commit()

        logger.warning(
            f"AUDIT: commission {record_id} "
            f"({format_amount(record.amount, record.currency)}) manually completed "
            f"by {completed_by or 'unknown operator'}: {record.manual_note}",
            extra={
                "audit": True,
                "commission_id": record_id,
                "member_id": record.referrer_id,
                "previous_status": previous_status,
                "retry_count": record.retry_count,
                "completed_by": completed_by,
                "note": record.manual_note,
            },
        )
        return record
