"""
Enumerations for database models.

Values are stored as plain strings in the database.
"""

from enum import StrEnum


class CommissionType(StrEnum):
    """Commission record type."""

    RESIDUAL = "residual"
    DIRECT_BONUS = "direct_bonus"


class CommissionStatus(StrEnum):
    """
    Commission payout status.

    pending -> processing -> paid | failed
    failed -> processing (retry, bounded by max retries)
    any non-terminal -> completed (manual, out-of-band payment)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        """Paid and manually completed records never change again."""
        return self in (CommissionStatus.PAID, CommissionStatus.COMPLETED)


class IntentType(StrEnum):
    """Crypto payment intent type."""

    INITIAL_UNLOCK = "initial_unlock"
    MONTHLY_SUBSCRIPTION = "monthly_subscription"
    WEEKLY_SUBSCRIPTION = "weekly_subscription"


class PaymentIntentStatus(StrEnum):
    """Crypto payment intent status."""

    PENDING = "pending"
    PROCESSING = "processing"
    UNDERPAID = "underpaid"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        """Intent still waits for (more) funds."""
        return self in (
            PaymentIntentStatus.PENDING,
            PaymentIntentStatus.PROCESSING,
            PaymentIntentStatus.UNDERPAID,
        )


class PayoutBatchStatus(StrEnum):
    """Payout batch run status."""

    RUNNING = "running"
    FINISHED = "finished"
