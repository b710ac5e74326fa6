"""
Payout batch model.

Persisted report of one bulk payout run.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.models.base import Base
from referral_core.models.enums import PayoutBatchStatus
from referral_core.models.types import MoneyType, UTCDateTime


class PayoutBatch(Base):
    """Payout batch run and its aggregate summary."""

    __tablename__ = "payout_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutBatchStatus.RUNNING.value
    )
    triggered_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Summary
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(
        MoneyType, nullable=False, default=0,
        comment="Sum of successfully paid amounts"
    )

    # Pre-flight balance check
    available_balance: Mapped[int | None] = mapped_column(MoneyType, nullable=True)
    required_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    balance_warning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PayoutBatch(id={self.id}, period={self.period}, "
            f"succeeded={self.succeeded}, failed={self.failed}, "
            f"status={self.status})>"
        )
