"""
Commission record model.

Residual and direct-bonus earnings awaiting or after settlement.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.models.base import Base
from referral_core.models.enums import CommissionStatus, CommissionType
from referral_core.models.types import MoneyType, UTCDateTime


class CommissionRecord(Base):
    """
    Commission record.

    Created by the commission calculator at period close, mutated only by
    the payout processor. Terminal states: paid, completed (manual).
    """

    __tablename__ = "commissions"
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_commission_amount_positive'),
        CheckConstraint('retry_count >= 0', name='check_commission_retry_non_negative'),
        CheckConstraint(
            "commission_type != 'direct_bonus' OR referred_id IS NOT NULL",
            name='check_commission_bonus_has_referred'
        ),
        # One residual per member per period, one bonus per referred member
        UniqueConstraint(
            'referrer_id', 'dedupe_key',
            name='uq_commission_referrer_dedupe_key'
        ),
        Index('idx_commission_status_period', 'status', 'period'),
        Index('idx_commission_type', 'commission_type'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Earner
    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Source member of a direct bonus, null for residuals
    referred_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=True,
    )

    commission_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CommissionType.RESIDUAL.value
    )
    period: Mapped[str] = mapped_column(
        String(7), nullable=False, comment="Settlement period, YYYY-MM"
    )
    dedupe_key: Mapped[str] = mapped_column(
        String(64), nullable=False,
        comment="residual:YYYY-MM or direct_bonus:<referred_id>"
    )

    # Amount in minor units
    amount: Mapped[int] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USDC")
    breakdown: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True, comment="Per-structure residual lines"
    )

    # Settlement
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING.value,
        index=True,
    )
    payout_destination: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_transaction_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transfer_key: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
        comment="Idempotency key of the last transfer attempt"
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    needs_reconciliation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True,
        comment="Ambiguous transfer outcome, must be checked before retry"
    )

    # Manual completion audit
    manual_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @staticmethod
    def residual_key(period: str) -> str:
        """Dedupe key of a member's residual for a period."""
        return f"{CommissionType.RESIDUAL.value}:{period}"

    @staticmethod
    def direct_bonus_key(referred_id: int) -> str:
        """Dedupe key of a direct bonus for one referred member."""
        return f"{CommissionType.DIRECT_BONUS.value}:{referred_id}"

    @property
    def status_enum(self) -> CommissionStatus:
        """Status as enum."""
        return CommissionStatus(self.status)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionRecord(id={self.id}, referrer_id={self.referrer_id}, "
            f"type={self.commission_type}, amount={self.amount}, "
            f"status={self.status})>"
        )
