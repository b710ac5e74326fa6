"""
Payment intent model.

Tracks an expected crypto deposit (initial unlock or subscription) to a
member's deposit address until it is paid, underpaid or expired.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.models.base import Base
from referral_core.models.enums import PaymentIntentStatus
from referral_core.models.types import MoneyType, UTCDateTime


class PaymentIntent(Base):
    """
    Crypto payment intent.

    Status flow:
    - pending: waiting for funds
    - underpaid: partial funds received, the same address still accepts top-ups
    - completed: received_amount >= expected_amount
    - expired: unpaid at expires_at (a late full payment can still complete it
      until the intent is swept)
    """

    __tablename__ = "payment_intents"
    __table_args__ = (
        CheckConstraint('expected_amount > 0', name='check_intent_expected_positive'),
        CheckConstraint('received_amount >= 0', name='check_intent_received_non_negative'),
        CheckConstraint(
            "status != 'completed' OR received_amount >= expected_amount",
            name='check_intent_completed_fully_paid'
        ),
        Index('idx_payment_intent_status_expires', 'status', 'expires_at'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    intent_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Amounts in minor units
    expected_amount: Mapped[int] = mapped_column(MoneyType, nullable=False)
    received_amount: Mapped[int] = mapped_column(MoneyType, nullable=False, default=0)
    overpaid_amount: Mapped[int] = mapped_column(
        MoneyType, nullable=False, default=0,
        comment="Reported for operator review, never auto-refunded"
    )

    deposit_address: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentIntentStatus.PENDING.value, index=True
    )
    is_late: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Completed after expires_at"
    )

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    swept_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
        comment="Expired intent finalised, no further transitions"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def status_enum(self) -> PaymentIntentStatus:
        """Status as enum."""
        return PaymentIntentStatus(self.status)

    @property
    def shortfall(self) -> int:
        """Amount still missing (0 when fully paid)."""
        return max(0, self.expected_amount - self.received_amount)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PaymentIntent(id={self.id}, member_id={self.member_id}, "
            f"type={self.intent_type}, received={self.received_amount}/"
            f"{self.expected_amount}, status={self.status})>"
        )
