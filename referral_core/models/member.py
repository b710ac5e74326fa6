"""
Member model.

Represents a network member (subscriber and potential referrer).
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.models.base import Base
from referral_core.models.types import UTCDateTime


class Member(Base):
    """Member model - referral network participants."""

    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint(
            'unlocked_structure_count >= 0 AND unlocked_structure_count <= 6',
            name='check_member_unlocked_structures_range'
        ),
        CheckConstraint(
            'completed_structure_count >= 0 AND completed_structure_count <= 6',
            name='check_member_completed_structures_range'
        ),
        CheckConstraint(
            'direct_referral_count >= 0',
            name='check_member_direct_referrals_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    display_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    # Referral
    sponsor_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Member who referred this member (null for the network root)"
    )

    # Network placement (assigned once, at activation)
    # No FK: network_positions already references members
    network_position_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        unique=True,
        comment="Position in the referral tree, immutable once set"
    )

    # Qualification
    direct_referral_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
        comment="Active direct referrals at last recalculation"
    )
    unlocked_structure_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
        comment="Monotonic, structures never re-lock"
    )
    completed_structure_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    # Subscription
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True,
        comment="Current subscription paid"
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
        comment="First qualifying payment"
    )
    subscription_paid_until: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # Payout
    payout_destination: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
        comment="Bank account reference or wallet address"
    )

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

    @property
    def is_placed(self) -> bool:
        """Member has a network position."""
        return self.network_position_id is not None

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Member(id={self.id}, sponsor_id={self.sponsor_id}, "
            f"active={self.is_active}, "
            f"unlocked={self.unlocked_structure_count})>"
        )
