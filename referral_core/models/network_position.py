"""
Network position model.

One occupied slot of the shared 3-wide referral tree. Every member holds
exactly one position; a member's structures are consecutive blocks of its
breadth-first downline.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_core.models.base import Base
from referral_core.models.types import UTCDateTime


class NetworkPosition(Base):
    """
    Network position.

    Roots (members without a sponsor) sit at level 0 without a parent or
    slot. Everyone else sits one level below its parent. Positions never
    move once written.
    """

    __tablename__ = "network_positions"
    __table_args__ = (
        # Transactional slot claim: a slot can be taken exactly once
        UniqueConstraint(
            'parent_position_id', 'slot_index',
            name='uq_network_position_parent_slot'
        ),
        CheckConstraint(
            '(parent_position_id IS NULL AND level = 0 AND slot_index IS NULL) '
            'OR (parent_position_id IS NOT NULL AND level > 0 AND slot_index IS NOT NULL)',
            name='check_network_position_root_shape'
        ),
        CheckConstraint(
            'slot_index IS NULL OR (slot_index >= 0 AND slot_index <= 2)',
            name='check_network_position_slot_range'
        ),
        CheckConstraint(
            'structure_number IS NULL OR '
            '(structure_number >= 1 AND structure_number <= 6)',
            name='check_network_position_structure_range'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Occupant
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    # Placement
    sponsor_member_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Sponsor whose downline received the member, null for roots"
    )
    structure_number: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
        comment="Sponsor structure the placement filled, null for roots"
    )

    # Tree
    parent_position_id: Mapped[int | None] = mapped_column(
        ForeignKey("network_positions.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    level: Mapped[int] = mapped_column(
        Integer, nullable=False,
        comment="Depth in the tree, 0 for roots"
    )
    slot_index: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
        comment="Sibling slot 0-2, null for roots"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )

    @property
    def is_root(self) -> bool:
        """Top of a tree (member without sponsor)."""
        return self.parent_position_id is None

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<NetworkPosition(id={self.id}, member_id={self.member_id}, "
            f"parent={self.parent_position_id}, level={self.level}, "
            f"slot={self.slot_index})>"
        )
