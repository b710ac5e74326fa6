"""
Network snapshot.

Immutable point-in-time view of members and the referral tree used by
period computations, so concurrent placements cannot skew a run.
"""

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.member import Member
from referral_core.repositories.position_repository import PositionRepository
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.exceptions import IntegrityViolation


@dataclass(frozen=True)
class MemberState:
    """Member fields relevant to commission computation."""

    id: int
    is_active: bool
    unlocked_structure_count: int
    payout_destination: str | None


@dataclass(frozen=True)
class NetworkSnapshot:
    """
    Frozen network view.

    Attributes:
        taken_at: Moment the snapshot was read
        members: Member states keyed by ID
        children: Member ID -> IDs of the members directly below it in
            the tree, in slot order
    """

    taken_at: datetime
    members: Mapping[int, MemberState]
    children: Mapping[int, tuple[int, ...]]

    @classmethod
    async def load(cls, session: AsyncSession) -> "NetworkSnapshot":
        """
        Read members and positions in one pass.

        Args:
            session: Database session

        Returns:
            Frozen snapshot
        """
        member_rows = await session.execute(
            select(
                Member.id,
                Member.is_active,
                Member.unlocked_structure_count,
                Member.payout_destination,
            ).order_by(Member.id)
        )
        members = {
            row.id: MemberState(
                id=row.id,
                is_active=row.is_active,
                unlocked_structure_count=row.unlocked_structure_count,
                payout_destination=row.payout_destination,
            )
            for row in member_rows.all()
        }

        rows = await PositionRepository(session).get_all_rows()
        occupant = {row.id: row.member_id for row in rows}
        slotted: dict[int, list[tuple[int, int]]] = {}
        for row in rows:
            if row.parent_position_id is None:
                continue
            parent_member = occupant.get(row.parent_position_id)
            if parent_member is None:
                raise IntegrityViolation(
                    f"Position {row.id} references missing parent "
                    f"{row.parent_position_id}",
                    position_id=row.id,
                )
            slotted.setdefault(parent_member, []).append((row.slot_index, row.member_id))

        return cls(
            taken_at=utc_now(),
            members=MappingProxyType(members),
            children=MappingProxyType({
                parent: tuple(member_id for _, member_id in sorted(entries))
                for parent, entries in slotted.items()
            }),
        )

    def downline(self, member_id: int, limit: int) -> tuple[int, ...]:
        """
        Member IDs below a member in breadth-first order.

        Args:
            member_id: Top of the walked subtree
            limit: Maximum members to return

        Raises:
            IntegrityViolation: A member is reached twice
        """
        result: list[int] = []
        visited = {member_id}
        queue = deque(self.children.get(member_id, ()))

        while queue and len(result) < limit:
            current = queue.popleft()
            if current in visited:
                raise IntegrityViolation(
                    f"Member {current} reached twice below member {member_id}"
                )
            visited.add(current)
            result.append(current)
            queue.extend(self.children.get(current, ()))

        return tuple(result)

    def is_active(self, member_id: int) -> bool:
        """Member exists and has a paid subscription."""
        state = self.members.get(member_id)
        return state is not None and state.is_active

    def eligible_members(self) -> list[MemberState]:
        """Active members with at least one unlocked structure."""
        return [
            member for member in self.members.values()
            if member.is_active and member.unlocked_structure_count > 0
        ]
