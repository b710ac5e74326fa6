"""
Network tree service.

Public entry point for placement and traversal of the referral network.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.models.network_position import NetworkPosition
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.position_repository import PositionRepository
from referral_core.services.network.placement import PlacementManager
from referral_core.services.network.traversal import NetworkTraversal
from referral_core.utils.distributed_lock import DistributedLock
from referral_core.utils.exceptions import IntegrityViolation, MemberNotFound


class NetworkTree:
    """
    Referral network tree.

    Delegates placement and traversal to dedicated components.
    """

    def __init__(
        self,
        session: AsyncSession,
        lock: DistributedLock | None = None,
        plan: CompensationPlan = DEFAULT_PLAN,
    ) -> None:
        """Initialize network tree."""
        self.session = session
        self.plan = plan
        self.placement = PlacementManager(session, lock, plan)
        self.traversal = NetworkTraversal(session, plan)
        self.member_repo = MemberRepository(session)
        self.position_repo = PositionRepository(session)

    async def assign_position(
        self,
        new_member_id: int,
        sponsor_id: int | None,
        member_updates: dict[str, Any] | None = None,
    ) -> NetworkPosition:
        """Place a member under its sponsor (idempotent)."""
        return await self.placement.assign_position(
            new_member_id, sponsor_id, member_updates
        )

    async def get_upline(self, position_id: int) -> list[NetworkPosition]:
        """Ancestors of a position, root last."""
        return await self.traversal.get_upline(position_id)

    async def get_downline_counts(self, position_id: int) -> dict[int, int]:
        """Descendant counts per relative level."""
        return await self.traversal.get_downline_counts(position_id)

    async def get_downline_count(self, member_id: int) -> int:
        """
        Downline size of a member, capped at the plan's downline limit.

        Args:
            member_id: Member ID

        Returns:
            Descendant count, 0 for unplaced members

        Raises:
            MemberNotFound: Unknown member
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)
        if member.network_position_id is None:
            return 0

        position = await self.position_repo.get_by_id(member.network_position_id)
        if position is None:
            raise IntegrityViolation(
                f"Member {member_id} references missing position "
                f"{member.network_position_id}",
                position_id=member.network_position_id,
            )
        scan = await self.traversal.scan_downline(position, self.plan.downline_limit)
        return scan.count

    async def get_structure_fill(
        self, member_id: int, structure_number: int
    ) -> int:
        """
        Occupied positions of one of a member's structures.

        Args:
            member_id: Structure owner
            structure_number: Structure number

        Returns:
            Placed member count (0..structure_capacity)
        """
        downline = await self.get_downline_count(member_id)
        return self.plan.structure_fill(downline, structure_number)

    async def is_structure_complete(
        self, member_id: int, structure_number: int
    ) -> bool:
        """Structure holds structure_capacity members."""
        fill = await self.get_structure_fill(member_id, structure_number)
        return fill >= self.plan.structure_capacity
