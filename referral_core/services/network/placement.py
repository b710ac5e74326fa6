"""
Network placement module.

Assigns new members to the first free slot of their sponsor's downline.
"""

from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.config.constants import PLACEMENT_MAX_CLAIM_ATTEMPTS
from referral_core.models.member import Member
from referral_core.models.network_position import NetworkPosition
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.position_repository import PositionRepository
from referral_core.services.network.traversal import NetworkTraversal
from referral_core.utils.distributed_lock import DistributedLock
from referral_core.utils.exceptions import (
    CapacityExceeded,
    IntegrityViolation,
    MemberNotFound,
    PlacementConflict,
    SponsorNotPlaced,
)


ROOT_PLACEMENT_LOCK_KEY = "network:placement:root"


def placement_lock_key(sponsor_id: int) -> str:
    """Lock key serializing placements under one sponsor."""
    return f"network:placement:{sponsor_id}"


class PlacementManager:
    """
    Places members into the shared tree below their sponsor.

    Placements under one sponsor are serialized by a distributed lock. The
    unique (parent_position_id, slot_index) constraint is the final claim:
    a lost race (for example against an upline sponsor spilling into the
    same subtree) rolls back and retries with a fresh search.
    """

    def __init__(
        self,
        session: AsyncSession,
        lock: DistributedLock | None = None,
        plan: CompensationPlan = DEFAULT_PLAN,
    ) -> None:
        """Initialize placement manager."""
        self.session = session
        self.lock = lock or DistributedLock()
        self.plan = plan
        self.member_repo = MemberRepository(session)
        self.position_repo = PositionRepository(session)
        self.traversal = NetworkTraversal(session, plan)

    async def assign_position(
        self,
        new_member_id: int,
        sponsor_id: int | None,
        member_updates: dict[str, Any] | None = None,
    ) -> NetworkPosition:
        """
        Assign a network position to a member.

        Commits its own transaction. Calling it again for a placed member
        returns the existing position and leaves the member untouched.

        Args:
            new_member_id: Member to place
            sponsor_id: Sponsor whose downline receives the member
                (None makes the member a root)
            member_updates: Member attributes committed together with the
                position, nothing is written when placement fails

        Returns:
            Assigned position

        Raises:
            MemberNotFound: Member or sponsor does not exist
            SponsorNotPlaced: Sponsor has no position yet
            CapacityExceeded: Sponsor's next structure is locked or all are full
            IntegrityViolation: Self sponsorship or corrupted tree
            PlacementConflict: Claim lost every bounded retry
        """
        existing = await self._get_existing_position(new_member_id)
        if existing is not None:
            return existing

        if sponsor_id == new_member_id:
            raise IntegrityViolation(f"Member {new_member_id} cannot sponsor itself")

        key = (
            ROOT_PLACEMENT_LOCK_KEY if sponsor_id is None
            else placement_lock_key(sponsor_id)
        )

        async with self.lock.lock(key):
            for attempt in range(1, PLACEMENT_MAX_CLAIM_ATTEMPTS + 1):
                try:
                    position = await self._place_once(
                        new_member_id, sponsor_id, member_updates or {}
                    )
                    await self.session.commit()
                except IntegrityError as e:
                    await self.session.rollback()
                    logger.warning(
                        f"Slot claim lost for member {new_member_id}, "
                        f"attempt {attempt}/{PLACEMENT_MAX_CLAIM_ATTEMPTS}",
                        extra={
                            "member_id": new_member_id,
                            "sponsor_id": sponsor_id,
                            "error": str(e.orig),
                        },
                    )
                    continue
                except Exception:
                    await self.session.rollback()
                    raise

                logger.info(
                    f"Member {new_member_id} placed at level {position.level} "
                    f"(sponsor {sponsor_id}, structure {position.structure_number})",
                    extra={
                        "member_id": new_member_id,
                        "sponsor_id": sponsor_id,
                        "position_id": position.id,
                        "parent_position_id": position.parent_position_id,
                        "slot_index": position.slot_index,
                    },
                )
                return position

        raise PlacementConflict(new_member_id, PLACEMENT_MAX_CLAIM_ATTEMPTS)

    async def _get_existing_position(
        self, member_id: int
    ) -> NetworkPosition | None:
        """Load member and return its position if already placed."""
        member = await self._load_member(member_id)
        if member.network_position_id is None:
            return None
        return await self._position_of(member)

    async def _position_of(self, member: Member) -> NetworkPosition:
        """Position referenced by a placed member."""
        position = await self.position_repo.get_by_id(member.network_position_id)
        if position is None:
            raise IntegrityViolation(
                f"Member {member.id} references missing position "
                f"{member.network_position_id}",
                position_id=member.network_position_id,
            )
        return position

    async def _load_member(self, member_id: int) -> Member:
        """Load a member with fresh state."""
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)
        await self.session.refresh(member)
        return member

    async def _place_once(
        self,
        new_member_id: int,
        sponsor_id: int | None,
        member_updates: dict[str, Any],
    ) -> NetworkPosition:
        """Single placement attempt inside the sponsor lock."""
        member = await self._load_member(new_member_id)
        if member.network_position_id is not None:
            # Placed by a concurrent caller while we waited on the lock
            return await self._position_of(member)

        if sponsor_id is None:
            position = await self.position_repo.create(
                member_id=new_member_id,
                sponsor_member_id=None,
                structure_number=None,
                parent_position_id=None,
                level=0,
                slot_index=None,
            )
        else:
            sponsor = await self._load_member(sponsor_id)
            position = await self._claim_in_sponsor_downline(new_member_id, sponsor)

        member.network_position_id = position.id
        for key, value in member_updates.items():
            setattr(member, key, value)
        await self.session.flush()
        return position

    async def _claim_in_sponsor_downline(
        self, new_member_id: int, sponsor: Member
    ) -> NetworkPosition:
        """Claim the first free slot of the sponsor's subtree."""
        if sponsor.network_position_id is None:
            raise SponsorNotPlaced(sponsor.id)
        sponsor_position = await self._position_of(sponsor)

        scan = await self.traversal.scan_downline(
            sponsor_position, self.plan.downline_limit
        )
        structure_number = self.plan.structure_for_ordinal(scan.count)
        placeable = max(1, min(sponsor.unlocked_structure_count, self.plan.max_structures))

        if scan.truncated or structure_number > self.plan.max_structures:
            message = f"Every structure of sponsor {sponsor.id} is full"
        elif structure_number > placeable:
            message = (
                f"Structures 1-{placeable} of sponsor {sponsor.id} are full, "
                f"structure {structure_number} is not unlocked yet"
            )
        else:
            message = None

        if message is not None:
            logger.warning(
                message,
                extra={
                    "sponsor_id": sponsor.id,
                    "member_id": new_member_id,
                    "downline_count": scan.count,
                },
            )
            raise CapacityExceeded(sponsor.id, message)

        if scan.free_slot is None:
            raise IntegrityViolation(
                f"Downline of sponsor {sponsor.id} has no free slot below "
                f"{scan.count} positions",
                position_id=sponsor_position.id,
            )

        parent, slot_index = scan.free_slot
        return await self.position_repo.create(
            member_id=new_member_id,
            sponsor_member_id=sponsor.id,
            structure_number=structure_number,
            parent_position_id=parent.id,
            level=parent.level + 1,
            slot_index=slot_index,
        )
