"""
Qualification engine.

Derives a member's unlocked and completed structures from its active
direct referrals and the size of its downline. Unlocked structures only
ever go up: a member losing referrals keeps what it already unlocked.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.repositories.member_repository import MemberRepository
from referral_core.services.network import NetworkTree
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.exceptions import IntegrityViolation, MemberNotFound


@dataclass
class QualificationResult:
    """Outcome of one qualification recalculation."""

    member_id: int
    direct_referral_count: int
    previous_unlocked: int
    unlocked_structure_count: int
    completed_structure_count: int
    is_elite: bool

    @property
    def newly_unlocked(self) -> list[int]:
        """Structure numbers unlocked by this recalculation."""
        return list(
            range(self.previous_unlocked + 1, self.unlocked_structure_count + 1)
        )


class QualificationEngine:
    """Recalculates structure qualification for members."""

    def __init__(
        self, session: AsyncSession, plan: CompensationPlan = DEFAULT_PLAN
    ) -> None:
        """Initialize qualification engine."""
        self.session = session
        self.plan = plan
        self.member_repo = MemberRepository(session)
        self.tree = NetworkTree(session, plan=plan)

    @with_rollback_on_error
    async def recalculate(
        self, member_id: int, commit: bool = True
    ) -> QualificationResult:
        """
        Recalculate qualification of one member.

        Args:
            member_id: Member ID
            commit: Commit the session when done

        Returns:
            Qualification result

        Raises:
            MemberNotFound: Unknown member
        """
        result = await self._recalculate(member_id)
        if commit:
            await self.session.commit()
        return result

    @with_rollback_on_error
    async def recalculate_upline(self, member_id: int) -> list[QualificationResult]:
        """
        Recalculate a member and everyone above it.

        A placed member's tree ancestors are recalculated, which covers
        its sponsor and every upline member whose downline grew. An
        unplaced member has no ancestors yet, so its sponsor chain is
        followed instead, for at most structure_depth sponsors.

        Args:
            member_id: Starting member ID

        Returns:
            Results from the member up to the root (or farthest sponsor)

        Raises:
            MemberNotFound: Unknown member
            IntegrityViolation: Corrupted upline or looping sponsor chain
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)

        if member.network_position_id is not None:
            upline = await self.tree.get_upline(member.network_position_id)
            chain = [member_id] + [position.member_id for position in upline]
        else:
            chain = await self._sponsor_chain(member_id)

        results = [await self._recalculate(current_id) for current_id in chain]
        await self.session.commit()
        return results

    @with_rollback_on_error
    async def sweep(self) -> dict[str, int]:
        """
        Recalculate every member.

        Periodic safety net for missed activation or deactivation events.

        Returns:
            Summary with checked and raised counts
        """
        checked = 0
        raised = 0

        for member_id in await self.member_repo.get_all_ids():
            result = await self._recalculate(member_id)
            checked += 1
            if result.newly_unlocked:
                raised += 1

        await self.session.commit()

        logger.info(
            f"Qualification sweep: {checked} checked, {raised} raised",
            extra={"checked": checked, "raised": raised},
        )
        return {"checked": checked, "raised": raised}

    async def _sponsor_chain(self, member_id: int) -> list[int]:
        """Member IDs from a member up its sponsor_id chain."""
        chain: list[int] = []
        current_id: int | None = member_id

        while current_id is not None and len(chain) <= self.plan.structure_depth:
            if current_id in chain:
                raise IntegrityViolation(
                    f"Sponsor chain of member {member_id} loops at {current_id}"
                )
            member = await self.member_repo.get_by_id(current_id)
            if member is None:
                raise MemberNotFound(current_id)

            chain.append(current_id)
            current_id = member.sponsor_id

        return chain

    async def _recalculate(self, member_id: int) -> QualificationResult:
        """Recalculate without committing."""
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)

        previous_unlocked = member.unlocked_structure_count
        direct_count = await self.member_repo.count_active_direct_referrals(member_id)
        candidate = self.plan.unlocked_for_referrals(direct_count)

        downline = await self.tree.get_downline_count(member_id)
        completed = self.plan.completed_structures(downline)

        member.direct_referral_count = direct_count
        member.completed_structure_count = completed
        await self.session.flush()

        # Conditional UPDATE keeps the counter monotonic under concurrency
        raised = await self.member_repo.raise_unlocked_structures(member_id, candidate)
        await self.session.refresh(member)

        result = QualificationResult(
            member_id=member_id,
            direct_referral_count=direct_count,
            previous_unlocked=previous_unlocked,
            unlocked_structure_count=member.unlocked_structure_count,
            completed_structure_count=completed,
            is_elite=self.plan.is_elite(completed),
        )

        if raised:
            logger.info(
                f"Member {member_id} unlocked structures "
                f"{result.newly_unlocked} ({direct_count} active referrals)",
                extra={
                    "member_id": member_id,
                    "direct_referral_count": direct_count,
                    "unlocked_structure_count": result.unlocked_structure_count,
                },
            )
        elif candidate < previous_unlocked:
            logger.debug(
                f"Member {member_id} kept {previous_unlocked} unlocked structures "
                f"with {direct_count} active referrals",
                extra={"member_id": member_id},
            )

        return result
