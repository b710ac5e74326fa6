"""
Member repository.

Data access layer for Member model.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.member import Member
from referral_core.repositories.base import BaseRepository


class MemberRepository(BaseRepository[Member]):
    """Member repository with network-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize member repository."""
        super().__init__(Member, session)

    async def count_active_direct_referrals(self, sponsor_id: int) -> int:
        """
        Count direct referrals with a paid subscription.

        Args:
            sponsor_id: Sponsor member ID

        Returns:
            Active direct referral count
        """
        return await self.count(sponsor_id=sponsor_id, is_active=True)

    async def get_all_ids(self) -> list[int]:
        """Get every member ID in ascending order."""
        result = await self.session.execute(select(Member.id).order_by(Member.id))
        return list(result.scalars().all())

    async def raise_unlocked_structures(
        self, member_id: int, new_count: int
    ) -> bool:
        """
        Raise unlocked structure count, never lowering it.

        The comparison happens inside the UPDATE, so concurrent
        recalculations cannot move the counter backwards.

        Args:
            member_id: Member ID
            new_count: Candidate unlocked count

        Returns:
            True if the stored value was raised
        """
        stmt = (
            update(Member)
            .where(Member.id == member_id)
            .where(Member.unlocked_structure_count < new_count)
            .values(unlocked_structure_count=new_count)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
