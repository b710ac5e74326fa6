"""Integration tests for structure qualification."""

import pytest

from referral_core.config.business_constants import CompensationPlan
from referral_core.services.network import NetworkTree
from referral_core.services.qualification import QualificationEngine
from referral_core.utils.exceptions import MemberNotFound


class TestRecalculate:
    """Unlocking structures from active direct referrals."""

    @pytest.mark.asyncio
    async def test_nine_active_referrals_unlock_three_structures(
        self, session, create_member
    ):
        """floor(9 / 3) = 3 structures."""
        sponsor = await create_member(is_active=True)
        for _ in range(9):
            await create_member(sponsor=sponsor, is_active=True)

        result = await QualificationEngine(session).recalculate(sponsor.id)

        assert result.direct_referral_count == 9
        assert result.unlocked_structure_count == 3
        assert result.newly_unlocked == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_unlocked_count_never_decreases(self, session, create_member):
        """Losing referrals keeps already unlocked structures."""
        sponsor = await create_member(is_active=True)
        referrals = [
            await create_member(sponsor=sponsor, is_active=True) for _ in range(9)
        ]
        engine = QualificationEngine(session)
        await engine.recalculate(sponsor.id)

        for member in referrals[:3]:
            member.is_active = False
        await session.commit()

        result = await engine.recalculate(sponsor.id)

        assert result.direct_referral_count == 6
        assert result.unlocked_structure_count == 3
        assert result.newly_unlocked == []
        await session.refresh(sponsor)
        assert sponsor.unlocked_structure_count == 3
        assert sponsor.direct_referral_count == 6

    @pytest.mark.asyncio
    async def test_inactive_referrals_do_not_count(self, session, create_member):
        """Only paid subscriptions qualify."""
        sponsor = await create_member(is_active=True)
        for _ in range(2):
            await create_member(sponsor=sponsor, is_active=True)
        for _ in range(4):
            await create_member(sponsor=sponsor, is_active=False)

        result = await QualificationEngine(session).recalculate(sponsor.id)

        assert result.direct_referral_count == 2
        assert result.unlocked_structure_count == 0

    @pytest.mark.asyncio
    async def test_unlocked_is_capped_at_six(self, session, create_member):
        """Twenty referrals still unlock six structures."""
        sponsor = await create_member(is_active=True)
        for _ in range(20):
            await create_member(sponsor=sponsor, is_active=True)

        result = await QualificationEngine(session).recalculate(sponsor.id)

        assert result.unlocked_structure_count == 6

    @pytest.mark.asyncio
    async def test_unknown_member_raises(self, session):
        """Missing member is reported."""
        with pytest.raises(MemberNotFound):
            await QualificationEngine(session).recalculate(404)

    @pytest.mark.asyncio
    async def test_full_structures_count_as_completed(self, session, create_member):
        """A structure holding its capacity is completed; all completed is elite."""
        plan = CompensationPlan(structure_depth=1, max_structures=1)
        sponsor = await create_member(is_active=True, place=True)
        tree = NetworkTree(session, plan=plan)
        for _ in range(3):
            member = await create_member(sponsor=sponsor, is_active=True)
            await tree.assign_position(member.id, sponsor.id)

        result = await QualificationEngine(session, plan).recalculate(sponsor.id)

        assert result.completed_structure_count == 1
        assert result.is_elite


class TestUplineAndSweep:
    """Batch recalculation helpers."""

    @pytest.mark.asyncio
    async def test_recalculate_upline_walks_sponsor_chain(
        self, session, create_member
    ):
        """Unplaced members: member first, farthest sponsor last."""
        top = await create_member(is_active=True)
        middle = await create_member(sponsor=top, is_active=True)
        bottom = await create_member(sponsor=middle, is_active=True)

        results = await QualificationEngine(session).recalculate_upline(bottom.id)

        assert [r.member_id for r in results] == [bottom.id, middle.id, top.id]
        assert [r.direct_referral_count for r in results] == [0, 1, 1]

    @pytest.mark.asyncio
    async def test_recalculate_upline_follows_tree_ancestors(
        self, session, create_member
    ):
        """A spilled member recalculates the referral it was placed under."""
        top = await create_member(is_active=True, place=True)
        first = await create_member(sponsor=top, is_active=True, place=True)
        for _ in range(2):
            await create_member(sponsor=top, is_active=True, place=True)
        spilled = await create_member(sponsor=top, is_active=True, place=True)

        results = await QualificationEngine(session).recalculate_upline(spilled.id)

        assert [r.member_id for r in results] == [spilled.id, first.id, top.id]
        assert results[-1].direct_referral_count == 4
        assert results[-1].unlocked_structure_count == 1

    @pytest.mark.asyncio
    async def test_completed_structures_count_indirect_downline(
        self, session, create_member
    ):
        """X -> A -> B fills X's two-member structure through A's referral."""
        plan = CompensationPlan(fan_out=1, structure_depth=2, max_structures=1)
        x = await create_member(is_active=True, place=True)
        a = await create_member(sponsor=x, is_active=True, place=True)
        await create_member(sponsor=a, is_active=True, place=True)

        result = await QualificationEngine(session, plan).recalculate(x.id)

        assert result.direct_referral_count == 1
        assert result.completed_structure_count == 1

    @pytest.mark.asyncio
    async def test_sweep_raises_stale_members(self, session, create_member):
        """Sweep catches members whose referrals activated silently."""
        sponsor = await create_member(is_active=True)
        for _ in range(3):
            await create_member(sponsor=sponsor, is_active=True)

        summary = await QualificationEngine(session).sweep()

        assert summary == {"checked": 4, "raised": 1}
        await session.refresh(sponsor)
        assert sponsor.unlocked_structure_count == 1
