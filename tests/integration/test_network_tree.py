"""Integration tests for network placement and traversal."""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from referral_core.config.business_constants import CompensationPlan
from referral_core.models import Base, Member, NetworkPosition
from referral_core.services.network import NetworkTree
from referral_core.utils.exceptions import (
    CapacityExceeded,
    IntegrityViolation,
    MemberNotFound,
    SponsorNotPlaced,
)


# One-level structures hold 3 members, two of them cap a downline at 6
SHALLOW_PLAN = CompensationPlan(structure_depth=1, max_structures=2)


async def position_of(session, member: Member) -> NetworkPosition:
    """Committed position of a placed member."""
    await session.refresh(member)
    return await session.get(NetworkPosition, member.network_position_id)


class TestAssignPosition:
    """Breadth-first placement below a sponsor."""

    @pytest.mark.asyncio
    async def test_first_three_referrals_take_level_one_slots(
        self, session, create_member
    ):
        """Signups 1-3 fill the sponsor's slots, the 4th spills to level 2."""
        tree = NetworkTree(session)
        sponsor = await create_member(name="sponsor", place=True)
        root = await position_of(session, sponsor)
        referrals = [await create_member(sponsor=sponsor) for _ in range(4)]

        positions = [
            await tree.assign_position(member.id, sponsor.id) for member in referrals
        ]

        for slot, position in enumerate(positions[:3]):
            assert position.level == 1
            assert position.slot_index == slot
            assert position.parent_position_id == root.id
            assert position.sponsor_member_id == sponsor.id
            assert position.structure_number == 1

        fourth = positions[3]
        assert fourth.level == 2
        assert fourth.slot_index == 0
        assert fourth.parent_position_id == positions[0].id

    @pytest.mark.asyncio
    async def test_position_is_stamped_on_member(self, session, create_member):
        """Placement stores the position on the member."""
        tree = NetworkTree(session)
        sponsor = await create_member(place=True)
        member = await create_member(sponsor=sponsor)

        position = await tree.assign_position(member.id, sponsor.id)

        await session.refresh(member)
        assert member.network_position_id == position.id
        assert member.is_placed

    @pytest.mark.asyncio
    async def test_assign_is_idempotent(self, session, create_member):
        """Assigning a placed member returns its existing position."""
        tree = NetworkTree(session)
        sponsor = await create_member(place=True)
        member = await create_member(sponsor=sponsor)

        first = await tree.assign_position(member.id, sponsor.id)
        second = await tree.assign_position(member.id, sponsor.id)

        assert first.id == second.id
        count = await session.scalar(
            select(func.count(NetworkPosition.id)).where(
                NetworkPosition.member_id == member.id
            )
        )
        assert count == 1

    @pytest.mark.asyncio
    async def test_member_without_sponsor_becomes_root(self, session, create_member):
        """Roots sit at level 0 without parent, slot or structure."""
        tree = NetworkTree(session)
        root = await create_member()

        position = await tree.assign_position(root.id, None)

        assert position.is_root
        assert position.level == 0
        assert position.slot_index is None
        assert position.sponsor_member_id is None
        assert position.structure_number is None

    @pytest.mark.asyncio
    async def test_self_sponsorship_is_rejected(self, session, create_member):
        """A member cannot be placed under itself."""
        tree = NetworkTree(session)
        member = await create_member()

        with pytest.raises(IntegrityViolation):
            await tree.assign_position(member.id, member.id)

    @pytest.mark.asyncio
    async def test_unknown_sponsor_raises(self, session, create_member):
        """Missing sponsor is reported, nothing is written."""
        tree = NetworkTree(session)
        member = await create_member()

        with pytest.raises(MemberNotFound):
            await tree.assign_position(member.id, 9999)

    @pytest.mark.asyncio
    async def test_unplaced_sponsor_raises(self, session, create_member):
        """Referrals wait until their sponsor holds a position."""
        tree = NetworkTree(session)
        sponsor = await create_member()
        member = await create_member(sponsor=sponsor)

        with pytest.raises(SponsorNotPlaced) as exc_info:
            await tree.assign_position(member.id, sponsor.id)

        assert exc_info.value.sponsor_id == sponsor.id
        await session.refresh(member)
        assert member.network_position_id is None
        count = await session.scalar(select(func.count(NetworkPosition.id)))
        assert count == 0

    @pytest.mark.asyncio
    async def test_referrals_spill_into_existing_subtree(self, session, create_member):
        """A grand-sponsor's referrals fill the free slots below its referrals."""
        tree = NetworkTree(session)
        x = await create_member(name="x", place=True)
        a = await create_member(sponsor=x, name="a", place=True)
        b = await create_member(sponsor=a, name="b", place=True)
        a_position = await position_of(session, a)
        b_position = await position_of(session, b)

        assert b_position.parent_position_id == a_position.id
        assert b_position.level == 2
        assert b_position.sponsor_member_id == a.id

        x_referrals = [await create_member(sponsor=x) for _ in range(3)]
        positions = [
            await tree.assign_position(member.id, x.id) for member in x_referrals
        ]

        assert [p.level for p in positions] == [1, 1, 2]
        assert [p.slot_index for p in positions] == [1, 2, 1]
        assert positions[2].parent_position_id == a_position.id
        assert positions[2].sponsor_member_id == x.id

    @pytest.mark.asyncio
    async def test_locked_structure_raises_capacity_exceeded(
        self, session, create_member
    ):
        """Full structure 1 with structure 2 still locked is a capacity error."""
        tree = NetworkTree(session, plan=SHALLOW_PLAN)
        sponsor = await create_member(place=True)
        for _ in range(3):
            member = await create_member(sponsor=sponsor)
            await tree.assign_position(member.id, sponsor.id)

        overflow = await create_member(sponsor=sponsor)
        with pytest.raises(CapacityExceeded) as exc_info:
            await tree.assign_position(overflow.id, sponsor.id)

        assert exc_info.value.sponsor_id == sponsor.id
        assert "not unlocked" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unlocked_structure_receives_overflow(self, session, create_member):
        """Once structure 2 unlocks, the next block of the downline fills."""
        tree = NetworkTree(session, plan=SHALLOW_PLAN)
        sponsor = await create_member(unlocked=2, place=True)
        first_level = []
        for _ in range(3):
            member = await create_member(sponsor=sponsor)
            first_level.append(await tree.assign_position(member.id, sponsor.id))

        overflow = await create_member(sponsor=sponsor)
        position = await tree.assign_position(overflow.id, sponsor.id)

        assert position.structure_number == 2
        assert position.level == 2
        assert position.parent_position_id == first_level[0].id
        assert position.slot_index == 0

    @pytest.mark.asyncio
    async def test_every_structure_full_raises(self, session, create_member):
        """No room in any structure, the overflow member stays unplaced."""
        tree = NetworkTree(session, plan=SHALLOW_PLAN)
        sponsor = await create_member(unlocked=2, place=True)
        for _ in range(6):
            member = await create_member(sponsor=sponsor)
            await tree.assign_position(member.id, sponsor.id)

        overflow = await create_member(sponsor=sponsor)
        with pytest.raises(CapacityExceeded) as exc_info:
            await tree.assign_position(overflow.id, sponsor.id)

        assert "Every structure" in str(exc_info.value)
        await session.refresh(overflow)
        assert overflow.network_position_id is None


class TestTraversal:
    """Upline and downline walks."""

    @pytest.mark.asyncio
    async def test_upline_reaches_every_ancestor(self, session, create_member):
        """X -> A -> B: B's upline holds A, then X."""
        tree = NetworkTree(session)
        x = await create_member(place=True)
        a = await create_member(sponsor=x, place=True)
        b = await create_member(sponsor=a, place=True)
        b_position = await position_of(session, b)

        upline = await tree.get_upline(b_position.id)

        assert [p.member_id for p in upline] == [a.id, x.id]
        assert [p.level for p in upline] == [1, 0]
        assert upline[-1].is_root

    @pytest.mark.asyncio
    async def test_upline_length_equals_level(self, session, create_member):
        """Spilled positions climb through the sponsor's referrals."""
        tree = NetworkTree(session)
        sponsor = await create_member(place=True)
        positions = []
        for _ in range(4):
            member = await create_member(sponsor=sponsor)
            positions.append(await tree.assign_position(member.id, sponsor.id))

        upline = await tree.get_upline(positions[3].id)

        assert len(upline) == positions[3].level == 2
        assert upline[0].id == positions[0].id
        assert upline[-1].member_id == sponsor.id

    @pytest.mark.asyncio
    async def test_upline_of_root_is_empty(self, session, create_member):
        """A root has no ancestors."""
        tree = NetworkTree(session)
        root = await create_member()
        position = await tree.assign_position(root.id, None)

        assert await tree.get_upline(position.id) == []

    @pytest.mark.asyncio
    async def test_cycle_raises_integrity_violation(self, session, create_member):
        """Corrupted parent pointers are detected, never looped over."""
        owner = await create_member(place=True)
        root = await position_of(session, owner)
        a = await create_member()
        b = await create_member()

        first = NetworkPosition(
            member_id=a.id, sponsor_member_id=owner.id, structure_number=1,
            parent_position_id=root.id, level=1, slot_index=0,
        )
        session.add(first)
        await session.flush()
        second = NetworkPosition(
            member_id=b.id, sponsor_member_id=owner.id, structure_number=1,
            parent_position_id=first.id, level=2, slot_index=0,
        )
        session.add(second)
        await session.flush()
        first.parent_position_id = second.id
        await session.commit()

        tree = NetworkTree(session)
        with pytest.raises(IntegrityViolation):
            await tree.get_upline(first.id)

    @pytest.mark.asyncio
    async def test_downline_counts_per_level(self, session, create_member):
        """Counts are relative to the starting position."""
        tree = NetworkTree(session)
        sponsor = await create_member(place=True)
        for _ in range(5):
            member = await create_member(sponsor=sponsor)
            await tree.assign_position(member.id, sponsor.id)

        root = await position_of(session, sponsor)
        counts = await tree.get_downline_counts(root.id)

        assert counts == {1: 3, 2: 2, 3: 0, 4: 0, 5: 0, 6: 0}

    @pytest.mark.asyncio
    async def test_downline_includes_indirect_referrals(self, session, create_member):
        """X's downline holds B although A sponsored it."""
        tree = NetworkTree(session)
        x = await create_member(place=True)
        a = await create_member(sponsor=x, place=True)
        await create_member(sponsor=a, place=True)
        x_position = await position_of(session, x)

        counts = await tree.get_downline_counts(x_position.id)

        assert counts == {1: 1, 2: 1, 3: 0, 4: 0, 5: 0, 6: 0}
        assert await tree.get_downline_count(x.id) == 2
        assert await tree.get_downline_count(a.id) == 1

    @pytest.mark.asyncio
    async def test_unplaced_member_has_empty_downline(self, session, create_member):
        """Nothing sits below a member without a position."""
        tree = NetworkTree(session)
        member = await create_member()

        assert await tree.get_downline_count(member.id) == 0

        with pytest.raises(MemberNotFound):
            await tree.get_downline_count(9999)

    @pytest.mark.asyncio
    async def test_structure_fill_counts_downline_blocks(self, session, create_member):
        """Structure n holds the n-th block of the breadth-first downline."""
        tree = NetworkTree(session)
        sponsor = await create_member(place=True)
        for _ in range(4):
            member = await create_member(sponsor=sponsor)
            await tree.assign_position(member.id, sponsor.id)

        assert await tree.get_structure_fill(sponsor.id, 1) == 4
        assert await tree.get_structure_fill(sponsor.id, 2) == 0
        assert not await tree.is_structure_complete(sponsor.id, 1)

    @pytest.mark.asyncio
    async def test_full_block_completes_structure(self, session, create_member):
        """Three members complete a one-level structure."""
        tree = NetworkTree(session, plan=SHALLOW_PLAN)
        sponsor = await create_member(unlocked=2, place=True)
        for _ in range(4):
            member = await create_member(sponsor=sponsor)
            await tree.assign_position(member.id, sponsor.id)

        assert await tree.is_structure_complete(sponsor.id, 1)
        assert await tree.get_structure_fill(sponsor.id, 2) == 1
        assert not await tree.is_structure_complete(sponsor.id, 2)


class TestConcurrentPlacement:
    """Parallel signups under one sponsor."""

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_parallel_signups_never_share_a_slot(self, tmp_path):
        """Every concurrent placement gets a distinct (parent, slot)."""
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'network.db'}",
            poolclass=NullPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_maker = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

        async with session_maker() as setup:
            sponsor = Member()
            setup.add(sponsor)
            await setup.commit()
            await NetworkTree(setup).assign_position(sponsor.id, None)
            members = [Member(sponsor_id=sponsor.id) for _ in range(12)]
            setup.add_all(members)
            await setup.commit()
            sponsor_id = sponsor.id
            member_ids = [m.id for m in members]

        async def place(member_id: int) -> tuple[int | None, int | None, int]:
            async with session_maker() as session:
                position = await NetworkTree(session).assign_position(
                    member_id, sponsor_id
                )
                return position.parent_position_id, position.slot_index, position.level

        try:
            results = await asyncio.gather(*(place(mid) for mid in member_ids))
        finally:
            await engine.dispose()

        claims = [(parent, slot) for parent, slot, _ in results]
        assert len(set(claims)) == len(claims)
        levels = sorted(level for _, _, level in results)
        assert levels == [1] * 3 + [2] * 9
