"""Integration tests for member activation and subscription renewals."""

from datetime import UTC, datetime, timedelta

import pytest

from referral_core.config.business_constants import CompensationPlan
from referral_core.models import NetworkPosition, PaymentIntent, PaymentIntentStatus
from referral_core.models.enums import IntentType
from referral_core.services.activation_service import ActivationService
from referral_core.utils.exceptions import (
    CapacityExceeded,
    InvalidStateTransition,
    MemberNotFound,
    SponsorNotPlaced,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def create_intent(session):
    """Factory creating committed payment intents."""

    async def _create(
        member,
        intent_type: IntentType = IntentType.INITIAL_UNLOCK,
        status: str = PaymentIntentStatus.COMPLETED.value,
    ) -> PaymentIntent:
        intent = PaymentIntent(
            member_id=member.id,
            intent_type=intent_type.value,
            expected_amount=100,
            received_amount=100 if status == PaymentIntentStatus.COMPLETED.value else 0,
            deposit_address=f"addr-{member.id}-{intent_type.value}",
            status=status,
            expires_at=NOW + timedelta(hours=1),
        )
        session.add(intent)
        await session.commit()
        return intent

    return _create


class TestActivateMember:
    """First qualifying payment."""

    @pytest.mark.asyncio
    async def test_activation_places_member_and_pays_sponsor(
        self, session, create_member
    ):
        """Member is placed under its sponsor who earns the direct bonus."""
        sponsor = await create_member(is_active=True, place=True)
        member = await create_member(sponsor=sponsor)

        result = await ActivationService(session).activate_member(member.id, now=NOW)

        sponsor_position = await session.get(NetworkPosition, sponsor.network_position_id)
        assert result.position.sponsor_member_id == sponsor.id
        assert result.position.parent_position_id == sponsor_position.id
        assert result.position.level == 1
        assert result.direct_bonus is not None
        assert result.direct_bonus.referrer_id == sponsor.id
        assert result.direct_bonus.amount == 249_500_000
        assert [q.member_id for q in result.qualifications] == [member.id, sponsor.id]
        assert not result.already_active

        await session.refresh(member)
        assert member.is_active
        assert member.activated_at == NOW
        assert member.subscription_paid_until == NOW + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_activation_is_repeatable(self, session, create_member):
        """Same position, same bonus on a second call."""
        sponsor = await create_member(is_active=True, place=True)
        member = await create_member(sponsor=sponsor)
        service = ActivationService(session)

        first = await service.activate_member(member.id, now=NOW)
        second = await service.activate_member(member.id, now=NOW)

        assert second.already_active
        assert second.position.id == first.position.id
        assert second.direct_bonus.id == first.direct_bonus.id

    @pytest.mark.asyncio
    async def test_root_member_has_no_bonus(self, session, create_member):
        """A member without sponsor becomes a root."""
        root = await create_member()

        result = await ActivationService(session).activate_member(root.id, now=NOW)

        assert result.direct_bonus is None
        assert result.position.level == 0
        assert result.position.is_root

    @pytest.mark.asyncio
    async def test_third_referral_unlocks_sponsor_structure(
        self, session, create_member
    ):
        """Sponsor qualification follows activations."""
        sponsor = await create_member(is_active=True, place=True)
        service = ActivationService(session)

        for _ in range(3):
            member = await create_member(sponsor=sponsor)
            result = await service.activate_member(member.id, now=NOW)

        sponsor_result = result.qualifications[-1]
        assert sponsor_result.unlocked_structure_count == 1
        assert sponsor_result.newly_unlocked == [1]

    @pytest.mark.asyncio
    async def test_whole_upline_is_recalculated(self, session, create_member):
        """X -> A -> B: activating B recalculates A and X."""
        x = await create_member(is_active=True, place=True)
        a = await create_member(sponsor=x, is_active=True, place=True)
        b = await create_member(sponsor=a)

        result = await ActivationService(session).activate_member(b.id, now=NOW)

        assert [q.member_id for q in result.qualifications] == [b.id, a.id, x.id]
        assert result.direct_bonus.referrer_id == a.id

    @pytest.mark.asyncio
    async def test_full_sponsor_leaves_member_inactive(self, session, create_member):
        """A failed placement writes none of the activation fields."""
        plan = CompensationPlan(structure_depth=1, max_structures=1)
        sponsor = await create_member(is_active=True, place=True)
        service = ActivationService(session, plan=plan)
        for _ in range(3):
            member = await create_member(sponsor=sponsor)
            await service.activate_member(member.id, now=NOW)

        overflow = await create_member(sponsor=sponsor)
        with pytest.raises(CapacityExceeded):
            await service.activate_member(overflow.id, now=NOW)

        await session.refresh(overflow)
        assert overflow.is_active is False
        assert overflow.activated_at is None
        assert overflow.subscription_paid_until is None
        assert overflow.network_position_id is None

    @pytest.mark.asyncio
    async def test_unplaced_sponsor_leaves_member_inactive(
        self, session, create_member
    ):
        """Referrals of a sponsor without position are not activated."""
        sponsor = await create_member(is_active=True)
        member = await create_member(sponsor=sponsor)

        with pytest.raises(SponsorNotPlaced):
            await ActivationService(session).activate_member(member.id, now=NOW)

        await session.refresh(member)
        assert not member.is_active
        assert member.network_position_id is None

    @pytest.mark.asyncio
    async def test_unknown_member(self, session):
        """Missing member is reported."""
        with pytest.raises(MemberNotFound):
            await ActivationService(session).activate_member(404)


class TestDeactivateMember:
    """Lapsed subscriptions."""

    @pytest.mark.asyncio
    async def test_sponsor_keeps_unlocked_structures(self, session, create_member):
        """Deactivation lowers the referral count, not the unlocked count."""
        sponsor = await create_member(is_active=True, place=True)
        service = ActivationService(session)
        members = []
        for _ in range(3):
            member = await create_member(sponsor=sponsor)
            await service.activate_member(member.id, now=NOW)
            members.append(member)

        result = await service.deactivate_member(members[0].id)

        assert result.direct_referral_count == 2
        assert result.unlocked_structure_count == 1
        await session.refresh(members[0])
        assert not members[0].is_active
        assert members[0].network_position_id is not None

    @pytest.mark.asyncio
    async def test_root_deactivation_returns_none(self, session, create_member):
        """No sponsor to recalculate."""
        root = await create_member(is_active=True)

        assert await ActivationService(session).deactivate_member(root.id) is None


class TestHandleCompletedIntent:
    """Reaction to reconciled crypto payments."""

    @pytest.mark.asyncio
    async def test_initial_unlock_activates(self, session, create_member, create_intent):
        """Initial unlock runs the full activation."""
        sponsor = await create_member(is_active=True, place=True)
        member = await create_member(sponsor=sponsor)
        intent = await create_intent(member)

        result = await ActivationService(session).handle_completed_intent(
            intent.id, now=NOW
        )

        assert result is not None
        assert result.member_id == member.id
        assert result.direct_bonus is not None

    @pytest.mark.asyncio
    async def test_subscription_extends_coverage(
        self, session, create_member, create_intent
    ):
        """Renewal extends from the current coverage end."""
        member = await create_member(is_active=True)
        member.subscription_paid_until = NOW + timedelta(days=5)
        await session.commit()
        intent = await create_intent(member, IntentType.WEEKLY_SUBSCRIPTION)

        result = await ActivationService(session).handle_completed_intent(
            intent.id, now=NOW
        )

        assert result is None
        await session.refresh(member)
        assert member.subscription_paid_until == NOW + timedelta(days=12)

    @pytest.mark.asyncio
    async def test_lapsed_subscription_restarts_now(
        self, session, create_member, create_intent
    ):
        """Expired coverage restarts from the payment time and reactivates."""
        member = await create_member(is_active=False)
        member.subscription_paid_until = NOW - timedelta(days=10)
        await session.commit()
        intent = await create_intent(member, IntentType.MONTHLY_SUBSCRIPTION)

        await ActivationService(session).handle_completed_intent(intent.id, now=NOW)

        await session.refresh(member)
        assert member.is_active
        assert member.subscription_paid_until == NOW + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_open_intent_is_rejected(self, session, create_member, create_intent):
        """Only completed intents are handled."""
        member = await create_member()
        intent = await create_intent(member, status=PaymentIntentStatus.PENDING.value)

        with pytest.raises(InvalidStateTransition):
            await ActivationService(session).handle_completed_intent(intent.id, now=NOW)
