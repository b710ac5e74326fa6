"""
Activation service.

Orchestrates what happens when a member's first qualifying payment lands:
activation, placement, qualification and the sponsor's direct bonus.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import (
    DEFAULT_PLAN,
    SUBSCRIPTION_PERIOD_DAYS,
    CompensationPlan,
)
from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import IntentType, PaymentIntentStatus
from referral_core.models.network_position import NetworkPosition
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.payment_intent_repository import PaymentIntentRepository
from referral_core.services.commission import CommissionCalculator
from referral_core.services.network import NetworkTree
from referral_core.services.qualification import QualificationEngine, QualificationResult
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.distributed_lock import DistributedLock
from referral_core.utils.exceptions import (
    InvalidStateTransition,
    MemberNotFound,
    RecordNotFound,
)


@dataclass
class ActivationResult:
    """Outcome of a member activation."""

    member_id: int
    position: NetworkPosition
    qualifications: list[QualificationResult] = field(default_factory=list)
    direct_bonus: CommissionRecord | None = None
    already_active: bool = False


class ActivationService:
    """Member activation and subscription lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        lock: DistributedLock | None = None,
        plan: CompensationPlan = DEFAULT_PLAN,
    ) -> None:
        """Initialize activation service."""
        self.session = session
        self.plan = plan
        self.member_repo = MemberRepository(session)
        self.intent_repo = PaymentIntentRepository(session)
        self.tree = NetworkTree(session, lock=lock, plan=plan)
        self.qualification = QualificationEngine(session, plan)
        self.calculator = CommissionCalculator(session, plan)

    @with_rollback_on_error
    async def activate_member(
        self,
        member_id: int,
        paid_until: datetime | None = None,
        now: datetime | None = None,
    ) -> ActivationResult:
        """
        Activate a member after its first qualifying payment.

        Safe to repeat: placement and the direct bonus are idempotent.
        A first activation commits the subscription fields together with
        the new position, so a placement failure leaves the member
        inactive and unplaced.

        Args:
            member_id: Member to activate
            paid_until: Subscription coverage end (default: 30 days)
            now: Activation time (defaults to now)

        Returns:
            Activation result

        Raises:
            MemberNotFound: Unknown member
            SponsorNotPlaced: Sponsor was never activated
            CapacityExceeded: Sponsor has no free slot
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)

        now = now or utc_now()
        already_active = member.is_active and member.is_placed
        sponsor_id = member.sponsor_id

        updates = {
            "is_active": True,
            "activated_at": member.activated_at or now,
            "subscription_paid_until": paid_until or now + timedelta(
                days=SUBSCRIPTION_PERIOD_DAYS[IntentType.INITIAL_UNLOCK]
            ),
        }

        if member.is_placed:
            position = await self.tree.assign_position(member_id, sponsor_id)
            for key, value in updates.items():
                setattr(member, key, value)
            await self.session.commit()
        else:
            position = await self.tree.assign_position(
                member_id, sponsor_id, member_updates=updates
            )

        qualifications = await self.qualification.recalculate_upline(member_id)
        direct_bonus = None
        if sponsor_id is not None:
            direct_bonus = await self.calculator.compute_direct_bonus(
                sponsor_id, member_id, now=now
            )

        logger.info(
            f"Member {member_id} activated (sponsor {sponsor_id}, "
            f"position {position.id})",
            extra={
                "member_id": member_id,
                "sponsor_id": sponsor_id,
                "position_id": position.id,
                "already_active": already_active,
            },
        )
        return ActivationResult(
            member_id=member_id,
            position=position,
            qualifications=qualifications,
            direct_bonus=direct_bonus,
            already_active=already_active,
        )

    @with_rollback_on_error
    async def deactivate_member(self, member_id: int) -> QualificationResult | None:
        """
        Flag a lapsed subscription.

        The member keeps its position; the sponsor is recalculated but
        never loses unlocked structures.

        Args:
            member_id: Member to deactivate

        Returns:
            Sponsor qualification result, None for the network root
        """
        member = await self.member_repo.get_by_id(member_id)
        if member is None:
            raise MemberNotFound(member_id)

        member.is_active = False
        await self.session.commit()

        logger.info(
            f"Member {member_id} deactivated",
            extra={"member_id": member_id, "sponsor_id": member.sponsor_id},
        )

        if member.sponsor_id is None:
            return None
        return await self.qualification.recalculate(member.sponsor_id)

    @with_rollback_on_error
    async def handle_completed_intent(
        self, intent_id: int, now: datetime | None = None
    ) -> ActivationResult | None:
        """
        React to a completed payment intent.

        Initial unlocks activate the member; subscriptions extend
        subscription_paid_until (reactivating a lapsed member).

        Args:
            intent_id: Completed payment intent ID
            now: Processing time (defaults to now)

        Returns:
            Activation result for initial unlocks, None for renewals

        Raises:
            RecordNotFound: Unknown intent
            InvalidStateTransition: Intent is not completed
        """
        intent = await self.intent_repo.get_by_id(intent_id)
        if intent is None:
            raise RecordNotFound(f"Payment intent {intent_id} not found")
        if intent.status != PaymentIntentStatus.COMPLETED.value:
            raise InvalidStateTransition(
                f"Payment intent {intent_id} is {intent.status}, not completed"
            )

        now = now or utc_now()
        intent_type = IntentType(intent.intent_type)
        coverage = timedelta(days=SUBSCRIPTION_PERIOD_DAYS[intent_type])

        if intent_type == IntentType.INITIAL_UNLOCK:
            return await self.activate_member(
                intent.member_id, paid_until=now + coverage, now=now
            )

        member = await self.member_repo.get_by_id(intent.member_id)
        if member is None:
            raise MemberNotFound(intent.member_id)

        start = max(member.subscription_paid_until or now, now)
        member.subscription_paid_until = start + coverage
        was_active = member.is_active
        member.is_active = True
        await self.session.commit()

        logger.info(
            f"Subscription of member {member.id} extended to "
            f"{member.subscription_paid_until.isoformat()} ({intent_type})",
            extra={"member_id": member.id, "intent_id": intent_id},
        )

        if not was_active and member.is_placed and member.sponsor_id is not None:
            await self.qualification.recalculate(member.sponsor_id)
        return None
