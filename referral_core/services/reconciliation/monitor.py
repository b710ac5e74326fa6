"""
Reconciliation - Monitor Module.

Passive crypto deposit reconciliation: every check reads the cumulative
amount at the intent's deposit address and applies evaluate_intent. There
is no timer loop here; polling is the job's concern.
"""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import INTENT_AMOUNTS
from referral_core.config.constants import INTENT_MONITOR_BATCH_LIMIT
from referral_core.config.settings import settings
from referral_core.models.enums import IntentType, PaymentIntentStatus
from referral_core.models.payment_intent import PaymentIntent
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.payment_intent_repository import PaymentIntentRepository
from referral_core.services.reconciliation.evaluator import evaluate_intent
from referral_core.services.reconciliation.interfaces import ChainObserver
from referral_core.utils.datetime_utils import utc_now
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.exceptions import MemberNotFound, RecordNotFound
from referral_core.utils.formatters import format_amount


class ReconciliationMonitor:
    """Tracks payment intents against on-chain deposits."""

    def __init__(
        self,
        session: AsyncSession,
        observer: ChainObserver,
        ttl_minutes: int | None = None,
        grace_minutes: int | None = None,
    ) -> None:
        """
        Initialize reconciliation monitor.

        Args:
            session: Database session
            observer: Chain observer
            ttl_minutes: Intent lifetime (default from settings)
            grace_minutes: Late payment grace (default from settings,
                None keeps late payments acceptable until the sweep)
        """
        self.session = session
        self.observer = observer
        self.ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None
            else settings.payment_intent_ttl_minutes
        )
        if grace_minutes is None:
            grace_minutes = settings.late_payment_grace_minutes
        self.grace = timedelta(minutes=grace_minutes) if grace_minutes is not None else None

        self.intent_repo = PaymentIntentRepository(session)
        self.member_repo = MemberRepository(session)

    @with_rollback_on_error
    async def create_intent(
        self,
        member_id: int,
        intent_type: IntentType,
        deposit_address: str,
        now: datetime | None = None,
    ) -> PaymentIntent:
        """
        Open a payment intent with the configured price.

        Args:
            member_id: Paying member
            intent_type: What the payment is for
            deposit_address: Address the member pays to
            now: Creation time (defaults to now)

        Returns:
            Pending intent

        Raises:
            MemberNotFound: Unknown member
        """
        if not await self.member_repo.exists(id=member_id):
            raise MemberNotFound(member_id)

        now = now or utc_now()
        intent_type = IntentType(intent_type)
        intent = await self.intent_repo.create(
            member_id=member_id,
            intent_type=intent_type.value,
            expected_amount=INTENT_AMOUNTS[intent_type],
            received_amount=0,
            deposit_address=deposit_address,
            status=PaymentIntentStatus.PENDING.value,
            expires_at=now + self.ttl,
        )
        await self.session.commit()

        logger.info(
            f"Payment intent {intent.id} opened for member {member_id}: "
            f"{format_amount(intent.expected_amount)} ({intent_type})",
            extra={
                "intent_id": intent.id,
                "member_id": member_id,
                "deposit_address": deposit_address,
            },
        )
        return intent

    @with_rollback_on_error
    async def check_status(
        self, intent_id: int, now: datetime | None = None
    ) -> PaymentIntent:
        """
        Observe deposits and update one intent.

        Args:
            intent_id: Payment intent ID
            now: Evaluation time (defaults to now)

        Returns:
            Updated intent

        Raises:
            RecordNotFound: Unknown intent
        """
        intent = await self.intent_repo.get_by_id(intent_id, for_update=True)
        if intent is None:
            raise RecordNotFound(f"Payment intent {intent_id} not found")
        await self.session.refresh(intent)

        now = now or utc_now()
        observed = await self.observer.get_received_amount(intent.deposit_address)
        await self._apply(intent, observed, now)
        await self.session.commit()
        return intent

    async def check_open_intents(
        self, now: datetime | None = None, limit: int = INTENT_MONITOR_BATCH_LIMIT
    ) -> dict[str, list[int] | int]:
        """
        Check every intent that can still change.

        Args:
            now: Evaluation time (defaults to now)
            limit: Max intents per pass

        Returns:
            Stats with checked and error counts plus the IDs of intents
            completed during this pass
        """
        intents = await self.intent_repo.get_checkable(limit)
        candidates = [(intent.id, intent.status) for intent in intents]

        completed: list[int] = []
        errors = 0
        for intent_id, previous_status in candidates:
            try:
                intent = await self.check_status(intent_id, now)
            except Exception as e:
                logger.error(
                    f"Error checking payment intent {intent_id}: {e}",
                    extra={"intent_id": intent_id},
                )
                errors += 1
                continue

            if (
                intent.status == PaymentIntentStatus.COMPLETED.value
                and previous_status != PaymentIntentStatus.COMPLETED.value
            ):
                completed.append(intent_id)

        return {"checked": len(candidates), "completed": completed, "errors": errors}

    @with_rollback_on_error
    async def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Finalise unpaid intents whose deadline and grace have passed.

        Each intent gets a last observation first so a payment that landed
        just before the sweep still completes.

        Args:
            now: Sweep time (defaults to now)

        Returns:
            Number of swept intents
        """
        now = now or utc_now()
        cutoff = now - self.grace if self.grace is not None else now

        swept = 0
        for intent in await self.intent_repo.get_sweepable(cutoff):
            observed = await self.observer.get_received_amount(intent.deposit_address)
            await self._apply(intent, observed, now)
            if intent.status == PaymentIntentStatus.COMPLETED.value:
                continue

            intent.status = PaymentIntentStatus.EXPIRED.value
            intent.swept_at = now
            swept += 1
            logger.info(
                f"Payment intent {intent.id} swept as expired "
                f"({format_amount(intent.received_amount)} of "
                f"{format_amount(intent.expected_amount)} received)",
                extra={"intent_id": intent.id, "member_id": intent.member_id},
            )

        await self.session.commit()
        return swept

    async def _apply(
        self, intent: PaymentIntent, observed: int, now: datetime
    ) -> None:
        """Evaluate an observation and copy the result onto the intent."""
        previous_status = intent.status_enum
        evaluation = evaluate_intent(
            status=previous_status,
            expected_amount=intent.expected_amount,
            previously_received=intent.received_amount,
            observed_amount=observed,
            expires_at=intent.expires_at,
            now=now,
            is_late=intent.is_late,
            swept=intent.swept_at is not None,
            grace=self.grace,
        )

        intent.status = evaluation.status.value
        intent.received_amount = evaluation.received_amount
        intent.overpaid_amount = evaluation.overpaid_amount
        intent.is_late = evaluation.is_late
        intent.last_checked_at = now

        if evaluation.discrepancy:
            logger.warning(
                f"Payment intent {intent.id} discrepancy: {evaluation.discrepancy}",
                extra={
                    "intent_id": intent.id,
                    "deposit_address": intent.deposit_address,
                    "observed": observed,
                },
            )

        if evaluation.status == previous_status:
            return

        if evaluation.is_completed:
            intent.completed_at = now
            logger.info(
                f"Payment intent {intent.id} completed"
                f"{' late' if evaluation.is_late else ''}: "
                f"{format_amount(evaluation.received_amount)}",
                extra={"intent_id": intent.id, "member_id": intent.member_id},
            )
            if evaluation.overpaid_amount:
                logger.warning(
                    f"Payment intent {intent.id} overpaid by "
                    f"{format_amount(evaluation.overpaid_amount)}",
                    extra={
                        "intent_id": intent.id,
                        "overpaid_amount": evaluation.overpaid_amount,
                    },
                )
        else:
            logger.info(
                f"Payment intent {intent.id}: {previous_status} -> {evaluation.status}",
                extra={"intent_id": intent.id, "received": evaluation.received_amount},
            )
