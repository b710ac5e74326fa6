"""
Commission calculator.

Monthly residual commissions and one-time direct bonuses. All math is in
integer minor units; rates are applied with floor division so a residual
never exceeds active_count * price * rate.
"""

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import (
    BPS_DENOMINATOR,
    DEFAULT_PLAN,
    CompensationPlan,
)
from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import CommissionStatus, CommissionType
from referral_core.repositories.commission_repository import CommissionRepository
from referral_core.repositories.member_repository import MemberRepository
from referral_core.services.commission.snapshot import MemberState, NetworkSnapshot
from referral_core.utils.datetime_utils import period_of, utc_now
from referral_core.utils.db_decorators import with_rollback_on_error
from referral_core.utils.exceptions import IntegrityViolation, MemberNotFound
from referral_core.utils.formatters import format_amount, format_rate


def structure_residual(active_count: int, price: int, rate_bps: int) -> int:
    """
    Residual of one structure.

    Args:
        active_count: Active members placed in the structure
        price: Subscription price in minor units
        rate_bps: Structure rate in basis points

    Returns:
        Amount in minor units, rounded down
    """
    return active_count * price * rate_bps // BPS_DENOMINATOR


def residual_lines(
    snapshot: NetworkSnapshot,
    member: MemberState,
    plan: CompensationPlan = DEFAULT_PLAN,
) -> list[dict[str, Any]]:
    """
    Per-structure residual breakdown of one member.

    Structure n holds the n-th block of structure_capacity members of the
    breadth-first downline. Elite members (every structure full) earn the
    flat elite rate on each unlocked structure instead of the tiered
    schedule.

    Args:
        snapshot: Network snapshot
        member: Earning member
        plan: Compensation plan

    Returns:
        One line per unlocked structure
    """
    downline = snapshot.downline(member.id, plan.downline_limit)
    elite = plan.is_elite(plan.completed_structures(len(downline)))
    unlocked = min(member.unlocked_structure_count, plan.max_structures)
    capacity = plan.structure_capacity

    lines = []
    for structure_number in range(1, unlocked + 1):
        rate_bps = (
            plan.elite_rate_bps if elite
            else plan.rate_for_structure(structure_number)
        )
        block = downline[(structure_number - 1) * capacity:structure_number * capacity]
        active_count = sum(1 for member_id in block if snapshot.is_active(member_id))
        lines.append({
            "structure": structure_number,
            "active_count": active_count,
            "rate_bps": rate_bps,
            "elite": elite,
            "amount": structure_residual(
                active_count, plan.subscription_price, rate_bps
            ),
        })
    return lines


class CommissionCalculator:
    """Creates residual and direct bonus commission records."""

    def __init__(
        self, session: AsyncSession, plan: CompensationPlan = DEFAULT_PLAN
    ) -> None:
        """Initialize commission calculator."""
        self.session = session
        self.plan = plan
        self.commission_repo = CommissionRepository(session)
        self.member_repo = MemberRepository(session)

    @with_rollback_on_error
    async def compute_monthly_residuals(
        self, period_end: datetime
    ) -> list[CommissionRecord]:
        """
        Create residual commissions for a closing period.

        Re-running for a period only creates the records still missing.

        Args:
            period_end: Moment inside the closing period (usually its
                last instant); the period label is derived from it in UTC

        Returns:
            Records created by this run
        """
        period = period_of(period_end)
        dedupe_key = CommissionRecord.residual_key(period)
        snapshot = await NetworkSnapshot.load(self.session)
        eligible = snapshot.eligible_members()

        already_paid = await self.commission_repo.get_existing_keys(
            dedupe_key, (member.id for member in eligible)
        )

        records = []
        skipped_zero = 0
        for member in eligible:
            if member.id in already_paid:
                continue

            lines = residual_lines(snapshot, member, self.plan)
            amount = sum(line["amount"] for line in lines)
            if amount == 0:
                skipped_zero += 1
                continue

            record = CommissionRecord(
                referrer_id=member.id,
                referred_id=None,
                commission_type=CommissionType.RESIDUAL.value,
                period=period,
                dedupe_key=dedupe_key,
                amount=amount,
                currency=self.plan.currency,
                breakdown=lines,
                status=CommissionStatus.PENDING.value,
                payout_destination=member.payout_destination,
            )
            self.session.add(record)
            records.append(record)
            logger.debug(
                f"Residual {format_amount(amount, self.plan.currency)} for member "
                f"{member.id}: "
                + ", ".join(
                    f"S{line['structure']} {line['active_count']} x "
                    f"{format_rate(line['rate_bps'])}"
                    for line in lines
                ),
                extra={"member_id": member.id, "period": period},
            )

        await self.session.commit()

        logger.info(
            f"Residuals for {period}: {len(records)} created, "
            f"{len(already_paid)} already present, {skipped_zero} zero",
            extra={
                "period": period,
                "created": len(records),
                "existing": len(already_paid),
                "zero": skipped_zero,
                "total": format_amount(sum(r.amount for r in records)),
            },
        )
        return records

    async def compute_direct_bonus(
        self,
        referrer_id: int,
        new_active_referral_id: int,
        now: datetime | None = None,
    ) -> CommissionRecord:
        """
        Create the one-time direct bonus for a newly active referral.

        Idempotent per (referrer, referral): an existing bonus is returned
        unchanged, and a concurrent insert is resolved by the unique
        constraint.

        Args:
            referrer_id: Sponsor earning the bonus
            new_active_referral_id: Referral whose activation earns it
            now: Creation time (defaults to now, sets the period)

        Returns:
            The bonus record

        Raises:
            MemberNotFound: Unknown referrer or referral
            IntegrityViolation: Referral is not sponsored by the referrer
        """
        dedupe_key = CommissionRecord.direct_bonus_key(new_active_referral_id)
        existing = await self.commission_repo.get_by_dedupe_key(referrer_id, dedupe_key)
        if existing is not None:
            return existing

        referrer = await self.member_repo.get_by_id(referrer_id)
        if referrer is None:
            raise MemberNotFound(referrer_id)
        referral = await self.member_repo.get_by_id(new_active_referral_id)
        if referral is None:
            raise MemberNotFound(new_active_referral_id)
        if referral.sponsor_id != referrer_id:
            raise IntegrityViolation(
                f"Member {new_active_referral_id} is not a direct referral "
                f"of member {referrer_id}"
            )

        try:
            record = await self.commission_repo.create(
                referrer_id=referrer_id,
                referred_id=new_active_referral_id,
                commission_type=CommissionType.DIRECT_BONUS.value,
                period=period_of(now or utc_now()),
                dedupe_key=dedupe_key,
                amount=self.plan.direct_bonus_amount,
                currency=self.plan.currency,
                status=CommissionStatus.PENDING.value,
                payout_destination=referrer.payout_destination,
            )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.commission_repo.get_by_dedupe_key(
                referrer_id, dedupe_key
            )
            if existing is None:
                raise
            return existing
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Direct bonus {format_amount(record.amount, record.currency)} "
            f"for member {referrer_id} (referral {new_active_referral_id})",
            extra={
                "referrer_id": referrer_id,
                "referred_id": new_active_referral_id,
                "commission_id": record.id,
            },
        )
        return record
