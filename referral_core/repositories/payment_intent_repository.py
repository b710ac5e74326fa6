"""
Payment intent repository.

Data access layer for PaymentIntent model.
"""

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.enums import PaymentIntentStatus
from referral_core.models.payment_intent import PaymentIntent
from referral_core.repositories.base import BaseRepository


OPEN_STATUSES = tuple(
    status.value for status in PaymentIntentStatus if status.is_open
)


class PaymentIntentRepository(BaseRepository[PaymentIntent]):
    """Payment intent repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payment intent repository."""
        super().__init__(PaymentIntent, session)

    async def get_checkable(self, limit: int) -> list[PaymentIntent]:
        """
        Intents the monitor should poll.

        Open intents plus expired intents not yet swept (a late full
        payment can still complete them). Least recently checked first.

        Args:
            limit: Max intents per pass

        Returns:
            List of intents
        """
        stmt = (
            select(PaymentIntent)
            .where(
                or_(
                    PaymentIntent.status.in_(OPEN_STATUSES),
                    (PaymentIntent.status == PaymentIntentStatus.EXPIRED.value)
                    & PaymentIntent.swept_at.is_(None),
                )
            )
            .order_by(
                PaymentIntent.last_checked_at.asc().nulls_first(),
                PaymentIntent.id,
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_sweepable(self, expired_before: datetime) -> list[PaymentIntent]:
        """
        Unpaid intents whose deadline (grace included) has passed.

        Args:
            expired_before: Intents with expires_at at or before this
                moment are candidates

        Returns:
            Unswept, uncompleted intents
        """
        stmt = (
            select(PaymentIntent)
            .where(
                PaymentIntent.status != PaymentIntentStatus.COMPLETED.value,
                PaymentIntent.swept_at.is_(None),
                PaymentIntent.expires_at <= expired_before,
            )
            .order_by(PaymentIntent.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
