"""
Payout batch repository.

Data access layer for PayoutBatch model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.payout_batch import PayoutBatch
from referral_core.repositories.base import BaseRepository


class PayoutBatchRepository(BaseRepository[PayoutBatch]):
    """Payout batch repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout batch repository."""
        super().__init__(PayoutBatch, session)
