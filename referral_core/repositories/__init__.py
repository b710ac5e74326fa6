"""
Repositories package.

Persistence contracts (get-by-id, create/update, query-by-status) over
SQLAlchemy async sessions.
"""

from referral_core.repositories.base import BaseRepository
from referral_core.repositories.commission_repository import CommissionRepository
from referral_core.repositories.member_repository import MemberRepository
from referral_core.repositories.payment_intent_repository import PaymentIntentRepository
from referral_core.repositories.payout_batch_repository import PayoutBatchRepository
from referral_core.repositories.position_repository import PositionRepository


__all__ = [
    "BaseRepository",
    "CommissionRepository",
    "MemberRepository",
    "PaymentIntentRepository",
    "PayoutBatchRepository",
    "PositionRepository",
]
