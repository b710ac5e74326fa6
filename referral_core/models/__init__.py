"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from referral_core.models.base import Base
from referral_core.models.commission import CommissionRecord
from referral_core.models.enums import (
    CommissionStatus,
    CommissionType,
    IntentType,
    PaymentIntentStatus,
    PayoutBatchStatus,
)
from referral_core.models.member import Member
from referral_core.models.network_position import NetworkPosition
from referral_core.models.payment_intent import PaymentIntent
from referral_core.models.payout_batch import PayoutBatch


__all__ = [
    "Base",
    # Network
    "Member",
    "NetworkPosition",
    # Settlement
    "CommissionRecord",
    "PayoutBatch",
    "PaymentIntent",
    # Enums
    "CommissionStatus",
    "CommissionType",
    "IntentType",
    "PaymentIntentStatus",
    "PayoutBatchStatus",
]
