"""
Services package.

Business logic of the referral network core.
"""

from referral_core.services.activation_service import ActivationResult, ActivationService
from referral_core.services.commission import CommissionCalculator, NetworkSnapshot
from referral_core.services.network import NetworkTree
from referral_core.services.payout import (
    BulkPayoutResult,
    PayoutBatchProcessor,
    TransferExecutor,
    TransferResult,
)
from referral_core.services.qualification import QualificationEngine, QualificationResult
from referral_core.services.reconciliation import (
    ChainObserver,
    ReconciliationMonitor,
    evaluate_intent,
)


__all__ = [
    "ActivationResult",
    "ActivationService",
    "BulkPayoutResult",
    "ChainObserver",
    "CommissionCalculator",
    "NetworkSnapshot",
    "NetworkTree",
    "PayoutBatchProcessor",
    "QualificationEngine",
    "QualificationResult",
    "ReconciliationMonitor",
    "TransferExecutor",
    "TransferResult",
    "evaluate_intent",
]
