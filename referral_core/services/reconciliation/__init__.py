"""
Reconciliation module.

Module Structure:
- interfaces.py: ChainObserver contract
- evaluator.py: Pure intent status transition
- monitor.py: ReconciliationMonitor (persistence and batch helpers)
"""

from .evaluator import IntentEvaluation, evaluate_intent
from .interfaces import ChainObserver
from .monitor import ReconciliationMonitor


__all__ = [
    "ChainObserver",
    "IntentEvaluation",
    "ReconciliationMonitor",
    "evaluate_intent",
]
