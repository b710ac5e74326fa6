"""
Dramatiq tasks.

Importing this package declares every actor on the configured broker:
    dramatiq jobs.tasks
"""

from jobs.broker import broker
from jobs.tasks.intent_sweep import sweep_expired_intents
from jobs.tasks.monthly_commissions import compute_monthly_residuals
from jobs.tasks.payment_intent_monitor import monitor_payment_intents
from jobs.tasks.payout_batch import process_payout_batch
from jobs.tasks.payout_reconciliation import reconcile_ambiguous_payouts
from jobs.tasks.qualification_sweep import sweep_qualifications


__all__ = [
    "broker",
    "compute_monthly_residuals",
    "monitor_payment_intents",
    "process_payout_batch",
    "reconcile_ambiguous_payouts",
    "sweep_expired_intents",
    "sweep_qualifications",
]
