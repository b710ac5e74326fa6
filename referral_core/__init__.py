"""
Referral network core.

Tree placement, structure qualification, residual and direct bonus
commissions, batch payouts and crypto deposit reconciliation.
"""

__version__ = "1.0.0"
