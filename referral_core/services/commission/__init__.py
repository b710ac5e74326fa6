"""
Commission module.

Module Structure:
- snapshot.py: Immutable network view for period computations
- calculator.py: Residual and direct bonus computation
"""

from .calculator import CommissionCalculator, residual_lines, structure_residual
from .snapshot import MemberState, NetworkSnapshot


__all__ = [
    "CommissionCalculator",
    "MemberState",
    "NetworkSnapshot",
    "residual_lines",
    "structure_residual",
]
