"""
Reconciliation - Interfaces Module.

Minimal contract for reading deposits from a chain indexer or node.
"""

from typing import Protocol


class ChainObserver(Protocol):
    """Read-only view of confirmed deposits."""

    async def get_received_amount(self, deposit_address: str) -> int:
        """Cumulative confirmed amount received at an address, in minor units."""
        ...
