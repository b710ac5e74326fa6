"""
Payout Service - Interfaces Module.

Minimal contract the payout processor needs from a payment provider
(bank API, stablecoin wallet). Concrete SDK adapters live outside the core.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class TransferResult:
    """Outcome reported by the provider."""

    success: bool
    external_ref: str | None = None
    error: str | None = None


class TransferExecutor(Protocol):
    """Payment provider used to settle commissions."""

    async def transfer(
        self,
        destination: str,
        amount: int,
        currency: str,
        idempotency_key: str,
    ) -> TransferResult:
        """
        Send a payout.

        Returns a failed TransferResult (or raises TransferFailed) when the
        provider rejected the transfer; raises TransferAmbiguous when the
        outcome is unknown.
        """
        ...

    async def get_available_balance(self, currency: str) -> int:
        """Funds available for payouts, in minor units."""
        ...

    async def find_transfer(self, idempotency_key: str) -> TransferResult | None:
        """Look a transfer up in the provider's log, None if never executed."""
        ...
