"""
Reconciliation - Evaluator Module.

Pure status transition of a payment intent given what the chain reports.
No I/O: the monitor feeds it observations and persists the outcome.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from referral_core.models.enums import PaymentIntentStatus


@dataclass(frozen=True)
class IntentEvaluation:
    """Result of evaluating one intent observation."""

    status: PaymentIntentStatus
    received_amount: int
    overpaid_amount: int
    is_late: bool
    discrepancy: str | None = None

    @property
    def is_completed(self) -> bool:
        """Intent is fully paid."""
        return self.status == PaymentIntentStatus.COMPLETED


def evaluate_intent(
    *,
    status: PaymentIntentStatus,
    expected_amount: int,
    previously_received: int,
    observed_amount: int,
    expires_at: datetime,
    now: datetime,
    is_late: bool = False,
    swept: bool = False,
    grace: timedelta | None = None,
) -> IntentEvaluation:
    """
    Compute the next state of a payment intent.

    Rules:
    - received >= expected before expiry: completed
    - received >= expected after expiry, not swept, within grace (or no
      grace limit): completed and late
    - 0 < received < expected before expiry: underpaid
    - not fully paid past expiry: expired
    - completed and swept intents never transition again

    Args:
        status: Current status
        expected_amount: Amount due, minor units
        previously_received: Last recorded cumulative amount
        observed_amount: Cumulative amount the chain reports now
        expires_at: Payment deadline
        now: Evaluation time
        is_late: Current late flag
        swept: Intent was finalised by the sweep
        grace: How long after expiry a full payment is honoured
            (None: until the sweep)

    Returns:
        Evaluation with the new status and amounts
    """
    discrepancy = None
    received = observed_amount
    if observed_amount < previously_received:
        # Chain reported less than before (reorg or indexer lag)
        discrepancy = (
            f"Observed amount {observed_amount} below recorded {previously_received}"
        )
        received = previously_received

    overpaid = max(0, received - expected_amount)

    if status == PaymentIntentStatus.COMPLETED:
        return IntentEvaluation(status, received, overpaid, is_late, discrepancy)

    if swept:
        if received > previously_received:
            discrepancy = (
                f"Received {received - previously_received} after the intent was swept"
            )
        return IntentEvaluation(
            status, previously_received, 0, is_late, discrepancy
        )

    fully_paid = received >= expected_amount
    past_expiry = now > expires_at

    if fully_paid and not past_expiry:
        return IntentEvaluation(
            PaymentIntentStatus.COMPLETED, received, overpaid, False, discrepancy
        )

    if fully_paid:
        if grace is None or now <= expires_at + grace:
            return IntentEvaluation(
                PaymentIntentStatus.COMPLETED, received, overpaid, True, discrepancy
            )
        return IntentEvaluation(
            PaymentIntentStatus.EXPIRED,
            received,
            0,
            False,
            discrepancy or f"Full payment arrived after the {grace} grace window",
        )

    if past_expiry:
        return IntentEvaluation(
            PaymentIntentStatus.EXPIRED, received, 0, False, discrepancy
        )

    if received > 0:
        return IntentEvaluation(
            PaymentIntentStatus.UNDERPAID, received, 0, False, discrepancy
        )

    return IntentEvaluation(status, received, 0, False, discrepancy)
