"""
Tests for payment intent evaluation.

Covers:
- Full, partial and over payment before expiry
- Late payments with and without a grace window
- Expiry of unpaid and underpaid intents
- Completed and swept intents never change
- Chain readings below the recorded amount
"""

from datetime import UTC, datetime, timedelta

from referral_core.models.enums import PaymentIntentStatus
from referral_core.services.reconciliation import evaluate_intent

EXPIRES = datetime(2026, 10, 1, 13, 0, tzinfo=UTC)
BEFORE = EXPIRES - timedelta(minutes=10)
AFTER = EXPIRES + timedelta(minutes=10)


def evaluate(**overrides):
    """Evaluate a pending 100-unit intent with overrides."""
    params = {
        "status": PaymentIntentStatus.PENDING,
        "expected_amount": 100,
        "previously_received": 0,
        "observed_amount": 0,
        "expires_at": EXPIRES,
        "now": BEFORE,
    }
    params.update(overrides)
    return evaluate_intent(**params)


class TestBeforeExpiry:
    """Payments inside the deadline."""

    def test_nothing_received(self):
        """Status is unchanged."""
        result = evaluate()

        assert result.status == PaymentIntentStatus.PENDING
        assert result.received_amount == 0
        assert result.discrepancy is None

    def test_exact_payment_completes(self):
        """received == expected."""
        result = evaluate(observed_amount=100)

        assert result.is_completed
        assert result.overpaid_amount == 0
        assert not result.is_late

    def test_partial_payment_is_underpaid(self):
        """0 < received < expected."""
        result = evaluate(observed_amount=40)

        assert result.status == PaymentIntentStatus.UNDERPAID
        assert result.received_amount == 40

    def test_cumulative_payments_complete(self):
        """An underpaid intent completes when the total reaches the price."""
        result = evaluate(
            status=PaymentIntentStatus.UNDERPAID,
            previously_received=40,
            observed_amount=100,
        )

        assert result.is_completed

    def test_overpayment(self):
        """Surplus is reported."""
        result = evaluate(observed_amount=130)

        assert result.is_completed
        assert result.overpaid_amount == 30


class TestAfterExpiry:
    """Payments past the deadline."""

    def test_unpaid_expires(self):
        """Nothing received by the deadline."""
        assert evaluate(now=AFTER).status == PaymentIntentStatus.EXPIRED

    def test_underpaid_expires(self):
        """A partial payment does not keep the intent open."""
        result = evaluate(
            status=PaymentIntentStatus.UNDERPAID,
            previously_received=40,
            observed_amount=40,
            now=AFTER,
        )

        assert result.status == PaymentIntentStatus.EXPIRED
        assert result.received_amount == 40

    def test_late_payment_without_grace_limit(self):
        """No grace window: completes late until swept."""
        result = evaluate(
            status=PaymentIntentStatus.EXPIRED,
            observed_amount=100,
            now=EXPIRES + timedelta(days=2),
        )

        assert result.is_completed
        assert result.is_late

    def test_late_payment_within_grace(self):
        """Inside the grace window."""
        result = evaluate(
            observed_amount=100, now=AFTER, grace=timedelta(minutes=30)
        )

        assert result.is_completed
        assert result.is_late

    def test_late_payment_after_grace(self):
        """Outside the grace window: expired with a discrepancy."""
        result = evaluate(
            observed_amount=100,
            now=EXPIRES + timedelta(hours=1),
            grace=timedelta(minutes=30),
        )

        assert result.status == PaymentIntentStatus.EXPIRED
        assert "grace window" in result.discrepancy


class TestFinalStates:
    """Completed and swept intents."""

    def test_completed_never_changes(self):
        """Even past expiry."""
        result = evaluate(
            status=PaymentIntentStatus.COMPLETED,
            previously_received=100,
            observed_amount=150,
            now=AFTER,
            is_late=True,
        )

        assert result.is_completed
        assert result.received_amount == 150
        assert result.overpaid_amount == 50
        assert result.is_late

    def test_swept_ignores_new_funds(self):
        """Funds after the sweep are flagged, not applied."""
        result = evaluate(
            status=PaymentIntentStatus.EXPIRED,
            previously_received=20,
            observed_amount=100,
            now=AFTER,
            swept=True,
        )

        assert result.status == PaymentIntentStatus.EXPIRED
        assert result.received_amount == 20
        assert "after the intent was swept" in result.discrepancy


class TestChainReadings:
    """Observation anomalies."""

    def test_lower_reading_keeps_recorded_amount(self):
        """Reorgs and indexer lag never lower received_amount."""
        result = evaluate(
            status=PaymentIntentStatus.UNDERPAID,
            previously_received=60,
            observed_amount=10,
        )

        assert result.received_amount == 60
        assert result.status == PaymentIntentStatus.UNDERPAID
        assert "below recorded" in result.discrepancy
