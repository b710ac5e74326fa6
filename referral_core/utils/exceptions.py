"""
Exception handling utilities.

Defines the error taxonomy of the referral core and the categories used to
decide how a failure is handled.
"""


class ReferralCoreError(Exception):
    """Base class for all referral core errors."""

    pass


# ========================================================================
# NETWORK
# ========================================================================

class CapacityExceeded(ReferralCoreError):
    """Every placeable structure of the sponsor is full (or not unlocked yet)."""

    def __init__(self, sponsor_id: int, message: str | None = None) -> None:
        self.sponsor_id = sponsor_id
        super().__init__(
            message or f"No free position in any unlocked structure of sponsor {sponsor_id}"
        )


class IntegrityViolation(ReferralCoreError):
    """
    Corrupted network data (cycle, over-long chain, broken level sequence).

    Fatal: surfaced for operator intervention, never repaired automatically.
    """

    def __init__(self, message: str, position_id: int | None = None) -> None:
        self.position_id = position_id
        super().__init__(message)


class PlacementConflict(ReferralCoreError):
    """Slot claim kept losing races after every bounded retry."""

    def __init__(self, member_id: int, attempts: int) -> None:
        self.member_id = member_id
        self.attempts = attempts
        super().__init__(
            f"Could not place member {member_id} after {attempts} claim attempts"
        )


class SponsorNotPlaced(ReferralCoreError):
    """Sponsor has no network position to place referrals under."""

    def __init__(self, sponsor_id: int) -> None:
        self.sponsor_id = sponsor_id
        super().__init__(f"Sponsor {sponsor_id} has no network position")


class MemberNotFound(ReferralCoreError):
    """Member does not exist."""

    def __init__(self, member_id: int) -> None:
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


# ========================================================================
# PAYOUTS
# ========================================================================

class RecordNotFound(ReferralCoreError):
    """Commission record or payment intent does not exist."""

    pass


class InvalidStateTransition(ReferralCoreError):
    """Requested status change is not allowed from the current status."""

    pass


class DestinationMissing(ReferralCoreError):
    """Member has no payout destination configured."""

    pass


class TransferFailed(ReferralCoreError):
    """External transfer returned a failure. Retryable."""

    pass


class TransferAmbiguous(ReferralCoreError):
    """
    Transfer outcome is unknown (timeout, lost response).

    Must be reconciled against the provider's transaction log before any
    retry, otherwise the member could be paid twice.
    """

    pass


class RetryLimitExceeded(ReferralCoreError):
    """Record exhausted its retries and needs manual review."""

    pass


class ManualNoteRequired(ReferralCoreError):
    """Manual completion attempted without a justification."""

    pass


# Exception categories based on handling strategy

# Must raise - block user-visible state changes or need an operator
MUST_RAISE = (
    CapacityExceeded,
    IntegrityViolation,
    MemberNotFound,
    PlacementConflict,
    SponsorNotPlaced,
)


def is_retryable(exc: Exception) -> bool:
    """
    Check if a payout failure may be retried automatically.

    Args:
        exc: Exception to check

    Returns:
        True for plain transfer failures, False for ambiguous outcomes
    """
    return isinstance(exc, TransferFailed)


def must_raise(exc: Exception) -> bool:
    """
    Check if exception must be raised to the caller.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be raised
    """
    return isinstance(exc, MUST_RAISE)
