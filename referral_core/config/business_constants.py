"""
Business logic constants for the referral network.

Central location for the compensation plan. Every number here comes from
settings so policy changes never touch the engines.
"""

from dataclasses import dataclass

from referral_core.config.settings import settings
from referral_core.models.enums import IntentType


BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class CompensationPlan:
    """
    Compensation plan parameters.

    All amounts are integer minor units of the settlement currency,
    all rates are basis points.
    """

    fan_out: int = 3
    structure_depth: int = 6
    max_structures: int = 6
    referrals_per_structure: int = 3
    base_rate_bps: int = 1000
    rate_step_bps: int = 100
    elite_rate_bps: int = 1600
    subscription_price: int = 199_000_000
    direct_bonus_amount: int = 249_500_000
    currency: str = "USDC"

    @property
    def structure_capacity(self) -> int:
        """Positions per structure: 3 + 9 + ... + 3^depth (1,092 by default)."""
        return sum(self.fan_out ** level for level in range(1, self.structure_depth + 1))

    @property
    def downline_limit(self) -> int:
        """Downline positions covered by every structure together (6,552 by default)."""
        return self.max_structures * self.structure_capacity

    def structure_for_ordinal(self, ordinal: int) -> int:
        """
        Structure holding the n-th downline position (0-based, breadth-first).

        Structure 1 covers the first structure_capacity positions, structure 2
        the next block, and so on. May exceed max_structures.
        """
        return ordinal // self.structure_capacity + 1

    def completed_structures(self, downline_count: int) -> int:
        """Structures filled to capacity by a downline of this size."""
        return min(self.max_structures, downline_count // self.structure_capacity)

    def structure_fill(self, downline_count: int, structure_number: int) -> int:
        """Positions of one structure taken by a downline of this size."""
        start = (structure_number - 1) * self.structure_capacity
        return max(0, min(downline_count - start, self.structure_capacity))

    def rate_for_structure(self, structure_number: int) -> int:
        """Tiered rate of one structure: 10% + (n - 1)%."""
        if structure_number < 1 or structure_number > self.max_structures:
            raise ValueError(f"Unknown structure number: {structure_number}")
        return self.base_rate_bps + (structure_number - 1) * self.rate_step_bps

    def unlocked_for_referrals(self, direct_referral_count: int) -> int:
        """Max k such that direct_referral_count >= k * 3, capped at max_structures."""
        if direct_referral_count <= 0:
            return 0
        return min(
            self.max_structures,
            direct_referral_count // self.referrals_per_structure,
        )

    def is_elite(self, completed_structure_count: int) -> bool:
        """Elite status once every structure is completed."""
        return completed_structure_count >= self.max_structures


def plan_from_settings() -> CompensationPlan:
    """Build the compensation plan from application settings."""
    return CompensationPlan(
        fan_out=settings.tree_fan_out,
        structure_depth=settings.structure_depth,
        max_structures=settings.max_structures,
        referrals_per_structure=settings.referrals_per_structure,
        base_rate_bps=settings.base_rate_bps,
        rate_step_bps=settings.rate_step_bps,
        elite_rate_bps=settings.elite_rate_bps,
        subscription_price=settings.monthly_subscription_amount,
        direct_bonus_amount=settings.direct_bonus_amount,
        currency=settings.settlement_currency,
    )


# Expected amount per payment intent type (minor units)
INTENT_AMOUNTS = {
    IntentType.INITIAL_UNLOCK: settings.initial_unlock_amount,
    IntentType.MONTHLY_SUBSCRIPTION: settings.monthly_subscription_amount,
    IntentType.WEEKLY_SUBSCRIPTION: settings.weekly_subscription_amount,
}

# Subscription coverage per intent type (days)
SUBSCRIPTION_PERIOD_DAYS = {
    IntentType.INITIAL_UNLOCK: 30,
    IntentType.MONTHLY_SUBSCRIPTION: 30,
    IntentType.WEEKLY_SUBSCRIPTION: 7,
}

DEFAULT_PLAN = plan_from_settings()
