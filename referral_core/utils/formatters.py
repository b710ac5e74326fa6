"""
Formatting utilities.

Presentation-only helpers. Amounts are persisted as integer minor units;
conversion to human-readable strings happens here and nowhere else.
"""

from decimal import ROUND_DOWN, Decimal

from referral_core.config.settings import settings


def minor_to_decimal(amount: int, decimals: int | None = None) -> Decimal:
    """
    Convert minor units to a Decimal amount.

    Args:
        amount: Amount in minor units
        decimals: Currency decimals (default from settings)

    Returns:
        Decimal in major units
    """
    if decimals is None:
        decimals = settings.currency_decimals
    return Decimal(amount).scaleb(-decimals)


def format_amount(
    amount: int,
    currency: str | None = None,
    decimals: int | None = None,
    places: int = 2,
) -> str:
    """
    Format minor units for display.

    Args:
        amount: Amount in minor units
        currency: Currency code suffix (default from settings)
        decimals: Currency decimals (default from settings)
        places: Digits shown after the decimal point

    Returns:
        Formatted string, e.g. "249.50 USDC"
    """
    if currency is None:
        currency = settings.settlement_currency
    value = minor_to_decimal(amount, decimals)
    quantum = Decimal(1).scaleb(-places)
    return f"{value.quantize(quantum, rounding=ROUND_DOWN):,} {currency}"


def format_rate(rate_bps: int) -> str:
    """Format basis points as a percentage string."""
    return f"{Decimal(rate_bps) / 100:.2f}%"
