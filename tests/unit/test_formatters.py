"""
Tests for display formatting of minor-unit amounts and rates.
"""

from decimal import Decimal

from referral_core.utils.formatters import format_amount, format_rate, minor_to_decimal


class TestFormatAmount:
    """Minor units to display strings."""

    def test_direct_bonus(self):
        """249.50 USDC."""
        assert format_amount(249_500_000) == "249.50 USDC"

    def test_thousands_separator(self):
        """Large amounts are grouped."""
        assert format_amount(1_234_567_890_000) == "1,234,567.89 USDC"

    def test_rounds_down(self):
        """Display never rounds up."""
        assert format_amount(1_999_999) == "1.99 USDC"

    def test_custom_currency(self):
        """Cents with two decimals."""
        assert format_amount(19_900, currency="EUR", decimals=2) == "199.00 EUR"

    def test_zero(self):
        """Zero is formatted too."""
        assert format_amount(0) == "0.00 USDC"


class TestMinorToDecimal:
    """Exact conversion."""

    def test_micro_units(self):
        """Six decimals by default."""
        assert minor_to_decimal(199_000_000) == Decimal("199")
        assert minor_to_decimal(1) == Decimal("0.000001")


class TestFormatRate:
    """Basis points to percentages."""

    def test_rates(self):
        """Two decimals."""
        assert format_rate(1000) == "10.00%"
        assert format_rate(1050) == "10.50%"
        assert format_rate(1600) == "16.00%"
