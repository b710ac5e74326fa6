"""
Standard type definitions for database models.

Provides consistent types for monetary and timestamp fields across all models.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime
from sqlalchemy.types import TypeDecorator

# Standard money type: integer minor units of the settlement currency
# (cents for fiat, micro-USDC for stablecoin). Never floats, never Decimal.
MoneyType = BigInteger


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp.

    Backends that drop tzinfo (SQLite) return naive values; they are
    re-attached to UTC on load so comparisons with datetime.now(UTC) work.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("Naive datetime is not allowed, use UTC")
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
