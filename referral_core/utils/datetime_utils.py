"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def period_of(moment: datetime) -> str:
    """
    Settlement period label of a moment.

    Args:
        moment: Timezone-aware datetime

    Returns:
        Period in YYYY-MM format (UTC)
    """
    return moment.astimezone(UTC).strftime("%Y-%m")


def ensure_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def previous_period_end(moment: datetime) -> datetime:
    """
    Last instant of the month before the one containing moment.

    Args:
        moment: Timezone-aware datetime

    Returns:
        End of the previous settlement period (UTC)
    """
    month_start = moment.astimezone(UTC).replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    )
    return month_start - timedelta(microseconds=1)
