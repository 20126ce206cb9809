"""
Datetime utilities.

Schedule fields are Unix seconds; validity columns are aware UTC
datetimes.
"""

from datetime import UTC, datetime


def from_epoch(ts: int | float) -> datetime:
    """
    Convert Unix seconds to an aware UTC datetime.

    Args:
        ts: Unix timestamp

    Returns:
        Datetime in UTC
    """
    return datetime.fromtimestamp(ts, UTC)
