"""
Shared types for helperjobs.

These are the vocabulary shared by configuration, the identity registry,
depreciation accounting and the job engine.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional

# Token amounts are integers in the smallest unit; the helper token has two
# decimals, so one whole token is 100 units.
TOKEN_DECIMALS = 2
ONE_TOKEN = 10**TOKEN_DECIMALS


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO datetime string, returning None for empty values."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO string (None passes through)."""
    return value.isoformat() if value else None


class Badge(IntEnum):
    """Reputation tier earned through completed jobs.

    Ordered so that comparisons express seniority (``Badge.GOLD > Badge.BRONZE``).
    """

    NONE = 0
    BRONZE = 1
    SILVER = 2
    GOLD = 3

    @classmethod
    def parse(cls, value) -> "Badge":
        """Accept a Badge, its name (any case) or its integer level."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Invalid badge: {value!r}") from None
        return cls(int(value))
