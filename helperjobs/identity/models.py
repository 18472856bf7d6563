"""Account and reputation data models.

An account moves through two one-way flags: ``verified`` (set by the
administrator) and then ``registered`` (self-service enrollment). Neither is
ever reset. The badge only ever goes up, one threshold at a time.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from helperjobs.types import Badge, format_datetime, parse_datetime


def badge_reached_at(completed_jobs: int, thresholds: Dict[int, Badge]) -> Optional[Badge]:
    """Badge unlocked exactly when the counter reaches ``completed_jobs``.

    Crossings are detected by equality with a threshold, which is sound
    because the counter only ever grows by one.
    """
    return thresholds.get(completed_jobs)


@dataclass
class Account:
    """Per-account identity and reputation record.

    Attributes:
        account_id: Ledger account identifier
        verified: Set once by the administrator
        registered: Set once by the account itself after verification
        last_activity: Time of the account's last state-changing action
        completed_jobs: Jobs completed (and paid) as worker
        badge: Reputation tier derived from completed_jobs
        verified_at: When the account was verified
        registered_at: When the account enrolled
    """

    account_id: str
    verified: bool = False
    registered: bool = False
    last_activity: Optional[datetime] = None
    completed_jobs: int = 0
    badge: Badge = Badge.NONE
    verified_at: Optional[datetime] = None
    registered_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.account_id:
            raise ValueError("account_id cannot be empty")
        self.badge = Badge.parse(self.badge)
        if self.completed_jobs < 0:
            raise ValueError("completed_jobs cannot be negative")
        if self.registered and not self.verified:
            raise ValueError("A registered account must be verified")

    def inactive_for(self, now: datetime) -> Optional[timedelta]:
        """Time since last activity, or None if the account never acted."""
        if self.last_activity is None:
            return None
        return now - self.last_activity

    def is_dormant(self, now: datetime, period: timedelta) -> bool:
        """True once the account has been idle for at least ``period``."""
        idle = self.inactive_for(now)
        return idle is not None and idle >= period

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "account_id": self.account_id,
            "verified": self.verified,
            "registered": self.registered,
            "last_activity": format_datetime(self.last_activity),
            "completed_jobs": self.completed_jobs,
            "badge": self.badge.name,
            "verified_at": format_datetime(self.verified_at),
            "registered_at": format_datetime(self.registered_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        """Create from dictionary."""
        return cls(
            account_id=data["account_id"],
            verified=bool(data.get("verified", False)),
            registered=bool(data.get("registered", False)),
            last_activity=parse_datetime(data.get("last_activity")),
            completed_jobs=int(data.get("completed_jobs", 0)),
            badge=Badge.parse(data.get("badge", "NONE")),
            verified_at=parse_datetime(data.get("verified_at")),
            registered_at=parse_datetime(data.get("registered_at")),
        )
