"""Engine configuration for helperjobs.

``MarketConfig`` holds the economic constants of the marketplace: the
administrator identity, the registration grant, the inactivity window and
the badge/depreciation schedule. It is a plain dataclass so the engine can be
constructed without any environment; the HTTP service builds one from
``helperjobs.api.config.Settings``.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict

from helperjobs.types import ONE_TOKEN, Badge


def _default_badge_thresholds() -> Dict[int, Badge]:
    return {10: Badge.BRONZE, 30: Badge.SILVER, 50: Badge.GOLD}


def _default_depreciation_rates() -> Dict[Badge, int]:
    return {Badge.NONE: 5, Badge.BRONZE: 3, Badge.SILVER: 2, Badge.GOLD: 1}


@dataclass
class MarketConfig:
    """Economic and authorization settings for a marketplace.

    Attributes:
        administrator_id: Account allowed to verify users and settle disputes
        engine_account: Ledger account holding escrow, grants and fees
        registration_grant: Units granted to an account on enrollment
        initial_supply: Units minted to the engine by the in-memory ledger
        inactivity_period: Idle time after which depreciation applies
        badge_thresholds: completed-job count -> badge reached at that count
        depreciation_rates: badge -> integer percent of balance charged
        max_rating: Highest star rating a creator can give
        max_description_length: Longest accepted job description
    """

    administrator_id: str = "admin"
    engine_account: str = "helperjobs"
    registration_grant: int = 100 * ONE_TOKEN
    initial_supply: int = 10_000_000 * ONE_TOKEN
    inactivity_period: timedelta = timedelta(days=90)
    badge_thresholds: Dict[int, Badge] = field(default_factory=_default_badge_thresholds)
    depreciation_rates: Dict[Badge, int] = field(default_factory=_default_depreciation_rates)
    max_rating: int = 5
    max_description_length: int = 1000

    def __post_init__(self):
        if not self.administrator_id:
            raise ValueError("administrator_id cannot be empty")
        if not self.engine_account:
            raise ValueError("engine_account cannot be empty")
        if self.engine_account == self.administrator_id:
            raise ValueError("engine_account must differ from administrator_id")
        if self.registration_grant < 0:
            raise ValueError("registration_grant cannot be negative")
        if self.initial_supply < 0:
            raise ValueError("initial_supply cannot be negative")
        if self.inactivity_period <= timedelta(0):
            raise ValueError("inactivity_period must be positive")
        if self.max_rating < 0:
            raise ValueError("max_rating cannot be negative")
        if self.max_description_length < 1:
            raise ValueError("max_description_length must be positive")

        self.badge_thresholds = {
            int(count): Badge.parse(badge) for count, badge in self.badge_thresholds.items()
        }
        previous = Badge.NONE
        for count in sorted(self.badge_thresholds):
            badge = self.badge_thresholds[count]
            if count < 1:
                raise ValueError(f"Badge threshold must be positive, got {count}")
            if badge <= previous:
                raise ValueError("Badge thresholds must raise the badge at each step")
            previous = badge

        self.depreciation_rates = {
            Badge.parse(badge): int(rate) for badge, rate in self.depreciation_rates.items()
        }
        missing = [b.name for b in Badge if b not in self.depreciation_rates]
        if missing:
            raise ValueError(f"Missing depreciation rate for: {', '.join(missing)}")
        for badge, rate in self.depreciation_rates.items():
            if not 0 <= rate <= 100:
                raise ValueError(f"Depreciation rate for {badge.name} must be 0-100, got {rate}")

    def rate_for(self, badge: Badge) -> int:
        """Depreciation percentage for a badge."""
        return self.depreciation_rates[Badge.parse(badge)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "administrator_id": self.administrator_id,
            "engine_account": self.engine_account,
            "registration_grant": self.registration_grant,
            "initial_supply": self.initial_supply,
            "inactivity_period_seconds": int(self.inactivity_period.total_seconds()),
            "badge_thresholds": {
                str(count): badge.name for count, badge in sorted(self.badge_thresholds.items())
            },
            "depreciation_rates": {
                badge.name: rate for badge, rate in sorted(self.depreciation_rates.items())
            },
            "max_rating": self.max_rating,
            "max_description_length": self.max_description_length,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketConfig":
        """Create from dictionary, falling back to defaults for missing keys."""
        kwargs: Dict[str, Any] = {}
        for key in (
            "administrator_id",
            "engine_account",
            "registration_grant",
            "initial_supply",
            "max_rating",
            "max_description_length",
        ):
            if key in data:
                kwargs[key] = data[key]
        if "inactivity_period_seconds" in data:
            kwargs["inactivity_period"] = timedelta(seconds=data["inactivity_period_seconds"])
        if "badge_thresholds" in data:
            kwargs["badge_thresholds"] = dict(data["badge_thresholds"])
        if "depreciation_rates" in data:
            kwargs["depreciation_rates"] = dict(data["depreciation_rates"])
        return cls(**kwargs)
