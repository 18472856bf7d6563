"""
Inactivity depreciation.

An account idle for at least ``MarketConfig.inactivity_period`` pays a fee
the next time it makes a state-changing call: an integer percentage of its
current balance, chosen by badge (5/3/2/1 % for none/bronze/silver/gold),
truncated toward zero. The fee goes to the engine account and is not tied
to any job.

The call must be able to cover the fee *and* its own expense (e.g. the
reward about to be escrowed): both the balance and the allowance granted to
the engine are checked against ``fee + other_expense`` before anything
moves. Settling the fee refreshes the account's activity, which restarts
the countdown.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from helperjobs.config import MarketConfig
from helperjobs.identity.service import IdentityService
from helperjobs.ledger.service import LedgerService
from helperjobs.types import Badge, utc_now

logger = logging.getLogger(__name__)


def depreciation_amount(balance: int, rate: int) -> int:
    """Fee for ``balance`` at ``rate`` percent, truncated toward zero."""
    if balance <= 0:
        return 0
    return balance * rate // 100


@dataclass(frozen=True)
class DepreciationQuote:
    """What a call by ``account_id`` owes for inactivity right now."""

    account_id: str
    dormant: bool
    badge: Badge
    rate: int
    balance: int
    amount: int
    other_expense: int = 0

    @property
    def required(self) -> int:
        """Balance and allowance the call needs: fee plus its own expense."""
        return self.amount + self.other_expense

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "dormant": self.dormant,
            "badge": self.badge.name,
            "rate": self.rate,
            "balance": self.balance,
            "amount": self.amount,
            "other_expense": self.other_expense,
            "required": self.required,
        }


class DepreciationService:
    """Quotes and settles inactivity fees.

    Args:
        identity: Registry providing activity timestamps and badges
        ledger: Ledger service used to check headroom and collect the fee
        config: Marketplace configuration (inactivity period, rates)
        clock: Returns the current time; defaults to UTC wall clock
    """

    def __init__(
        self,
        identity: IdentityService,
        ledger: LedgerService,
        config: Optional[MarketConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.identity = identity
        self.ledger = ledger
        self.config = config or MarketConfig()
        self._clock = clock or utc_now

    def quote(self, account_id: str, other_expense: int = 0) -> DepreciationQuote:
        """Compute the fee a call would be charged, without side effects."""
        if other_expense < 0:
            raise ValueError("other_expense cannot be negative")

        account = self.identity.get_account(account_id)
        dormant = account.is_dormant(self._clock(), self.config.inactivity_period)
        rate = self.config.rate_for(account.badge)
        balance = self.ledger.balance_of(account_id)
        amount = depreciation_amount(balance, rate) if dormant else 0

        quote = DepreciationQuote(
            account_id=account_id,
            dormant=dormant,
            badge=account.badge,
            rate=rate,
            balance=balance,
            amount=amount,
            other_expense=other_expense,
        )
        logger.debug(f"Depreciation quote: {quote}")
        return quote

    def settle(self, account_id: str, other_expense: int = 0) -> DepreciationQuote:
        """Charge the inactivity fee if the account is dormant.

        Active accounts are left untouched. For a dormant account, balance
        and allowance must both cover ``fee + other_expense``; the fee is
        then collected and the account's activity refreshed.

        Raises:
            InsufficientFundsError: If the balance is below fee + other_expense
            InsufficientAllowanceError: If the allowance is below fee + other_expense
        """
        quote = self.quote(account_id, other_expense)
        if not quote.dormant:
            return quote

        self.ledger.require_headroom(account_id, quote.required)
        self.ledger.collect(account_id, quote.amount)
        self.identity.record_activity(account_id)
        logger.info(
            f"Charged {quote.amount} units depreciation to {account_id} "
            f"({quote.rate}% of {quote.balance}, badge {quote.badge.name})"
        )
        return quote
