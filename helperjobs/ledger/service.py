"""
Ledger service: the engine's economic checks on top of a token ledger.

All amounts are integer units (``ONE_TOKEN`` = 100 units). Checks follow a
fixed order: the owner's balance first, then the allowance granted to the
engine, so callers always learn about missing funds before missing
authorization.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from helperjobs.errors import EconomicError, HelperJobsError, StateError
from helperjobs.ledger.token import TokenLedger
from helperjobs.types import ONE_TOKEN, TOKEN_DECIMALS

logger = logging.getLogger(__name__)


class LedgerServiceError(HelperJobsError):
    """Base exception for ledger service errors."""

    pass


class InsufficientFundsError(LedgerServiceError, EconomicError):
    """The account's balance is below the required amount."""

    def __init__(self, required: int, available: Optional[int] = None):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient funds: {required} units required")


class InsufficientAllowanceError(LedgerServiceError, EconomicError):
    """The allowance granted to the engine is below the required amount."""

    def __init__(self, required: int, available: Optional[int] = None):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient allowance: {required} units required")


class LedgerTransferError(LedgerServiceError, EconomicError):
    """The token ledger refused a transfer."""

    pass


class ApprovalNotSupportedError(LedgerServiceError, StateError):
    """The token ledger does not take approvals through the engine."""

    pass


def to_units(amount: Union[Decimal, str, int]) -> int:
    """Convert a whole-token amount (up to two decimals) to integer units.

    Raises:
        ValueError: If the amount is not a number or has more than two decimals
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid token amount: {amount!r}") from None
    if not value.is_finite():
        raise ValueError(f"Invalid token amount: {amount!r}")
    units = value * ONE_TOKEN
    if units != units.to_integral_value():
        raise ValueError(f"Token amounts have at most {TOKEN_DECIMALS} decimals, got {amount}")
    return int(units)


def from_units(units: int) -> Decimal:
    """Convert integer units to a whole-token Decimal."""
    return (Decimal(units) / ONE_TOKEN).quantize(Decimal(1).scaleb(-TOKEN_DECIMALS))


class LedgerService:
    """Checked token movements on behalf of the engine account.

    Args:
        ledger: Token ledger client bound to ``engine_account``
        engine_account: The marketplace's own account on the ledger
    """

    def __init__(self, ledger: TokenLedger, engine_account: str):
        self.ledger = ledger
        self.engine_account = engine_account

    def balance_of(self, account: str) -> int:
        return self.ledger.balance_of(account)

    def allowance_of(self, owner: str) -> int:
        """Allowance ``owner`` has granted the engine."""
        return self.ledger.allowance(owner, self.engine_account)

    def require_headroom(self, owner: str, required: int) -> None:
        """Check that ``owner`` can be charged ``required`` units by the engine.

        Raises:
            InsufficientFundsError: If the balance is below ``required``
            InsufficientAllowanceError: If the allowance is below ``required``
        """
        balance = self.balance_of(owner)
        if balance < required:
            logger.warning(f"{owner}: balance {balance} below required {required}")
            raise InsufficientFundsError(required, balance)
        allowed = self.allowance_of(owner)
        if allowed < required:
            logger.warning(f"{owner}: allowance {allowed} below required {required}")
            raise InsufficientAllowanceError(required, allowed)

    def collect(self, owner: str, amount: int) -> None:
        """Pull ``amount`` units from ``owner`` into the engine account."""
        self.require_headroom(owner, amount)
        if amount == 0:
            return
        if not self.ledger.transfer_from(owner, self.engine_account, amount):
            raise LedgerTransferError(f"Ledger refused to collect {amount} units from {owner}")
        logger.debug(f"Collected {amount} units from {owner}")

    def pay(self, to: str, amount: int) -> None:
        """Send ``amount`` units from the engine account to ``to``."""
        if amount == 0:
            return
        if not self.ledger.transfer(to, amount):
            raise LedgerTransferError(f"Ledger refused to pay {amount} units to {to}")
        logger.debug(f"Paid {amount} units to {to}")

    def grant(self, to: str, amount: int) -> None:
        """Send a registration grant; same movement as :meth:`pay`."""
        self.pay(to, amount)
        logger.info(f"Granted {amount} units to {to}")
