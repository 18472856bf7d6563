"""
Token ledger interface and in-memory implementation.

The marketplace never stores balances itself. It talks to a fungible-token
ledger through the narrow interface below, as a spender that users have
authorized through ``allowance``. ``transfer`` always moves tokens out of the
engine account the client is bound to.
"""

import logging
import threading
from typing import Any, Dict, Protocol, runtime_checkable

from helperjobs.journal import Journal
from helperjobs.types import TOKEN_DECIMALS

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenLedger(Protocol):
    """Protocol for the token ledger consumed by the engine."""

    def balance_of(self, account: str) -> int:
        """Balance of an account, in units."""
        ...

    def allowance(self, owner: str, spender: str) -> int:
        """Units ``spender`` may still move out of ``owner``'s balance."""
        ...

    def transfer(self, to: str, amount: int) -> bool:
        """Move units from the engine account to ``to``."""
        ...

    def transfer_from(self, owner: str, to: str, amount: int) -> bool:
        """Move units from ``owner`` to ``to`` using the engine's allowance."""
        ...


class InMemoryTokenLedger:
    """In-memory token ledger for testing, the CLI and local deployments.

    Behaves like a standard fungible token with two decimals: transfers
    return False instead of moving anything when the sender's balance (or
    the spender's allowance) is short.
    """

    decimals = TOKEN_DECIMALS

    def __init__(self, engine_account: str, initial_supply: int = 0):
        """Initialize the ledger, minting ``initial_supply`` to the engine."""
        self.engine_account = engine_account
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, Dict[str, int]] = {}  # owner -> spender -> units
        self._lock = threading.RLock()
        self._journal = Journal()
        if initial_supply:
            self.mint(engine_account, initial_supply)

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TypeError(f"Amount must be an integer number of units, got {type(amount).__name__}")
        if amount < 0:
            raise ValueError(f"Amount cannot be negative, got {amount}")

    # === Token interface ===

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(owner, {}).get(spender, 0)

    def transfer(self, to: str, amount: int) -> bool:
        return self._move(self.engine_account, to, amount)

    def transfer_from(self, owner: str, to: str, amount: int) -> bool:
        self._check_amount(amount)
        with self._lock:
            allowed = self.allowance(owner, self.engine_account)
            if allowed < amount:
                logger.debug(f"transfer_from {owner}: allowance {allowed} < {amount}")
                return False
            if not self._move(owner, to, amount):
                return False
            self._journal.touch(self._allowances, owner)
            self._allowances.setdefault(owner, {})[self.engine_account] = allowed - amount
            return True

    # === Account-side operations ===

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set the allowance ``owner`` grants ``spender`` (replaces, not adds)."""
        self._check_amount(amount)
        with self._lock:
            self._journal.touch(self._allowances, owner)
            self._allowances.setdefault(owner, {})[spender] = amount

    def mint(self, to: str, amount: int) -> None:
        """Create new units in ``to``'s balance."""
        self._check_amount(amount)
        with self._lock:
            self._journal.touch(self._balances, to)
            self._balances[to] = self.balance_of(to) + amount

    def total_supply(self) -> int:
        return sum(self._balances.values())

    def _move(self, sender: str, to: str, amount: int) -> bool:
        self._check_amount(amount)
        with self._lock:
            balance = self.balance_of(sender)
            if balance < amount:
                logger.debug(f"transfer {sender} -> {to}: balance {balance} < {amount}")
                return False
            self._journal.touch(self._balances, sender)
            self._journal.touch(self._balances, to)
            self._balances[sender] = balance - amount
            self._balances[to] = self.balance_of(to) + amount
            return True

    # === Checkpoints and serialization ===

    def checkpoint(self) -> int:
        """Start tracking balance and allowance changes so a failed call can be undone."""
        with self._lock:
            return self._journal.checkpoint()

    def revert(self, cp: int) -> None:
        """Undo every change since :meth:`checkpoint`."""
        with self._lock:
            self._journal.revert(cp)

    def commit(self, cp: int) -> None:
        with self._lock:
            self._journal.commit(cp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        with self._lock:
            return {
                "engine_account": self.engine_account,
                "balances": dict(self._balances),
                "allowances": {owner: dict(s) for owner, s in self._allowances.items()},
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryTokenLedger":
        """Create from dictionary."""
        ledger = cls(engine_account=data["engine_account"])
        ledger._balances = {k: int(v) for k, v in (data.get("balances") or {}).items()}
        ledger._allowances = {
            owner: {spender: int(v) for spender, v in spenders.items()}
            for owner, spenders in (data.get("allowances") or {}).items()
        }
        return ledger
