"""
Account storage layer.

Accounts are keyed by their ledger identifier. Unknown identifiers are
simply absent; the service decides what a missing account reads as.
"""

import logging
from typing import Any, List, Optional, Protocol

from helperjobs.identity.models import Account
from helperjobs.journal import Journal

logger = logging.getLogger(__name__)


class AccountStorage(Protocol):
    """Protocol for account persistence backends."""

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get an account by ID."""
        ...

    def save_account(self, account: Account) -> str:
        """Insert or replace an account. Returns the account ID."""
        ...

    def list_accounts(
        self,
        verified: Optional[bool] = None,
        registered: Optional[bool] = None,
    ) -> List[Account]:
        """List accounts with optional filters."""
        ...

    def checkpoint(self) -> Any:
        """Start tracking changes for rollback."""
        ...

    def revert(self, cp: Any) -> None:
        """Undo every change since checkpoint()."""
        ...

    def commit(self, cp: Any) -> None:
        """Keep the changes made since checkpoint()."""
        ...


class InMemoryAccountStorage:
    """In-memory account storage for testing and local deployments."""

    def __init__(self):
        """Initialize empty storage."""
        self._accounts: dict[str, Account] = {}
        self._journal = Journal()

    def get_account(self, account_id: str) -> Optional[Account]:
        self._journal.touch(self._accounts, account_id)
        return self._accounts.get(account_id)

    def save_account(self, account: Account) -> str:
        self._journal.touch(self._accounts, account.account_id)
        self._accounts[account.account_id] = account
        return account.account_id

    def list_accounts(
        self,
        verified: Optional[bool] = None,
        registered: Optional[bool] = None,
    ) -> List[Account]:
        accounts = list(self._accounts.values())
        if verified is not None:
            accounts = [a for a in accounts if a.verified == verified]
        if registered is not None:
            accounts = [a for a in accounts if a.registered == registered]
        return sorted(accounts, key=lambda a: a.account_id)

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def revert(self, cp: int) -> None:
        self._journal.revert(cp)

    def commit(self, cp: int) -> None:
        self._journal.commit(cp)
