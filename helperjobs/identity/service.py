"""
Identity and reputation registry.

Tracks, per account, the verification and registration flags, the time of
the last state-changing action, the number of completed jobs and the badge
derived from it. This is a leaf component: it knows nothing about jobs or
tokens. The marketplace pairs enrollment with the registration grant.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from helperjobs.config import MarketConfig
from helperjobs.errors import EligibilityError, HelperJobsError
from helperjobs.identity.models import Account, badge_reached_at
from helperjobs.identity.storage import AccountStorage
from helperjobs.types import utc_now

logger = logging.getLogger(__name__)


class IdentityServiceError(HelperJobsError):
    """Base exception for identity registry errors."""

    pass


class AlreadyVerifiedError(IdentityServiceError, EligibilityError):
    """Account was already verified."""

    pass


class NotVerifiedError(IdentityServiceError, EligibilityError):
    """Account has not been verified by the administrator."""

    pass


class AlreadyRegisteredError(IdentityServiceError, EligibilityError):
    """Account already enrolled."""

    pass


class NotRegisteredError(IdentityServiceError, EligibilityError):
    """Account has not enrolled."""

    pass


class EngineAccountError(IdentityServiceError, EligibilityError):
    """The marketplace's own ledger account cannot take part in it."""

    pass


class IdentityService:
    """Verification, enrollment, activity and badge bookkeeping.

    Args:
        storage: Account persistence backend
        config: Marketplace configuration (badge thresholds)
        clock: Returns the current time; defaults to UTC wall clock
    """

    def __init__(
        self,
        storage: AccountStorage,
        config: Optional[MarketConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.config = config or MarketConfig()
        self._clock = clock or utc_now

    def get_account(self, account_id: str) -> Account:
        """Get an account; unknown IDs read as a fresh, unverified record."""
        account = self.storage.get_account(account_id)
        if account is None:
            return Account(account_id=account_id)
        return account

    def list_accounts(self, registered: Optional[bool] = None) -> List[Account]:
        return self.storage.list_accounts(registered=registered)

    def verify(self, account_id: str) -> Account:
        """Mark an account as verified.

        Raises:
            EngineAccountError: If ``account_id`` is the engine account
            AlreadyVerifiedError: If the account is already verified
        """
        self._reject_engine(account_id)
        account = self.get_account(account_id)
        if account.verified:
            raise AlreadyVerifiedError(f"Account '{account_id}' is already verified")

        account.verified = True
        account.verified_at = self._clock()
        self.storage.save_account(account)
        logger.info(f"Verified account: {account_id}")
        return account

    def enroll(self, account_id: str) -> Account:
        """Register a verified account and start its activity clock.

        Raises:
            EngineAccountError: If ``account_id`` is the engine account
            NotVerifiedError: If the account is not verified
            AlreadyRegisteredError: If the account already enrolled
        """
        self._reject_engine(account_id)
        account = self.get_account(account_id)
        if not account.verified:
            raise NotVerifiedError(f"Account '{account_id}' is not verified")
        if account.registered:
            raise AlreadyRegisteredError(f"Account '{account_id}' is already registered")

        now = self._clock()
        account.registered = True
        account.registered_at = now
        account.last_activity = now
        self.storage.save_account(account)
        logger.info(f"Registered account: {account_id}")
        return account

    def require_registered(self, account_id: str) -> Account:
        """Return the account if it has enrolled.

        Raises:
            NotRegisteredError: If the account has not enrolled
        """
        account = self.get_account(account_id)
        if not account.registered:
            raise NotRegisteredError(f"Account '{account_id}' is not registered")
        return account

    def record_activity(self, account_id: str) -> Account:
        """Stamp the account's last activity with the current time."""
        account = self.get_account(account_id)
        account.last_activity = self._clock()
        self.storage.save_account(account)
        return account

    def record_completion(self, account_id: str) -> Account:
        """Count one more completed job and upgrade the badge on a threshold."""
        account = self.get_account(account_id)
        account.completed_jobs += 1

        reached = badge_reached_at(account.completed_jobs, self.config.badge_thresholds)
        if reached is not None and reached > account.badge:
            account.badge = reached
            logger.info(
                f"Account {account_id} reached {reached.name} badge "
                f"after {account.completed_jobs} jobs"
            )

        self.storage.save_account(account)
        return account

    def _reject_engine(self, account_id: str) -> None:
        if account_id == self.config.engine_account:
            raise EngineAccountError(
                f"Account '{account_id}' is the engine account and cannot take part"
            )
