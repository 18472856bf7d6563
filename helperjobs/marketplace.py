"""
Marketplace engine.

``Marketplace`` is the context object every operation runs against: it owns
the account, job and escrow tables and the event log, knows the configured
administrator, and talks to the token ledger through :class:`LedgerService`.

Each participant call follows the same sequence::

    registration check -> depreciation settlement -> preconditions
        -> effects (escrow, payout, refund) -> activity / badge update

All mutating calls are serialized by one re-entrant lock and run in an
atomic scope: any exception restores every table (and the in-memory ledger)
to its state before the call.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from helperjobs.config import MarketConfig
from helperjobs.depreciation import DepreciationQuote, DepreciationService
from helperjobs.errors import AuthorizationError
from helperjobs.escrow import EscrowService, InMemoryEscrowStorage
from helperjobs.escrow.storage import EscrowStorage
from helperjobs.events import EventLog, EventSubscriber, MarketEvent, MarketEventType
from helperjobs.identity import Account, IdentityService, InMemoryAccountStorage
from helperjobs.identity.storage import AccountStorage
from helperjobs.jobs import InMemoryJobStorage, Job, JobService, JobStateTransition, JobStatus
from helperjobs.jobs.storage import JobStorage
from helperjobs.ledger import (
    ApprovalNotSupportedError,
    InMemoryTokenLedger,
    LedgerService,
    TokenLedger,
)
from helperjobs.types import Badge, utc_now

logger = logging.getLogger(__name__)

CommitHook = Callable[["Marketplace"], None]


class NotAdministratorError(AuthorizationError):
    """Caller is not the configured administrator."""

    pass


class Marketplace:
    """Job marketplace with escrowed rewards and inactivity depreciation.

    Args:
        config: Economic and authorization settings
        ledger: Token ledger client; defaults to an in-memory ledger minted
            with ``config.initial_supply`` for the engine account
        clock: Returns the current time; defaults to UTC wall clock
        account_storage: Account table backend
        job_storage: Job table backend
        escrow_storage: Escrow table backend
        events: Event log; a fresh one is created if omitted
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        ledger: Optional[TokenLedger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        account_storage: Optional[AccountStorage] = None,
        job_storage: Optional[JobStorage] = None,
        escrow_storage: Optional[EscrowStorage] = None,
        events: Optional[EventLog] = None,
    ):
        self.config = config or MarketConfig()
        self.clock = clock or utc_now
        if ledger is None:
            ledger = InMemoryTokenLedger(self.config.engine_account, self.config.initial_supply)
        self.token_ledger = ledger

        self.ledger = LedgerService(ledger, self.config.engine_account)
        self.identity = IdentityService(
            account_storage or InMemoryAccountStorage(), self.config, self.clock
        )
        self.jobs = JobService(job_storage or InMemoryJobStorage(), self.config, self.clock)
        self.escrow = EscrowService(escrow_storage or InMemoryEscrowStorage(), self.ledger, self.clock)
        self.depreciation = DepreciationService(self.identity, self.ledger, self.config, self.clock)
        self.event_log = events if events is not None else EventLog(self.clock)

        self._lock = threading.RLock()
        self._depth = 0
        self._commit_hooks: List[CommitHook] = []

    @property
    def administrator_id(self) -> str:
        return self.config.administrator_id

    def add_commit_hook(self, hook: CommitHook) -> None:
        """Run ``hook(market)`` at the end of every successful mutating call.

        Hooks run inside the call's atomic scope: if one raises, the call is
        undone and the exception propagates to the caller.
        """
        self._commit_hooks.append(hook)

    # === Atomic scope ===

    def _checkpoint(self) -> Dict[str, Any]:
        checkpoints = {
            "accounts": self.identity.storage.checkpoint(),
            "jobs": self.jobs.storage.checkpoint(),
            "escrow": self.escrow.storage.checkpoint(),
            "events": self.event_log.checkpoint(),
        }
        if hasattr(self.token_ledger, "checkpoint"):
            checkpoints["ledger"] = self.token_ledger.checkpoint()
        return checkpoints

    def _revert(self, checkpoints: Dict[str, Any]) -> None:
        self.identity.storage.revert(checkpoints["accounts"])
        self.jobs.storage.revert(checkpoints["jobs"])
        self.escrow.storage.revert(checkpoints["escrow"])
        self.event_log.revert(checkpoints["events"])
        if "ledger" in checkpoints:
            self.token_ledger.revert(checkpoints["ledger"])

    def _commit(self, checkpoints: Dict[str, Any]) -> None:
        self.identity.storage.commit(checkpoints["accounts"])
        self.jobs.storage.commit(checkpoints["jobs"])
        self.escrow.storage.commit(checkpoints["escrow"])
        if "ledger" in checkpoints:
            self.token_ledger.commit(checkpoints["ledger"])

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Serialize the call and undo all of its effects if it raises."""
        with self._lock:
            outermost = self._depth == 0
            checkpoints = self._checkpoint() if outermost else None
            self._depth += 1
            try:
                yield
                if outermost:
                    for hook in list(self._commit_hooks):
                        hook(self)
            except BaseException as e:
                self._depth -= 1
                if outermost:
                    self._revert(checkpoints)
                    logger.debug(f"Rolled back call after {type(e).__name__}: {e}")
                raise
            self._depth -= 1
            if outermost:
                self._commit(checkpoints)
                self.event_log.flush()

    # === Helpers ===

    def _require_administrator(self, actor_id: str) -> None:
        if actor_id != self.config.administrator_id:
            raise NotAdministratorError(f"Account '{actor_id}' is not the administrator")

    def _settle_depreciation(self, account_id: str, other_expense: int = 0) -> DepreciationQuote:
        quote = self.depreciation.settle(account_id, other_expense)
        if quote.dormant:
            self.event_log.append(
                MarketEventType.DEPRECIATION_CHARGED,
                account_id=account_id,
                amount=quote.amount,
                badge=quote.badge.name,
            )
        return quote

    def _pay_worker(self, job: Job) -> None:
        """Release the reward to the worker and credit the completion."""
        self.escrow.release(job.id, job.worker_id)
        before = self.identity.get_account(job.worker_id).badge
        worker = self.identity.record_completion(job.worker_id)
        self.event_log.append(
            MarketEventType.JOB_COMPLETED_AND_PAID,
            creator_id=job.creator_id,
            worker_id=job.worker_id,
            job_id=job.id,
            reward=job.reward,
            stars=job.stars,
        )
        if worker.badge > before:
            self.event_log.append(
                MarketEventType.BADGE_UPGRADED,
                account_id=worker.account_id,
                badge=worker.badge.name,
                completed_jobs=worker.completed_jobs,
            )

    # === Identity ===

    def verify(self, actor_id: str, account_id: str) -> Account:
        """Mark ``account_id`` as verified. Administrator only.

        Raises:
            NotAdministratorError: If ``actor_id`` is not the administrator
            AlreadyVerifiedError: If the account is already verified
        """
        with self._atomic():
            self._require_administrator(actor_id)
            account = self.identity.verify(account_id)
            self.event_log.append(MarketEventType.ACCOUNT_VERIFIED, account_id=account_id)
            return account

    def enroll(self, caller_id: str) -> Account:
        """Register a verified account and pay its registration grant.

        Raises:
            NotVerifiedError: If the caller is not verified
            AlreadyRegisteredError: If the caller already enrolled
        """
        with self._atomic():
            account = self.identity.enroll(caller_id)
            self.ledger.grant(caller_id, self.config.registration_grant)
            self.event_log.append(
                MarketEventType.FIRST_REGISTRATION,
                account_id=caller_id,
                grant=self.config.registration_grant,
            )
            return account

    # === Job lifecycle ===

    def create_job(self, caller_id: str, description: str, reward: int) -> Job:
        """Post a job and escrow its reward from the caller.

        Raises:
            NotRegisteredError: If the caller has not enrolled
            InvalidJobError: If the description or reward is malformed
            InsufficientFundsError: If the caller cannot cover fee + reward
            InsufficientAllowanceError: If the engine may not pull fee + reward
        """
        with self._atomic():
            self.identity.require_registered(caller_id)
            self.jobs.validate_new_job(description, reward)
            self._settle_depreciation(caller_id, other_expense=reward)

            job = self.jobs.create_job(caller_id, description, reward)
            self.escrow.hold(job.id, caller_id, reward)
            self.event_log.append(
                MarketEventType.JOB_CREATED,
                creator_id=caller_id,
                job_id=job.id,
                reward=reward,
            )
            self.identity.record_activity(caller_id)
            return job

    def take_job(self, caller_id: str, job_id: int) -> Job:
        """Take a CREATED job as its worker.

        Raises:
            NotRegisteredError: If the caller has not enrolled
            JobNotFoundError: If the job does not exist
            JobStatusIncorrectError: If the job is not CREATED
            WorkerIsCreatorError: If the caller created the job
        """
        with self._atomic():
            self.identity.require_registered(caller_id)
            self._settle_depreciation(caller_id)

            job = self.jobs.take_job(job_id, caller_id)
            self.event_log.append(
                MarketEventType.JOB_TAKEN,
                creator_id=job.creator_id,
                worker_id=caller_id,
                job_id=job.id,
            )
            self.identity.record_activity(caller_id)
            return job

    def complete_and_review_job(
        self,
        caller_id: str,
        job_id: int,
        rating: int,
        disputed: bool = False,
    ) -> Job:
        """Rate a TAKEN job and either pay the worker or open a dispute.

        Raises:
            NotRegisteredError: If the caller has not enrolled
            UnauthorizedError: If the caller is not the job's creator
            JobStatusIncorrectError: If the job is not TAKEN
            InvalidRatingError: If the rating is outside [0, max_rating]
        """
        with self._atomic():
            self.identity.require_registered(caller_id)
            self._settle_depreciation(caller_id)

            job = self.jobs.review_job(job_id, caller_id, rating, disputed)
            if disputed:
                self.event_log.append(
                    MarketEventType.JOB_DISPUTED,
                    creator_id=job.creator_id,
                    worker_id=job.worker_id,
                    job_id=job.id,
                )
            else:
                self._pay_worker(job)
            self.identity.record_activity(caller_id)
            return job

    def cancel_job(self, caller_id: str, job_id: int) -> Job:
        """Cancel an untaken job and refund its reward to the creator.

        Raises:
            NotRegisteredError: If the caller has not enrolled
            UnauthorizedError: If the caller is not the job's creator
            JobStatusIncorrectError: If the job is not CREATED
        """
        with self._atomic():
            self.identity.require_registered(caller_id)
            self._settle_depreciation(caller_id)

            job = self.jobs.cancel_job(job_id, caller_id)
            self.escrow.refund(job.id)
            self.event_log.append(
                MarketEventType.JOB_CANCELLED,
                creator_id=job.creator_id,
                job_id=job.id,
            )
            self.identity.record_activity(caller_id)
            return job

    def handle_disputed_job(self, actor_id: str, job_id: int, resolved: bool) -> Job:
        """Settle a DISPUTED job. Administrator only.

        ``resolved=True`` decides for the worker (payout and completion
        credit); ``False`` refunds the creator.

        Raises:
            NotAdministratorError: If ``actor_id`` is not the administrator
            JobStatusIncorrectError: If the job is not DISPUTED
        """
        with self._atomic():
            self._require_administrator(actor_id)

            job = self.jobs.resolve_dispute(job_id, actor_id, in_favor_of_worker=resolved)
            if resolved:
                self._pay_worker(job)
            else:
                self.escrow.refund(job.id)
                self.event_log.append(
                    MarketEventType.JOB_COMPLETED_NOT_PAID,
                    creator_id=job.creator_id,
                    worker_id=job.worker_id,
                    job_id=job.id,
                    reward=job.reward,
                    stars=job.stars,
                )
            return job

    # === Ledger passthroughs ===

    def balance_of(self, account_id: str) -> int:
        return self.ledger.balance_of(account_id)

    def allowance_of(self, account_id: str) -> int:
        return self.ledger.allowance_of(account_id)

    def approve(self, owner_id: str, amount: int) -> None:
        """Let the engine spend ``amount`` units of ``owner_id``'s tokens.

        Only available with a ledger that implements ``approve``; a real
        token ledger is approved by its owner directly.

        Raises:
            ApprovalNotSupportedError: If the ledger has no ``approve``
        """
        approve = getattr(self.token_ledger, "approve", None)
        if approve is None:
            raise ApprovalNotSupportedError(
                "This token ledger does not accept approvals through the engine"
            )
        with self._atomic():
            approve(owner_id, self.config.engine_account, amount)

    # === Queries ===

    def get_account(self, account_id: str) -> Account:
        return self.identity.get_account(account_id)

    def list_accounts(self, registered: Optional[bool] = None) -> List[Account]:
        return self.identity.list_accounts(registered=registered)

    def get_job(self, job_id: int) -> Job:
        return self.jobs.get_job(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        creator_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        return self.jobs.list_jobs(
            status=status,
            creator_id=creator_id,
            worker_id=worker_id,
            limit=limit,
            offset=offset,
        )

    def job_history(self, job_id: int) -> List[JobStateTransition]:
        return self.jobs.get_job_history(job_id)

    def events(self, event_type: Optional[MarketEventType] = None) -> List[MarketEvent]:
        return self.event_log.list(event_type=event_type)

    def subscribe(self, callback: EventSubscriber) -> None:
        """Call ``callback`` with each event once its call has committed."""
        self.event_log.subscribe(callback)

    def depreciation_quote(self, account_id: str, other_expense: int = 0) -> DepreciationQuote:
        """What a call by ``account_id`` would be charged right now."""
        return self.depreciation.quote(account_id, other_expense)

    def escrow_total(self) -> int:
        return self.escrow.total_held()

    def badge_of(self, account_id: str) -> Badge:
        return self.identity.get_account(account_id).badge
