"""
Escrow service.

Collects a job's reward from its creator into the engine account and later
settles it exactly once: released to the worker or refunded to the
creator. A settled hold can never be settled again.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from helperjobs.errors import HelperJobsError, StateError
from helperjobs.escrow.models import EscrowHold, EscrowStatus
from helperjobs.escrow.storage import EscrowStorage
from helperjobs.ledger.service import LedgerService
from helperjobs.types import utc_now

logger = logging.getLogger(__name__)


class EscrowServiceError(HelperJobsError):
    """Base exception for escrow service errors."""

    pass


class EscrowNotFoundError(EscrowServiceError, StateError):
    """No hold exists for the job."""

    pass


class EscrowAlreadySettledError(EscrowServiceError, StateError):
    """The hold was already released or refunded."""

    pass


class EscrowService:
    """Holds and settles job rewards through the ledger service.

    Args:
        storage: Escrow hold persistence backend
        ledger: Ledger service moving tokens for the engine
        clock: Returns the current time; defaults to UTC wall clock
    """

    def __init__(
        self,
        storage: EscrowStorage,
        ledger: LedgerService,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.ledger = ledger
        self._clock = clock or utc_now

    def hold(self, job_id: int, depositor: str, amount: int) -> EscrowHold:
        """Collect ``amount`` from ``depositor`` and hold it for ``job_id``.

        Raises:
            EscrowServiceError: If the job already has a hold
            InsufficientFundsError: If the depositor's balance is short
            InsufficientAllowanceError: If the depositor's allowance is short
        """
        if self.storage.get_hold(job_id) is not None:
            raise EscrowServiceError(f"Job {job_id} already has an escrow hold")

        self.ledger.collect(depositor, amount)
        hold = EscrowHold(
            job_id=job_id,
            depositor=depositor,
            amount=amount,
            held_at=self._clock(),
        )
        self.storage.save_hold(hold)
        logger.info(f"Escrowed {amount} units from {depositor} for job {job_id}")
        return hold

    def get_hold(self, job_id: int) -> EscrowHold:
        """Get the hold backing a job.

        Raises:
            EscrowNotFoundError: If the job has no hold
        """
        hold = self.storage.get_hold(job_id)
        if hold is None:
            raise EscrowNotFoundError(f"No escrow hold for job {job_id}")
        return hold

    def list_holds(self, status: Optional[EscrowStatus] = None) -> List[EscrowHold]:
        return self.storage.list_holds(status=status)

    def total_held(self) -> int:
        """Units currently held for unsettled jobs."""
        return sum(h.amount for h in self.storage.list_holds(status=EscrowStatus.HELD))

    def release(self, job_id: int, worker_id: str) -> EscrowHold:
        """Pay the held reward to the worker."""
        return self._settle(job_id, worker_id, EscrowStatus.RELEASED)

    def refund(self, job_id: int) -> EscrowHold:
        """Return the held reward to the depositor."""
        hold = self.get_hold(job_id)
        return self._settle(job_id, hold.depositor, EscrowStatus.REFUNDED)

    def _settle(self, job_id: int, beneficiary: str, status: EscrowStatus) -> EscrowHold:
        hold = self.get_hold(job_id)
        if hold.is_settled:
            raise EscrowAlreadySettledError(f"Escrow for job {job_id} is already {hold.status}")

        self.ledger.pay(beneficiary, hold.amount)
        hold.status = status.value
        hold.beneficiary = beneficiary
        hold.settled_at = self._clock()
        self.storage.save_hold(hold)
        logger.info(f"Escrow for job {job_id} {status.value}: {hold.amount} units to {beneficiary}")
        return hold
