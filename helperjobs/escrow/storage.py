"""Escrow hold storage layer."""

from typing import Any, List, Optional, Protocol

from helperjobs.escrow.models import EscrowHold, EscrowStatus
from helperjobs.journal import Journal


class EscrowStorage(Protocol):
    """Protocol for escrow hold persistence backends."""

    def save_hold(self, hold: EscrowHold) -> int:
        """Insert or replace the hold for a job. Returns the job ID."""
        ...

    def get_hold(self, job_id: int) -> Optional[EscrowHold]:
        ...

    def list_holds(self, status: Optional[EscrowStatus] = None) -> List[EscrowHold]:
        ...

    def checkpoint(self) -> Any:
        ...

    def revert(self, cp: Any) -> None:
        ...

    def commit(self, cp: Any) -> None:
        ...


class InMemoryEscrowStorage:
    """In-memory escrow storage for testing and local deployments."""

    def __init__(self):
        self._holds: dict[int, EscrowHold] = {}
        self._journal = Journal()

    def save_hold(self, hold: EscrowHold) -> int:
        self._journal.touch(self._holds, hold.job_id)
        self._holds[hold.job_id] = hold
        return hold.job_id

    def get_hold(self, job_id: int) -> Optional[EscrowHold]:
        self._journal.touch(self._holds, job_id)
        return self._holds.get(job_id)

    def list_holds(self, status: Optional[EscrowStatus] = None) -> List[EscrowHold]:
        holds = sorted(self._holds.values(), key=lambda h: h.job_id)
        if status is not None:
            status_val = status.value if isinstance(status, EscrowStatus) else status
            holds = [h for h in holds if h.status == status_val]
        return holds

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def revert(self, cp: int) -> None:
        self._journal.revert(cp)

    def commit(self, cp: int) -> None:
        self._journal.commit(cp)
