"""
Jobs storage layer.

Provides persistence for jobs, their state-transition audit trail and the
monotonic job-id counter.
"""

import logging
from typing import Any, List, Optional, Protocol

from helperjobs.jobs.models import Job, JobStateTransition, JobStatus
from helperjobs.journal import Journal

logger = logging.getLogger(__name__)


class JobStorage(Protocol):
    """Protocol for job persistence backends."""

    # Jobs
    def allocate_job_id(self) -> int:
        """Reserve the next job ID. IDs start at 0 and are never reused."""
        ...

    def save_job(self, job: Job) -> int:
        """Save a new job. Returns the job ID."""
        ...

    def get_job(self, job_id: int) -> Optional[Job]:
        """Get a job by ID."""
        ...

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        creator_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters, newest first."""
        ...

    def update_job(self, job: Job) -> bool:
        """Update a job. Returns True if successful."""
        ...

    # Transitions (audit log)
    def save_transition(self, transition: JobStateTransition) -> str:
        """Save a state transition record. Returns the transition ID."""
        ...

    def get_transitions(self, job_id: int) -> List[JobStateTransition]:
        """Get all state transitions for a job, oldest first."""
        ...

    # Rollback
    def checkpoint(self) -> Any:
        """Start tracking changes for rollback."""
        ...

    def revert(self, cp: Any) -> None:
        """Undo every change since checkpoint(), including allocated IDs."""
        ...

    def commit(self, cp: Any) -> None:
        """Keep the changes made since checkpoint()."""
        ...


class InMemoryJobStorage:
    """In-memory job storage for testing and local deployments."""

    def __init__(self):
        """Initialize empty storage."""
        self._jobs: dict[int, Job] = {}
        self._transitions: dict[int, list[JobStateTransition]] = {}  # job_id -> list
        self._next_id = 0
        self._journal = Journal()
        self._next_id_at_checkpoint = 0

    # === Jobs ===

    def allocate_job_id(self) -> int:
        job_id = self._next_id
        self._next_id += 1
        return job_id

    @property
    def next_job_id(self) -> int:
        return self._next_id

    def save_job(self, job: Job) -> int:
        """Save a job."""
        self._journal.touch(self._jobs, job.id)
        self._jobs[job.id] = job
        if job.id not in self._transitions:
            self._journal.touch(self._transitions, job.id)
            self._transitions[job.id] = []
        if job.id >= self._next_id:
            self._next_id = job.id + 1
        return job.id

    def get_job(self, job_id: int) -> Optional[Job]:
        """Get a job by ID."""
        self._journal.touch(self._jobs, job_id)
        return self._jobs.get(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        creator_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters."""
        jobs = list(self._jobs.values())

        # Apply filters
        if status is not None:
            status_val = status.value if isinstance(status, JobStatus) else status
            jobs = [j for j in jobs if j.status == status_val]
        if creator_id is not None:
            jobs = [j for j in jobs if j.creator_id == creator_id]
        if worker_id is not None:
            jobs = [j for j in jobs if j.worker_id == worker_id]

        # Newest first; ids are allocated in creation order
        jobs.sort(key=lambda j: j.id, reverse=True)

        return jobs[offset : offset + limit]

    def update_job(self, job: Job) -> bool:
        """Update a job."""
        if job.id not in self._jobs:
            return False
        self._journal.touch(self._jobs, job.id)
        self._jobs[job.id] = job
        return True

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        """Save a state transition record."""
        self._journal.touch(self._transitions, transition.job_id)
        if transition.job_id not in self._transitions:
            self._transitions[transition.job_id] = []
        self._transitions[transition.job_id].append(transition)
        return transition.id

    def get_transitions(self, job_id: int) -> List[JobStateTransition]:
        """Get all state transitions for a job."""
        # Appended in order; the stable sort keeps same-instant entries in place
        transitions = self._transitions.get(job_id, [])
        return sorted(transitions, key=lambda t: t.created_at)

    # === Rollback ===

    def checkpoint(self) -> int:
        cp = self._journal.checkpoint()
        self._next_id_at_checkpoint = self._next_id
        return cp

    def revert(self, cp: int) -> None:
        self._journal.revert(cp)
        self._next_id = self._next_id_at_checkpoint

    def commit(self, cp: int) -> None:
        self._journal.commit(cp)
