"""Job ledger and lifecycle engine for helperjobs.

Models:
- Job: A posted job with its escrowed reward
- JobStatus: Job lifecycle status
- DisputeResolution: Administrator's decision on a disputed job
- JobStateTransition: Audit log entry for state changes

Storage:
- JobStorage: Protocol for job persistence
- InMemoryJobStorage: Dict-backed implementation

Service:
- JobService: Job operations (create, take, review, cancel, resolve)
"""

from helperjobs.jobs.models import (
    TERMINAL_STATUSES,
    VALID_JOB_TRANSITIONS,
    DisputeResolution,
    Job,
    JobStateTransition,
    JobStatus,
)
from helperjobs.jobs.service import (
    InvalidAmountError,
    InvalidJobError,
    InvalidRatingError,
    JobNotFoundError,
    JobService,
    JobServiceError,
    JobStatusIncorrectError,
    UnauthorizedError,
    WorkerIsCreatorError,
)
from helperjobs.jobs.storage import InMemoryJobStorage, JobStorage

__all__ = [
    # Models
    "Job",
    "JobStatus",
    "DisputeResolution",
    "JobStateTransition",
    "VALID_JOB_TRANSITIONS",
    "TERMINAL_STATUSES",
    # Storage
    "JobStorage",
    "InMemoryJobStorage",
    # Service
    "JobService",
    "JobServiceError",
    "JobNotFoundError",
    "JobStatusIncorrectError",
    "UnauthorizedError",
    "WorkerIsCreatorError",
    "InvalidAmountError",
    "InvalidJobError",
    "InvalidRatingError",
]
