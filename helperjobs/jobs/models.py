"""Job data models.

A job is created with an escrowed reward, taken by exactly one worker and
then either completed (paid), disputed (payout deferred to the
administrator) or, if nobody took it, cancelled (refunded). Records are
never deleted.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from helperjobs.types import format_datetime, parse_datetime, utc_now


class JobStatus(str, Enum):
    """Job lifecycle status."""

    CREATED = "created"  # Reward escrowed, waiting for a worker
    TAKEN = "taken"  # Worker assigned
    COMPLETED = "completed"  # Reviewed and settled (terminal)
    CANCELLED = "cancelled"  # Withdrawn before anyone took it (terminal)
    DISPUTED = "disputed"  # Reviewed negatively, awaiting the administrator


class DisputeResolution(str, Enum):
    """Outcome of an administrator's dispute decision."""

    WORKER = "worker"  # Worker is paid
    CREATOR = "creator"  # Creator is refunded


# Valid state transitions
VALID_JOB_TRANSITIONS: Dict[JobStatus, set] = {
    JobStatus.CREATED: {JobStatus.TAKEN, JobStatus.CANCELLED},
    JobStatus.TAKEN: {JobStatus.COMPLETED, JobStatus.DISPUTED},
    JobStatus.DISPUTED: {JobStatus.COMPLETED},
    JobStatus.COMPLETED: set(),  # Terminal
    JobStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})


@dataclass
class Job:
    """A job posted on the marketplace.

    Attributes:
        id: Sequential job identifier (never reused)
        creator_id: Account that posted and funded the job
        description: Free text, not interpreted by the engine
        reward: Escrowed amount in units, fixed at creation
        worker_id: Account that took the job
        stars: Rating given by the creator at review time
        status: Current lifecycle status
        resolution: Administrator's decision when the job was disputed
        created_at: When the job was posted
        updated_at: Last status change
        taken_at: When a worker took the job
        reviewed_at: When the creator reviewed the job
        completed_at: When the job reached COMPLETED
        cancelled_at: When the job was cancelled
    """

    id: int
    creator_id: str
    description: str
    reward: int
    worker_id: Optional[str] = None
    stars: Optional[int] = None
    status: str = JobStatus.CREATED.value
    resolution: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    taken_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if self.id < 0:
            raise ValueError(f"Job id cannot be negative, got {self.id}")
        if not self.creator_id:
            raise ValueError("creator_id cannot be empty")
        if isinstance(self.reward, bool) or not isinstance(self.reward, int):
            raise ValueError("Reward must be an integer number of units")
        if self.reward <= 0:
            raise ValueError("Reward must be positive")
        if self.stars is not None and self.stars < 0:
            raise ValueError("Stars cannot be negative")

        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        valid_statuses = {s.value for s in JobStatus}
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")

        if isinstance(self.resolution, DisputeResolution):
            self.resolution = self.resolution.value
        if self.resolution is not None and self.resolution not in {r.value for r in DisputeResolution}:
            raise ValueError(f"Invalid resolution: {self.resolution}")

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.job_status in TERMINAL_STATUSES

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """Check whether the lifecycle allows moving to ``new_status``."""
        if isinstance(new_status, str):
            new_status = JobStatus(new_status)
        return new_status in VALID_JOB_TRANSITIONS[self.job_status]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "creator_id": self.creator_id,
            "description": self.description,
            "reward": self.reward,
            "worker_id": self.worker_id,
            "stars": self.stars,
            "status": self.status,
            "resolution": self.resolution,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "taken_at": format_datetime(self.taken_at),
            "reviewed_at": format_datetime(self.reviewed_at),
            "completed_at": format_datetime(self.completed_at),
            "cancelled_at": format_datetime(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create from dictionary."""
        return cls(
            id=int(data["id"]),
            creator_id=data["creator_id"],
            description=data.get("description", ""),
            reward=int(data["reward"]),
            worker_id=data.get("worker_id"),
            stars=data.get("stars"),
            status=data.get("status", JobStatus.CREATED.value),
            resolution=data.get("resolution"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            taken_at=parse_datetime(data.get("taken_at")),
            reviewed_at=parse_datetime(data.get("reviewed_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
        )


@dataclass
class JobStateTransition:
    """Audit log entry for a job status change."""

    job_id: int
    to_status: str
    actor_id: str
    from_status: Optional[str] = None
    reason: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStateTransition":
        return cls(
            id=data["id"],
            job_id=int(data["job_id"]),
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data["actor_id"],
            reason=data.get("reason"),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
        )
