"""
Job lifecycle engine.

Drives job records through their state machine and keeps the audit trail.
This service owns only the job table: escrow, depreciation and reputation
effects are sequenced around it by :class:`helperjobs.marketplace.Marketplace`.

Transitions:

    CREATED --take--> TAKEN --review--> COMPLETED
       |                 \\--review(disputed)--> DISPUTED --resolve--> COMPLETED
       \\--cancel--> CANCELLED
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from helperjobs.config import MarketConfig
from helperjobs.errors import (
    AuthorizationError,
    HelperJobsError,
    StateError,
    ValidationError,
)
from helperjobs.jobs.models import (
    DisputeResolution,
    Job,
    JobStateTransition,
    JobStatus,
)
from helperjobs.jobs.storage import JobStorage
from helperjobs.types import utc_now

logger = logging.getLogger(__name__)


class JobServiceError(HelperJobsError):
    """Base exception for job service errors."""

    pass


class JobNotFoundError(JobServiceError, StateError):
    """Job ID was never allocated."""

    pass


class JobStatusIncorrectError(JobServiceError, StateError):
    """Job is not in the status the requested transition needs."""

    def __init__(self, job_id: int, current: JobStatus, expected: JobStatus):
        self.job_id = job_id
        self.current = JobStatus(current)
        self.expected = JobStatus(expected)
        super().__init__(
            f"Job {job_id} is {self.current.value}, expected {self.expected.value}"
        )


class UnauthorizedError(JobServiceError, AuthorizationError):
    """Actor is not allowed to perform this action on the job."""

    pass


class WorkerIsCreatorError(JobServiceError, AuthorizationError):
    """The job's creator tried to take their own job."""

    pass


class InvalidJobError(JobServiceError, ValidationError):
    """Description or reward rejected."""

    pass


class InvalidAmountError(InvalidJobError):
    """Reward is not a positive integer number of units."""

    pass


class InvalidRatingError(JobServiceError, ValidationError):
    """Rating outside the allowed range."""

    pass


class JobService:
    """Job lifecycle operations.

    Args:
        storage: Job persistence backend
        config: Marketplace configuration (rating and description limits)
        clock: Returns the current time; defaults to UTC wall clock
    """

    def __init__(
        self,
        storage: JobStorage,
        config: Optional[MarketConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.config = config or MarketConfig()
        self._clock = clock or utc_now

    # === Validation ===

    def validate_new_job(self, description: str, reward: int) -> None:
        """Check a job's description and reward before anything is charged.

        Raises:
            InvalidJobError: If either is malformed
        """
        if not isinstance(description, str) or not description.strip():
            raise InvalidJobError("Description cannot be empty")
        if len(description) > self.config.max_description_length:
            raise InvalidJobError(
                f"Description too long (max {self.config.max_description_length} characters)"
            )
        if isinstance(reward, bool) or not isinstance(reward, int):
            raise InvalidAmountError("Reward must be an integer number of units")
        if reward <= 0:
            raise InvalidAmountError("Reward must be positive")

    def validate_rating(self, rating: int) -> None:
        if (
            isinstance(rating, bool)
            or not isinstance(rating, int)
            or not 0 <= rating <= self.config.max_rating
        ):
            raise InvalidRatingError(f"The rating has to be between 0 and {self.config.max_rating}")

    # === Queries ===

    def get_job(self, job_id: int) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If no job has this ID
        """
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        creator_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        return self.storage.list_jobs(
            status=status,
            creator_id=creator_id,
            worker_id=worker_id,
            limit=limit,
            offset=offset,
        )

    def get_job_history(self, job_id: int) -> List[JobStateTransition]:
        """Get the audit trail of a job, oldest first."""
        self.get_job(job_id)
        return self.storage.get_transitions(job_id)

    # === Lifecycle ===

    def create_job(self, creator_id: str, description: str, reward: int) -> Job:
        """Create a job record in CREATED status.

        The caller is responsible for escrowing ``reward`` in the same call.
        """
        self.validate_new_job(description, reward)

        now = self._clock()
        job = Job(
            id=self.storage.allocate_job_id(),
            creator_id=creator_id,
            description=description,
            reward=reward,
            created_at=now,
            updated_at=now,
        )
        self.storage.save_job(job)
        self._record_transition(job, None, creator_id, "created")
        logger.info(f"Created job {job.id} by {creator_id} with reward {reward}")
        return job

    def take_job(self, job_id: int, worker_id: str) -> Job:
        """Assign a worker to a CREATED job.

        Raises:
            JobStatusIncorrectError: If the job is not CREATED
            WorkerIsCreatorError: If the worker is the job's creator
        """
        job = self.get_job(job_id)
        self._require_status(job, JobStatus.CREATED)
        if worker_id == job.creator_id:
            raise WorkerIsCreatorError("Worker can't be the creator")

        job.worker_id = worker_id
        job.taken_at = self._clock()
        self._transition(job, JobStatus.TAKEN, worker_id)
        logger.info(f"Job {job_id} taken by {worker_id}")
        return job

    def review_job(self, job_id: int, actor_id: str, rating: int, disputed: bool) -> Job:
        """Record the creator's rating and move a TAKEN job to COMPLETED or DISPUTED.

        Raises:
            UnauthorizedError: If the actor is not the creator
            JobStatusIncorrectError: If the job is not TAKEN
            InvalidRatingError: If the rating is out of range
        """
        job = self.get_job(job_id)
        if actor_id != job.creator_id:
            raise UnauthorizedError("Only the creator can mark the job as complete and review it")
        self._require_status(job, JobStatus.TAKEN)
        self.validate_rating(rating)

        job.stars = rating
        job.reviewed_at = self._clock()
        if disputed:
            self._transition(job, JobStatus.DISPUTED, actor_id, reason=f"rated {rating}, disputed")
            logger.info(f"Job {job_id} disputed by {actor_id}")
        else:
            job.completed_at = job.reviewed_at
            self._transition(job, JobStatus.COMPLETED, actor_id, reason=f"rated {rating}")
            logger.info(f"Job {job_id} completed with {rating} stars")
        return job

    def cancel_job(self, job_id: int, actor_id: str) -> Job:
        """Cancel a job nobody has taken yet.

        Raises:
            UnauthorizedError: If the actor is not the creator
            JobStatusIncorrectError: If the job is not CREATED
        """
        job = self.get_job(job_id)
        if actor_id != job.creator_id:
            raise UnauthorizedError("Only the creator can cancel the job")
        self._require_status(job, JobStatus.CREATED)

        job.cancelled_at = self._clock()
        self._transition(job, JobStatus.CANCELLED, actor_id)
        logger.info(f"Job {job_id} cancelled by {actor_id}")
        return job

    def resolve_dispute(self, job_id: int, actor_id: str, in_favor_of_worker: bool) -> Job:
        """Close a DISPUTED job with the arbiter's decision.

        Authorization of the arbiter is checked by the caller.

        Raises:
            JobStatusIncorrectError: If the job is not DISPUTED
        """
        job = self.get_job(job_id)
        self._require_status(job, JobStatus.DISPUTED)

        resolution = DisputeResolution.WORKER if in_favor_of_worker else DisputeResolution.CREATOR
        job.resolution = resolution.value
        job.completed_at = self._clock()
        self._transition(
            job, JobStatus.COMPLETED, actor_id, reason=f"dispute resolved for {resolution.value}"
        )
        logger.info(f"Dispute on job {job_id} resolved for {resolution.value}")
        return job

    # === Helpers ===

    def _require_status(self, job: Job, expected: JobStatus) -> None:
        if job.job_status != expected:
            raise JobStatusIncorrectError(job.id, job.job_status, expected)

    def _transition(
        self,
        job: Job,
        new_status: JobStatus,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> None:
        if not job.can_transition_to(new_status):
            raise JobStatusIncorrectError(job.id, job.job_status, new_status)
        from_status = job.status
        job.status = new_status.value
        job.updated_at = self._clock()
        self.storage.update_job(job)
        self._record_transition(job, from_status, actor_id, reason)

    def _record_transition(
        self,
        job: Job,
        from_status: Optional[str],
        actor_id: str,
        reason: Optional[str],
    ) -> None:
        self.storage.save_transition(
            JobStateTransition(
                job_id=job.id,
                from_status=from_status,
                to_status=job.status,
                actor_id=actor_id,
                reason=reason,
                created_at=self._clock(),
            )
        )
