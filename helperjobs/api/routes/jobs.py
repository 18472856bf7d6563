"""Job routes.

Endpoints for the job lifecycle: post, take, review, cancel and (for the
administrator) resolve disputes.
"""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field

from helperjobs.jobs import Job, JobStatus

from ..dependencies import CurrentAccount, Market
from ..rate_limit import limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================


class JobCreate(BaseModel):
    """Request to post a job. ``reward`` is in units (1 token = 100)."""

    description: str = Field(..., min_length=1)
    reward: int


class ReviewRequest(BaseModel):
    """Creator's review of a taken job."""

    rating: int
    disputed: bool = False


class ResolveRequest(BaseModel):
    """Administrator's decision on a disputed job."""

    in_favor_of: Literal["worker", "creator"]


class JobResponse(BaseModel):
    """Job details response."""

    id: int
    creator_id: str
    worker_id: str | None = None
    description: str
    reward: int
    stars: int | None = None
    status: JobStatus
    resolution: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    taken_at: datetime | None = None
    reviewed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


class JobListResponse(BaseModel):
    """Page of jobs, newest first."""

    jobs: list[JobResponse]
    limit: int
    offset: int


class TransitionResponse(BaseModel):
    """One entry of a job's audit trail."""

    id: str
    job_id: int
    from_status: str | None = None
    to_status: str
    actor_id: str
    reason: str | None = None
    created_at: datetime


def to_job_response(job: Job) -> JobResponse:
    """Convert a job record to its response model."""
    return JobResponse(**job.to_dict())


# =============================================================================
# Routes
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_job(request: Request, job: JobCreate, caller: CurrentAccount, market: Market):
    """
    Post a job.

    The reward is escrowed from the caller in the same call; the caller must
    have approved the engine for the reward (plus any inactivity fee).
    """
    logger.info(f"POST /jobs | creator={caller} | reward={job.reward}")
    created = market.create_job(caller, job.description, job.reward)
    return to_job_response(created)


@router.get("", response_model=JobListResponse)
async def list_jobs(
    market: Market,
    status_filter: JobStatus | None = Query(None, alias="status"),
    creator_id: str | None = Query(None),
    worker_id: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List jobs with optional status/creator/worker filters."""
    jobs = market.list_jobs(
        status=status_filter,
        creator_id=creator_id,
        worker_id=worker_id,
        limit=limit,
        offset=offset,
    )
    return JobListResponse(jobs=[to_job_response(j) for j in jobs], limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: int, market: Market):
    """Get details of a specific job."""
    return to_job_response(market.get_job(job_id))


@router.get("/{job_id}/history", response_model=list[TransitionResponse])
async def get_job_history(job_id: int, market: Market):
    """Get a job's state transitions, oldest first."""
    return [TransitionResponse(**t.to_dict()) for t in market.job_history(job_id)]


@router.post("/{job_id}/take", response_model=JobResponse)
@limiter.limit("30/minute")
async def take_job(request: Request, job_id: int, caller: CurrentAccount, market: Market):
    """Take a CREATED job as its worker."""
    logger.info(f"POST /jobs/{job_id}/take | worker={caller}")
    job = market.take_job(caller, job_id)
    return to_job_response(job)


@router.post("/{job_id}/review", response_model=JobResponse)
@limiter.limit("30/minute")
async def review_job(
    request: Request,
    job_id: int,
    review: ReviewRequest,
    caller: CurrentAccount,
    market: Market,
):
    """
    Complete and rate a TAKEN job.

    Without ``disputed`` the reward is paid to the worker; with it the job
    waits for the administrator's decision.
    """
    logger.info(f"POST /jobs/{job_id}/review | creator={caller} | disputed={review.disputed}")
    job = market.complete_and_review_job(caller, job_id, review.rating, review.disputed)
    return to_job_response(job)


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit("30/minute")
async def cancel_job(request: Request, job_id: int, caller: CurrentAccount, market: Market):
    """Cancel a job nobody has taken; the reward is refunded."""
    logger.info(f"POST /jobs/{job_id}/cancel | creator={caller}")
    job = market.cancel_job(caller, job_id)
    return to_job_response(job)


@router.post("/{job_id}/resolve", response_model=JobResponse)
@limiter.limit("30/minute")
async def resolve_dispute(
    request: Request,
    job_id: int,
    decision: ResolveRequest,
    caller: CurrentAccount,
    market: Market,
):
    """Settle a DISPUTED job. Administrator only."""
    logger.info(f"POST /jobs/{job_id}/resolve | admin={caller} | for={decision.in_favor_of}")
    job = market.handle_disputed_job(caller, job_id, decision.in_favor_of == "worker")
    return to_job_response(job)
