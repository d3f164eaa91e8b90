"""API routes for extraction job submission and status tracking."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from spendlog.api.dependencies import (
    get_job_store,
    get_optional_identity,
    get_submission_service,
    require_identity,
)
from spendlog.core.security import Identity
from spendlog.models.enums import JobStatus
from spendlog.models.schemas import EnqueueRequest, EnqueueResponse, JobRead
from spendlog.services.job_store import JobStore
from spendlog.services.submission_service import SubmissionService

router = APIRouter(prefix="/extraction", tags=["extraction"])


@router.post("/enqueue", response_model=EnqueueResponse, status_code=http_status.HTTP_202_ACCEPTED)
async def enqueue(
    body: EnqueueRequest,
    service: SubmissionService = Depends(get_submission_service),
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> EnqueueResponse:
    """Queue ``text`` for extraction and return the job handle without waiting."""
    return await service.submit(body.text, owner_id=identity.user_id if identity else None)


@router.get("/jobs/{job_id}", response_model=JobRead)
async def get_status(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> JobRead:
    """Get status and result of an extraction job."""
    job = await store.get(job_id)
    # Jobs submitted by a signed-in user are only visible to that user
    if job is None or (job.owner_id and (identity is None or identity.user_id != job.owner_id)):
        raise HTTPException(status_code=404, detail="Job not found")
    return JobRead.from_job(job)


@router.get("/jobs", response_model=List[JobRead])
async def list_jobs(
    status: Optional[JobStatus] = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    store: JobStore = Depends(get_job_store),
    identity: Identity = Depends(require_identity),
) -> List[JobRead]:
    """List extraction jobs submitted by the current user, newest first."""
    jobs = await store.list_for_owner(identity.user_id, status=status, limit=limit, offset=offset)
    return [JobRead.from_job(job) for job in jobs]
