"""Pydantic schemas for request, response and queue message models.

Pydantic models validate and serialise data that crosses a boundary of
the service: HTTP requests and responses, the JSON body carried on the
extraction queue, and the structured output of the extraction step.
They are intentionally separate from the ORM models in ``tables``.

The queue message and the submission response use ``jobId`` on the wire.
Python code refers to the same field as ``job_id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import JobStatus


# ---------------------------------------------------------------------------
# Extraction output


class ExpenseItem(BaseModel):
    """Individual line on an expense."""

    description: Optional[str] = None
    amount: Optional[str] = None


class ExpenseDetails(BaseModel):
    """Structured expense details produced by the extraction step."""

    merchant: Optional[str] = None
    date: Optional[str] = Field(default=None, description="ISO date, YYYY-MM-DD")
    currency: Optional[str] = Field(default=None, description="ISO 4217 code, e.g. USD")
    items: List[ExpenseItem] = Field(default_factory=list)
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    total: Optional[str] = None


# ---------------------------------------------------------------------------
# Submission


class EnqueueRequest(BaseModel):
    """Body of the submission call."""

    text: str = Field(min_length=1)


class EnqueueResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: Literal["queued"] = "queued"


class QueueMessage(BaseModel):
    """JSON body published to the extraction queue."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    job_id: str = Field(alias="jobId", min_length=1)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Status


class JobError(BaseModel):
    """Why a job failed and how many times it was retried first."""

    message: str
    retry_count: int = 0


class JobRead(BaseModel):
    """Job status as returned by the status query."""

    id: str
    status: JobStatus
    result: Optional[ExpenseDetails] = None
    error: Optional[JobError] = None
    retry_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Any) -> "JobRead":
        """Build the response, exposing ``result``/``error`` only in their terminal states."""
        status = JobStatus(job.status)
        result = None
        error = None
        if status is JobStatus.SUCCEEDED and job.result is not None:
            result = ExpenseDetails.model_validate(job.result)
        if status is JobStatus.FAILED:
            error = JobError(
                message=job.error_message or "unknown error",
                retry_count=job.retry_count or 0,
            )
        return cls(
            id=job.id,
            status=status,
            result=result,
            error=error,
            retry_count=job.retry_count or 0,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


# ---------------------------------------------------------------------------
# Products


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
