"""Persistent job records for the extraction pipeline.

The store is the only place job state changes.  Every state change is a
compare-and-swap: a single conditional ``UPDATE`` that only matches when
the job is still in one of the expected source states (and, for
consumer writes, still held by the caller's lease).  A miss raises
:class:`JobTransitionConflict` and leaves the row untouched, which is
what lets redelivered messages and abandoned consumer invocations race
safely without locks.

Each method opens its own session from the injected factory, so one
store instance can be shared by concurrent tasks.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spendlog.core.exceptions import (
    JobAlreadyExistsError,
    JobNotFoundError,
    JobTransitionConflict,
)
from spendlog.models.enums import ALLOWED_TRANSITIONS, JobStatus
from spendlog.models.tables import ExtractionJob
from spendlog.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# Columns callers may never overwrite through ``fields``
_PROTECTED_FIELDS = frozenset({"id", "status", "payload", "created_at"})


def _as_statuses(values: Iterable[JobStatus | str]) -> List[JobStatus]:
    return [JobStatus(v) for v in values]


class JobStore:
    """Job record store backed by the ``extraction_jobs`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, job_id: str, payload: str, owner_id: Optional[str] = None) -> ExtractionJob:
        """Insert a new job in ``queued``.  Fails if ``job_id`` is taken."""
        now = utcnow()
        job = ExtractionJob(
            id=job_id,
            payload=payload,
            status=JobStatus.QUEUED.value,
            retry_count=0,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(job)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise JobAlreadyExistsError(job_id) from exc
        return job

    async def get(self, job_id: str) -> Optional[ExtractionJob]:
        async with self._session_factory() as session:
            return await session.get(ExtractionJob, job_id)

    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[JobStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ExtractionJob]:
        stmt = select(ExtractionJob).where(ExtractionJob.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(ExtractionJob.status == JobStatus(status).value)
        stmt = stmt.order_by(ExtractionJob.created_at.desc()).limit(limit).offset(offset)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def transition(
        self,
        job_id: str,
        from_statuses: Iterable[JobStatus | str],
        to_status: JobStatus | str,
        fields: Optional[Mapping[str, Any]] = None,
        *,
        lease_id: Optional[str] = None,
    ) -> ExtractionJob:
        """Move ``job_id`` to ``to_status`` if its status is in ``from_statuses``.

        ``fields`` are written in the same statement.  When ``lease_id`` is
        given the job must also still carry that lease.

        Raises:
            ValueError: the move is not a legal lifecycle step, or ``fields``
                touches a protected column.
            JobNotFoundError: no such job.
            JobTransitionConflict: the job exists but did not match; nothing
                was written.
        """
        sources = _as_statuses(from_statuses)
        target = JobStatus(to_status)
        illegal = [s.value for s in sources if target not in ALLOWED_TRANSITIONS[s]]
        if illegal:
            raise ValueError(f"Illegal transition {illegal} -> {target.value}")
        values: Dict[str, Any] = dict(fields or {})
        protected = _PROTECTED_FIELDS.intersection(values)
        if protected:
            raise ValueError(f"Cannot set protected job fields: {sorted(protected)}")

        criteria = [ExtractionJob.status.in_([s.value for s in sources])]
        if lease_id is not None:
            criteria.append(ExtractionJob.lease_id == lease_id)
        values["status"] = target.value
        return await self._compare_and_swap(job_id, criteria, values, sources, target)

    async def claim(self, job_id: str, stale_after: dt.timedelta) -> ExtractionJob:
        """Take ownership of a job for processing under a fresh lease.

        Matches a ``queued`` job, or a ``processing`` job whose
        ``started_at`` is older than ``stale_after`` (its previous consumer
        is presumed gone).  Reclaiming an abandoned attempt counts it in
        ``retry_count``.  The returned job carries the new ``lease_id``.
        """
        now = utcnow()
        cutoff = now - stale_after
        criteria = [
            or_(
                ExtractionJob.status == JobStatus.QUEUED.value,
                and_(
                    ExtractionJob.status == JobStatus.PROCESSING.value,
                    or_(ExtractionJob.started_at.is_(None), ExtractionJob.started_at < cutoff),
                ),
            )
        ]
        values = {
            "status": JobStatus.PROCESSING.value,
            "lease_id": uuid.uuid4().hex,
            "started_at": now,
            "retry_count": case(
                (ExtractionJob.status == JobStatus.PROCESSING.value, ExtractionJob.retry_count + 1),
                else_=ExtractionJob.retry_count,
            ),
        }
        return await self._compare_and_swap(
            job_id,
            criteria,
            values,
            [JobStatus.QUEUED, JobStatus.PROCESSING],
            JobStatus.PROCESSING,
        )

    # ------------------------------------------------------------------
    # Consumer shortcuts; all of them require the caller's lease

    async def mark_succeeded(self, job_id: str, lease_id: str, result: Mapping[str, Any]) -> ExtractionJob:
        return await self.transition(
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.SUCCEEDED,
            {"result": dict(result), "error_message": None, "completed_at": utcnow()},
            lease_id=lease_id,
        )

    async def requeue_for_retry(self, job_id: str, lease_id: str, error: str) -> ExtractionJob:
        return await self.transition(
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.QUEUED,
            {
                "retry_count": ExtractionJob.retry_count + 1,
                "error_message": error,
                "lease_id": None,
            },
            lease_id=lease_id,
        )

    async def mark_failed(self, job_id: str, lease_id: str, error: str) -> ExtractionJob:
        return await self.transition(
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.FAILED,
            {"error_message": error, "completed_at": utcnow()},
            lease_id=lease_id,
        )

    async def fail_unfinished(self, job_id: str, error: str) -> bool:
        """Fail a job that is still queued or processing, regardless of lease.

        Used when the transport gives up on a job's message.  Returns False
        when the job is missing or already terminal.
        """
        try:
            await self.transition(
                job_id,
                [JobStatus.QUEUED, JobStatus.PROCESSING],
                JobStatus.FAILED,
                {"error_message": error, "completed_at": utcnow(), "lease_id": None},
            )
        except (JobNotFoundError, JobTransitionConflict):
            return False
        return True

    # ------------------------------------------------------------------

    async def _compare_and_swap(
        self,
        job_id: str,
        criteria: List[Any],
        values: Dict[str, Any],
        expected: Iterable[JobStatus],
        target: JobStatus,
    ) -> ExtractionJob:
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(ExtractionJob)
            .where(ExtractionJob.id == job_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                current = await session.get(ExtractionJob, job_id)
                if current is None:
                    raise JobNotFoundError(job_id)
                logger.info(
                    "[jobs] transition conflict job_id=%s status=%s target=%s",
                    job_id, current.status, target.value,
                )
                raise JobTransitionConflict(job_id, expected, current.status, target.value)
            await session.commit()
            job = await session.get(ExtractionJob, job_id, populate_existing=True)
        if job is None:  # pragma: no cover - row vanished between commit and read
            raise JobNotFoundError(job_id)
        return job
