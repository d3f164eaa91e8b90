"""Queue consumer for extraction jobs.

The transport delivers messages at least once, possibly in batches and
possibly to several consumer processes at the same time.  The consumer
therefore:

- treats a job that already reached a terminal state as a duplicate and
  does nothing (extraction is not re-run, the stored result is untouched);
- claims a job through the store's compare-and-swap before working on
  it, and writes the outcome under the lease it was given, so only one
  invocation can ever record a terminal state;
- sends a message back to the queue when its job is held under a live
  lease, so a job whose consumer died is reclaimed once the lease is stale;
- processes every message of a batch independently; one bad message
  never stops the others.

The consumer does not talk to the transport itself.  It returns one
:class:`MessageReport` per message and the caller (the Dramatiq actor in
``spendlog.core.tasks``) turns outcomes into ack / retry / dead-letter.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from spendlog.core.exceptions import (
    JobNotFoundError,
    JobTransitionConflict,
    PermanentExtractionError,
    TransientExtractionError,
)
from spendlog.core.observability import sentry_breadcrumb, sentry_capture
from spendlog.models.enums import JobStatus, MessageOutcome
from spendlog.models.schemas import QueueMessage
from spendlog.services.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageReport:
    job_id: Optional[str]
    outcome: MessageOutcome
    detail: Optional[str] = None


class ExtractionConsumer:
    """Runs extraction for delivered queue messages and records the outcome."""

    def __init__(
        self,
        store: JobStore,
        extractor: Any,
        max_retries: int = 3,
        stale_after: dt.timedelta = dt.timedelta(minutes=2),
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.max_retries = max_retries
        self.stale_after = stale_after

    async def process_batch(self, messages: Iterable[Mapping[str, Any] | QueueMessage]) -> List[MessageReport]:
        """Process every message concurrently; reports come back in input order."""
        batch = list(messages)
        outcomes = await asyncio.gather(
            *(self.process_message(m) for m in batch),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                # Interrupts (time limits, cancellation) belong to the caller
                raise outcome
        reports: List[MessageReport] = []
        for raw, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                # Store or infrastructure failure for this message only; let the transport redeliver
                job_id = job_id_of(raw)
                logger.exception("[consumer] unexpected error job_id=%s", job_id, exc_info=outcome)
                sentry_capture(outcome, job_id=job_id)
                reports.append(MessageReport(job_id, MessageOutcome.RETRY, f"consumer error: {outcome}"))
            else:
                reports.append(outcome)
        return reports

    async def process_message(self, raw: Mapping[str, Any] | QueueMessage) -> MessageReport:
        try:
            message = raw if isinstance(raw, QueueMessage) else QueueMessage.model_validate(raw)
        except ValidationError as exc:
            logger.error("[consumer] malformed message dropped: %s", exc)
            return MessageReport(job_id_of(raw), MessageOutcome.FAILED, "malformed message")

        job_id = message.job_id
        job = await self.store.get(job_id)
        if job is None:
            logger.error("[consumer] unknown job_id=%s; dead-lettering", job_id)
            return MessageReport(job_id, MessageOutcome.FAILED, "unknown job")
        if JobStatus(job.status).is_terminal:
            logger.info("[consumer] duplicate delivery job_id=%s status=%s", job_id, job.status)
            return MessageReport(job_id, MessageOutcome.DUPLICATE, f"already {job.status}")

        try:
            job = await self.store.claim(job_id, self.stale_after)
        except JobNotFoundError:
            return MessageReport(job_id, MessageOutcome.FAILED, "unknown job")
        except JobTransitionConflict as exc:
            if exc.actual and JobStatus(exc.actual).is_terminal:
                logger.info("[consumer] duplicate delivery job_id=%s status=%s", job_id, exc.actual)
                return MessageReport(job_id, MessageOutcome.DUPLICATE, f"already {exc.actual}")
            # Held under a live lease. Its consumer may have died, so come back once the lease is stale
            logger.info("[consumer] job_id=%s is held by another consumer; redelivering later", job_id)
            return MessageReport(job_id, MessageOutcome.RETRY, "job is being processed elsewhere")
        lease_id = job.lease_id
        if job.retry_count > self.max_retries:
            # Reclaims of abandoned attempts count against the budget too
            return await self._fail(job_id, lease_id, "retries exhausted: previous attempts were abandoned")
        sentry_breadcrumb(category="jobs", message="consumer.processing", data={"job_id": job_id})

        try:
            details = await self.extractor.extract(message.text)
        except TransientExtractionError as exc:
            if job.retry_count < self.max_retries:
                return await self._requeue(job_id, lease_id, str(exc), job.retry_count + 1)
            return await self._fail(job_id, lease_id, f"retries exhausted: {exc}")
        except PermanentExtractionError as exc:
            return await self._fail(job_id, lease_id, str(exc))
        except Exception as exc:
            logger.exception("[consumer] extraction crashed job_id=%s", job_id)
            sentry_capture(exc, job_id=job_id)
            return await self._fail(job_id, lease_id, f"{exc.__class__.__name__}: {exc}")

        try:
            await self.store.mark_succeeded(job_id, lease_id, details.model_dump())
        except JobTransitionConflict:
            logger.warning("[consumer] lease superseded before success job_id=%s", job_id)
            return MessageReport(job_id, MessageOutcome.DUPLICATE, "lease superseded")
        logger.info("[consumer] succeeded job_id=%s", job_id)
        return MessageReport(job_id, MessageOutcome.SUCCEEDED)

    async def _requeue(self, job_id: str, lease_id: str, error: str, attempt: int) -> MessageReport:
        try:
            await self.store.requeue_for_retry(job_id, lease_id, error)
        except JobTransitionConflict:
            return MessageReport(job_id, MessageOutcome.DUPLICATE, "lease superseded")
        logger.warning("[consumer] transient failure job_id=%s retry=%s/%s: %s", job_id, attempt, self.max_retries, error)
        return MessageReport(job_id, MessageOutcome.RETRY, error)

    async def _fail(self, job_id: str, lease_id: str, error: str) -> MessageReport:
        try:
            await self.store.mark_failed(job_id, lease_id, error)
        except JobTransitionConflict:
            return MessageReport(job_id, MessageOutcome.DUPLICATE, "lease superseded")
        logger.error("[consumer] failed job_id=%s: %s", job_id, error)
        sentry_breadcrumb(category="jobs", message="consumer.failed", level="error", data={"job_id": job_id})
        return MessageReport(job_id, MessageOutcome.FAILED, error)


def job_id_of(raw: Any) -> Optional[str]:
    """Best-effort job id of a raw or parsed queue message."""
    if isinstance(raw, QueueMessage):
        return raw.job_id
    if isinstance(raw, Mapping):
        value = raw.get("jobId") or raw.get("job_id")
        return str(value) if value else None
    return None
