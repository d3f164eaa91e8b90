"""Job submission: record a job, publish it, hand back its id.

The job row is written before the message is published so that a
consumer picking the message up immediately always finds it.  If the
publish fails the row is moved straight to ``failed`` and the caller
gets :class:`QueuePublishError`; a ``queued`` job that no consumer will
ever see is never left behind.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from spendlog.core.exceptions import JobTransitionConflict, JobValidationError, QueuePublishError
from spendlog.core.observability import sentry_breadcrumb
from spendlog.models.enums import JobStatus
from spendlog.models.schemas import EnqueueResponse, QueueMessage
from spendlog.services.job_store import JobStore
from spendlog.utils.helpers import new_job_id, utcnow

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(self, store: JobStore, publisher: Any) -> None:
        self._store = store
        self._publisher = publisher

    async def submit(self, text: str, owner_id: Optional[str] = None) -> EnqueueResponse:
        if not isinstance(text, str) or not text:
            raise JobValidationError("text must be a non-empty string")

        job_id = new_job_id()
        await self._store.create(job_id, text, owner_id=owner_id)

        result = self._publisher.publish(QueueMessage(text=text, job_id=job_id))
        if not result.ok:
            try:
                await self._store.transition(
                    job_id,
                    [JobStatus.QUEUED],
                    JobStatus.FAILED,
                    {"error_message": f"publish failed: {result.error}", "completed_at": utcnow()},
                )
            except JobTransitionConflict:
                # A consumer already claimed it, so the message did reach the queue
                logger.warning("[submit] publish reported failure but job_id=%s is already being processed", job_id)
                return EnqueueResponse(job_id=job_id)
            sentry_breadcrumb(category="jobs", message="submit.publish_failed", level="error", data={"job_id": job_id})
            raise QueuePublishError(job_id, result.error or "unknown error")

        logger.info("[submit] queued job_id=%s message_id=%s owner=%s", job_id, result.message_id, owner_id or "-")
        sentry_breadcrumb(category="jobs", message="submit.queued", data={"job_id": job_id})
        return EnqueueResponse(job_id=job_id)
