"""Dramatiq broker and actor definitions for the extraction queue.

The API publishes ``{"text": ..., "jobId": ...}`` to the
``process_extraction`` actor.  Dramatiq supplies the transport
guarantees: messages survive restarts, are redelivered with exponential
backoff when the actor raises, are abandoned after ``time_limit``, and
land in the dead-letter queue when retrying stops.

To run the consumer start a Dramatiq worker pointed at the worker module:

```bash
dramatiq spendlog.worker --processes 1 --threads 4
```

The broker URL defaults to ``REDIS_URL``.  Set ``QUEUE_BROKER=stub`` to use
Dramatiq's in-memory broker (tests, local experiments).
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Iterable, List

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import CurrentMessage, TimeLimitExceeded

from spendlog.core.config import settings
from spendlog.core.database import create_worker_engine, make_session_factory
from spendlog.core.exceptions import PermanentExtractionError, TransientExtractionError
from spendlog.core.observability import sentry_capture
from spendlog.models.enums import MessageOutcome
from spendlog.services.consumer import ExtractionConsumer, MessageReport, job_id_of
from spendlog.services.extraction_service import build_extraction_service
from spendlog.services.job_store import JobStore

logger = logging.getLogger(__name__)


def _has_mw(broker: dramatiq.Broker, mw_cls: type) -> bool:
    return any(isinstance(m, mw_cls) for m in broker.middleware)


def _build_broker() -> dramatiq.Broker:
    if (settings.QUEUE_BROKER or "redis").lower() == "stub":
        new_broker: dramatiq.Broker = StubBroker()
        new_broker.emit_after("process_boot")
    else:
        new_broker = RedisBroker(url=settings.broker_url)
    if not _has_mw(new_broker, CurrentMessage):
        new_broker.add_middleware(CurrentMessage())
    return new_broker


broker = _build_broker()
dramatiq.set_broker(broker)
logger.info("Dramatiq broker configured (%s)", broker.__class__.__name__)


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Retry policy for the extraction actor.

    Transient failures and time limits are redelivered.  The job record keeps
    the real retry budget; ``EXTRACTION_MAX_DELIVERIES`` only caps runaway
    loops such as a database outage.
    """
    if not isinstance(exception, (TransientExtractionError, TimeLimitExceeded)):
        return False
    return retries_so_far < settings.EXTRACTION_MAX_DELIVERIES


async def consume_messages(messages: Iterable[Dict[str, Any]]) -> List[MessageReport]:
    """Run the consumer over ``messages`` with an engine owned by this invocation."""
    engine = create_worker_engine()
    try:
        consumer = ExtractionConsumer(
            JobStore(make_session_factory(engine)),
            build_extraction_service(),
            max_retries=settings.EXTRACTION_MAX_RETRIES,
            stale_after=dt.timedelta(milliseconds=settings.EXTRACTION_TIME_LIMIT_MS),
        )
        return await consumer.process_batch(messages)
    finally:
        await engine.dispose()


async def fail_job(job_id: str, cause: str) -> bool:
    """Move an unfinished job to ``failed`` once its message will not be retried."""
    engine = create_worker_engine()
    try:
        return await JobStore(make_session_factory(engine)).fail_unfinished(job_id, cause)
    finally:
        await engine.dispose()


def _give_up(job_id: Any, cause: str) -> None:
    if not job_id:
        return
    try:
        failed = asyncio.run(fail_job(job_id, cause))
    except Exception as exc:
        logger.exception("[worker] could not fail job_id=%s after giving up", job_id)
        sentry_capture(exc, job_id=job_id)
        return
    if failed:
        logger.warning("[worker] job_id=%s failed: %s", job_id, cause)


@dramatiq.actor(
    queue_name=settings.EXTRACTION_QUEUE_NAME,
    retry_when=should_retry,
    min_backoff=settings.EXTRACTION_MIN_BACKOFF_MS,
    max_backoff=settings.EXTRACTION_MAX_BACKOFF_MS,
    time_limit=settings.EXTRACTION_TIME_LIMIT_MS,
)
def process_extraction(message: Dict[str, Any]) -> None:
    """Consume one extraction message and translate the outcome for Dramatiq.

    Acknowledged outcomes return normally.  Retryable outcomes raise
    :class:`TransientExtractionError`, everything else raises
    :class:`PermanentExtractionError` and is dead-lettered.  On the last
    delivery Dramatiq will make, a job that is still unfinished is failed
    so it cannot stay ``queued`` or ``processing`` forever.
    """
    current = CurrentMessage.get_current_message()
    retries = current.options.get("retries", 0) if current else 0
    final_delivery = retries >= settings.EXTRACTION_MAX_DELIVERIES
    job_id = job_id_of(message)
    try:
        report = asyncio.run(consume_messages([message]))[0]
    except TimeLimitExceeded:
        if final_delivery:
            _give_up(job_id, f"time limit exceeded on delivery {retries + 1}")
        raise
    except Exception as exc:
        # Consumer could not be built (bad extraction backend or database URL); not retried
        logger.exception("[worker] consumer setup failed job_id=%s", job_id)
        _give_up(job_id, f"{exc.__class__.__name__}: {exc}")
        raise PermanentExtractionError(f"worker setup failed: {exc}") from exc

    logger.info(
        "[worker] message_id=%s job_id=%s outcome=%s",
        current.message_id if current else "-", report.job_id, report.outcome.value,
    )
    if report.outcome.acknowledges:
        return
    if report.outcome is MessageOutcome.RETRY:
        if final_delivery:
            _give_up(report.job_id, f"gave up after {retries + 1} deliveries: {report.detail}")
        raise TransientExtractionError(report.detail or "transient failure")
    raise PermanentExtractionError(report.detail or "permanent failure")
