from __future__ import annotations

import types

import dramatiq
import pytest
from sqlalchemy import func, select

from spendlog.core.exceptions import JobValidationError, QueuePublishError
from spendlog.models.tables import ExtractionJob
from spendlog.services.queue_service import DramatiqPublisher
from spendlog.services.submission_service import SubmissionService
from spendlog.models.schemas import QueueMessage
from spendlog.utils.helpers import is_valid_job_id


async def _count_jobs(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(ExtractionJob))).scalar_one()


@pytest.mark.asyncio
async def test_submit_records_job_and_publishes_one_message(store, publisher):
    service = SubmissionService(store, publisher)

    response = await service.submit("hello world")

    assert is_valid_job_id(response.job_id)
    assert response.status == "queued"
    assert publisher.messages == [{"text": "hello world", "jobId": response.job_id}]
    job = await store.get(response.job_id)
    assert job.status == "queued"
    assert job.payload == "hello world"
    assert job.owner_id is None


@pytest.mark.asyncio
async def test_submit_assigns_unique_ids_and_owner(store, publisher):
    service = SubmissionService(store, publisher)

    first = await service.submit("same text", owner_id="user_1")
    second = await service.submit("same text", owner_id="user_1")

    assert first.job_id != second.job_id
    assert len(publisher.messages) == 2
    assert (await store.get(first.job_id)).owner_id == "user_1"


@pytest.mark.asyncio
async def test_response_uses_wire_alias(store, publisher):
    response = await SubmissionService(store, publisher).submit("Lunch 12.00")
    assert response.model_dump(by_alias=True) == {"jobId": response.job_id, "status": "queued"}


@pytest.mark.asyncio
async def test_empty_text_rejected_before_anything_happens(store, publisher, session_factory):
    service = SubmissionService(store, publisher)

    with pytest.raises(JobValidationError):
        await service.submit("")

    assert publisher.messages == []
    assert await _count_jobs(session_factory) == 0


@pytest.mark.asyncio
async def test_publish_failure_marks_job_failed(store, failing_publisher, session_factory):
    service = SubmissionService(store, failing_publisher)

    with pytest.raises(QueuePublishError) as info:
        await service.submit("Taxi 23.10")

    job = await store.get(info.value.job_id)
    assert job.status == "failed"
    assert "broker down" in job.error_message
    assert job.completed_at is not None
    assert await _count_jobs(session_factory) == 1


def test_dramatiq_publisher_enqueues_on_actor_queue():
    from spendlog.core.tasks import broker, process_extraction

    broker.flush_all()
    result = DramatiqPublisher().publish(QueueMessage(text="Coffee 4.50", job_id="job-1"))

    assert result.ok is True
    assert result.message_id
    queue = broker.queues[process_extraction.queue_name]
    assert queue.qsize() == 1
    broker.flush_all()


def test_dramatiq_publisher_reports_transport_errors():
    def send(body):
        raise dramatiq.errors.ConnectionError("connection refused")

    publisher = DramatiqPublisher(actor=types.SimpleNamespace(send=send))
    result = publisher.publish(QueueMessage(text="x", job_id="job-2"))

    assert result.ok is False
    assert "connection refused" in result.error
    assert result.message_id is None
