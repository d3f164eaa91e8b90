"""Common dependencies for FastAPI routes.

Collaborators are handed to routes through these functions so tests can
swap any of them with ``app.dependency_overrides``.  Identity helpers
live in ``spendlog.core.security`` and are re-exported here.
"""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.core.database import AsyncSessionLocal, get_db
from spendlog.core.security import get_optional_identity, require_identity  # noqa: F401
from spendlog.services.job_store import JobStore
from spendlog.services.queue_service import DramatiqPublisher
from spendlog.services.submission_service import SubmissionService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Alias for `get_db` to be imported in routers."""
    async for session in get_db():
        yield session


def get_job_store() -> JobStore:
    return JobStore(AsyncSessionLocal)


def get_publisher() -> DramatiqPublisher:
    return DramatiqPublisher()


def get_submission_service(
    store: JobStore = Depends(get_job_store),
    publisher: DramatiqPublisher = Depends(get_publisher),
) -> SubmissionService:
    return SubmissionService(store, publisher)
