"""SQLAlchemy ORM models for the expense tracking API.

These models define the relational schema used by the application.
Job statuses are stored as plain strings so that the job store can
compare-and-swap on them with a single conditional ``UPDATE``.

If you extend or modify these models remember to add an Alembic
revision under ``backend/alembic/versions`` as well.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
)

from spendlog.core.database import Base
from spendlog.utils.helpers import utcnow
from .enums import JobStatus


class Product(Base):
    """Catalogue entry listed to clients."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)


class ExtractionJob(Base):
    """Text extraction job submitted through the API and run by the queue consumer."""

    __tablename__ = "extraction_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'processing', 'succeeded', 'failed')",
            name="ck_extraction_jobs_status",
        ),
    )

    id = Column(String(36), primary_key=True)  # UUID4 assigned at submission
    payload = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default=JobStatus.QUEUED.value, index=True)

    result = Column(JSON, nullable=True)  # only set once the job succeeded
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    # Token of the consumer invocation that claimed the job
    lease_id = Column(String(32), nullable=True)
    # Identity subject of the submitter; null for anonymous submissions
    owner_id = Column(String, nullable=True, index=True)

    # Timing
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<ExtractionJob id={self.id} status={self.status} retries={self.retry_count}>"
