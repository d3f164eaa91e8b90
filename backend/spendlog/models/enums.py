"""Enumeration types used throughout the expense tracking API.

When modifying these enums you should update any corresponding
database columns, migrations or Pydantic validators so that new values
are accepted where appropriate.
"""

from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle states for an extraction job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


# Transitions the job store accepts.  processing -> queued is the retry requeue;
# queued -> failed is used when the submission could not be published.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.QUEUED, JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class MessageOutcome(str, Enum):
    """What the consumer decided for one delivered queue message."""

    SUCCEEDED = "succeeded"
    RETRY = "retry"
    FAILED = "failed"
    DUPLICATE = "duplicate"

    @property
    def acknowledges(self) -> bool:
        """True when the message can be removed from the queue without redelivery."""
        return self in (MessageOutcome.SUCCEEDED, MessageOutcome.DUPLICATE)
