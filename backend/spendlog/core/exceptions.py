"""Application exceptions.

The taxonomy follows how failures propagate through the job pipeline:

- validation errors reject a submission before anything is stored or published;
- transport errors (publish failures) are surfaced to the caller;
- processing errors are captured on the job, split into transient and permanent;
- store conflicts tell the consumer another invocation already owns the job.
"""

from __future__ import annotations

from typing import Iterable, Optional


class SpendlogError(Exception):
    """Base class for application errors."""


class JobValidationError(SpendlogError, ValueError):
    """Submitted input is not acceptable."""


class QueuePublishError(SpendlogError):
    """The queue transport did not accept a message."""

    def __init__(self, job_id: str, detail: str):
        super().__init__(f"Failed to publish job {job_id}: {detail}")
        self.job_id = job_id
        self.detail = detail


# ---------------------------------------------------------------------------
# Job store


class JobNotFoundError(SpendlogError, LookupError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobAlreadyExistsError(SpendlogError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already exists")
        self.job_id = job_id


class JobTransitionConflict(SpendlogError):
    """A compare-and-swap transition found the job in an unexpected state."""

    def __init__(
        self,
        job_id: str,
        expected: Iterable[str],
        actual: Optional[str],
        target: str,
    ):
        expected_list = sorted(str(getattr(s, "value", s)) for s in expected)
        super().__init__(
            f"Job {job_id} cannot move to {target}: status is {actual}, expected one of {expected_list}"
        )
        self.job_id = job_id
        self.expected = expected_list
        self.actual = actual
        self.target = target


# ---------------------------------------------------------------------------
# Processing


class ExtractionError(SpendlogError):
    """Extraction of a job's payload failed."""


class TransientExtractionError(ExtractionError):
    """Failure that may succeed on a later attempt (timeouts, rate limits, outages)."""


class PermanentExtractionError(ExtractionError):
    """Failure that will not go away by retrying the same input."""
