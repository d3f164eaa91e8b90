"""
Custom exception handlers for FastAPI.
Provides clear, actionable error messages for validation, queue and server errors.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from spendlog.core.exceptions import (
    JobAlreadyExistsError,
    JobNotFoundError,
    JobValidationError,
    QueuePublishError,
)
from spendlog.core.observability import sentry_capture

logger = logging.getLogger(__name__)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that are not JSON serialisable
    return [
        {k: v for k, v in err.items() if k in ("type", "loc", "msg")}
        for err in exc.errors()
    ]


def job_validation_handler(request: Request, exc: JobValidationError):
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation error", "details": str(exc)},
    )


def queue_publish_handler(request: Request, exc: QueuePublishError):
    # The job was recorded as failed; the caller may resubmit
    return JSONResponse(
        status_code=HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Queue unavailable", "details": exc.detail, "jobId": exc.job_id},
        headers={"Retry-After": "5"},
    )


def job_not_found_handler(request: Request, exc: JobNotFoundError):
    return JSONResponse(status_code=HTTP_404_NOT_FOUND, content={"error": "Job not found", "details": exc.job_id})


def job_conflict_handler(request: Request, exc: JobAlreadyExistsError):
    return JSONResponse(status_code=HTTP_409_CONFLICT, content={"error": "Job already exists", "details": exc.job_id})


def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    sentry_capture(exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "details": str(exc),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(JobValidationError, job_validation_handler)
    app.add_exception_handler(QueuePublishError, queue_publish_handler)
    app.add_exception_handler(JobNotFoundError, job_not_found_handler)
    app.add_exception_handler(JobAlreadyExistsError, job_conflict_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
