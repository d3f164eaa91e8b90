"""Dramatiq worker entry point.

This module configures logging and Sentry for the worker process and
imports the actors so they are registered when the worker starts.

Run with:
    dramatiq spendlog.worker --processes 2 --threads 4
"""

import logging

from spendlog.core.config import settings
from spendlog.core.observability import init_sentry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if init_sentry("worker"):
    logger.info("Sentry SDK initialized for worker")

# Import tasks to register them (this also configures the broker)
from spendlog.core.tasks import broker, process_extraction  # noqa: E402,F401

logger.info(
    "Extraction actor registered on queue=%s max_retries=%s time_limit_ms=%s",
    settings.EXTRACTION_QUEUE_NAME,
    settings.EXTRACTION_MAX_RETRIES,
    settings.EXTRACTION_TIME_LIMIT_MS,
)
