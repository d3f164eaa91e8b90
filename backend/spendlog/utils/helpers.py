"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional


def utcnow() -> dt.datetime:
    """Current UTC time as a naive datetime, matching how timestamps are stored."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def new_job_id() -> str:
    """Return a fresh job identifier (UUID4, canonical string form)."""
    return str(uuid.uuid4())


def is_valid_job_id(value: str | None) -> bool:
    """True when ``value`` is a canonical UUID string."""
    if not value:
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


def format_amount(value: str | None) -> Optional[str]:
    """Normalise a monetary string such as ``"1,234.5"`` to ``"1234.50"``.

    Returns ``None`` if the value cannot be parsed.
    """
    if not value:
        return None
    cleaned = value.replace(",", "").strip()
    try:
        return str(Decimal(cleaned).quantize(Decimal("0.01")))
    except InvalidOperation:
        return None
