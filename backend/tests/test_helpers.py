import datetime as dt

import pytest
from pydantic import ValidationError

from spendlog.core.config import Settings
from spendlog.core.database import normalize_async_url
from spendlog.utils.helpers import format_amount, is_valid_job_id, new_job_id, utcnow


def test_new_job_id_is_canonical_uuid():
    job_id = new_job_id()
    assert is_valid_job_id(job_id)
    assert new_job_id() != job_id


def test_is_valid_job_id_rejects_garbage():
    assert not is_valid_job_id("")
    assert not is_valid_job_id(None)
    assert not is_valid_job_id("not-a-uuid")
    assert not is_valid_job_id("6F1C2B9E8A574D8E9A3C0D3C1F0A9B11")


def test_format_amount():
    assert format_amount("1,234.5") == "1234.50"
    assert format_amount(" 4 ") == "4.00"
    assert format_amount("abc") is None
    assert format_amount(None) is None


def test_utcnow_is_naive_utc():
    now = utcnow()
    assert now.tzinfo is None
    assert abs(now - dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)) < dt.timedelta(seconds=5)


def test_normalize_async_url():
    assert normalize_async_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
    assert normalize_async_url("postgres://u:p@db/app") == "postgresql+psycopg://u:p@db/app"
    assert normalize_async_url("postgresql+asyncpg://u:p@db/app") == "postgresql+psycopg://u:p@db/app"
    assert normalize_async_url("sqlite+aiosqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"


def test_settings_normalise_and_check_extraction_options():
    assert Settings(EXTRACTION_BACKEND=" OpenAI ", QUEUE_BROKER="STUB").EXTRACTION_BACKEND == "openai"
    assert Settings(DRAMATIQ_BROKER_URL="redis://queue:6379/1").broker_url == "redis://queue:6379/1"
    with pytest.raises(ValidationError):
        Settings(EXTRACTION_MIN_BACKOFF_MS=10_000, EXTRACTION_MAX_BACKOFF_MS=5_000)
