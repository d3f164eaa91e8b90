from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

# Add backend folder to sys.path so `import spendlog...` works in tests when running from the repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Settings are read at import time, so the test environment must be in place first
_TEST_DB_DIR = tempfile.mkdtemp(prefix="spendlog-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["QUEUE_BROKER"] = "stub"
os.environ["DEV_AUTH_BYPASS"] = "false"
os.environ["EXTRACTION_BACKEND"] = "rules"
os.environ["EXTRACTION_MIN_BACKOFF_MS"] = "10"
os.environ["EXTRACTION_MAX_BACKOFF_MS"] = "50"
os.environ.pop("SENTRY_DSN", None)

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from spendlog.core.database import Base, make_session_factory  # noqa: E402
from spendlog.models import tables  # noqa: E402,F401
from spendlog.models.schemas import ExpenseDetails  # noqa: E402
from spendlog.services.job_store import JobStore  # noqa: E402
from spendlog.services.queue_service import PublishResult  # noqa: E402


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "jobs.db"


@pytest.fixture
def database_url(db_path):
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture
def session_factory(db_path, database_url):
    # Tables are created through a sync engine so no event loop is involved here.
    # NullPool: connections never outlive the event loop that opened them, so the
    # same factory works in async tests, TestClient threads and Dramatiq workers.
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    engine = create_async_engine(database_url, poolclass=NullPool)
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


class RecordingPublisher:
    """Publisher double that records wire messages instead of sending them."""

    def __init__(self, fail_with: str | None = None):
        self.messages: list[dict] = []
        self.fail_with = fail_with

    def publish(self, message):
        if self.fail_with:
            return PublishResult(ok=False, error=self.fail_with)
        self.messages.append(message.to_wire())
        return PublishResult(ok=True, message_id=f"msg-{len(self.messages)}")


class ScriptedExtractor:
    """Extractor double: pops scripted outcomes, then echoes the text as merchant."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    async def extract(self, text):
        self.calls.append(text)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return ExpenseDetails(merchant=text)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def failing_publisher():
    return RecordingPublisher(fail_with="broker down")


@pytest.fixture
def scripted_extractor():
    """Factory for :class:`ScriptedExtractor` doubles."""
    return ScriptedExtractor
