"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the API process.  The connection string comes from
``DATABASE_URL``; Postgres URLs are normalised onto the async ``psycopg``
driver and SQLite URLs onto ``aiosqlite``.  When no URL is configured a
local SQLite database is used only if ``DB_DEV_FALLBACK_SQLITE`` is set.

Queue consumers do not share this engine.  Each actor invocation builds
its own short-lived engine through :func:`create_worker_engine` so that
no connection outlives the event loop that opened it.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from spendlog.core.config import settings

logger = logging.getLogger(__name__)

SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./spendlog.db"

# Declarative base
Base = declarative_base()


def normalize_async_url(url: str) -> str:
    """Return ``url`` rewritten to use an async driver.

    - ``sqlite://`` becomes ``sqlite+aiosqlite://``
    - ``postgres://``, ``postgresql://`` and the psycopg2/asyncpg variants
      become ``postgresql+psycopg://``
    Other URLs are returned unchanged.
    """
    url_obj = make_url(url)
    driver = url_obj.drivername or ""
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    elif driver in {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+asyncpg"}:
        url_obj = url_obj.set(drivername="postgresql+psycopg")
    return url_obj.render_as_string(hide_password=False)


def resolve_database_url(url: Optional[str] = None) -> str:
    """Pick the configured database URL or fail fast."""
    db_url = url or settings.DATABASE_URL
    if not db_url:
        if not settings.DB_DEV_FALLBACK_SQLITE:
            raise RuntimeError(
                "No database URL provided via DATABASE_URL; with "
                "DB_DEV_FALLBACK_SQLITE=false, a database URL is required."
            )
        db_url = SQLITE_FALLBACK_URL
    return normalize_async_url(db_url)


def create_worker_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create an unpooled engine for a single consumer invocation.

    Callers own the engine and must ``await engine.dispose()`` when done.
    """
    return create_async_engine(resolve_database_url(url), poolclass=NullPool)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


db_url = resolve_database_url()
engine_kwargs: dict[str, Any] = dict(echo=False, pool_pre_ping=True)
engine = create_async_engine(db_url, **engine_kwargs)

# Create session factory
AsyncSessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    This function is intended for FastAPI dependency injection.  Each
    session is scoped to the request and closed after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_all(bind: AsyncEngine) -> None:
    """Create every table registered on ``Base`` using ``bind``."""
    # Import all models to ensure metadata is populated
    from spendlog.models import tables  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize database tables.

    Typically called during application startup in development.
    Deployed databases are managed through the Alembic migration log.
    """
    await create_all(engine)


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine for debugging."""
    info: Dict[str, Any] = {"environment": (settings.ENVIRONMENT or "development")}
    try:
        url_obj = make_url(str(engine.url))
        info.update(
            {
                "drivername": url_obj.drivername,
                "host": url_obj.host,
                "port": url_obj.port,
                "database": url_obj.database,
                "url": url_obj.render_as_string(hide_password=True),
            }
        )
    except Exception as ex:
        info.update({"error": f"unable to parse engine url: {ex}"})
    return info
