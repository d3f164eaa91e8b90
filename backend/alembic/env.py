"""Alembic environment for the Spendlog schema.

Migrations run synchronously.  The async driver in ``DATABASE_URL`` is
swapped for its sync counterpart (``aiosqlite`` -> ``pysqlite``,
``asyncpg`` / ``psycopg2`` -> ``psycopg``).  Set ``ALEMBIC_DATABASE_URL``
to migrate with a different role than the application uses.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine.url import make_url

from spendlog.core.config import settings
from spendlog.core.database import Base
from spendlog.models import tables  # noqa: F401  (populate metadata)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _sync_url() -> str:
    raw = os.getenv("ALEMBIC_DATABASE_URL") or settings.DATABASE_URL
    if not raw:
        raise RuntimeError("Set ALEMBIC_DATABASE_URL or DATABASE_URL to run migrations")
    url = make_url(raw)
    if url.drivername == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite")
    elif url.drivername in {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+psycopg")
    return url.render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _sync_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
