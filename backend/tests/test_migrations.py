from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "alembic"


def _config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    return cfg


def test_migration_log_has_a_single_head():
    assert ScriptDirectory.from_config(_config()).get_heads() == ["0002_create_extraction_jobs"]


def test_upgrade_and_downgrade(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("ALEMBIC_DATABASE_URL", url)
    cfg = _config()

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    inspector = inspect(engine)
    assert {"products", "extraction_jobs"} <= set(inspector.get_table_names())
    columns = {c["name"] for c in inspector.get_columns("extraction_jobs")}
    assert {"id", "payload", "status", "result", "retry_count", "lease_id", "owner_id"} <= columns
    indexes = {ix["name"] for ix in inspector.get_indexes("extraction_jobs")}
    assert {"ix_extraction_jobs_status", "ix_extraction_jobs_owner_id"} <= indexes

    command.downgrade(cfg, "base")
    assert "extraction_jobs" not in set(inspect(engine).get_table_names())
    engine.dispose()
