from __future__ import annotations

import asyncio

from spendlog.core.database import engine
from spendlog.scripts.check_jobs import check_jobs
from spendlog.scripts.init_db import main as init_db_main


def test_init_db_then_check_jobs(capsys):
    async def run():
        try:
            await init_db_main()
            await check_jobs()
        finally:
            await engine.dispose()

    asyncio.run(run())

    out = capsys.readouterr().out
    assert "Database initialization complete!" in out
    assert "No extraction jobs found in database" in out
