"""Print extraction job counts per status and the most recent jobs."""

import asyncio

from sqlalchemy import func, select

from spendlog.core.database import get_db
from spendlog.models.tables import ExtractionJob


async def check_jobs(limit: int = 5):
    async for session in get_db():
        counts = await session.execute(
            select(ExtractionJob.status, func.count(ExtractionJob.id)).group_by(ExtractionJob.status)
        )
        rows = counts.all()
        if not rows:
            print("No extraction jobs found in database")
            return
        for status, total in rows:
            print(f"{status:<12} {total}")

        result = await session.execute(
            select(ExtractionJob).order_by(ExtractionJob.created_at.desc()).limit(limit)
        )
        print("\nLatest jobs:")
        for job in result.scalars().all():
            print(f"ID: {job.id}, Status: {job.status}, Retries: {job.retry_count}, Created: {job.created_at}")
            if job.error_message:
                print(f"  Error: {job.error_message}")
        break


if __name__ == "__main__":
    asyncio.run(check_jobs())
