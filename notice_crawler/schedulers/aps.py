"""
APScheduler entry points for running the crawl and reminder jobs on a schedule.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from notice_crawler.runtime import Runtime, build_runtime, run_ingestion, run_reminders

logger = logging.getLogger(__name__)


def build_scheduler(runtime: Runtime) -> AsyncIOScheduler:
    tz = runtime.settings.timezone
    scheduler = AsyncIOScheduler(timezone=tz)

    async def job_ingest():
        try:
            await run_ingestion(runtime)
        except Exception:  # pragma: no cover - keep the scheduler alive
            logger.exception("Notice ingestion run crashed")

    async def job_reminders():
        try:
            await run_reminders(runtime)
        except Exception:  # pragma: no cover - keep the scheduler alive
            logger.exception("Reminder sweep crashed")

    scheduler.add_job(
        job_ingest,
        CronTrigger.from_crontab(runtime.settings.ingest_cron, timezone=tz),
        id="notice_ingest",
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.add_job(
        job_reminders,
        CronTrigger.from_crontab(runtime.settings.reminder_cron, timezone=tz),
        id="notice_reminders",
        coalesce=True,
    )
    return scheduler


async def _serve(runtime: Runtime) -> None:
    scheduler = build_scheduler(runtime)
    scheduler.start()
    logger.info("Scheduler started: ingest '%s', reminders '%s'", runtime.settings.ingest_cron, runtime.settings.reminder_cron)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await runtime.aclose()


def run_scheduler(runtime: Optional[Runtime] = None) -> None:
    asyncio.run(_serve(runtime or build_runtime()))


if __name__ == "__main__":  # pragma: no cover
    run_scheduler()
