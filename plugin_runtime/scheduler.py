from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

REVALIDATION_JOB_ID = "revalidate_site"


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(timezone=timezone.utc)


def schedule_revalidation(
    scheduler: AsyncIOScheduler,
    revalidate: Callable[[], Awaitable],
    delay_seconds: int,
    now: Optional[datetime] = None,
) -> datetime:
    """Debounced site revalidation.

    One job id for the whole site: a trigger inside the window replaces the
    pending job, so the countdown restarts instead of stacking invalidations.
    """
    run_at = (now or datetime.now(timezone.utc)) + timedelta(seconds=max(delay_seconds, 0))
    scheduler.add_job(
        revalidate,
        trigger=DateTrigger(run_date=run_at),
        id=REVALIDATION_JOB_ID,
        replace_existing=True,
        misfire_grace_time=None,
    )
    logger.info(f"[Scheduler] Revalidation scheduled at {run_at.isoformat()}")
    return run_at


def pending_revalidation(scheduler: AsyncIOScheduler) -> Optional[datetime]:
    job = scheduler.get_job(REVALIDATION_JOB_ID)
    if job is None:
        return None
    # Jobs added before the scheduler starts have no next_run_time yet.
    return getattr(job, "next_run_time", None) or job.trigger.run_date
