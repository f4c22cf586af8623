from __future__ import annotations

from typing import Optional, Protocol

import structlog
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from pytz import timezone

from app.config import get_settings
from app.scheduler.jobs import run_daily_metrics_recompute

logger = structlog.get_logger(__name__)

settings = get_settings()

RECOMPUTE_JOB_ID = "daily-metrics-recompute"


class ScheduleStrategy(Protocol):
    """Decides when the recompute fires; swap for per-timezone or event-driven triggers."""

    def trigger(self) -> BaseTrigger: ...


class FixedTimeDailyStrategy:
    """Once a day at a fixed wall-clock time, 00:05 UTC by default."""

    def __init__(self, hour: int = 0, minute: int = 5, tz: str = "UTC") -> None:
        self.hour = hour
        self.minute = minute
        self.tz = tz

    def trigger(self) -> BaseTrigger:
        return CronTrigger(hour=self.hour, minute=self.minute, timezone=timezone(self.tz))


def _jobstore():
    # Only persist jobs when a dedicated store is configured.
    if settings.SCHEDULER_DB_URL:
        return SQLAlchemyJobStore(url=settings.SCHEDULER_DB_URL)
    return MemoryJobStore()


scheduler = AsyncIOScheduler(
    jobstores={"default": _jobstore()},
    timezone=timezone(settings.SCHEDULER_TZ),
)


def default_strategy() -> ScheduleStrategy:
    return FixedTimeDailyStrategy(
        hour=settings.METRICS_RECOMPUTE_HOUR,
        minute=settings.METRICS_RECOMPUTE_MINUTE,
        tz=settings.SCHEDULER_TZ,
    )


def configure_jobs(
    target: Optional[AsyncIOScheduler] = None,
    strategy: Optional[ScheduleStrategy] = None,
) -> None:
    """
    Register recurring jobs with the scheduler.

    - daily-metrics-recompute: refresh every onboarded user's BMI/BMR/TDEE
    """
    target = target or scheduler
    strategy = strategy or default_strategy()
    target.add_job(
        run_daily_metrics_recompute,
        trigger=strategy.trigger(),
        id=RECOMPUTE_JOB_ID,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    logger.info("scheduler.job_registered", job_id=RECOMPUTE_JOB_ID)


async def init_scheduler(app) -> None:
    """
    FastAPI startup hook: register jobs and start APScheduler
    if SCHEDULER_ENABLED is true.
    """
    if not settings.SCHEDULER_ENABLED:
        return
    configure_jobs()
    scheduler.start()


async def shutdown_scheduler() -> None:
    """
    FastAPI shutdown hook: stop the scheduler cleanly.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
