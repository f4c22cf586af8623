from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy.orm import Session

from app.observability.instrument import log_job
from app.observability.metrics import record_recompute
from app.services.errors import DomainError
from app.services.metrics import MetricsComputationService
from app.services.profiles import ProfileReader, SqlProfileReader
from app.utils.timeutil import Clock, utc_now

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], Session]


@dataclass
class RecomputeReport:
    total_users: int = 0
    success_count: int = 0
    skipped_count: int = 0
    error_count: int = 0

    def as_log_fields(self) -> dict:
        return asdict(self)


class DailyMetricsRecomputeJob:
    """
    Nightly pass that makes sure every onboarded user has today's snapshot.

    Each user runs in a fresh session: a failure rolls back that user only
    and the loop moves on. Users are processed one at a time, so the report
    counters are only touched from this loop. Safe to re-run on the same day;
    existing snapshots are returned rather than duplicated.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        clock: Clock = utc_now,
        profiles: Optional[Callable[[Session], ProfileReader]] = None,
    ) -> None:
        if session_factory is None:
            from app.db.session import get_sessionmaker

            session_factory = get_sessionmaker()
        self.session_factory = session_factory
        self.clock = clock
        self._profiles = profiles or (lambda db: SqlProfileReader(db, today=clock().date()))

    def run(self) -> RecomputeReport:
        start = time.perf_counter()
        report = RecomputeReport()

        with self.session_factory() as db:
            candidates = self._profiles(db).list_onboarded()
        report.total_users = len(candidates)
        logger.info("job.recompute_start", total_users=report.total_users)

        for profile in candidates:
            missing = profile.missing_metric_inputs()
            if missing:
                report.skipped_count += 1
                logger.info("job.user_skipped", user_id=profile.user_id, missing=missing)
                continue

            with self.session_factory() as db:
                try:
                    service = MetricsComputationService(db, profiles=self._profiles(db), clock=self.clock)
                    service.compute_and_store(profile.user_id, force_recompute=False)
                except DomainError as exc:
                    db.rollback()
                    report.error_count += 1
                    logger.warning("job.user_failed", user_id=profile.user_id, code=exc.code, error=exc.message)
                except Exception as exc:
                    db.rollback()
                    report.error_count += 1
                    logger.exception("job.user_failed", user_id=profile.user_id, error=str(exc))
                else:
                    report.success_count += 1

        duration = time.perf_counter() - start
        record_recompute(report.success_count, report.skipped_count, report.error_count, duration)
        logger.info("job.recompute_report", duration_ms=round(duration * 1000, 2), **report.as_log_fields())
        return report


@log_job("daily-metrics-recompute")
def run_daily_metrics_recompute() -> RecomputeReport:
    """Scheduler entry point; builds the job against the app's sessionmaker."""
    return DailyMetricsRecomputeJob().run()


__all__ = ["DailyMetricsRecomputeJob", "RecomputeReport", "run_daily_metrics_recompute"]
