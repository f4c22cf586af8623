# app/services/metrics.py
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import Acknowledgment, MetricsSnapshot
from app.services import science
from app.services.errors import NotFoundError, ValidationError
from app.services.profiles import ProfileInputs, ProfileReader, SqlProfileReader
from app.utils.timeutil import Clock, to_iso_z, to_utc_naive, utc_now

logger = structlog.get_logger(__name__)

READ_P95_TARGET_MS = 200


@dataclass
class TodayMetrics:
    """Payload of the read endpoint: today's snapshot plus acknowledgment status."""

    snapshot: MetricsSnapshot
    explanations: dict
    acknowledgment: Optional[Acknowledgment] = None

    @property
    def acknowledged(self) -> bool:
        return self.acknowledgment is not None

    def to_dict(self) -> dict:
        ack = self.acknowledgment
        return {
            "metrics": {
                "bmi": float(self.snapshot.bmi),
                "bmr": int(self.snapshot.bmr),
                "tdee": int(self.snapshot.tdee),
                "computed_at": to_iso_z(self.snapshot.computed_at),
                "version": int(self.snapshot.formula_version),
            },
            "explanations": self.explanations,
            "acknowledged": self.acknowledged,
            "acknowledgement": (
                {
                    "acknowledged_at": to_iso_z(ack.acknowledged_at),
                    "version": int(ack.formula_version),
                }
                if ack is not None
                else None
            ),
        }


def validate_metric_inputs(profile: ProfileInputs) -> None:
    """Raise ValidationError unless the profile can produce BMI/BMR/TDEE."""
    missing = profile.missing_metric_inputs()
    if missing:
        raise ValidationError(
            "Profile incomplete. Missing required health data.",
            details={"missing": missing},
        )

    w_lo, w_hi = science.METRICS_WEIGHT_RANGE
    if not (w_lo < profile.weight_kg <= w_hi):
        raise ValidationError(
            f"weight_kg must be greater than {w_lo:g} and at most {w_hi:g}",
            details={"weight_kg": profile.weight_kg},
        )
    h_lo, h_hi = science.METRICS_HEIGHT_RANGE
    if not (h_lo < profile.height_cm <= h_hi):
        raise ValidationError(
            f"height_cm must be greater than {h_lo:g} and at most {h_hi:g}",
            details={"height_cm": profile.height_cm},
        )
    if profile.age < 0:
        raise ValidationError("age must not be negative", details={"age": profile.age})
    if profile.gender not in science.GENDERS:
        raise ValidationError(f"unsupported gender {profile.gender!r}")
    if profile.activity_level not in science.ACTIVITY_MULTIPLIERS:
        raise ValidationError(f"unsupported activity level {profile.activity_level!r}")


class MetricsComputationService:
    """
    Computes and stores daily BMI/BMR/TDEE snapshots.

    Snapshots are append-only. Calling compute_and_store twice on the same
    UTC day returns the first row unless force_recompute is set, which
    appends a new row and leaves the earlier one untouched.
    """

    def __init__(
        self,
        db: Session,
        profiles: Optional[ProfileReader] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.clock = clock
        self.profiles = profiles or SqlProfileReader(db, today=self._now().date())

    def _now(self):
        return to_utc_naive(self.clock())

    def _latest_for_day(self, user_id: int, day: date) -> Optional[MetricsSnapshot]:
        stmt = (
            select(MetricsSnapshot)
            .where(MetricsSnapshot.user_id == user_id, MetricsSnapshot.computed_date == day)
            .order_by(MetricsSnapshot.computed_at.desc(), MetricsSnapshot.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _last_computed_at(self, user_id: int) -> Optional[datetime]:
        stmt = select(func.max(MetricsSnapshot.computed_at)).where(MetricsSnapshot.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def compute_and_store(self, user_id: int, force_recompute: bool = False) -> MetricsSnapshot:
        now = self._now()

        if not force_recompute:
            existing = self._latest_for_day(user_id, now.date())
            if existing is not None:
                logger.info("metrics.reuse_today", user_id=user_id, snapshot_id=existing.id)
                return existing

        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("User profile not found", details={"user_id": user_id})
        validate_metric_inputs(profile)

        # Acknowledgments key on computed_at, so no two snapshots of a user may share one.
        last = self._last_computed_at(user_id)
        if last is not None and now <= last:
            now = last + timedelta(seconds=1)

        bmi = science.calculate_bmi(profile.weight_kg, profile.height_cm)
        bmr = science.calculate_bmr(profile.weight_kg, profile.height_cm, profile.age, profile.gender)
        tdee = science.calculate_tdee(bmr, profile.activity_level)

        snapshot = MetricsSnapshot(
            user_id=user_id,
            bmi=bmi,
            bmr=bmr,
            tdee=tdee,
            computed_at=now,
            computed_date=now.date(),
            formula_version=science.FORMULA_VERSION,
            force_recomputed=force_recompute,
        )
        try:
            with self.db.begin_nested():
                self.db.add(snapshot)
            self.db.commit()
        except IntegrityError:
            # another worker stored today's snapshot first
            self.db.rollback()
            winner = self._latest_for_day(user_id, now.date())
            if winner is None:
                raise
            logger.info("metrics.compute_race_resolved", user_id=user_id, snapshot_id=winner.id)
            return winner
        self.db.refresh(snapshot)

        logger.info(
            "metrics.computed",
            user_id=user_id,
            snapshot_id=snapshot.id,
            bmi=bmi,
            bmr=bmr,
            tdee=tdee,
            version=science.FORMULA_VERSION,
            force_recompute=force_recompute,
        )
        return snapshot

    def get_today(self, user_id: int) -> MetricsSnapshot:
        snapshot = self._latest_for_day(user_id, self._now().date())
        if snapshot is None:
            raise NotFoundError(
                "No metrics available yet. Complete your profile to generate today's metrics.",
                details={"user_id": user_id},
            )
        return snapshot

    def get_today_summary(self, user_id: int) -> TodayMetrics:
        # Lazy import: the tracker depends on this module's snapshots.
        from app.services.acknowledgment import AcknowledgmentTracker

        start = time.perf_counter()
        snapshot = self._latest_for_day(user_id, self._now().date())
        if snapshot is None:
            # first read of the day computes on demand
            try:
                snapshot = self.compute_and_store(user_id)
            except (NotFoundError, ValidationError) as exc:
                logger.info("metrics.today_unavailable", user_id=user_id, reason=exc.message)
                raise NotFoundError(
                    "No metrics available yet. Complete your profile to generate today's metrics.",
                    details={"user_id": user_id},
                ) from exc
        ack = AcknowledgmentTracker(self.db, clock=self.clock).get(user_id, snapshot.computed_at)
        result = TodayMetrics(
            snapshot=snapshot,
            explanations=science.metrics_explanations(float(snapshot.bmi), snapshot.bmr, snapshot.tdee),
            acknowledgment=ack,
        )

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "metrics.today_read",
            user_id=user_id,
            acknowledged=result.acknowledged,
            duration_ms=round(duration_ms, 2),
        )
        if duration_ms > READ_P95_TARGET_MS:
            logger.warning("metrics.today_read_slow", user_id=user_id, duration_ms=round(duration_ms, 2))
        return result


__all__ = ["MetricsComputationService", "TodayMetrics", "validate_metric_inputs"]
