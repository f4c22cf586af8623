# app/services/acknowledgment.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import Acknowledgment, MetricsSnapshot
from app.services.errors import NotFoundError
from app.utils.timeutil import Clock, to_utc_naive, utc_now

logger = structlog.get_logger(__name__)


class AcknowledgmentTracker:
    """
    Records that a user has seen a specific metrics snapshot.

    One row per (user, computed_at, formula version). Acknowledging the same
    snapshot again returns the existing row, and two concurrent requests
    resolve to the same row via the unique constraint.
    """

    def __init__(self, db: Session, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def _select(self, user_id: int, computed_at: datetime, version: int) -> Optional[Acknowledgment]:
        stmt = select(Acknowledgment).where(
            Acknowledgment.user_id == user_id,
            Acknowledgment.metrics_computed_at == computed_at,
            Acknowledgment.formula_version == version,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _snapshot_exists(self, user_id: int, computed_at: datetime, version: int) -> bool:
        stmt = (
            select(MetricsSnapshot.id)
            .where(
                MetricsSnapshot.user_id == user_id,
                MetricsSnapshot.computed_at == computed_at,
                MetricsSnapshot.formula_version == version,
            )
            .limit(1)
        )
        return self.db.execute(stmt).first() is not None

    def acknowledge(self, user_id: int, formula_version: int, metrics_computed_at: datetime) -> Acknowledgment:
        computed_at = to_utc_naive(metrics_computed_at)

        if not self._snapshot_exists(user_id, computed_at, formula_version):
            raise NotFoundError(
                "Metrics snapshot not found",
                details={"metrics_computed_at": computed_at.isoformat(), "version": formula_version},
            )

        existing = self._select(user_id, computed_at, formula_version)
        if existing is not None:
            logger.info("metrics.ack_exists", user_id=user_id, ack_id=existing.id)
            return existing

        ack = Acknowledgment(
            user_id=user_id,
            metrics_computed_at=computed_at,
            formula_version=formula_version,
            acknowledged_at=to_utc_naive(self.clock()),
        )
        try:
            with self.db.begin_nested():
                self.db.add(ack)
            self.db.commit()
        except IntegrityError:
            # lost the race to a concurrent insert of the same key
            self.db.rollback()
            winner = self._select(user_id, computed_at, formula_version)
            if winner is None:
                raise
            logger.info("metrics.ack_race_resolved", user_id=user_id, ack_id=winner.id)
            return winner

        self.db.refresh(ack)
        logger.info("metrics.acknowledged", user_id=user_id, ack_id=ack.id, version=formula_version)
        return ack

    def get(self, user_id: int, metrics_computed_at: datetime) -> Optional[Acknowledgment]:
        stmt = (
            select(Acknowledgment)
            .where(
                Acknowledgment.user_id == user_id,
                Acknowledgment.metrics_computed_at == to_utc_naive(metrics_computed_at),
            )
            .order_by(Acknowledgment.formula_version.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def is_acknowledged(self, user_id: int, metrics_computed_at: datetime) -> bool:
        return self.get(user_id, metrics_computed_at) is not None


__all__ = ["AcknowledgmentTracker"]
