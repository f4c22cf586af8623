# app/services/plan_gate.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from app.config import get_settings
from app.services.acknowledgment import AcknowledgmentTracker
from app.services.errors import GateError, NotFoundError
from app.services.metrics import MetricsComputationService
from app.utils.timeutil import Clock, utc_now

logger = structlog.get_logger(__name__)

GATE_MESSAGE = "metrics must be acknowledged before plan generation"


@dataclass(frozen=True)
class GateResult:
    allowed: bool
    error: Optional[GateError] = None


class PlanGenerationGate:
    """Blocks plan generation while today's metrics are unacknowledged."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        allow_bootstrap: Optional[bool] = None,
    ) -> None:
        self.metrics = MetricsComputationService(db, clock=clock)
        self.acks = AcknowledgmentTracker(db, clock=clock)
        if allow_bootstrap is None:
            allow_bootstrap = get_settings().PLAN_GATE_ALLOW_BOOTSTRAP
        self.allow_bootstrap = allow_bootstrap

    def can_generate(self, user_id: int) -> GateResult:
        try:
            snapshot = self.metrics.get_today(user_id)
        except NotFoundError:
            # no snapshot yet: first plan for a newly onboarded user
            if self.allow_bootstrap:
                return GateResult(allowed=True)
            return GateResult(
                allowed=False,
                error=GateError(
                    "metrics must be computed and acknowledged before plan generation",
                    details={"reason": "no_metrics"},
                ),
            )

        if self.acks.is_acknowledged(user_id, snapshot.computed_at):
            return GateResult(allowed=True)

        return GateResult(
            allowed=False,
            error=GateError(
                GATE_MESSAGE,
                details={"reason": "not_acknowledged", "version": snapshot.formula_version},
            ),
        )

    def ensure_can_generate(self, user_id: int) -> None:
        result = self.can_generate(user_id)
        if not result.allowed:
            logger.info("plans.gate_rejected", user_id=user_id, reason=(result.error.details or {}).get("reason"))
            raise result.error


__all__ = ["GateResult", "PlanGenerationGate", "GATE_MESSAGE"]
