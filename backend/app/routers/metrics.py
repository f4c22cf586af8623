# app/routers/metrics.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.security import get_current_user_id
from app.db.session import get_db
from app.schemas.common import ok, meta_now
from app.schemas.metrics import AcknowledgeMetricsIn
from app.services.acknowledgment import AcknowledgmentTracker
from app.services.metrics import MetricsComputationService
from app.utils.timeutil import to_iso_z

router = APIRouter(prefix="/api/v1/profile/metrics", tags=["metrics"])


@router.get("/today")
def today_metrics(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Today's BMI/BMR/TDEE with explanations and whether the user has
    acknowledged them. 404 NOT_FOUND until the first snapshot exists.
    """
    summary = MetricsComputationService(db).get_today_summary(user_id)
    return ok(data=summary.to_dict(), meta=meta_now())


@router.post("/acknowledge", status_code=status.HTTP_200_OK)
def acknowledge_metrics(
    body: AcknowledgeMetricsIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ack = AcknowledgmentTracker(db).acknowledge(user_id, body.version, body.metrics_computed_at)
    return ok(
        data={
            "acknowledged": True,
            "acknowledged_at": to_iso_z(ack.acknowledged_at),
            "metrics_computed_at": to_iso_z(ack.metrics_computed_at),
            "version": ack.formula_version,
        },
        meta=meta_now(),
    )
