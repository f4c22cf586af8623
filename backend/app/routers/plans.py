# app/routers/plans.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.security import get_current_user_id
from app.db.session import get_db
from app.schemas.common import ok, meta_now
from app.schemas.plans import GeneratePlanIn
from app.services.plans import PlansService

router = APIRouter(prefix="/api/v1/plans", tags=["plans"])


@router.post("/generate")
def generate_plan(
    body: GeneratePlanIn | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Generate (or return this week's) plan.

    201 when a new plan was stored, 200 when a recent one is returned.
    Unacknowledged metrics are rejected with 400 METRICS_NOT_ACKNOWLEDGED.
    """
    force = body.force_recompute if body is not None else False
    result = PlansService(db).generate_plan(user_id, force_recompute=force)
    return ok(
        data=result.to_dict(),
        meta=meta_now(force_recompute=force),
        status_code=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
    )
