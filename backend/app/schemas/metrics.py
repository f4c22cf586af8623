# app/schemas/metrics.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class AcknowledgeMetricsIn(BaseModel):
    version: int = Field(..., ge=1, description="Formula version of the snapshot being acknowledged")
    metrics_computed_at: datetime = Field(..., description="computed_at of the snapshot, ISO-8601")


class MetricsOut(BaseModel):
    bmi: float
    bmr: int
    tdee: int
    computed_at: str
    version: int


class AcknowledgementOut(BaseModel):
    acknowledged_at: str
    version: int


class TodayMetricsOut(BaseModel):
    metrics: MetricsOut
    explanations: Dict[str, str]
    acknowledged: bool
    acknowledgement: Optional[AcknowledgementOut] = None
