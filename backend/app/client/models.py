from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# Changes at or below these deltas are treated as noise.
CALORIE_CHANGE_THRESHOLD = 50
PROTEIN_CHANGE_THRESHOLD = 10


class PlanTargets(BaseModel):
    bmr: int
    tdee: int
    calorie_target: int
    protein_target: int
    water_target: int
    weekly_rate: float = 0.0
    estimated_weeks: Optional[int] = None
    projected_date: Optional[date] = None


class PlanSummary(BaseModel):
    id: int
    user_id: int
    name: str
    description: str = ""
    start_date: date
    end_date: date
    status: str


class PlanData(BaseModel):
    plan: PlanSummary
    targets: PlanTargets
    why_it_works: Dict[str, Any] = Field(default_factory=dict)
    recomputed: bool = False
    previous_targets: Optional[PlanTargets] = None


class PlanCacheEntry(BaseModel):
    """What the cache holds and persists: one plan, when it was fetched and how long it stays fresh."""

    data: PlanData
    fetched_at: datetime
    ttl_seconds: float = 3600

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()


class MetricsValues(BaseModel):
    bmi: float
    bmr: int
    tdee: int
    computed_at: datetime
    version: int


class AcknowledgementInfo(BaseModel):
    acknowledged_at: datetime
    version: int


class TodayMetricsView(BaseModel):
    metrics: MetricsValues
    explanations: Dict[str, str] = Field(default_factory=dict)
    acknowledged: bool = False
    acknowledgement: Optional[AcknowledgementInfo] = None


@dataclass(frozen=True)
class PlanDiff:
    calorie_delta: int
    protein_delta: int

    @property
    def significant(self) -> bool:
        return (
            abs(self.calorie_delta) > CALORIE_CHANGE_THRESHOLD
            or abs(self.protein_delta) > PROTEIN_CHANGE_THRESHOLD
        )

    @classmethod
    def between(cls, old: PlanTargets, new: PlanTargets) -> "PlanDiff":
        return cls(
            calorie_delta=new.calorie_target - old.calorie_target,
            protein_delta=new.protein_target - old.protein_target,
        )


__all__ = [
    "PlanTargets",
    "PlanSummary",
    "PlanData",
    "PlanCacheEntry",
    "MetricsValues",
    "AcknowledgementInfo",
    "TodayMetricsView",
    "PlanDiff",
]
