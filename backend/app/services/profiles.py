# app/services/profiles.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import UserProfile


@dataclass(frozen=True)
class ProfileInputs:
    """Snapshot of the health fields the metrics and plan services read."""

    user_id: int
    weight_kg: Optional[float]
    height_cm: Optional[float]
    age: Optional[int]
    gender: Optional[str]
    activity_level: Optional[str]
    primary_goal: Optional[str]
    target_weight_kg: Optional[float]
    onboarding_completed: bool

    def missing_metric_inputs(self) -> List[str]:
        """Names of the inputs BMI/BMR/TDEE need that are not set."""
        required = {
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "age": self.age,
            "gender": self.gender,
            "activity_level": self.activity_level,
        }
        return [name for name, value in required.items() if value is None or value == ""]


class ProfileReader(Protocol):
    def get(self, user_id: int) -> Optional[ProfileInputs]: ...

    def list_onboarded(self) -> List[ProfileInputs]: ...


def age_on(date_of_birth: date, today: date) -> int:
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def _to_inputs(row: UserProfile, today: date) -> ProfileInputs:
    return ProfileInputs(
        user_id=row.user_id,
        weight_kg=float(row.weight_kg) if row.weight_kg is not None else None,
        height_cm=float(row.height_cm) if row.height_cm is not None else None,
        age=age_on(row.date_of_birth, today) if row.date_of_birth else None,
        gender=row.gender,
        activity_level=row.activity_level,
        primary_goal=row.primary_goal,
        target_weight_kg=float(row.target_weight_kg) if row.target_weight_kg is not None else None,
        onboarding_completed=bool(row.onboarding_completed),
    )


class SqlProfileReader:
    """Reads profiles from the user_profiles table owned by the profile flow."""

    def __init__(self, db: Session, today: Optional[date] = None) -> None:
        self.db = db
        self._today = today

    def _day(self) -> date:
        return self._today or date.today()

    def get(self, user_id: int) -> Optional[ProfileInputs]:
        row = self.db.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        ).scalar_one_or_none()
        if row is None:
            return None
        return _to_inputs(row, self._day())

    def list_onboarded(self) -> List[ProfileInputs]:
        stmt = (
            select(UserProfile)
            .where(UserProfile.onboarding_completed.is_(True))
            .order_by(UserProfile.user_id.asc())
        )
        today = self._day()
        return [_to_inputs(row, today) for row in self.db.execute(stmt).scalars()]


__all__ = ["ProfileInputs", "ProfileReader", "SqlProfileReader", "age_on"]
