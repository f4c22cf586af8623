# app/services/plans.py
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Plan
from app.services import science
from app.services.errors import NotFoundError, ValidationError
from app.services.plan_gate import PlanGenerationGate
from app.services.profiles import ProfileInputs, ProfileReader, SqlProfileReader
from app.utils.timeutil import Clock, to_iso_z, to_utc_naive, utc_now

logger = structlog.get_logger(__name__)

GENERATE_P95_TARGET_MS = 200


@dataclass
class PlanGenerationResult:
    plan: Plan
    targets: science.ComputedTargets
    why_it_works: dict
    recomputed: bool
    created: bool
    previous_targets: Optional[science.ComputedTargets] = None

    def to_dict(self) -> dict:
        plan = self.plan
        return {
            "plan": {
                "id": plan.id,
                "user_id": plan.user_id,
                "name": plan.name,
                "description": plan.description or "",
                "start_date": plan.start_date.isoformat(),
                "end_date": plan.end_date.isoformat(),
                "status": plan.status,
                "created_at": to_iso_z(plan.created_at),
            },
            "targets": _targets_dict(self.targets),
            "why_it_works": self.why_it_works,
            "recomputed": self.recomputed,
            "previous_targets": _targets_dict(self.previous_targets) if self.previous_targets else None,
        }


def _targets_dict(targets: science.ComputedTargets) -> dict:
    out = targets.to_dict()
    if out.get("projected_date") is not None:
        out["projected_date"] = out["projected_date"].isoformat()
    return out


def _targets_from_plan(plan: Plan) -> science.ComputedTargets:
    return science.ComputedTargets(
        bmr=plan.bmr,
        tdee=plan.tdee,
        calorie_target=plan.calorie_target,
        protein_target=plan.protein_target,
        water_target=plan.water_target,
        weekly_rate=float(plan.weekly_rate or 0.0),
        estimated_weeks=plan.estimated_weeks,
        projected_date=plan.projected_date,
    )


def validate_plan_inputs(profile: ProfileInputs) -> None:
    missing = profile.missing_metric_inputs()
    if not profile.primary_goal:
        missing.append("primary_goal")
    if missing:
        raise ValidationError(
            "Profile incomplete. Missing required health data.",
            details={"missing": missing},
        )

    checks = {
        "weight": profile.weight_kg,
        "height": profile.height_cm,
        "age": profile.age,
    }
    if profile.target_weight_kg is not None:
        checks["target_weight"] = profile.target_weight_kg
    for name, value in checks.items():
        lo, hi = science.PLAN_VALIDATION_RANGES[name]
        if not (lo <= value <= hi):
            raise ValidationError(f"{name} must be between {lo} and {hi}", details={name: value})

    if profile.gender not in science.GENDERS:
        raise ValidationError(f"unsupported gender {profile.gender!r}")
    if profile.activity_level not in science.ACTIVITY_MULTIPLIERS:
        raise ValidationError(f"unsupported activity level {profile.activity_level!r}")
    if profile.primary_goal not in science.PRIMARY_GOALS:
        raise ValidationError(f"unsupported goal {profile.primary_goal!r}")


def _describe(targets: science.ComputedTargets) -> str:
    lines = [
        f"Daily targets: {targets.calorie_target} kcal, {targets.protein_target} g protein, "
        f"{targets.water_target} ml water.",
        f"Based on a BMR of {targets.bmr} and TDEE of {targets.tdee} kcal.",
    ]
    if targets.estimated_weeks:
        lines.append(f"Estimated {targets.estimated_weeks} weeks to reach your target weight.")
    return " ".join(lines)


class PlansService:
    """
    Generates weekly plans.

    The acknowledgment gate runs before anything else, so every caller of
    generate_plan is held to it, not just the HTTP route.
    """

    def __init__(
        self,
        db: Session,
        profiles: Optional[ProfileReader] = None,
        clock: Clock = utc_now,
        gate: Optional[PlanGenerationGate] = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.profiles = profiles or SqlProfileReader(db, today=to_utc_naive(clock()).date())
        self.gate = gate or PlanGenerationGate(db, clock=clock)

    def _latest_plan(self, user_id: int, since=None) -> Optional[Plan]:
        stmt = select(Plan).where(Plan.user_id == user_id)
        if since is not None:
            stmt = stmt.where(Plan.start_date >= since)
        stmt = stmt.order_by(Plan.created_at.desc(), Plan.id.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def generate_plan(self, user_id: int, force_recompute: bool = False) -> PlanGenerationResult:
        start = time.perf_counter()
        self.gate.ensure_can_generate(user_id)

        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("User profile not found", details={"user_id": user_id})
        if not profile.onboarding_completed:
            raise ValidationError("Please complete onboarding before generating a plan")

        now = to_utc_naive(self.clock())
        today = now.date()

        if not force_recompute:
            window = today - timedelta(days=get_settings().PLAN_RECENT_DAYS)
            recent = self._latest_plan(user_id, since=window)
            if recent is not None:
                logger.info("plans.reuse_recent", user_id=user_id, plan_id=recent.id)
                targets = _targets_from_plan(recent)
                return PlanGenerationResult(
                    plan=recent,
                    targets=targets,
                    why_it_works=self._why(targets, profile),
                    recomputed=False,
                    created=False,
                )

        validate_plan_inputs(profile)
        previous = self._latest_plan(user_id) if force_recompute else None

        targets = science.compute_targets(
            weight_kg=profile.weight_kg,
            height_cm=profile.height_cm,
            age=profile.age,
            gender=profile.gender,
            activity_level=profile.activity_level,
            primary_goal=profile.primary_goal,
            target_weight_kg=profile.target_weight_kg,
            today=today,
        )

        week_start = today - timedelta(days=today.weekday())
        plan = Plan(
            user_id=user_id,
            name=f"Weekly Plan - week of {week_start.strftime('%b')} {week_start.day}, {week_start.year}",
            description=_describe(targets),
            start_date=week_start,
            end_date=week_start + timedelta(days=6),
            status="active",
            calorie_target=targets.calorie_target,
            protein_target=targets.protein_target,
            water_target=targets.water_target,
            bmr=targets.bmr,
            tdee=targets.tdee,
            weekly_rate=targets.weekly_rate,
            estimated_weeks=targets.estimated_weeks,
            projected_date=targets.projected_date,
            created_at=now,
        )
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "plans.generated",
            user_id=user_id,
            plan_id=plan.id,
            calories=targets.calorie_target,
            protein=targets.protein_target,
            recomputed=force_recompute,
            duration_ms=round(duration_ms, 2),
        )
        if duration_ms > GENERATE_P95_TARGET_MS:
            logger.warning("plans.generate_slow", user_id=user_id, duration_ms=round(duration_ms, 2))

        return PlanGenerationResult(
            plan=plan,
            targets=targets,
            why_it_works=self._why(targets, profile),
            recomputed=force_recompute,
            created=True,
            previous_targets=_targets_from_plan(previous) if previous is not None else None,
        )

    @staticmethod
    def _why(targets: science.ComputedTargets, profile: ProfileInputs) -> dict:
        if not (profile.activity_level in science.ACTIVITY_MULTIPLIERS and profile.primary_goal in science.PROTEIN_PER_KG):
            return {}
        return science.why_it_works(
            targets,
            activity_level=profile.activity_level,
            primary_goal=profile.primary_goal,
        )


__all__ = ["PlansService", "PlanGenerationResult", "validate_plan_inputs"]
