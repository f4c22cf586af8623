# app/services/science.py
"""
Body-metric and nutrition target formulas.

Everything here is a pure function of its arguments so results are
reproducible for a given FORMULA_VERSION. Bump the version whenever a
formula or constant below changes; snapshots record the version they were
computed with and acknowledgments are keyed on it.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Dict, Optional, Tuple

FORMULA_VERSION = 1

GENDERS = ("male", "female", "other")
ACTIVITY_LEVELS = (
    "sedentary",
    "lightly_active",
    "moderately_active",
    "very_active",
    "extremely_active",
)
PRIMARY_GOALS = ("lose_weight", "gain_muscle", "maintain", "improve_health")

ACTIVITY_MULTIPLIERS: Dict[str, float] = {
    "sedentary": 1.2,
    "lightly_active": 1.375,
    "moderately_active": 1.55,
    "very_active": 1.725,
    "extremely_active": 1.9,
}

# Mifflin-St Jeor constant term; "other" uses the mean of the two.
GENDER_OFFSETS: Dict[str, float] = {
    "male": 5.0,
    "female": -161.0,
    "other": (5.0 + -161.0) / 2,
}

# grams of protein per kg of body weight
PROTEIN_PER_KG: Dict[str, float] = {
    "lose_weight": 2.2,
    "gain_muscle": 2.4,
    "maintain": 1.8,
    "improve_health": 1.8,
}

# kg per week
WEEKLY_RATES: Dict[str, float] = {
    "lose_weight": -0.5,
    "gain_muscle": 0.4,
    "maintain": 0.0,
    "improve_health": 0.0,
}

WATER_ML_PER_KG = 35
WEIGHT_LOSS_DEFICIT = 500
MUSCLE_GAIN_SURPLUS = 400

# Accepted ranges when computing daily metrics: (exclusive min, inclusive max)
METRICS_WEIGHT_RANGE = (0.0, 1000.0)
METRICS_HEIGHT_RANGE = (0.0, 300.0)

# Stricter ranges used for plan targets: inclusive on both ends
PLAN_VALIDATION_RANGES: Dict[str, Tuple[float, float]] = {
    "weight": (30, 300),
    "height": (100, 250),
    "age": (13, 120),
    "target_weight": (30, 300),
}


@dataclass(frozen=True)
class ComputedTargets:
    bmr: int
    tdee: int
    calorie_target: int
    protein_target: int
    water_target: int
    weekly_rate: float
    estimated_weeks: Optional[int] = None
    projected_date: Optional[date] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _round_half_up(value: float) -> int:
    # builtin round() is banker's rounding; 6.25 * height makes .5 common
    return int(math.floor(value + 0.5))


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 2)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "underweight"
    if bmi < 25:
        return "normal weight"
    if bmi < 30:
        return "overweight"
    return "obese"


def calculate_bmr(weight_kg: float, height_cm: float, age: int, gender: str) -> int:
    """Mifflin-St Jeor: 10w + 6.25h - 5a + gender offset."""
    if gender not in GENDER_OFFSETS:
        raise ValueError(f"unknown gender {gender!r}")
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age
    return _round_half_up(base + GENDER_OFFSETS[gender])


def calculate_tdee(bmr: int, activity_level: str) -> int:
    if activity_level not in ACTIVITY_MULTIPLIERS:
        raise ValueError(f"unknown activity level {activity_level!r}")
    return _round_half_up(bmr * ACTIVITY_MULTIPLIERS[activity_level])


def calculate_calorie_target(tdee: int, goal: str) -> int:
    if goal == "lose_weight":
        return tdee - WEIGHT_LOSS_DEFICIT
    if goal == "gain_muscle":
        return tdee + MUSCLE_GAIN_SURPLUS
    return tdee


def calculate_protein_target(weight_kg: float, goal: str) -> int:
    return _round_half_up(weight_kg * PROTEIN_PER_KG[goal])


def calculate_water_target(weight_kg: float) -> int:
    # nearest 100 ml
    return _round_half_up(weight_kg * WATER_ML_PER_KG / 100) * 100


def calculate_weekly_rate(goal: str) -> float:
    return WEEKLY_RATES[goal]


def calculate_projection(
    current_weight: float,
    target_weight: float,
    weekly_rate: float,
    today: date,
) -> Tuple[Optional[int], Optional[date]]:
    if weekly_rate == 0:
        return None, None
    weeks = math.ceil(abs(target_weight - current_weight) / abs(weekly_rate))
    return weeks, today + timedelta(days=weeks * 7)


def compute_targets(
    *,
    weight_kg: float,
    height_cm: float,
    age: int,
    gender: str,
    activity_level: str,
    primary_goal: str,
    target_weight_kg: Optional[float],
    today: date,
) -> ComputedTargets:
    bmr = calculate_bmr(weight_kg, height_cm, age, gender)
    tdee = calculate_tdee(bmr, activity_level)
    weekly_rate = calculate_weekly_rate(primary_goal)
    weeks, projected = (None, None)
    if target_weight_kg:
        weeks, projected = calculate_projection(weight_kg, target_weight_kg, weekly_rate, today)
    return ComputedTargets(
        bmr=bmr,
        tdee=tdee,
        calorie_target=calculate_calorie_target(tdee, primary_goal),
        protein_target=calculate_protein_target(weight_kg, primary_goal),
        water_target=calculate_water_target(weight_kg),
        weekly_rate=weekly_rate,
        estimated_weeks=weeks,
        projected_date=projected,
    )


def metrics_explanations(bmi: float, bmr: int, tdee: int) -> Dict[str, str]:
    return {
        "bmi": (
            f"Your BMI is {bmi}, which falls into the {bmi_category(bmi)} category. "
            "BMI is calculated as weight (kg) divided by height (m) squared. It's a useful "
            "screening tool, though it doesn't directly measure body fat or muscle mass."
        ),
        "bmr": (
            f"Your BMR is {bmr} calories per day. This is the energy your body burns at "
            "complete rest to maintain vital functions like breathing, circulation, and cell production."
        ),
        "tdee": (
            f"Your TDEE is {tdee} calories per day. This is your total energy expenditure "
            "including all activity. Eating at this level maintains your current weight."
        ),
    }


def why_it_works(targets: ComputedTargets, *, activity_level: str, primary_goal: str) -> Dict[str, dict]:
    goal_label = primary_goal.replace("_", " ")
    multiplier = ACTIVITY_MULTIPLIERS[activity_level]
    grams_per_kg = PROTEIN_PER_KG[primary_goal]
    deficit = targets.tdee - targets.calorie_target

    if deficit > 0:
        calorie_copy = (
            f"To {goal_label}, you need a {deficit} calorie deficit. At this rate you'll lose "
            f"approximately {abs(targets.weekly_rate)} kg per week."
        )
    elif deficit < 0:
        calorie_copy = (
            f"To {goal_label}, you need a {abs(deficit)} calorie surplus. At this rate you'll gain "
            f"approximately {targets.weekly_rate} kg per week."
        )
    else:
        calorie_copy = f"To {goal_label}, you'll eat at maintenance ({targets.calorie_target} calories)."

    if targets.estimated_weeks:
        timeline_copy = (
            f"Based on a {abs(targets.weekly_rate)} kg per week rate, you'll reach your goal in "
            f"approximately {targets.estimated_weeks} weeks."
        )
    else:
        timeline_copy = f"Since you're focused on {goal_label}, there's no specific weight timeline."

    return {
        "bmr": {
            "title": "Your Basal Metabolic Rate (BMR)",
            "explanation": f"Your BMR is {targets.bmr} calories - the energy your body burns at complete rest.",
            "formula": "BMR = (10 x weight in kg) + (6.25 x height in cm) - (5 x age) + gender offset",
        },
        "tdee": {
            "title": "Your Total Daily Energy Expenditure (TDEE)",
            "explanation": (
                f"Your TDEE is {targets.tdee} calories. We multiply your BMR by {multiplier} "
                f"for your {activity_level.replace('_', ' ')} lifestyle."
            ),
            "activity_multiplier": multiplier,
        },
        "calorie_target": {
            "title": "Your Daily Calorie Target",
            "explanation": calorie_copy,
            "deficit": deficit,
        },
        "protein_target": {
            "title": "Your Daily Protein Target",
            "explanation": f"You need {targets.protein_target}g of protein daily ({grams_per_kg}g per kg of body weight).",
            "grams_per_kg": grams_per_kg,
        },
        "water_target": {
            "title": "Your Daily Hydration Target",
            "explanation": f"Aim for {targets.water_target}ml of water daily ({WATER_ML_PER_KG}ml per kg).",
            "ml_per_kg": WATER_ML_PER_KG,
        },
        "timeline": {
            "title": "Your Projected Timeline",
            "explanation": timeline_copy,
            "weekly_rate": targets.weekly_rate,
            "estimated_weeks": targets.estimated_weeks or 0,
        },
    }


__all__ = [
    "FORMULA_VERSION",
    "ACTIVITY_MULTIPLIERS",
    "ComputedTargets",
    "calculate_bmi",
    "calculate_bmr",
    "calculate_tdee",
    "calculate_calorie_target",
    "calculate_protein_target",
    "calculate_water_target",
    "calculate_weekly_rate",
    "calculate_projection",
    "compute_targets",
    "bmi_category",
    "metrics_explanations",
    "why_it_works",
]
