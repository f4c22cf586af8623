# app/schemas/plans.py
from __future__ import annotations

from pydantic import BaseModel


class GeneratePlanIn(BaseModel):
    force_recompute: bool = False
