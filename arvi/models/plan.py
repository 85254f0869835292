"""
arvi/models/plan.py

Plans are immutable capability tiers: energy ceiling, daily recharge,
feature access and concurrency limits. No pricing lives here.
"""

from datetime import timedelta
from typing import FrozenSet, Optional
from pydantic import BaseModel, ConfigDict


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_id: str
    max_energy: int
    daily_recharge: int
    max_active_series: int
    max_weekly_summaries: int
    features: FrozenSet[str] = frozenset()
    duration: Optional[timedelta] = None  # only time-boxed plans (trial)
