"""
arvi/features/plans/policy.py

Static plan catalogue and the feature-access rules derived from it.

The effective plan is never stored: a freemium user inside an active trial
window is treated as being on the trial plan.
"""

import logging
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from arvi.models.plan import Plan
from arvi.models.user import User

logger = logging.getLogger("arvi")

FREEMIUM = "freemium"
TRIAL = "trial"

# Treated as "no practical limit" by clients.
UNLIMITED = 9999

TRIAL_DURATION = timedelta(hours=48)

FEATURE_HABIT_SERIES_CREATE = "habits.series.create"

_PAID_FEATURES = frozenset({
    "ai.chat",
    "ai.json_convert",
    "energy.consume",
    "weekly_summaries",
    "active_series",
    FEATURE_HABIT_SERIES_CREATE,
    "execution.summary.generate",
})

DEFAULT_PLANS = {
    FREEMIUM: {
        "max_energy": 0,
        "daily_recharge": 0,
        "max_active_series": 0,
        "max_weekly_summaries": 0,
        "features": frozenset(),
    },
    TRIAL: {
        "max_energy": 135,
        "daily_recharge": 135,
        "max_active_series": UNLIMITED,
        "max_weekly_summaries": UNLIMITED,
        "features": _PAID_FEATURES,
        "duration": TRIAL_DURATION,
    },
    "mini": {
        "max_energy": 75,
        "daily_recharge": 75,
        "max_active_series": 2,
        "max_weekly_summaries": 2,
        "features": _PAID_FEATURES,
    },
    "base": {
        "max_energy": 150,
        "daily_recharge": 150,
        "max_active_series": 5,
        "max_weekly_summaries": 5,
        "features": _PAID_FEATURES,
    },
    "pro": {
        "max_energy": 300,
        "daily_recharge": 300,
        "max_active_series": UNLIMITED,
        "max_weekly_summaries": UNLIMITED,
        "features": _PAID_FEATURES,
    },
}

PLANS: Mapping[str, Plan] = MappingProxyType(
    {plan_id: Plan(plan_id=plan_id, **config) for plan_id, config in DEFAULT_PLANS.items()}
)

# Plans a user can hold in storage (trial is only ever derived).
STORED_PLAN_IDS = frozenset(PLANS) - {TRIAL}


def get_plan(plan_id: Optional[str]) -> Plan:
    """Look up a plan; unknown ids fall back to freemium."""
    plan = PLANS.get((plan_id or "").lower())
    if plan is None:
        logger.warning("plans.unknown_plan", extra={"plan_id": plan_id})
        return PLANS[FREEMIUM]
    return plan


def has_feature_access(plan_id: str, feature_key: str) -> bool:
    plan = PLANS.get(plan_id)
    if plan is None:
        return False
    return feature_key in plan.features


def determine_effective_plan(user: User, now: Optional[datetime] = None) -> Plan:
    current = now or datetime.now(timezone.utc)
    if user.plan == FREEMIUM and user.trial.is_running(current):
        return PLANS[TRIAL]
    return get_plan(user.plan)
