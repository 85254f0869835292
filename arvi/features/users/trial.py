"""
Trial activation and status.

A freemium user may start the 48h trial once. Activation sets the energy
balance to the trial plan maximum and records it in the energy ledger.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import update

from arvi.core.database import get_db_session, users as app_users
from arvi.core.errors import AuthorizationError, NotFoundError, TrialAlreadyUsedError
from arvi.features.energy import ledger
from arvi.features.plans.policy import FREEMIUM, PLANS, TRIAL, TRIAL_DURATION
from arvi.features.users.service import get_user_in
from arvi.models.user import as_utc

logger = logging.getLogger("arvi")


class TrialStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: bool
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    remaining_seconds: int = 0
    used: bool = False


def activate_trial(user_id: str, now: Optional[datetime] = None) -> TrialStatus:
    current_time = as_utc(now or datetime.now(timezone.utc))
    trial_plan = PLANS[TRIAL]
    with get_db_session() as session:
        user = get_user_in(session, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        if user.plan != FREEMIUM:
            raise AuthorizationError(
                "Only freemium users can activate the trial",
                details={"plan": user.plan},
            )
        if user.trial.started_at is not None:
            raise TrialAlreadyUsedError("Trial has already been used", details={"user_id": user_id})

        expires_at = current_time + TRIAL_DURATION
        result = session.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .where(app_users.c.trial_started_at.is_(None))
            .values(
                trial_active=True,
                trial_started_at=current_time,
                trial_expires_at=expires_at,
                max_active_series=trial_plan.max_active_series,
                max_weekly_summaries=trial_plan.max_weekly_summaries,
                energy_current=trial_plan.max_energy,
                energy_max=trial_plan.max_energy,
                energy_last_recharged_at=current_time,
                updated_at=current_time,
            )
        )
        if result.rowcount != 1:
            # Lost a race with a concurrent activation.
            raise TrialAlreadyUsedError("Trial has already been used", details={"user_id": user_id})

        ledger.append_transaction(
            session,
            user_id,
            ledger.ACTION_TRIAL_ACTIVATION,
            balance_before=user.energy.current,
            balance_after=trial_plan.max_energy,
            now=current_time,
        )

    logger.info("trial.activated", extra={"user_id": user_id, "expires_at": expires_at.isoformat()})
    return TrialStatus(
        active=True,
        started_at=current_time,
        expires_at=expires_at,
        remaining_seconds=int(TRIAL_DURATION.total_seconds()),
        used=True,
    )


def get_trial_status(user_id: str, now: Optional[datetime] = None) -> TrialStatus:
    current_time = as_utc(now or datetime.now(timezone.utc))
    with get_db_session() as session:
        user = get_user_in(session, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

    running = user.trial.is_running(current_time)
    remaining = 0
    if running:
        remaining = int((as_utc(user.trial.expires_at) - current_time).total_seconds())
    return TrialStatus(
        active=running,
        started_at=as_utc(user.trial.started_at),
        expires_at=as_utc(user.trial.expires_at),
        remaining_seconds=remaining,
        used=user.trial.started_at is not None,
    )
