"""
User store.
- create_user(user_id, ...)
- get_user(user_id) / get_user_in(session, user_id)
- decrement_active_series_count(session, user_id)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from arvi.core.database import get_db_session, users as app_users
from arvi.core.errors import ValidationError
from arvi.features.plans.policy import FREEMIUM, STORED_PLAN_IDS, get_plan
from arvi.models.user import Energy, Limits, Trial, User


def row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        display_name=row.display_name,
        plan=row.plan,
        trial=Trial(
            active=bool(row.trial_active),
            started_at=row.trial_started_at,
            expires_at=row.trial_expires_at,
        ),
        limits=Limits(
            max_active_series=row.max_active_series,
            active_series_count=row.active_series_count,
            max_weekly_summaries=row.max_weekly_summaries,
            weekly_summaries_count=row.weekly_summaries_count,
        ),
        energy=Energy(
            current=row.energy_current,
            maximum=row.energy_max,
            last_recharged_at=row.energy_last_recharged_at,
            total_consumed=row.energy_total_consumed,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def get_user_in(session: Session, user_id: str) -> Optional[User]:
    row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
    return row_to_user(row) if row else None


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        return get_user_in(session, user_id)


def create_user(
    user_id: str,
    *,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    plan: str = FREEMIUM,
    now: Optional[datetime] = None,
) -> User:
    """Register a user. Freemium starts with zero energy; paid plans start full."""
    if not user_id or not user_id.strip():
        raise ValidationError("user_id is required", details={"field": "user_id"})
    if plan not in STORED_PLAN_IDS:
        raise ValidationError(f"Unknown plan: {plan}", details={"field": "plan"})

    ts = now or datetime.now(timezone.utc)
    plan_config = get_plan(plan)
    initial_energy = 0 if plan == FREEMIUM else plan_config.max_energy
    try:
        with get_db_session() as session:
            session.execute(
                insert(app_users).values(
                    user_id=user_id,
                    email=email,
                    display_name=display_name,
                    plan=plan,
                    trial_active=False,
                    max_active_series=plan_config.max_active_series,
                    active_series_count=0,
                    max_weekly_summaries=plan_config.max_weekly_summaries,
                    weekly_summaries_count=0,
                    energy_current=initial_energy,
                    energy_max=plan_config.max_energy,
                    energy_last_recharged_at=ts if plan != FREEMIUM else None,
                    energy_total_consumed=0,
                    created_at=ts,
                    updated_at=ts,
                )
            )
    except IntegrityError as exc:
        raise ValidationError("User already exists", details={"user_id": user_id}) from exc
    return get_user(user_id)


def decrement_active_series_count(session: Session, user_id: str, now: Optional[datetime] = None) -> int:
    """Decrement the active-series counter, never below zero. Returns rows updated."""
    result = session.execute(
        update(app_users)
        .where(app_users.c.user_id == user_id)
        .where(app_users.c.active_series_count > 0)
        .values(
            active_series_count=app_users.c.active_series_count - 1,
            updated_at=now or datetime.now(timezone.utc),
        )
    )
    return result.rowcount
