"""
Energy read model and recharge rules.

A read applies the daily recharge when the last one is at least 24h old (or
never happened): the balance is refilled to the effective plan's maximum,
not topped up additively.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from arvi.core.database import get_db_session
from arvi.core.errors import NotFoundError
from arvi.features.energy import ledger
from arvi.features.plans.policy import determine_effective_plan
from arvi.features.users.service import get_user_in
from arvi.models.energy import EnergySnapshot, EnergyTransaction
from arvi.models.user import User, as_utc

logger = logging.getLogger("arvi")

RECHARGE_INTERVAL = timedelta(hours=24)


def needs_daily_recharge(last_recharged_at: Optional[datetime], now: datetime) -> bool:
    if last_recharged_at is None:
        return True
    return as_utc(now) - as_utc(last_recharged_at) >= RECHARGE_INTERVAL


def _snapshot(user: User, plan_id: str, *, recharged: bool = False) -> EnergySnapshot:
    return EnergySnapshot(
        user_id=user.user_id,
        plan=plan_id,
        current=user.energy.current,
        maximum=user.energy.maximum,
        total_consumed=user.energy.total_consumed,
        last_recharged_at=as_utc(user.energy.last_recharged_at),
        recharged=recharged,
    )


def get_energy(user_id: str, now: Optional[datetime] = None) -> EnergySnapshot:
    """Current balance, applying the daily recharge first when it is due."""
    current_time = as_utc(now or datetime.now(timezone.utc))
    with get_db_session() as session:
        user = get_user_in(session, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        plan = determine_effective_plan(user, current_time)
        if plan.max_energy <= 0 or not needs_daily_recharge(user.energy.last_recharged_at, current_time):
            return _snapshot(user, plan.plan_id)

        applied = ledger.try_recharge(
            session,
            user_id,
            expected_current=user.energy.current,
            new_balance=plan.max_energy,
            new_maximum=plan.max_energy,
            recharged_at=current_time,
            due_before=current_time - RECHARGE_INTERVAL,
        )
        if applied:
            ledger.append_transaction(
                session,
                user_id,
                ledger.ACTION_DAILY_RECHARGE,
                balance_before=user.energy.current,
                balance_after=plan.max_energy,
                now=current_time,
            )
            logger.info(
                "energy.daily_recharge",
                extra={"user_id": user_id, "plan": plan.plan_id, "balance_after": plan.max_energy},
            )
        # Re-read: either our recharge or a concurrent writer's result.
        refreshed = get_user_in(session, user_id)
        return _snapshot(refreshed, plan.plan_id, recharged=applied)


def force_recharge(user_id: str, now: Optional[datetime] = None) -> EnergySnapshot:
    """Refill to the plan maximum regardless of the 24h window.

    Support tooling only; no HTTP route reaches it.
    """
    current_time = as_utc(now or datetime.now(timezone.utc))
    with get_db_session() as session:
        user = get_user_in(session, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        plan = determine_effective_plan(user, current_time)
        applied = ledger.try_recharge(
            session,
            user_id,
            expected_current=user.energy.current,
            new_balance=plan.max_energy,
            new_maximum=plan.max_energy,
            recharged_at=current_time,
        )
        if applied:
            ledger.append_transaction(
                session,
                user_id,
                ledger.ACTION_FORCE_RECHARGE,
                balance_before=user.energy.current,
                balance_after=plan.max_energy,
                now=current_time,
            )
            logger.info("energy.force_recharge", extra={"user_id": user_id, "plan": plan.plan_id})
        refreshed = get_user_in(session, user_id)
        return _snapshot(refreshed, plan.plan_id, recharged=applied)


def list_energy_transactions(user_id: str, limit: int = 50) -> List[EnergyTransaction]:
    with get_db_session() as session:
        if get_user_in(session, user_id) is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        return ledger.list_transactions(session, user_id, limit=limit)
