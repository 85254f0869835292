"""
Energy ledger.

The balance lives on the user row; every mutation appends one row to the
energy_transactions table in the same database transaction. Ledger rows are
never updated or deleted. All functions take the caller's Session so they
compose into larger units of work.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import insert, or_, select, update
from sqlalchemy.orm import Session

from arvi.core.database import energy_transactions, users as app_users
from arvi.models.energy import EnergyTransaction

ACTION_HABIT_SERIES_CREATE = "habit_series_create"
ACTION_DAILY_RECHARGE = "daily_recharge"
ACTION_FORCE_RECHARGE = "force_recharge"
ACTION_TRIAL_ACTIVATION = "trial_activation"


def append_transaction(
    db: Session,
    user_id: str,
    action: str,
    *,
    balance_before: int,
    balance_after: int,
    reference_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Append one ledger row. Returns its id."""
    result = db.execute(
        insert(energy_transactions).values(
            user_id=user_id,
            action=action,
            delta=balance_after - balance_before,
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=reference_id,
            created_at=now or datetime.now(timezone.utc),
        )
    )
    return result.inserted_primary_key[0]


def read_balance(db: Session, user_id: str):
    """Return (energy_current, energy_max, last_recharged_at, active_series_count) or None."""
    return db.execute(
        select(
            app_users.c.energy_current,
            app_users.c.energy_max,
            app_users.c.energy_last_recharged_at,
            app_users.c.active_series_count,
        ).where(app_users.c.user_id == user_id)
    ).first()


def try_debit(
    db: Session,
    user_id: str,
    cost: int,
    *,
    max_active_series: Optional[int] = None,
    increment_active_series: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    """Guarded debit in a single UPDATE.

    Succeeds only while the balance covers the cost (and, when a maximum is
    given, the active-series counter is below it). The row lock taken by the
    UPDATE serializes concurrent debits for the same user.
    """
    values = {
        "energy_current": app_users.c.energy_current - cost,
        "energy_total_consumed": app_users.c.energy_total_consumed + cost,
        "updated_at": now or datetime.now(timezone.utc),
    }
    if increment_active_series:
        values["active_series_count"] = app_users.c.active_series_count + 1

    stmt = (
        update(app_users)
        .where(app_users.c.user_id == user_id)
        .where(app_users.c.energy_current >= cost)
    )
    if max_active_series is not None:
        stmt = stmt.where(app_users.c.active_series_count < max_active_series)
    return db.execute(stmt.values(**values)).rowcount == 1


def try_recharge(
    db: Session,
    user_id: str,
    *,
    expected_current: int,
    new_balance: int,
    new_maximum: int,
    recharged_at: datetime,
    due_before: Optional[datetime] = None,
) -> bool:
    """Set the balance if nobody changed it since it was read.

    With due_before, also require that the last recharge is older than that
    instant, so two concurrent reads cannot both apply the daily recharge.
    """
    stmt = (
        update(app_users)
        .where(app_users.c.user_id == user_id)
        .where(app_users.c.energy_current == expected_current)
    )
    if due_before is not None:
        stmt = stmt.where(
            or_(
                app_users.c.energy_last_recharged_at.is_(None),
                app_users.c.energy_last_recharged_at <= due_before,
            )
        )
    result = db.execute(
        stmt.values(
            energy_current=new_balance,
            energy_max=new_maximum,
            energy_last_recharged_at=recharged_at,
            updated_at=recharged_at,
        )
    )
    return result.rowcount == 1


def list_transactions(db: Session, user_id: str, limit: int = 50) -> List[EnergyTransaction]:
    rows = db.execute(
        select(energy_transactions)
        .where(energy_transactions.c.user_id == user_id)
        .order_by(energy_transactions.c.created_at.desc(), energy_transactions.c.id.desc())
        .limit(limit)
    ).fetchall()
    return [
        EnergyTransaction(
            id=row.id,
            user_id=row.user_id,
            action=row.action,
            delta=row.delta,
            balance_before=row.balance_before,
            balance_after=row.balance_after,
            reference_id=row.reference_id,
            created_at=row.created_at,
        )
        for row in rows
    ]
