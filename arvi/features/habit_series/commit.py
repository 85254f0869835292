"""
Atomic commit for a generated habit series.

One database transaction:
1. guarded UPDATE on the user row: debit energy, add lifetime consumption,
   increment the active-series counter, only if the balance covers the cost
   (and the counter is below the plan maximum when one is given);
2. when no row was updated, re-read inside the same transaction to report why;
3. insert the series, its actions and one energy ledger row.

Either every effect commits or none does.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import insert
from sqlalchemy.orm import Session

from arvi.core.database import get_db_session, habit_actions, habit_series
from arvi.core.errors import (
    ActiveSeriesLimitError,
    AppError,
    DataAccessFailureError,
    InsufficientEnergyError,
    TransactionFailureError,
)
from arvi.core.metrics import energy_debited_total, habit_series_created_total
from arvi.core.tracing import start_span
from arvi.features.energy import ledger
from arvi.models.habit_series import HabitSeriesDraft
from arvi.models.user import as_utc

logger = logging.getLogger("arvi")

OPERATION = "habit_series_commit"


@dataclass(frozen=True)
class CommitReceipt:
    series_id: str
    created_at: datetime
    cost: int
    balance_before: int
    balance_after: int


class HabitSeriesCommitter:
    """Persists a validated series and settles its energy cost atomically."""

    def __init__(
        self,
        session_factory: Callable = get_db_session,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._session_factory = session_factory
        self._id_factory = id_factory

    def commit(
        self,
        user_id: str,
        series: HabitSeriesDraft,
        cost: int,
        *,
        max_active_series: Optional[int] = None,
        language: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CommitReceipt:
        if cost < 0:
            raise ValueError("cost must be >= 0")
        created_at = as_utc(now or datetime.now(timezone.utc))
        series_id = self._id_factory()

        try:
            with start_span("habit_series.commit", {"user_id": user_id, "cost": cost}):
                with self._session_factory() as session:
                    receipt = self._commit_in(
                        session, user_id, series, cost, series_id, created_at, max_active_series, language
                    )
        except AppError:
            raise
        except Exception as exc:
            logger.error(
                "habit_series.commit_failed",
                exc_info=True,
                extra={"user_id": user_id, "operation": OPERATION, "cost": cost},
            )
            raise TransactionFailureError(OPERATION, exc) from exc

        habit_series_created_total.inc()
        energy_debited_total.inc(amount=cost)
        logger.info(
            "habit_series.committed",
            extra={
                "user_id": user_id,
                "series_id": series_id,
                "cost": cost,
                "balance_after": receipt.balance_after,
            },
        )
        return receipt

    def _commit_in(
        self,
        session: Session,
        user_id: str,
        series: HabitSeriesDraft,
        cost: int,
        series_id: str,
        created_at: datetime,
        max_active_series: Optional[int],
        language: Optional[str],
    ) -> CommitReceipt:
        debited = ledger.try_debit(
            session,
            user_id,
            cost,
            max_active_series=max_active_series,
            increment_active_series=True,
            now=created_at,
        )
        current = ledger.read_balance(session, user_id)
        if current is None:
            raise DataAccessFailureError(OPERATION, "user")
        if not debited:
            if current.energy_current < cost:
                raise InsufficientEnergyError(required=cost, available=current.energy_current)
            if max_active_series is not None and current.active_series_count >= max_active_series:
                raise ActiveSeriesLimitError(used=current.active_series_count, maximum=max_active_series)
            raise TransactionFailureError(OPERATION)

        balance_after = current.energy_current
        balance_before = balance_after + cost

        session.execute(
            insert(habit_series).values(
                id=series_id,
                user_id=user_id,
                title=series.title,
                description=series.description,
                language=language,
                total_score=0,
                energy_cost=cost,
                created_at=created_at,
                last_activity_at=created_at,
                updated_at=created_at,
            )
        )
        session.execute(
            insert(habit_actions),
            [
                {
                    "series_id": series_id,
                    "position": position,
                    "name": action.name,
                    "description": action.description,
                    "difficulty": action.difficulty.value,
                    "score": 0,
                    "completed": False,
                }
                for position, action in enumerate(series.actions)
            ],
        )
        ledger.append_transaction(
            session,
            user_id,
            ledger.ACTION_HABIT_SERIES_CREATE,
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=series_id,
            now=created_at,
        )
        return CommitReceipt(
            series_id=series_id,
            created_at=created_at,
            cost=cost,
            balance_before=balance_before,
            balance_after=balance_after,
        )
