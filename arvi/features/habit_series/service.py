"""
arvi/features/habit_series/service.py

Habit series use cases.

create_habit_series runs, in order: user load, effective plan, feature
access, active-series limit, advisory balance check, input sanitization,
the three-pass pipeline, output validation and the atomic commit. Nothing
before the commit charges energy; the commit charges exactly the pipeline's
accumulated cost.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from arvi.core.database import get_db_session, habit_actions, habit_series
from arvi.core.errors import (
    ActiveSeriesLimitError,
    FeatureNotAvailableError,
    InsufficientEnergyError,
    NotFoundError,
    TransactionFailureError,
)
from arvi.core.logging import log_event
from arvi.core.sanitize import sanitize_mapping, sanitize_user_input
from arvi.features.ai.gateway import AIGateway
from arvi.features.energy.service import get_energy
from arvi.features.habit_series.commit import HabitSeriesCommitter
from arvi.features.habit_series.pipeline import PipelineInput, PipelineOrchestrator
from arvi.features.habit_series.validator import validate_output
from arvi.features.plans.policy import FEATURE_HABIT_SERIES_CREATE, determine_effective_plan, has_feature_access
from arvi.features.users import service as user_store
from arvi.models.habit_series import (
    Action,
    CreateHabitSeriesRequest,
    Difficulty,
    HabitSeries,
    HabitSeriesOut,
)
from arvi.models.user import as_utc

logger = logging.getLogger("arvi")


def _load_series(session: Session, user_id: str, series_id: str) -> Optional[HabitSeries]:
    row = session.execute(
        select(habit_series)
        .where(habit_series.c.id == series_id)
        .where(habit_series.c.user_id == user_id)
    ).first()
    if row is None:
        return None
    action_rows = session.execute(
        select(habit_actions)
        .where(habit_actions.c.series_id == series_id)
        .order_by(habit_actions.c.position)
    ).fetchall()
    return HabitSeries(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        language=row.language,
        actions=[
            Action(
                position=a.position,
                name=a.name,
                description=a.description,
                difficulty=Difficulty(a.difficulty),
                score=a.score,
                completed=bool(a.completed),
            )
            for a in action_rows
        ],
        total_score=row.total_score,
        energy_cost=row.energy_cost,
        created_at=as_utc(row.created_at),
        last_activity_at=as_utc(row.last_activity_at),
        updated_at=as_utc(row.updated_at),
    )


def _read_series(user_id: str, series_id: str) -> Optional[HabitSeries]:
    with get_db_session() as session:
        return _load_series(session, user_id, series_id)


def get_habit_series(user_id: str, series_id: str) -> HabitSeriesOut:
    series = _read_series(user_id, series_id)
    if series is None:
        raise NotFoundError(f"Habit series {series_id} not found", details={"series_id": series_id})
    return HabitSeriesOut.from_series(series)


def list_habit_series(user_id: str) -> List[HabitSeriesOut]:
    with get_db_session() as session:
        ids = session.execute(
            select(habit_series.c.id)
            .where(habit_series.c.user_id == user_id)
            .order_by(habit_series.c.created_at.desc())
        ).scalars().all()
        found = [_load_series(session, user_id, series_id) for series_id in ids]
    return [HabitSeriesOut.from_series(s) for s in found if s is not None]


def delete_habit_series(user_id: str, series_id: str, now: Optional[datetime] = None) -> None:
    """Delete the series and release its active-series slot in one transaction."""
    with get_db_session() as session:
        result = session.execute(
            delete(habit_series)
            .where(habit_series.c.id == series_id)
            .where(habit_series.c.user_id == user_id)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Habit series {series_id} not found", details={"series_id": series_id})
        # Actions go explicitly so SQLite without FK enforcement stays consistent.
        session.execute(delete(habit_actions).where(habit_actions.c.series_id == series_id))
        if user_store.decrement_active_series_count(session, user_id, now) != 1:
            raise TransactionFailureError("habit_series_delete")
    log_event("info", "habit_series.deleted", user_id=user_id, series_id=series_id, event_type="habit_series")


class HabitSeriesService:
    """Entry point for habit series creation. Collaborators are injected once at startup."""

    def __init__(
        self,
        gateway: AIGateway,
        *,
        orchestrator: Optional[PipelineOrchestrator] = None,
        committer: Optional[HabitSeriesCommitter] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.gateway = gateway
        self.orchestrator = orchestrator or PipelineOrchestrator(gateway)
        self.committer = committer or HabitSeriesCommitter()
        self.clock = clock

    async def create_habit_series(self, user_id: str, request: CreateHabitSeriesRequest) -> HabitSeriesOut:
        now = self.clock()

        user = await run_in_threadpool(user_store.get_user, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        plan = determine_effective_plan(user, now)
        if not has_feature_access(plan.plan_id, FEATURE_HABIT_SERIES_CREATE):
            raise FeatureNotAvailableError(plan.plan_id, FEATURE_HABIT_SERIES_CREATE)

        used = user.limits.active_series_count
        if used >= plan.max_active_series:
            raise ActiveSeriesLimitError(used=used, maximum=plan.max_active_series)

        # A due daily recharge lands before the check. Advisory only; the commit
        # re-checks against the authoritative balance.
        energy = await run_in_threadpool(get_energy, user_id, now)
        if energy.current <= 0:
            raise InsufficientEnergyError(required=1, available=energy.current)

        pipeline_input = PipelineInput(
            language=request.language,
            test_data=sanitize_mapping(request.test_data),
            assistant_context=(
                sanitize_user_input(request.assistant_context, field="assistant_context")
                if request.assistant_context
                else None
            ),
        )

        log_event("info", "habit_series.generation_started", user_id=user_id, event_type="habit_series",
                  extra={"plan": plan.plan_id})
        result = await self.orchestrator.run(user_id, pipeline_input)

        outcome = validate_output(result.final_output)
        if not outcome.ok:
            log_event(
                "warning",
                "habit_series.validation_failed",
                user_id=user_id,
                event_type="habit_series",
                error_code="validation_failed",
                extra={"violations": [v.as_dict() for v in outcome.violations], "cost_discarded": result.total_cost},
            )
        draft = outcome.raise_for_violations()

        receipt = await run_in_threadpool(
            self.committer.commit,
            user_id,
            draft,
            result.total_cost,
            max_active_series=plan.max_active_series,
            language=request.language,
            now=now,
        )

        series = await run_in_threadpool(_read_series, user_id, receipt.series_id)
        if series is None:
            raise TransactionFailureError("habit_series_read_back")
        return HabitSeriesOut.from_series(series)
