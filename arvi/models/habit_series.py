"""
arvi/models/habit_series.py

Habit series, actions, the canonical Difficulty/Rank enums and the
create-request contract.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class Difficulty(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_MEDIUM_SYNONYMS = frozenset({"medium", "media", "medio"})
_HIGH_SYNONYMS = frozenset({"high", "alta", "alto"})


def normalize_difficulty(raw: Any) -> Difficulty:
    """Map free-form difficulty to the canonical enum.

    Only medium/high synonyms are recognized; everything else, including
    empty or unknown values, falls back to LOW.
    """
    if isinstance(raw, Difficulty):
        return raw
    value = str(raw).strip().lower() if raw is not None else ""
    if value in _MEDIUM_SYNONYMS:
        return Difficulty.MEDIUM
    if value in _HIGH_SYNONYMS:
        return Difficulty.HIGH
    return Difficulty.LOW


class Rank(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLDEN = "golden"
    DIAMOND = "diamond"


# Descending thresholds; first match wins.
RANK_THRESHOLDS: Tuple[Tuple[int, Rank], ...] = (
    (1000, Rank.DIAMOND),
    (600, Rank.GOLDEN),
    (300, Rank.SILVER),
)


def rank_from_score(score: int) -> Rank:
    for threshold, rank in RANK_THRESHOLDS:
        if score >= threshold:
            return rank
    return Rank.BRONZE


MIN_ACTIONS = 3
MAX_ACTIONS = 5


class ActionDraft(BaseModel):
    """A validated action before it is persisted."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    difficulty: Difficulty


class HabitSeriesDraft(BaseModel):
    """Validated generator output, ready for the atomic commit."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    actions: List[ActionDraft] = Field(min_length=MIN_ACTIONS, max_length=MAX_ACTIONS)


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int = Field(ge=0)
    name: str
    description: str
    difficulty: Difficulty
    score: int = Field(default=0, ge=0)
    completed: bool = False


class HabitSeries(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: str
    description: str
    language: Optional[str] = None
    actions: List[Action]
    total_score: int = Field(default=0, ge=0)
    energy_cost: int = Field(default=0, ge=0)
    created_at: datetime
    last_activity_at: datetime
    updated_at: datetime

    @property
    def rank(self) -> Rank:
        return rank_from_score(self.total_score)


class ActionOut(BaseModel):
    name: str
    description: str
    difficulty: Difficulty
    score: int
    completed: bool


class HabitSeriesOut(BaseModel):
    """Public shape of a persisted series. Rank is derived on the way out."""

    id: str
    title: str
    description: str
    actions: List[ActionOut]
    total_score: int
    rank: Rank
    energy_cost: int
    created_at: datetime
    last_activity_at: datetime
    updated_at: datetime

    @classmethod
    def from_series(cls, series: HabitSeries) -> "HabitSeriesOut":
        return cls(
            id=series.id,
            title=series.title,
            description=series.description,
            actions=[
                ActionOut(
                    name=a.name,
                    description=a.description,
                    difficulty=a.difficulty,
                    score=a.score,
                    completed=a.completed,
                )
                for a in sorted(series.actions, key=lambda a: a.position)
            ],
            total_score=series.total_score,
            rank=series.rank,
            energy_cost=series.energy_cost,
            created_at=series.created_at,
            last_activity_at=series.last_activity_at,
            updated_at=series.updated_at,
        )


class CreateHabitSeriesRequest(BaseModel):
    """Inputs collected by the habit test on the client."""

    model_config = ConfigDict(extra="forbid")

    language: Literal["en", "es"] = "en"
    test_data: Dict[str, Any] = Field(min_length=1, description="Test answers keyed by question")
    assistant_context: Optional[str] = Field(default=None, max_length=4000)
