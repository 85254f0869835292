"""
arvi/models/user.py

User aggregate: plan, trial window, limits and energy balance.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Energy(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: int = Field(ge=0)
    maximum: int = Field(ge=0)
    last_recharged_at: Optional[datetime] = None
    total_consumed: int = Field(default=0, ge=0)


class Limits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_active_series: int = Field(ge=0)
    active_series_count: int = Field(ge=0)
    max_weekly_summaries: int = Field(default=0, ge=0)
    weekly_summaries_count: int = Field(default=0, ge=0)


class Trial(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: bool = False
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def is_running(self, now: datetime) -> bool:
        if not self.active or self.expires_at is None:
            return False
        return as_utc(now) < as_utc(self.expires_at)


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    plan: str = "freemium"
    trial: Trial = Field(default_factory=Trial)
    limits: Limits
    energy: Energy
    created_at: datetime
    updated_at: datetime
