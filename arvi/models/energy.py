"""
arvi/models/energy.py

Energy ledger records and the read model returned by GET /v1/energy.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class EnergyTransaction(BaseModel):
    """One append-only ledger entry. delta is signed."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    action: str
    delta: int
    balance_before: int = Field(ge=0)
    balance_after: int = Field(ge=0)
    reference_id: Optional[str] = None
    created_at: datetime


class EnergySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: str
    current: int = Field(ge=0)
    maximum: int = Field(ge=0)
    total_consumed: int = Field(ge=0)
    last_recharged_at: Optional[datetime] = None
    recharged: bool = Field(default=False, description="True when this read applied the daily recharge")
