from typing import List

from fastapi import APIRouter, Depends, Query

from arvi.core.auth import get_current_user_id
from arvi.features.energy.service import get_energy, list_energy_transactions
from arvi.models.energy import EnergySnapshot, EnergyTransaction

router = APIRouter(prefix="/v1/energy", tags=["energy"])


@router.get("", response_model=EnergySnapshot)
def read_energy(user_id: str = Depends(get_current_user_id)):
    """Current balance; applies the daily recharge when due."""
    return get_energy(user_id)


@router.get("/transactions", response_model=List[EnergyTransaction])
def read_transactions(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
):
    return list_energy_transactions(user_id, limit=limit)
