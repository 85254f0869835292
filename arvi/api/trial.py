from fastapi import APIRouter, Depends

from arvi.core.auth import get_current_user_id
from arvi.features.users.trial import TrialStatus, activate_trial, get_trial_status

router = APIRouter(prefix="/v1/trial", tags=["trial"])


@router.post("/activate", response_model=TrialStatus)
def activate(user_id: str = Depends(get_current_user_id)):
    return activate_trial(user_id)


@router.get("", response_model=TrialStatus)
def status(user_id: str = Depends(get_current_user_id)):
    return get_trial_status(user_id)
