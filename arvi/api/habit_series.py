"""
Habit series API.

POST creates a series through the generation pipeline; reads and deletes go
straight to the store.
"""
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from arvi.core.auth import get_current_user_id
from arvi.core.errors import AIProviderRejectedError
from arvi.features.habit_series.service import (
    HabitSeriesService,
    delete_habit_series,
    get_habit_series,
    list_habit_series,
)
from arvi.models.habit_series import CreateHabitSeriesRequest, HabitSeriesOut

router = APIRouter(prefix="/v1/habits/series", tags=["habit-series"])


def get_habit_series_service(request: Request) -> HabitSeriesService:
    service = getattr(request.app.state, "habit_series_service", None)
    if service is None:
        raise AIProviderRejectedError("No AI providers are configured")
    return service


@router.post("", response_model=HabitSeriesOut, status_code=201)
async def create_series(
    body: CreateHabitSeriesRequest,
    user_id: str = Depends(get_current_user_id),
    service: HabitSeriesService = Depends(get_habit_series_service),
):
    return await service.create_habit_series(user_id, body)


@router.get("", response_model=List[HabitSeriesOut])
async def list_series(user_id: str = Depends(get_current_user_id)):
    return await run_in_threadpool(list_habit_series, user_id)


@router.get("/{series_id}", response_model=HabitSeriesOut)
async def get_series(series_id: str, user_id: str = Depends(get_current_user_id)):
    return await run_in_threadpool(get_habit_series, user_id, series_id)


@router.delete("/{series_id}", status_code=204)
async def delete_series(series_id: str, user_id: str = Depends(get_current_user_id)):
    await run_in_threadpool(delete_habit_series, user_id, series_id)
    return Response(status_code=204)
