from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.api.deps import engine_store, raise_engine_error, require_api_key
from app.core.rate_limit import rate_limit
from app.schemas.assessments import CallSimulationRequest, RedFlagsRequest, ScorecardRequest
from app.schemas.engine import StageSaveResult, UserStats
from app.services.assessment_service import record_call_simulation, record_red_flags, record_scorecard
from app.services.errors import EngineError
from app.store.types import EngineStore

router = APIRouter()


@router.post("/users/{user_id}", response_model=UserStats)
@rate_limit()
async def create_user(
    request: Request,
    user_id: str,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        return store.create_user_stats(user_id)
    except EngineError as exc:
        raise_engine_error(exc)


@router.post("/assessments/scorecard", response_model=StageSaveResult)
@rate_limit()
async def save_scorecard(
    request: Request,
    payload: ScorecardRequest,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        return record_scorecard(store, payload)
    except EngineError as exc:
        raise_engine_error(exc)


@router.post("/assessments/red-flags", response_model=StageSaveResult)
@rate_limit()
async def save_red_flags(
    request: Request,
    payload: RedFlagsRequest,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        return record_red_flags(store, payload)
    except EngineError as exc:
        raise_engine_error(exc)


@router.post("/assessments/call-simulation", response_model=StageSaveResult)
@rate_limit()
async def save_call_simulation(
    request: Request,
    payload: CallSimulationRequest,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        return record_call_simulation(store, payload)
    except EngineError as exc:
        raise_engine_error(exc)
