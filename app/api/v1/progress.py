from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import engine_store, raise_engine_error
from app.schemas.assessments import ProgressResponse
from app.schemas.engine import CompletionStatus
from app.services.completion_gate import can_run_comprehensive_analysis
from app.services.errors import EngineError
from app.services.progress_service import get_progress
from app.store.types import EngineStore

router = APIRouter()


@router.get("/progress/{user_id}/{resume_id}", response_model=ProgressResponse)
async def read_progress(user_id: str, resume_id: str, store: EngineStore = Depends(engine_store)):
    try:
        progress = get_progress(store, user_id, resume_id)
    except EngineError as exc:
        raise_engine_error(exc)
    return ProgressResponse(user_id=user_id, resume_id=resume_id, progress=progress)


@router.get("/progress/{user_id}/{resume_id}/completion", response_model=CompletionStatus)
async def read_completion(user_id: str, resume_id: str, store: EngineStore = Depends(engine_store)):
    try:
        return can_run_comprehensive_analysis(store, user_id, resume_id)
    except EngineError as exc:
        raise_engine_error(exc)
