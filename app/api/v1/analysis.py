from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.api.deps import engine_store, raise_engine_error, require_api_key
from app.core.rate_limit import rate_limit
from app.schemas.assessments import ComprehensiveAnalysisRequest, ComprehensiveAnalysisResponse
from app.services.analysis_service import run_comprehensive_analysis
from app.services.errors import EngineError
from app.store.types import EngineStore

router = APIRouter()


@router.post("/analysis/comprehensive", response_model=ComprehensiveAnalysisResponse)
@rate_limit("20/minute")
async def comprehensive_analysis(
    request: Request,
    payload: ComprehensiveAnalysisRequest,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        return run_comprehensive_analysis(store, payload)
    except EngineError as exc:
        raise_engine_error(exc)
