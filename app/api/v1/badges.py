from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.api.deps import engine_store, raise_engine_error, require_api_key
from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.schemas.assessments import (
    BackfillRequest,
    BackfillResponse,
    BadgeEvaluationResponse,
    RecommendationsResponse,
)
from app.services.badge_service import (
    backfill_user_badges,
    evaluate_and_award,
    get_badge_recommendations,
    user_has_badges,
)
from app.services.errors import EngineError
from app.store.types import EngineStore

router = APIRouter()


@router.post("/badges/{user_id}/evaluate", response_model=BadgeEvaluationResponse)
@rate_limit()
async def evaluate_badges(
    request: Request,
    user_id: str,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    try:
        badges = evaluate_and_award(store, user_id)
    except EngineError as exc:
        raise_engine_error(exc)
    return BadgeEvaluationResponse(user_id=user_id, badges=badges)


@router.get("/badges/{user_id}/recommendations", response_model=RecommendationsResponse)
async def badge_recommendations(user_id: str, store: EngineStore = Depends(engine_store)):
    try:
        recommendations = get_badge_recommendations(store, user_id)
        has_badges = user_has_badges(store, user_id)
    except EngineError as exc:
        raise_engine_error(exc)
    return RecommendationsResponse(user_id=user_id, has_badges=has_badges, recommendations=recommendations)


@router.post("/admin/badges/backfill", response_model=BackfillResponse)
def backfill_badges(
    payload: BackfillRequest | None = None,
    store: EngineStore = Depends(engine_store),
    _: None = Depends(require_api_key),
):
    batch_size = (payload.batch_size if payload else None) or settings.badge_backfill_batch_size
    try:
        report = backfill_user_badges(
            store,
            batch_size=batch_size,
            delay_s=settings.badge_backfill_delay_ms / 1000,
        )
    except EngineError as exc:
        raise_engine_error(exc)
    return BackfillResponse(**report.model_dump())
