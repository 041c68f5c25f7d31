from __future__ import annotations

import logging

from app.schemas.assessments import CallSimulationRequest, RedFlagsRequest, ScorecardRequest
from app.schemas.engine import AssessmentData, StageSaveResult
from app.services.badge_service import evaluate_badges_safely
from app.services.progress_service import get_progress, mark_stage_completed
from app.store.types import EngineStore

logger = logging.getLogger(__name__)

POINTS_PER_RED_FLAG = 5
POINTS_PER_CALL_SCORE = 2


def record_scorecard(store: EngineStore, payload: ScorecardRequest) -> StageSaveResult:
    total_score = payload.scores.total_score
    points = round(total_score)
    with store.transaction():
        store.insert_scorecard(
            payload.user_id,
            payload.resume_id,
            scores=payload.scores.model_dump(),
            total_score=total_score,
            notes=payload.notes,
        )
        store.increment_stats(payload.user_id, {"total_points": points, "resumes_screened": 1})
        progress = mark_stage_completed(store, payload.user_id, payload.resume_id, "scorecard")

    logger.info(
        "scorecard_saved user=%s resume=%s total_score=%.1f points=%s",
        payload.user_id,
        payload.resume_id,
        total_score,
        points,
    )
    badges = evaluate_badges_safely(store, payload.user_id)
    return StageSaveResult(points_awarded=points, progress=progress, badges=badges)


def record_red_flags(store: EngineStore, payload: RedFlagsRequest) -> StageSaveResult:
    """Save flagged concerns; an empty list still completes the stage."""
    flag_count = len(payload.flags)
    points = flag_count * POINTS_PER_RED_FLAG
    with store.transaction():
        if flag_count:
            store.insert_red_flags(
                payload.user_id,
                payload.resume_id,
                [flag.model_dump() for flag in payload.flags],
            )
        store.increment_stats(payload.user_id, {"total_points": points, "red_flags_found": flag_count})
        progress = mark_stage_completed(store, payload.user_id, payload.resume_id, "red_flags")

    logger.info(
        "red_flags_saved user=%s resume=%s flags=%s points=%s",
        payload.user_id,
        payload.resume_id,
        flag_count,
        points,
    )
    badges = evaluate_badges_safely(store, payload.user_id) if flag_count else []
    return StageSaveResult(points_awarded=points, progress=progress, badges=badges)


def record_call_simulation(store: EngineStore, payload: CallSimulationRequest) -> StageSaveResult:
    points = payload.score * POINTS_PER_CALL_SCORE
    with store.transaction():
        store.insert_call_simulation(
            payload.user_id,
            payload.resume_id,
            question=payload.question,
            answer=payload.answer,
            score=payload.score,
            feedback=payload.feedback,
        )
        store.increment_stats(payload.user_id, {"total_points": points, "calls_completed": 1})
        progress = mark_stage_completed(store, payload.user_id, payload.resume_id, "behavioral")

    logger.info(
        "call_simulation_saved user=%s resume=%s score=%s points=%s",
        payload.user_id,
        payload.resume_id,
        payload.score,
        points,
    )
    badges = evaluate_badges_safely(store, payload.user_id)
    return StageSaveResult(points_awarded=points, progress=progress, badges=badges)


def load_assessment_data(store: EngineStore, user_id: str, resume_id: str) -> AssessmentData:
    return AssessmentData(
        scorecard=store.latest_scorecard(user_id, resume_id),
        red_flags=store.list_red_flags(user_id, resume_id),
        call_simulation=store.latest_call_simulation(user_id, resume_id),
        progress=get_progress(store, user_id, resume_id),
    )
