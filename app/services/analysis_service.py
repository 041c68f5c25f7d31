from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from app.schemas.assessments import ComprehensiveAnalysisRequest, ComprehensiveAnalysisResponse
from app.services.analysis_llm import json_completion_required
from app.services.assessment_service import load_assessment_data
from app.services.completion_gate import can_run_comprehensive_analysis
from app.services.errors import AssessmentIncomplete
from app.store.types import EngineStore

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a senior recruiter coaching a trainee resume screener. "
    "Compare the trainee's scorecard, red flags and screening-call answer against your own "
    "reading of the resume. Return a JSON object with keys: overall_score (0-100), "
    "strengths (list of strings), concerns (list of strings), scorecard_alignment (string), "
    "missed_red_flags (list of strings), call_feedback (string), recommendation "
    "(one of 'advance', 'hold', 'reject') and coaching_tips (list of strings)."
)
_MAX_RESUME_CHARS = 20000


def build_analysis_payload(payload: ComprehensiveAnalysisRequest, store: EngineStore) -> dict[str, Any]:
    data = load_assessment_data(store, payload.user_id, payload.resume_id)
    return {
        "resume_text": payload.resume_text[:_MAX_RESUME_CHARS],
        "department": payload.department,
        "user_scorecard": data.scorecard,
        "user_red_flags": data.red_flags,
        "user_call_simulation": data.call_simulation,
        "assessment_complete": data.progress.all_completed,
    }


def run_comprehensive_analysis(
    store: EngineStore, payload: ComprehensiveAnalysisRequest
) -> ComprehensiveAnalysisResponse:
    completion = can_run_comprehensive_analysis(store, payload.user_id, payload.resume_id)
    if not completion.ready:
        logger.info(
            "comprehensive_analysis_blocked user=%s resume=%s missing=%s",
            payload.user_id,
            payload.resume_id,
            completion.missing_stages,
        )
        raise AssessmentIncomplete(completion.missing_stages)

    analysis_input = build_analysis_payload(payload, store)
    analysis = json_completion_required(
        system_prompt=_SYSTEM_PROMPT,
        user_prompt=json.dumps(analysis_input, ensure_ascii=False, default=str),
        analysis_kind="comprehensive",
    )
    logger.info("comprehensive_analysis_completed user=%s resume=%s", payload.user_id, payload.resume_id)
    return ComprehensiveAnalysisResponse(
        analysis=analysis,
        completion=completion,
        generated_at=datetime.now(timezone.utc),
    )
