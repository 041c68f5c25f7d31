from __future__ import annotations

from app.schemas.engine import STAGE_LABELS, AssessmentProgress, CompletionStatus
from app.services.progress_service import get_progress
from app.store.types import EngineStore


def missing_stages(progress: AssessmentProgress) -> list[str]:
    return [label for stage, label in STAGE_LABELS if not progress.stage_completed(stage)]


def can_run_comprehensive_analysis(store: EngineStore, user_id: str, resume_id: str) -> CompletionStatus:
    """Decide whether the comprehensive AI analysis may run for this resume.

    Every caller that triggers the analysis goes through here first. Store
    errors propagate; an unreachable store is never read as "incomplete".
    """
    missing = missing_stages(get_progress(store, user_id, resume_id))
    return CompletionStatus(ready=not missing, missing_stages=missing)
