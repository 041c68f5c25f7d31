from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.schemas.engine import AssessmentProgress, StageKey
from app.store.types import EngineStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_progress(store: EngineStore, user_id: str, resume_id: str) -> AssessmentProgress:
    """Return the cached progress record, reconstructing it from stage evidence once.

    An existing record is returned verbatim. Without one, each stage is checked
    against its evidence table and the result is written back, after which the
    record is authoritative. Store failures raise ``StoreUnavailable``.
    """
    cached = store.get_progress_record(user_id, resume_id)
    if cached is not None:
        return cached

    scorecard_completed = store.has_scorecard(user_id, resume_id)
    red_flags_completed = store.count_red_flags(user_id, resume_id) > 0
    behavioral_completed = store.has_call_simulation(user_id, resume_id)

    fields = {
        "scorecard_completed": scorecard_completed,
        "red_flags_completed": red_flags_completed,
        "behavioral_completed": behavioral_completed,
    }
    if scorecard_completed and red_flags_completed and behavioral_completed:
        fields["completed_at"] = _utc_now()

    progress = store.upsert_progress_record(user_id, resume_id, fields)
    logger.info(
        "progress_reconstructed user=%s resume=%s scorecard=%s red_flags=%s behavioral=%s",
        user_id,
        resume_id,
        progress.scorecard_completed,
        progress.red_flags_completed,
        progress.behavioral_completed,
    )
    return progress


def mark_stage_completed(
    store: EngineStore, user_id: str, resume_id: str, stage: StageKey
) -> AssessmentProgress:
    # Reconcile a missing record against evidence before ratcheting the stage.
    get_progress(store, user_id, resume_id)
    progress = store.upsert_progress_record(user_id, resume_id, {f"{stage}_completed": True})
    if progress.all_completed:
        logger.info("assessment_completed user=%s resume=%s at=%s", user_id, resume_id, progress.completed_at)
    return progress
