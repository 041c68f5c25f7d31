from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Mapping, Protocol, Sequence

from app.schemas.engine import AssessmentProgress, BadgeAwardResult, BadgeDefinition, UserStats


class EngineStore(Protocol):
    def transaction(self) -> AbstractContextManager[None]: ...

    def create_user_stats(self, user_id: str) -> UserStats: ...

    def get_user_stats(self, user_id: str) -> UserStats | None: ...

    def increment_stats(self, user_id: str, deltas: Mapping[str, int]) -> None: ...

    def list_user_ids_with_points(self) -> list[str]: ...

    def get_progress_record(self, user_id: str, resume_id: str) -> AssessmentProgress | None: ...

    def upsert_progress_record(
        self, user_id: str, resume_id: str, fields: Mapping[str, Any]
    ) -> AssessmentProgress: ...

    def has_scorecard(self, user_id: str, resume_id: str) -> bool: ...

    def count_red_flags(self, user_id: str, resume_id: str) -> int: ...

    def has_call_simulation(self, user_id: str, resume_id: str) -> bool: ...

    def insert_scorecard(
        self,
        user_id: str,
        resume_id: str,
        *,
        scores: Mapping[str, int],
        total_score: float,
        notes: str | None = None,
    ) -> str: ...

    def insert_red_flags(self, user_id: str, resume_id: str, flags: Sequence[Mapping[str, str]]) -> int: ...

    def insert_call_simulation(
        self,
        user_id: str,
        resume_id: str,
        *,
        question: str,
        answer: str,
        score: int,
        feedback: str | None = None,
    ) -> str: ...

    def latest_scorecard(self, user_id: str, resume_id: str) -> dict[str, Any] | None: ...

    def list_red_flags(self, user_id: str, resume_id: str) -> list[dict[str, Any]]: ...

    def latest_call_simulation(self, user_id: str, resume_id: str) -> dict[str, Any] | None: ...

    def list_badges(self) -> list[BadgeDefinition]: ...

    def list_earned_badge_ids(self, user_id: str) -> set[str]: ...

    def has_any_badge(self, user_id: str) -> bool: ...

    def insert_badge_awards(self, user_id: str, badge_ids: Sequence[str]) -> BadgeAwardResult: ...
