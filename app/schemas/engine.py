from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

RequirementType = Literal["resumes_screened", "red_flags_found", "calls_completed", "total_points"]
StageKey = Literal["scorecard", "red_flags", "behavioral"]

# Display order of the gate's missing-stage list.
STAGE_LABELS: tuple[tuple[StageKey, str], ...] = (
    ("scorecard", "Scorecard"),
    ("red_flags", "Red Flags"),
    ("behavioral", "Screening Call"),
)
STAT_FIELDS: tuple[str, ...] = ("resumes_screened", "red_flags_found", "calls_completed", "total_points")


class UserStats(BaseModel):
    user_id: str
    resumes_screened: int = Field(default=0, ge=0)
    red_flags_found: int = Field(default=0, ge=0)
    calls_completed: int = Field(default=0, ge=0)
    total_points: int = Field(default=0, ge=0)

    def value_for(self, requirement_type: str) -> int:
        if requirement_type not in STAT_FIELDS:
            return 0
        return int(getattr(self, requirement_type) or 0)


class AssessmentProgress(BaseModel):
    scorecard_completed: bool = False
    red_flags_completed: bool = False
    behavioral_completed: bool = False
    completed_at: datetime | None = None

    @property
    def all_completed(self) -> bool:
        return self.scorecard_completed and self.red_flags_completed and self.behavioral_completed

    def stage_completed(self, stage: StageKey) -> bool:
        return bool(getattr(self, f"{stage}_completed"))


class BadgeDefinition(BaseModel):
    id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    icon: str = ""
    requirement_type: RequirementType
    requirement_value: int = Field(ge=0)
    points: int = Field(default=0, ge=0)


class BadgeEvaluation(BaseModel):
    badge_id: str
    earned: bool
    earned_now: bool
    progress_percent: float = Field(ge=0, le=100)
    current_value: int
    requirement_value: int
    points: int


class CompletionStatus(BaseModel):
    ready: bool
    missing_stages: list[str] = Field(default_factory=list)


class BadgeAwardResult(BaseModel):
    inserted: list[str] = Field(default_factory=list)
    duplicates: list[str] = Field(default_factory=list)


class StageSaveResult(BaseModel):
    points_awarded: int
    progress: AssessmentProgress
    badges: list[BadgeEvaluation] = Field(default_factory=list)


class AssessmentData(BaseModel):
    scorecard: dict[str, Any] | None = None
    red_flags: list[dict[str, Any]] = Field(default_factory=list)
    call_simulation: dict[str, Any] | None = None
    progress: AssessmentProgress


class BackfillReport(BaseModel):
    users_processed: int = 0
    users_failed: int = 0
    badges_awarded: int = 0
