from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.schemas.engine import AssessmentProgress, BackfillReport, BadgeEvaluation, CompletionStatus


class AssessmentTargetRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    resume_id: str = Field(min_length=1, max_length=200)


class ScorecardScores(BaseModel):
    experience_score: int = Field(default=50, ge=0, le=100)
    skills_score: int = Field(default=50, ge=0, le=100)
    progression_score: int = Field(default=50, ge=0, le=100)
    achievements_score: int = Field(default=50, ge=0, le=100)
    communication_score: int = Field(default=50, ge=0, le=100)

    @property
    def total_score(self) -> float:
        values = list(self.model_dump().values())
        return sum(values) / len(values)


class ScorecardRequest(AssessmentTargetRequest):
    scores: ScorecardScores = Field(default_factory=ScorecardScores)
    notes: str | None = Field(default=None, max_length=5000)


class RedFlagItem(BaseModel):
    flag_type: str = Field(min_length=1, max_length=300)
    description: str = Field(default="", max_length=2000)


class RedFlagsRequest(AssessmentTargetRequest):
    flags: list[RedFlagItem] = Field(default_factory=list, max_length=50)


class CallSimulationRequest(AssessmentTargetRequest):
    question: str = Field(min_length=1, max_length=2000)
    answer: str = Field(min_length=1, max_length=10000)
    score: int = Field(ge=1, le=10)
    feedback: str | None = Field(default=None, max_length=5000)


class ComprehensiveAnalysisRequest(AssessmentTargetRequest):
    resume_text: str = Field(min_length=30, max_length=120000)
    department: str = Field(default="General", min_length=1, max_length=100)


class ComprehensiveAnalysisResponse(BaseModel):
    analysis: dict[str, Any]
    completion: CompletionStatus
    generated_at: datetime


class ProgressResponse(BaseModel):
    user_id: str
    resume_id: str
    progress: AssessmentProgress


class BadgeEvaluationResponse(BaseModel):
    user_id: str
    badges: list[BadgeEvaluation] = Field(default_factory=list)


class RecommendationsResponse(BaseModel):
    user_id: str
    has_badges: bool
    recommendations: list[str] = Field(default_factory=list)


class BackfillRequest(BaseModel):
    batch_size: int | None = Field(default=None, ge=1, le=500)


class BackfillResponse(BackfillReport):
    pass
