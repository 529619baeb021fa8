"""Pydantic schemas for scored diligence output."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .market_schema import ExternalMarketIntelligence
from .metrics_schema import MetricSet

EvidenceStatus = Literal["supported", "weakly_supported", "unknown", "contradicted"]


class CriterionScore(BaseModel):
    """Score for a single rubric criterion.

    ``manual_override`` replaces ``score`` everywhere an effective score is
    needed; ``score`` keeps the model/calibrated value for learning deltas.
    """

    name: str
    score: int = Field(..., ge=0, le=100)
    confidence: int = Field(default=55, ge=0, le=100)
    evidence_status: EvidenceStatus = "unknown"
    reasoning: str = ""
    evidence: List[str] = Field(default_factory=list)
    missing_data: List[str] = Field(default_factory=list)
    follow_up_questions: List[str] = Field(default_factory=list)
    manual_override: Optional[int] = Field(default=None, ge=0, le=100)
    user_perspective: Optional[str] = None
    answer: Optional[str] = None


class CategoryScore(BaseModel):
    category: str
    score: int = Field(..., ge=0, le=100)
    weight: float = Field(..., ge=0)
    weighted_score: float = 0.0
    criteria: List[CriterionScore] = Field(default_factory=list)
    manual_override: Optional[int] = Field(default=None, ge=0, le=100)
    override_reason: Optional[str] = None
    override_suppress_topics: List[str] = Field(default_factory=list)
    overridden_at: Optional[str] = None
    calibration_adjustments: Dict[str, float] = Field(
        default_factory=dict,
        description="Points applied per category-level calibration pass",
    )


class FounderQuestions(BaseModel):
    questions: List[str] = Field(default_factory=list)
    primary_concern: str = ""
    key_gaps: str = ""


class ThesisAnswers(BaseModel):
    problem_solving: str = ""
    solution: str = ""
    ideal_customer: str = ""
    exciting: List[str] = Field(default_factory=list)
    concerning: List[str] = Field(default_factory=list)
    founder_questions: FounderQuestions = Field(default_factory=FounderQuestions)
    manually_edited: bool = False


class DiligenceScore(BaseModel):
    overall: int = Field(..., ge=0, le=100)
    categories: List[CategoryScore] = Field(default_factory=list)
    data_quality: int = Field(default=50, ge=0, le=100)
    scored_at: str
    thesis_answers: Optional[ThesisAnswers] = None
    follow_up_questions: List[str] = Field(default_factory=list)
    external_market_intelligence: Optional[ExternalMarketIntelligence] = None
    rescore_explanation: Optional[str] = None
    scoring_mode: Literal["primary", "chunked"] = "primary"


class CompanyFounder(BaseModel):
    name: str
    linkedin_url: Optional[str] = None
    title: Optional[str] = None


class CompanyMetadata(BaseModel):
    company_one_liner: Optional[str] = None
    industry: Optional[str] = None
    founders: List[CompanyFounder] = Field(default_factory=list)


class ScoringOptions(BaseModel):
    summarize_notes_for_scoring: bool = False


class ScoringResult(BaseModel):
    score: DiligenceScore
    metrics: MetricSet
    company_metadata: CompanyMetadata = Field(default_factory=CompanyMetadata)
