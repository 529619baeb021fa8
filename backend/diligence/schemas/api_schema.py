"""Pydantic schemas for the diligence HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .criteria_schema import CriteriaSchema
from .learning_schema import Decision
from .market_schema import TamAnalysisResult
from .metrics_schema import MetricSet
from .research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    ScoringDocument,
    TeamResearch,
)
from .score_schema import CompanyFounder, DiligenceScore, ScoringOptions, ThesisAnswers


class DiligenceCreateRequest(BaseModel):
    """Inputs captured when a company enters diligence."""

    company_name: str = Field(..., min_length=1, description="Company display name")
    company_url: Optional[str] = Field(default=None, description="Company website")
    industry: Optional[str] = None
    documents: List[ScoringDocument] = Field(default_factory=list, description="Documents already converted to text")
    notes: List[DiligenceNote] = Field(default_factory=list, description="Categorized analyst notes")
    questions: List[DiligenceQuestion] = Field(default_factory=list)
    enrichment: Optional[CompanyEnrichmentData] = Field(default=None, description="Founder intake / CRM snapshot")
    team_research: Optional[TeamResearch] = None
    portfolio_synergy: Optional[PortfolioSynergyResearch] = None
    problem_necessity: Optional[ProblemNecessityResearch] = None
    metrics: Optional[MetricSet] = Field(default=None, description="Manually entered source-of-truth metrics")


class ScoreRequest(BaseModel):
    criteria: CriteriaSchema = Field(..., description="Analyst rubric to score against")
    notes: Optional[str] = Field(default=None, description="Free-form investor notes")
    existing_thesis_answers: Optional[ThesisAnswers] = None
    options: ScoringOptions = Field(default_factory=ScoringOptions)


class CategoryOverrideRequest(BaseModel):
    category: str = Field(..., min_length=1)
    score: int = Field(..., ge=0, le=100, description="Analyst override score")
    reason: Optional[str] = None
    suppress_topics: List[str] = Field(default_factory=list, description="Risk topics to stop raising")


class DecisionRequest(BaseModel):
    decision: Decision
    reason: Optional[str] = None


class FactsRequest(BaseModel):
    company_name: str = Field(..., min_length=1)
    company_url: Optional[str] = None
    documents: List[ScoringDocument] = Field(default_factory=list)
    notes: Optional[str] = None


class FactsResponse(BaseModel):
    facts: str = Field(..., description="Structured facts markdown; empty when no document has text")


class DecisionRecord(BaseModel):
    decision: Decision
    reason: Optional[str] = None
    decided_at: str


class DiligenceRecordResponse(BaseModel):
    """Single diligence record, returned by every record endpoint."""

    id: str = Field(..., description="Diligence record UUID")
    company_name: str
    company_url: Optional[str] = None
    industry: Optional[str] = None
    company_one_liner: Optional[str] = None
    status: Literal["pending", "scored", "failed"] = Field(..., description="Scoring lifecycle status")
    metrics: Optional[MetricSet] = None
    score: Optional[DiligenceScore] = None
    founders: List[CompanyFounder] = Field(default_factory=list)
    tam_analysis: Optional[TamAnalysisResult] = None
    decision: Optional[DecisionRecord] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
