"""Pydantic schemas for scoring inputs: documents, notes, intake and research."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

DocumentType = Literal["deck", "financial", "legal", "other"]


class ScoringDocument(BaseModel):
    """One source document already converted to plain text."""

    file_name: str = "Document"
    text: str = ""
    type: DocumentType = "other"


class DiligenceNote(BaseModel):
    """Analyst note filed under a scoring category (or 'overall')."""

    id: Optional[str] = None
    category: str = "overall"
    title: str = ""
    content: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DiligenceQuestion(BaseModel):
    id: Optional[str] = None
    question: str
    answer: Optional[str] = None
    status: Literal["open", "answered"] = "open"


class CompanyEnrichmentData(BaseModel):
    """Founder intake / CRM snapshot used as strong but cross-checked input."""

    name: Optional[str] = None
    domain: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    industry_sector: Optional[str] = None
    investment_sector: Optional[str] = None
    product_categorization: Optional[str] = None
    funding_stage: Optional[str] = None
    funding_amount: Optional[str] = None
    funding_valuation: Optional[str] = None
    current_commitments: Optional[str] = None
    lead_information: Optional[str] = None
    tam_range: Optional[str] = None
    current_runway: Optional[str] = None
    post_funding_runway: Optional[str] = None
    annual_revenue: Optional[str] = None
    number_of_employees: Optional[str] = None
    founded_year: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    linkedin_url: Optional[str] = None
    description: Optional[str] = None
    anything_else: Optional[str] = None
    pitch_deck_url: Optional[str] = None


class Founder(BaseModel):
    name: str
    title: Optional[str] = None
    linkedin_url: Optional[str] = None
    has_prior_exit: bool = False
    has_been_ceo: bool = False
    has_been_cto: bool = False
    prior_exits: List[str] = Field(default_factory=list)
    experience_summary: Optional[str] = None


class TeamResearch(BaseModel):
    summary: str = ""
    team_score: Optional[float] = None
    founders: List[Founder] = Field(default_factory=list)
    analyzed_at: Optional[str] = None


SynergyType = Literal["similar_space", "similar_customer", "complementary_offering"]


class PortfolioSynergyMatch(BaseModel):
    company_name: str
    synergy_type: SynergyType = "similar_space"
    rationale: str = ""


class PortfolioSynergyResearch(BaseModel):
    summary: str = ""
    synergy_score: Optional[float] = None
    matches: List[PortfolioSynergyMatch] = Field(default_factory=list)
    source_url: Optional[str] = None
    analyzed_at: Optional[str] = None


class NecessitySignal(BaseModel):
    label: str
    strength: Optional[str] = None
    evidence: str = ""


class ProblemNecessityResearch(BaseModel):
    summary: str = ""
    necessity_score: Optional[float] = None
    classification: Literal["vitamin", "advil", "vaccine", "unknown"] = "unknown"
    top_signals: List[NecessitySignal] = Field(default_factory=list)
    counter_signals: List[NecessitySignal] = Field(default_factory=list)
    analyzed_at: Optional[str] = None
