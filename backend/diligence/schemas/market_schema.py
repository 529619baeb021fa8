"""Pydantic schemas for external market intelligence and TAM analysis."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

TamAlignment = Literal["aligned", "somewhat_aligned", "overstated", "understated", "unknown"]
GrowthBand = Literal["high", "moderate", "low", "unknown"]
Level = Literal["low", "medium", "high"]


class TamClaim(BaseModel):
    tam: str = "unknown"
    sam: str = "unknown"
    som: str = "unknown"
    source: str = ""


class IndependentTamEstimate(BaseModel):
    tam: str = "unknown"
    sam: str = "unknown"
    som: str = "unknown"
    method: str = ""
    assumptions: List[str] = Field(default_factory=list)


class TamComparison(BaseModel):
    alignment: TamAlignment = "unknown"
    delta_summary: str = ""
    confidence: int = Field(default=0, ge=0, le=100)


class TamSamSom(BaseModel):
    company_claim: TamClaim = Field(default_factory=TamClaim)
    independent_estimate: IndependentTamEstimate = Field(default_factory=IndependentTamEstimate)
    comparison: TamComparison = Field(default_factory=TamComparison)


class MarketGrowth(BaseModel):
    estimated_cagr: str = ""
    growth_band: GrowthBand = "unknown"
    confidence: int = Field(default=0, ge=0, le=100)
    evidence: List[str] = Field(default_factory=list)
    summary: str = ""


class Competitor(BaseModel):
    name: str
    overlap: Level = "medium"
    funding_raised: str = ""
    concern_level: Level = "medium"
    rationale: str = ""


class ExternalMarketIntelligence(BaseModel):
    """Market sizing, growth and competition view built from materials and research."""

    tam_sam_som: TamSamSom = Field(default_factory=TamSamSom)
    market_growth: MarketGrowth = Field(default_factory=MarketGrowth)
    competitors: List[Competitor] = Field(default_factory=list)
    competitive_threat_score: Optional[float] = None
    external_summary: str = ""


class TamAnalysisResult(BaseModel):
    """Stand-alone founder-vs-independent TAM comparison."""

    founder_tam: str
    independent_tam: str
    blended_tam: str
    alignment: TamAlignment
    confidence: int
    discrepancy_ratio: Optional[float] = None
    method: str
    assumptions: List[str] = Field(default_factory=list)
    delta_summary: str
    explanation: str
