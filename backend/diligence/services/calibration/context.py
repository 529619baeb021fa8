"""Inputs shared by every calibration pass, plus small score helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ...constants import DEFAULT_CRITERION_CONFIDENCE
from ...schemas.learning_schema import CalibrationRow
from ...schemas.market_schema import ExternalMarketIntelligence
from ...schemas.metrics_schema import MetricSet
from ...schemas.research_schema import (
    CompanyEnrichmentData,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    TeamResearch,
)
from ...schemas.score_schema import CategoryScore, CriterionScore
from ..normalization_engine import clamp_score, compute_weighted_score


@dataclass(frozen=True)
class CalibrationContext:
    """Read-only, request-scoped facts the passes calibrate against."""

    external_intel: Optional[ExternalMarketIntelligence] = None
    metrics: Optional[MetricSet] = None
    enrichment: Optional[CompanyEnrichmentData] = None
    team_research: Optional[TeamResearch] = None
    portfolio_synergy: Optional[PortfolioSynergyResearch] = None
    problem_necessity: Optional[ProblemNecessityResearch] = None
    calibration_profile: list[CalibrationRow] = field(default_factory=list)
    extracted_facts: str = ""
    user_notes: str = ""
    raw_document_text: str = ""

    @property
    def evidence_context(self) -> str:
        return f"{self.extracted_facts}\n{self.user_notes}\n{self.raw_document_text}"


def unique(items: list[str]) -> list[str]:
    """Order-preserving de-duplication."""
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def criterion_confidence(criterion: CriterionScore) -> int:
    return criterion.confidence if criterion.confidence is not None else DEFAULT_CRITERION_CONFIDENCE


def with_criteria(category: CategoryScore, criteria: list[CriterionScore], *, recompute: bool = False) -> CategoryScore:
    """Copy *category* with new criteria; optionally recompute its score from them."""
    update: dict = {"criteria": criteria}
    if recompute:
        score = int(round(sum(c.score for c in criteria) / max(len(criteria), 1)))
        update["score"] = score
        update["weighted_score"] = compute_weighted_score(score, category.weight)
    return category.model_copy(update=update)


def shift_category(category: CategoryScore, pass_name: str, points: int) -> CategoryScore:
    """Apply a category-level adjustment once, through its criterion scores.

    The applied points are recorded under *pass_name* in
    ``calibration_adjustments``; a category that already carries the key is
    returned unchanged.
    """
    if pass_name in category.calibration_adjustments:
        return category
    adjustments = {**category.calibration_adjustments, pass_name: float(points)}
    if points == 0:
        return category.model_copy(update={"calibration_adjustments": adjustments})

    criteria = [
        criterion.model_copy(update={"score": clamp_score(criterion.score + points, criterion.score)})
        for criterion in category.criteria
    ]
    score = clamp_score(category.score + points, category.score)
    return category.model_copy(update={
        "criteria": criteria,
        "score": score,
        "weighted_score": compute_weighted_score(score, category.weight),
        "calibration_adjustments": adjustments,
    })
