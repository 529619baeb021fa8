"""TAM-comparison and market-growth calibration."""

from __future__ import annotations

import re

from ...constants import MAX_EVIDENCE_LINES, TAM_MATERIAL_DISCREPANCY_RATIO
from ...schemas.score_schema import CategoryScore, CriterionScore
from ..market_sizing import resolve_founder_tam_claim, tam_ratio
from ..metric_parsing import (
    derive_market_growth_band,
    is_placeholder_metric_value,
    normalize_confidence_percent,
    trim_trailing_punctuation,
)
from ..normalization_engine import clamp_score
from .context import CalibrationContext, criterion_confidence, unique, with_criteria

_TAM_CRITERION_RE = re.compile(r"\btams?\b", re.IGNORECASE)
_NO_TAM_DATA_RE = re.compile(r"no\s+tam/sam/som\s+data\s+available", re.IGNORECASE)
_MARKET_CATEGORY_RE = re.compile(r"market", re.IGNORECASE)
_GROWTH_CRITERION_RE = re.compile(
    r"(market\s*growth|how\s+quickly|how\s+slowly|growth\s+rate|market\s+expan)",
    re.IGNORECASE,
)


# ── TAM comparison ───────────────────────────────────────────────────────

def _tam_delta_sentence(founder_tam, independent_tam, delta_summary: str) -> str:
    if independent_tam:
        if _NO_TAM_DATA_RE.search(delta_summary):
            return (
                "Company-provided TAM detail is limited, so the independent estimate is used "
                "as the primary benchmark."
            )
        return delta_summary
    if founder_tam:
        return "Independent TAM estimate unavailable, so discrepancy cannot be computed yet."
    return "No founder TAM claim and no independent estimate available for comparison."


def apply_tam_comparison_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    """Rewrite TAM reasoning around founder vs independent TAM and bound confidence."""
    intel = ctx.external_intel
    if intel is None:
        return categories

    founder_tam = resolve_founder_tam_claim(ctx.metrics, ctx.enrichment, intel)
    estimate = intel.tam_sam_som.independent_estimate
    independent_tam = None if is_placeholder_metric_value(estimate.tam) else estimate.tam.strip()
    method = estimate.method or "independent market sizing analysis"
    comparison = intel.tam_sam_som.comparison
    delta_summary = comparison.delta_summary or "Not provided"
    comparison_confidence = normalize_confidence_percent(comparison.confidence)
    ratio = tam_ratio(founder_tam, independent_tam)

    assumptions = [trim_trailing_punctuation(item) for item in estimate.assumptions if item][:2]
    assumptions = [item for item in assumptions if item]
    assumption_sentence = (
        f"Key assumptions: {'; '.join(assumptions)}."
        if assumptions
        else "Key assumptions were not explicitly provided."
    )
    reasoning = (
        f"The founder-calculated TAM is {founder_tam or 'unknown'}, while the AI-calculated independent TAM is "
        f"{independent_tam or 'unknown'}. The independent estimate is grounded in "
        f"{trim_trailing_punctuation(method.lower())}. {assumption_sentence} "
        f"{_tam_delta_sentence(founder_tam, independent_tam, delta_summary)}"
    )

    def _calibrate(criterion: CriterionScore) -> CriterionScore:
        missing = list(criterion.missing_data)
        if not founder_tam:
            missing.append("Founder/deck TAM claim is missing.")
        if not independent_tam:
            missing.append("Independent TAM estimate is missing.")

        confidence = criterion_confidence(criterion)
        status = criterion.evidence_status
        if not founder_tam and not independent_tam:
            confidence = min(confidence, 40)
            status = "unknown"
        elif not founder_tam or not independent_tam:
            confidence = min(confidence, 60)
            if status == "supported":
                status = "weakly_supported"
        else:
            confidence = max(confidence, max(45, min(90, comparison_confidence or confidence)))
        if ratio is not None and max(ratio, 1 / ratio) > TAM_MATERIAL_DISCREPANCY_RATIO:
            confidence = min(confidence, 55)
            missing.append("Founder TAM and independent TAM differ materially (>5x).")

        return criterion.model_copy(update={
            "confidence": clamp_score(confidence, criterion_confidence(criterion)),
            "evidence_status": status,
            "reasoning": reasoning,
            "missing_data": unique(missing),
        })

    result = []
    for category in categories:
        if not any(_TAM_CRITERION_RE.search(c.name) for c in category.criteria):
            result.append(category)
            continue
        criteria = [_calibrate(c) if _TAM_CRITERION_RE.search(c.name) else c for c in category.criteria]
        result.append(with_criteria(category, criteria))
    return result


# ── Market growth ────────────────────────────────────────────────────────

def _growth_method_detail(summary: str, evidence: list[str]) -> str:
    joined = f"{summary} {' '.join(evidence)}".lower()
    if re.search(r"sector-level|heuristic|benchmark", joined):
        return (
            "This estimate uses sector benchmark heuristics because direct company-specific CAGR "
            "citations are limited."
        )
    if re.search(r"external research|snippet", joined):
        return "This estimate is triangulated from external market-growth references and available company context."
    return "This estimate reflects the best available growth evidence in the current materials."


def is_market_growth_criterion(category_name: str, criterion_name: str) -> bool:
    return bool(_MARKET_CATEGORY_RE.search(category_name) and _GROWTH_CRITERION_RE.search(criterion_name))


def apply_market_growth_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    """Band-driven confidence; high growth floors the score at 65, low caps it at 55."""
    intel = ctx.external_intel
    metric_rate = ctx.metrics.market_growth_rate.value if ctx.metrics and ctx.metrics.market_growth_rate else None
    growth_rate = metric_rate or (intel.market_growth.estimated_cagr if intel else None)
    band = derive_market_growth_band(growth_rate)
    growth_confidence = normalize_confidence_percent(intel.market_growth.confidence) if intel else 0
    summary = (intel.market_growth.summary if intel else "") or "No market growth summary available."
    evidence = [line for line in (intel.market_growth.evidence if intel else []) if line][:3]
    method_detail = _growth_method_detail(summary, evidence)

    evidence_text = ". ".join(
        item for item in (trim_trailing_punctuation(line) for line in evidence[:2]) if item
    )
    evidence_sentence = (
        f"Supporting evidence includes: {evidence_text}."
        if evidence_text
        else "Supporting growth-rate evidence is limited, so this estimate remains conservative."
    )
    reasoning = (
        f"The market growth estimate is {growth_rate or 'unknown'}, which corresponds to a {band} growth "
        f"profile with {growth_confidence}% confidence. {method_detail} "
        f"{trim_trailing_punctuation(summary)}. {evidence_sentence}"
    )

    def _calibrate(criterion: CriterionScore) -> CriterionScore:
        missing = list(criterion.missing_data)
        confidence = criterion_confidence(criterion)
        status = criterion.evidence_status or "unknown"
        score = criterion.score

        if band == "unknown":
            confidence = min(confidence, 50)
            status = "unknown"
            missing.append("Reliable market growth/CAGR evidence is missing.")
        else:
            confidence = max(confidence, max(45, min(85, growth_confidence or confidence)))
            if status == "unknown":
                status = "weakly_supported" if evidence else "unknown"
            if band == "high":
                score = max(score, 65)
            elif band == "low":
                score = min(score, 55)

        merged_evidence = (
            unique(list(criterion.evidence) + evidence)[:MAX_EVIDENCE_LINES] if evidence else criterion.evidence
        )
        return criterion.model_copy(update={
            "score": clamp_score(score, criterion.score),
            "confidence": clamp_score(confidence, criterion_confidence(criterion)),
            "evidence_status": status,
            "reasoning": reasoning,
            "evidence": merged_evidence,
            "missing_data": unique(missing),
        })

    result = []
    for category in categories:
        targets = [is_market_growth_criterion(category.category, c.name) for c in category.criteria]
        if not any(targets):
            result.append(category)
            continue
        criteria = [_calibrate(c) if hit else c for c, hit in zip(category.criteria, targets)]
        result.append(with_criteria(category, criteria, recompute=True))
    return result
