"""Score Normalization Engine.

Converts the reasoning service's free-form JSON into canonical
``CategoryScore`` objects that follow the rubric exactly.

Rules
-----
- NO API calls
- NO DB writes
- NO LLMs
- Malformed model JSON never raises; defaults fill every gap
- Evidence-insufficiency policy is applied to every criterion
- Fully deterministic
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Optional

from ..constants import (
    CONTRADICTED_SCORE_CAP,
    DEFAULT_CRITERION_CONFIDENCE,
    DEFAULT_CRITERION_SCORE,
    DEFAULT_INSUFFICIENT_EVIDENCE_CAP,
    DEFAULT_REASONING,
    EVIDENCE_STATUSES,
    GENERIC_REASONING_PHRASES,
    MAX_CRITERION_FOLLOW_UPS,
    MAX_EVIDENCE_LINES,
    MIN_SPECIFIC_REASONING_CHARS,
    NO_EVIDENCE_SENTINEL,
    STATUS_IMPLICATIONS,
    WEAK_EVIDENCE_CAP_CEILING,
    WEAK_EVIDENCE_CAP_HEADROOM,
)
from ..schemas.criteria_schema import CategoryDefinition, CriteriaSchema, CriterionDefinition
from ..schemas.score_schema import CategoryScore, CriterionScore
from .name_matcher import NameMatcher

logger = logging.getLogger(__name__)

_CATEGORY_MATCHER = NameMatcher("category")
_CRITERION_MATCHER = NameMatcher("name")

_CONCRETE_SIGNAL_RE = re.compile(
    r"(\$|%|\b\d+\b|arr|mrr|tam|sam|som|churn|cac|ltv|runway|customers?|months?|years?)",
    re.IGNORECASE,
)
_STRUCTURED_REASONING_RE = re.compile(
    r"Claim:\s*([\s\S]*?)\s*Evidence:\s*([\s\S]*?)\s*Implication:\s*([\s\S]*)$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------
def clamp_score(value: Any, fallback: int = DEFAULT_CRITERION_SCORE) -> int:
    """Round and clamp to 0-100; non-numeric input yields *fallback*."""
    if isinstance(value, bool):
        return fallback
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(numeric):
        return fallback
    return max(0, min(100, int(round(numeric))))


def as_string_array(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def normalize_evidence_status(value: Any) -> str:
    return value if value in EVIDENCE_STATUSES else "unknown"


def model_field(item: Any, *keys: str) -> Any:
    """First present key of a model dict; tolerates camelCase and snake_case."""
    if not isinstance(item, dict):
        return None
    for key in keys:
        if key in item:
            return item[key]
    return None


# ---------------------------------------------------------------------------
# Evidence-insufficiency policy
# ---------------------------------------------------------------------------
def has_real_evidence(criterion: CriterionScore) -> bool:
    return bool(criterion.evidence) and criterion.evidence[0] != NO_EVIDENCE_SENTINEL


def evidence_cap_for(definition: Optional[CriterionDefinition]) -> int:
    raw = definition.insufficient_evidence_cap if definition is not None else None
    return clamp_score(raw, DEFAULT_INSUFFICIENT_EVIDENCE_CAP)


def apply_insufficient_evidence_policy(
    criterion: CriterionScore,
    definition: Optional[CriterionDefinition] = None,
) -> CriterionScore:
    """Cap the score by evidence status.

    unknown          -> min(score, cap)           cap defaults to 60
    contradicted     -> min(score, 40)
    weakly_supported -> min(score, min(70, cap + 10)) without a real evidence line
    """
    cap = evidence_cap_for(definition)
    score = criterion.score
    if criterion.evidence_status == "unknown":
        score = min(score, cap)
    elif criterion.evidence_status == "contradicted":
        score = min(score, CONTRADICTED_SCORE_CAP)
    elif criterion.evidence_status == "weakly_supported" and not has_real_evidence(criterion):
        score = min(score, min(WEAK_EVIDENCE_CAP_CEILING, cap + WEAK_EVIDENCE_CAP_HEADROOM))
    if score == criterion.score:
        return criterion
    return criterion.model_copy(update={"score": score})


# ---------------------------------------------------------------------------
# Reasoning quality
# ---------------------------------------------------------------------------
def reasoning_has_concrete_signal(text: str) -> bool:
    return bool(_CONCRETE_SIGNAL_RE.search(text))


def reasoning_looks_generic(text: str) -> bool:
    normalized = text.lower()
    return any(phrase in normalized for phrase in GENERIC_REASONING_PHRASES)


def to_natural_reasoning(text: str) -> str:
    """Drop Claim:/Evidence:/Implication: scaffolding from model reasoning."""
    raw = (text or "").strip()
    if not raw:
        return raw
    structured = _STRUCTURED_REASONING_RE.search(raw)
    if structured:
        return " ".join(part.strip() for part in structured.groups() if part and part.strip())
    cleaned = re.sub(r"\b(Claim|Evidence|Implication):\s*", "", raw, flags=re.IGNORECASE)
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def enforce_criterion_reasoning_quality(criterion: CriterionScore) -> CriterionScore:
    """Rewrite empty, generic, or short signal-free reasoning around the best evidence line."""
    reasoning = to_natural_reasoning(criterion.reasoning)
    evidence_line = next(
        (line for line in criterion.evidence if line.strip() and line != NO_EVIDENCE_SENTINEL),
        None,
    )
    needs_rewrite = (
        not reasoning
        or reasoning == DEFAULT_REASONING
        or (
            (reasoning_looks_generic(reasoning) or len(reasoning) < MIN_SPECIFIC_REASONING_CHARS)
            and not reasoning_has_concrete_signal(reasoning)
        )
    )
    if not needs_rewrite:
        return criterion.model_copy(update={"reasoning": reasoning})

    implication = STATUS_IMPLICATIONS.get(criterion.evidence_status, STATUS_IMPLICATIONS["unknown"])
    if evidence_line:
        rewritten = (
            f"{criterion.name} is scored using concrete diligence evidence from the provided materials. "
            f"{evidence_line} {implication}"
        )
    else:
        rewritten = (
            f"{criterion.name} is scored conservatively because direct support in the current "
            f"materials is limited. {implication}"
        )
    return criterion.model_copy(update={"reasoning": rewritten})


# ---------------------------------------------------------------------------
# Model JSON -> canonical scores
# ---------------------------------------------------------------------------
def normalize_criterion(definition: CriterionDefinition, model_criterion: Any) -> CriterionScore:
    reasoning = model_field(model_criterion, "reasoning")
    evidence = as_string_array(model_field(model_criterion, "evidence"))
    criterion = CriterionScore(
        name=definition.name,
        score=clamp_score(model_field(model_criterion, "score"), DEFAULT_CRITERION_SCORE),
        confidence=clamp_score(model_field(model_criterion, "confidence"), DEFAULT_CRITERION_CONFIDENCE),
        evidence_status=normalize_evidence_status(model_field(model_criterion, "evidence_status", "evidenceStatus")),
        reasoning=reasoning.strip() if isinstance(reasoning, str) and reasoning.strip() else DEFAULT_REASONING,
        evidence=evidence[:MAX_EVIDENCE_LINES] if evidence else [NO_EVIDENCE_SENTINEL],
        missing_data=as_string_array(model_field(model_criterion, "missing_data", "missingData")),
        follow_up_questions=as_string_array(
            model_field(model_criterion, "follow_up_questions", "followUpQuestions")
        )[:MAX_CRITERION_FOLLOW_UPS],
    )
    return enforce_criterion_reasoning_quality(apply_insufficient_evidence_policy(criterion, definition))


def compute_weighted_score(score: float, weight: float) -> float:
    return round(score * weight / 100, 2)


def normalize_category(definition: CategoryDefinition, model_category: Any) -> CategoryScore:
    """Canonical category from one model category dict (which may be None)."""
    raw_criteria = model_field(model_category, "criteria")
    model_criteria = raw_criteria if isinstance(raw_criteria, list) else []

    criteria = [
        normalize_criterion(criterion_def, _CRITERION_MATCHER.match(model_criteria, criterion_def.name, index))
        for index, criterion_def in enumerate(definition.criteria)
    ]

    score_from_model = clamp_score(model_field(model_category, "score"), 0)
    if score_from_model > 0:
        score = score_from_model
    else:
        score = int(round(sum(c.score for c in criteria) / max(len(criteria), 1)))

    return CategoryScore(
        category=definition.name,
        score=score,
        weight=definition.weight,
        weighted_score=compute_weighted_score(score, definition.weight),
        criteria=criteria,
    )


def normalize_scored_categories(criteria: CriteriaSchema, model_categories: Any) -> list[CategoryScore]:
    """Map every rubric category onto its best model match and normalize it."""
    categories = model_categories if isinstance(model_categories, list) else []
    matched_categories = 0
    normalized: list[CategoryScore] = []
    for index, definition in enumerate(criteria.categories):
        model_category = _CATEGORY_MATCHER.match(categories, definition.name, index)
        if model_category is not None:
            matched_categories += 1
        normalized.append(normalize_category(definition, model_category))

    logger.info(
        "[SCORING] Normalization coverage: categories %d/%d",
        matched_categories,
        len(criteria.categories),
    )
    return normalized
