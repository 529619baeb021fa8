"""Score Aggregation Engine.

Final, deterministic assembly of a calibrated score:

  1. Carry analyst edits (answers, perspectives, overrides) from the
     previous score onto the fresh one.
  2. Fill criterion answers that a resolved metric can answer directly.
  3. Re-apply evidence caps after calibration.
  4. Recompute category and overall scores from effective scores.

Rules
-----
- NO API calls
- NO LLMs
- effective score = manual_override if set, else score
- category.score = round(mean of effective criterion scores)
- overall = round(sum(effective * weight) / sum(weight))
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from ..schemas.criteria_schema import CriteriaSchema
from ..schemas.metrics_schema import MetricSet
from ..schemas.score_schema import CategoryScore, CriterionScore, DiligenceScore
from .metric_parsing import has_usable_metric_value
from .normalization_engine import apply_insufficient_evidence_policy, compute_weighted_score

logger = logging.getLogger(__name__)

_PILOT_LINE_RE = re.compile(
    r"\b(pilot|pilots|paid\s+pilot|proof[-\s]?of[-\s]?concept|poc|design\s+partner|letters?\s+of\s+intent|lois?)\b",
    re.IGNORECASE,
)
_PILOT_COUNT_RE = re.compile(
    r"\b(\d{1,3})\s*(?:\+)?\s*(?:paid\s+)?(?:pilot|pilots|customers?|design\s+partners?|lois?)\b",
    re.IGNORECASE,
)

_CATEGORY_OVERRIDE_FIELDS = ("manual_override", "override_reason", "override_suppress_topics", "overridden_at")


# ---------------------------------------------------------------------------
# Effective scores
# ---------------------------------------------------------------------------
def effective_criterion_score(criterion: CriterionScore) -> int:
    return criterion.manual_override if criterion.manual_override is not None else criterion.score


def effective_category_score(category: CategoryScore) -> int:
    return category.manual_override if category.manual_override is not None else category.score


def recalculate_overall(categories: list[CategoryScore]) -> int:
    total_weight = sum(category.weight for category in categories)
    if total_weight <= 0:
        return 0
    weighted_total = sum(effective_category_score(category) * category.weight for category in categories)
    return int(round(weighted_total / total_weight))


def recompute_category(category: CategoryScore) -> CategoryScore:
    """Category score from its criteria; an empty category keeps its score."""
    if category.criteria:
        score = int(round(sum(effective_criterion_score(c) for c in category.criteria) / len(category.criteria)))
    else:
        score = category.score
    return category.model_copy(update={
        "score": score,
        "weighted_score": compute_weighted_score(
            category.manual_override if category.manual_override is not None else score,
            category.weight,
        ),
    })


# ---------------------------------------------------------------------------
# Continuity with the previous score
# ---------------------------------------------------------------------------
def preserve_criterion_answers(
    categories: list[CategoryScore],
    previous_score: Optional[DiligenceScore],
) -> list[CategoryScore]:
    """Copy analyst input keyed by ``category::criterion`` onto fresh criteria.

    An answer survives only when the analyst also left a perspective or a
    manual override on that criterion. Category overrides are carried by
    category name.
    """
    if previous_score is None or not previous_score.categories:
        return categories

    criterion_context: dict[str, dict] = {}
    category_overrides: dict[str, dict] = {}
    for category in previous_score.categories:
        if category.manual_override is not None:
            category_overrides[category.category] = {
                field: getattr(category, field) for field in _CATEGORY_OVERRIDE_FIELDS
            }
        for criterion in category.criteria:
            has_perspective = bool(criterion.user_perspective and criterion.user_perspective.strip())
            has_override = criterion.manual_override is not None
            if not has_perspective and not has_override and criterion.user_perspective is None:
                continue
            update: dict = {}
            if (has_perspective or has_override) and criterion.answer is not None:
                update["answer"] = criterion.answer
            if criterion.user_perspective is not None:
                update["user_perspective"] = criterion.user_perspective
            if has_override:
                update["manual_override"] = criterion.manual_override
            criterion_context[f"{category.category}::{criterion.name}"] = update

    if not criterion_context and not category_overrides:
        return categories

    result = []
    for category in categories:
        criteria = [
            c.model_copy(update=criterion_context[f"{category.category}::{c.name}"])
            if f"{category.category}::{c.name}" in criterion_context
            else c
            for c in category.criteria
        ]
        update: dict = {"criteria": criteria}
        update.update(category_overrides.get(category.category, {}))
        result.append(category.model_copy(update=update))
    return result


# ---------------------------------------------------------------------------
# Metric-backed answers
# ---------------------------------------------------------------------------
def extract_pilot_traction_signal(evidence_text: Optional[str]) -> Optional[str]:
    """Short description of pilot / POC / LOI commitments mentioned in materials."""
    text = (evidence_text or "").strip()
    if not text:
        return None
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    pilot_lines = [line for line in lines if _PILOT_LINE_RE.search(line)][:3]
    if not pilot_lines:
        return None
    count = _PILOT_COUNT_RE.search(" ".join(pilot_lines))
    if count:
        return f"{count.group(1)} pilot/customer commitments mentioned in materials"
    return f"pilot commitments mentioned in materials ({pilot_lines[0][:120]})"


def _metric_text(metrics: Optional[MetricSet], slot: str) -> Optional[str]:
    metric = getattr(metrics, slot, None) if metrics is not None else None
    return metric.value if has_usable_metric_value(metric) else None


def metric_backed_answer(
    criterion_name: str,
    metrics: Optional[MetricSet],
    pilot_signal: Optional[str],
) -> Optional[str]:
    name = criterion_name.lower()
    arr = _metric_text(metrics, "arr")
    if re.search(r"contracted arr|\barr\b", name):
        if arr:
            return f"Contracted ARR: {arr}"
        if pilot_signal:
            return f"Contracted ARR: unknown. Early traction signal: {pilot_signal}"
        return "Contracted ARR: unknown"
    if re.search(r"\btams?\b", name):
        return f"Estimated TAM: {_metric_text(metrics, 'tam') or 'unknown'}"
    if re.search(r"market\s*growth|how\s+quickly|how\s+slowly|growth\s+rate", name):
        growth = _metric_text(metrics, "market_growth_rate") or _metric_text(metrics, "yoy_growth_rate")
        return f"Market growth: {growth or 'unknown'}"
    if re.search(r"acv|average\s+contract\s+value", name):
        return f"ACV: {_metric_text(metrics, 'acv') or 'unknown'}"
    if not arr and pilot_signal and re.search(r"traction|customer|revenue|commercial", name):
        return f"Revenue is not yet disclosed. Early traction signal: {pilot_signal}"
    if "runway" in name:
        return f"Current runway: {_metric_text(metrics, 'current_runway') or 'unknown'}"
    return None


def fill_metric_backed_criterion_answers(
    categories: list[CategoryScore],
    metrics: Optional[MetricSet],
    evidence_text: str = "",
) -> list[CategoryScore]:
    """Answer ARR / TAM / growth / ACV / runway criteria that have no answer yet."""
    pilot_signal = extract_pilot_traction_signal(evidence_text)
    result = []
    for category in categories:
        criteria = []
        for criterion in category.criteria:
            if criterion.answer and criterion.answer.strip():
                criteria.append(criterion)
                continue
            answer = metric_backed_answer(criterion.name, metrics, pilot_signal)
            criteria.append(criterion.model_copy(update={"answer": answer}) if answer else criterion)
        result.append(category.model_copy(update={"criteria": criteria}))
    return result


# ---------------------------------------------------------------------------
# Final aggregation
# ---------------------------------------------------------------------------
def reapply_evidence_caps(categories: list[CategoryScore], criteria: Optional[CriteriaSchema]) -> list[CategoryScore]:
    result = []
    for category in categories:
        capped = [
            apply_insufficient_evidence_policy(
                c, criteria.find_criterion(category.category, c.name) if criteria is not None else None
            )
            for c in category.criteria
        ]
        result.append(category.model_copy(update={"criteria": capped}))
    return result


def finalize_categories(
    categories: list[CategoryScore],
    criteria: Optional[CriteriaSchema] = None,
) -> tuple[list[CategoryScore], int]:
    """Evidence caps, category recompute, and overall score."""
    finalized = [recompute_category(category) for category in reapply_evidence_caps(categories, criteria)]
    overall = recalculate_overall(finalized)
    logger.info("[SCORING] Aggregated %d categories, overall=%d", len(finalized), overall)
    return finalized, overall


# ---------------------------------------------------------------------------
# Category overrides
# ---------------------------------------------------------------------------
def _with_recomputed_weights(score: DiligenceScore, categories: list[CategoryScore]) -> DiligenceScore:
    reweighted = [
        category.model_copy(update={
            "weighted_score": compute_weighted_score(effective_category_score(category), category.weight),
        })
        for category in categories
    ]
    return score.model_copy(update={"categories": reweighted, "overall": recalculate_overall(reweighted)})


def apply_category_override(
    score: DiligenceScore,
    category_name: str,
    override_score: int,
    reason: Optional[str] = None,
    suppress_topics: Optional[list[str]] = None,
) -> DiligenceScore:
    if not 0 <= override_score <= 100:
        raise ValueError("Override score must be between 0 and 100")
    topics = [topic.strip() for topic in (suppress_topics or []) if topic and topic.strip()]
    overridden_at = datetime.now(timezone.utc).isoformat()
    categories = [
        category.model_copy(update={
            "manual_override": override_score,
            "override_reason": reason,
            "override_suppress_topics": topics,
            "overridden_at": overridden_at,
        })
        if category.category == category_name
        else category
        for category in score.categories
    ]
    return _with_recomputed_weights(score, categories)


def remove_category_override(score: DiligenceScore, category_name: str) -> DiligenceScore:
    categories = [
        category.model_copy(update={
            "manual_override": None,
            "override_reason": None,
            "override_suppress_topics": [],
            "overridden_at": None,
        })
        if category.category == category_name
        else category
        for category in score.categories
    ]
    return _with_recomputed_weights(score, categories)
