"""Funding-raise and early-traction guards.

Both guards look at the combined evidence context (facts, notes, raw
documents) rather than at model output, so they hold even when the model
invents a raise amount or reads "no ARR" as "no traction".
"""

from __future__ import annotations

import re

from ...constants import EARLY_TRACTION_CONFIDENCE_FLOOR, EARLY_TRACTION_SCORE_FLOOR
from ...schemas.score_schema import CategoryScore, CriterionScore
from ..metric_parsing import has_usable_metric_value
from .context import CalibrationContext, criterion_confidence, unique, with_criteria

_I = re.IGNORECASE
_AMOUNT = r"\$?\s*\d[\d,.]*(?:\s*(?:k|m|b|thousand|million|billion))?"

# ── Funding raise guard ──────────────────────────────────────────────────

_EXPLICIT_RAISE_RE = re.compile(
    r"(raise\s+amount|raising\s+\$|funding\s+amount|funding\s+sought|seeking\s+to\s+raise"
    r"|round\s+(size|amount)|we\s+are\s+raising|currently\s+raising)",
    _I,
)
_DEAL_TERMS_RE = re.compile(r"(deal\s+terms|state\s+of\s+investors|investor\s+state|funding\s+round)", _I)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.?!])\s+")
_RAISE_SENTENCE_RE = re.compile(
    r"\$\s*\d[\d,.]*(?:\s*(?:k|m|b|thousand|million|billion))?.*\b(raise|raising|round|seed|series)\b", _I
)
_RAISE_SUBSTITUTIONS = [
    (
        re.compile(rf"\b(the\s+company|they|it)\s+is\s+raising(?:\s+a)?\s+{_AMOUNT}", _I),
        "No explicit raise amount is evidenced in the provided materials",
    ),
    (re.compile(rf"\braising\s+{_AMOUNT}", _I), "no explicit raise amount is evidenced"),
    (
        re.compile(rf"\bthe\s+{_AMOUNT}\s+(seed|series\s*[a-z]|funding)\s+round\b", _I),
        "No explicit raise amount is evidenced in the provided materials",
    ),
]
FUNDING_GUARD_SUFFIX = "Funding amount should be treated as unknown unless an explicit raise statement is provided."
FUNDING_GUARD_MISSING = "No explicit raise amount evidence in notes/documents."
_DEAL_TERMS_FALLBACK = "Deal terms are unclear due to missing valuation and investor commitment data."


def funding_guard_active(ctx: CalibrationContext) -> bool:
    """True when neither a funding metric nor an explicit raise statement exists."""
    funding = ctx.metrics.funding_amount if ctx.metrics is not None else None
    if has_usable_metric_value(funding):
        return False
    return not _EXPLICIT_RAISE_RE.search(ctx.evidence_context.lower())


def sanitize_raise_reasoning(reasoning: str) -> str:
    base = (reasoning or "").replace(FUNDING_GUARD_SUFFIX, "").strip()
    kept = " ".join(
        sentence for sentence in _SENTENCE_SPLIT_RE.split(base) if not _RAISE_SENTENCE_RE.search(sentence)
    ).strip()
    sanitized = kept or _DEAL_TERMS_FALLBACK
    for pattern, replacement in _RAISE_SUBSTITUTIONS:
        sanitized = pattern.sub(replacement, sanitized)
    return f"{sanitized} {FUNDING_GUARD_SUFFIX}".strip()


def apply_funding_raise_guard(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    if not funding_guard_active(ctx):
        return categories

    def _guard(criterion: CriterionScore) -> CriterionScore:
        return criterion.model_copy(update={
            "reasoning": sanitize_raise_reasoning(criterion.reasoning),
            "missing_data": unique(list(criterion.missing_data) + [FUNDING_GUARD_MISSING]),
        })

    result = []
    for category in categories:
        hits = [bool(_DEAL_TERMS_RE.search(f"{category.category} {c.name}")) for c in category.criteria]
        if not any(hits):
            result.append(category)
            continue
        result.append(with_criteria(category, [_guard(c) if hit else c for c, hit in zip(category.criteria, hits)]))
    return result


# ── Early traction ───────────────────────────────────────────────────────

_PILOT_RE = re.compile(
    r"\b(paid\s+pilot|pilot\s+in\s+negotiation|pilot|poc|proof[-\s]?of[-\s]?concept"
    r"|letters?\s+of\s+intent|lois?)\b",
    _I,
)
_MOU_RE = re.compile(r"\b(signed\s+mou|mou|memorandum\s+of\s+understanding)\b", _I)
_QUALIFIED_OPPS_RE = re.compile(r"\b(\d+)\s+quali\w*ed\s+opportunit", _I)
_DEVELOPER_ADOPTION_RE = re.compile(
    r"\b(\d{2,4}\+?\s+active\s+developers?|2,?000\+?\s+total\s+engagements?)\b", _I
)
_TRACTION_CRITERION_RE = re.compile(r"(contracted\s+arr|arr|revenue|traction|customers|commercial)", _I)
_EARLY_TRACTION_MARKER = "Early traction signals are present in materials"


def early_traction_evidence(context: str) -> list[str]:
    """Evidence lines for each early commercial signal found in *context*."""
    lines: list[str] = []
    qualified = _QUALIFIED_OPPS_RE.search(context)
    if qualified:
        lines.append(f"{qualified.group(1)} qualified opportunities mentioned.")
    if _PILOT_RE.search(context):
        lines.append("Pilot/POC traction is explicitly mentioned.")
    if _MOU_RE.search(context):
        lines.append("Signed MOU/partnership signal is explicitly mentioned.")
    if _DEVELOPER_ADOPTION_RE.search(context):
        lines.append("Developer adoption/community traction signal is present.")
    return lines


def apply_early_traction_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    """Floor traction criteria when ARR is absent but early signals exist."""
    arr = ctx.metrics.arr if ctx.metrics is not None else None
    if has_usable_metric_value(arr):
        return categories
    evidence = early_traction_evidence(ctx.evidence_context)
    if not evidence:
        return categories
    summary = " ".join(evidence)

    def _floor(criterion: CriterionScore) -> CriterionScore:
        reasoning = criterion.reasoning or ""
        if _EARLY_TRACTION_MARKER not in reasoning:
            reasoning = (
                f"{reasoning} {_EARLY_TRACTION_MARKER} ({summary}), so this should not be treated as "
                "zero commercial signal even if ARR is not yet disclosed."
            ).strip()
        status = criterion.evidence_status
        if status not in ("supported", "weakly_supported"):
            status = "weakly_supported"
        return criterion.model_copy(update={
            "score": max(criterion.score, EARLY_TRACTION_SCORE_FLOOR),
            "confidence": max(criterion_confidence(criterion), EARLY_TRACTION_CONFIDENCE_FLOOR),
            "evidence_status": status,
            "evidence": unique(list(criterion.evidence) + evidence),
            "reasoning": reasoning,
        })

    result = []
    for category in categories:
        hits = [bool(_TRACTION_CRITERION_RE.search(f"{category.category} {c.name}")) for c in category.criteria]
        if not any(hits):
            result.append(category)
            continue
        result.append(with_criteria(category, [_floor(c) if hit else c for c, hit in zip(category.criteria, hits)]))
    return result
