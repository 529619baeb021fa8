"""Category-level calibration: learned manual-override drift and competitive threat."""

from __future__ import annotations

import logging

from ...constants import (
    DEFAULT_CRITERION_CONFIDENCE,
    EXTERNAL_PENALTY_HIGH,
    EXTERNAL_PENALTY_MEDIUM,
    EXTERNAL_THREAT_HIGH,
    EXTERNAL_THREAT_MEDIUM,
    MANUAL_CALIBRATION_BOUND,
    MANUAL_CALIBRATION_CONFIDENCE_PIVOT,
    MANUAL_CALIBRATION_DAMPING,
    MANUAL_CALIBRATION_FULL_STRENGTH_SAMPLES,
    MANUAL_CALIBRATION_MIN_SAMPLES,
)
from ...schemas.score_schema import CategoryScore
from ..normalization_engine import clamp_score
from .context import CalibrationContext, criterion_confidence, shift_category

logger = logging.getLogger(__name__)

MANUAL_OVERRIDE_PASS = "manual_override"
EXTERNAL_MARKET_PASS = "external_market"

_MAX_MARKET_PENALTY = 12


def manual_override_adjustment(category: CategoryScore, average_delta: float, sample_count: int) -> float:
    """Bounded nudge toward the historical analyst override delta.

    strength = min(1, n / 8); damped to 0.7 when the model was already
    confident (mean criterion confidence >= 65); bounded to +/-12.
    """
    if category.criteria:
        avg_confidence = sum(criterion_confidence(c) for c in category.criteria) / len(category.criteria)
    else:
        avg_confidence = DEFAULT_CRITERION_CONFIDENCE
    sample_strength = min(1.0, sample_count / MANUAL_CALIBRATION_FULL_STRENGTH_SAMPLES)
    confidence_factor = 1.0 if avg_confidence < MANUAL_CALIBRATION_CONFIDENCE_PIVOT else MANUAL_CALIBRATION_DAMPING
    raw = average_delta * sample_strength * confidence_factor
    return max(-MANUAL_CALIBRATION_BOUND, min(MANUAL_CALIBRATION_BOUND, raw))


def apply_manual_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    if not ctx.calibration_profile:
        return categories
    by_category = {row.category: row for row in ctx.calibration_profile}

    result = []
    for category in categories:
        row = by_category.get(category.category)
        if row is None or row.sample_count < MANUAL_CALIBRATION_MIN_SAMPLES:
            result.append(category)
            continue
        points = int(round(manual_override_adjustment(category, row.average_delta, row.sample_count)))
        result.append(shift_category(category, MANUAL_OVERRIDE_PASS, points))
    return result


def competitive_threat_penalty(threat_score) -> int:
    threat = clamp_score(threat_score, 50)
    if threat >= EXTERNAL_THREAT_HIGH:
        penalty = EXTERNAL_PENALTY_HIGH
    elif threat >= EXTERNAL_THREAT_MEDIUM:
        penalty = EXTERNAL_PENALTY_MEDIUM
    else:
        penalty = 0
    return min(_MAX_MARKET_PENALTY, penalty)


def apply_external_market_penalties(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    """Market takes the full threat penalty, Product Market Fit half of it."""
    if ctx.external_intel is None:
        return categories
    penalty = competitive_threat_penalty(ctx.external_intel.competitive_threat_score)
    if penalty:
        logger.info("[CALIBRATION] Competitive threat penalty: -%d", penalty)

    result = []
    for category in categories:
        if category.category == "Market":
            points = penalty
        elif category.category == "Product Market Fit":
            points = int(round(penalty / 2))
        else:
            result.append(category)
            continue
        result.append(shift_category(category, EXTERNAL_MARKET_PASS, -points))
    return result
