"""Post-scoring calibration pipeline.

Rules
-----
- Each pass is a pure function ``(categories, ctx) -> categories``
- Passes run in the fixed order of ``CALIBRATION_PASSES``
- Passes never raise and accept categories with empty criteria
- Running the pipeline twice yields the same output as running it once
"""

from __future__ import annotations

import logging
from typing import Callable

from ...schemas.score_schema import CategoryScore
from .category_passes import apply_external_market_penalties, apply_manual_calibration
from .context import CalibrationContext
from .guards import apply_early_traction_calibration, apply_funding_raise_guard, funding_guard_active
from .market_passes import apply_market_growth_calibration, apply_tam_comparison_calibration
from .research_passes import (
    apply_portfolio_synergy_calibration,
    apply_problem_necessity_calibration,
    apply_team_research_calibration,
)

logger = logging.getLogger(__name__)

CalibrationPass = Callable[[list[CategoryScore], CalibrationContext], list[CategoryScore]]

CALIBRATION_PASSES: list[CalibrationPass] = [
    apply_manual_calibration,
    apply_external_market_penalties,
    apply_tam_comparison_calibration,
    apply_market_growth_calibration,
    apply_team_research_calibration,
    apply_portfolio_synergy_calibration,
    apply_problem_necessity_calibration,
    apply_funding_raise_guard,
    apply_early_traction_calibration,
]


def run_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    for calibration_pass in CALIBRATION_PASSES:
        categories = calibration_pass(categories, ctx)
    logger.info("[CALIBRATION] Applied %d passes to %d categories", len(CALIBRATION_PASSES), len(categories))
    return categories


__all__ = [
    "CALIBRATION_PASSES",
    "CalibrationContext",
    "run_calibration",
    "funding_guard_active",
]
