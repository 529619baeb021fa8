"""Historical decision learning.

Aggregates past invest / pass decisions into score patterns and
per-category manual-override calibration rows, and renders them as prompt
context for the scoring model.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from ..constants import LEARNING_CONTEXT_MIN_DECISIONS, MANUAL_CALIBRATION_MIN_SAMPLES
from ..models.diligence_record import DiligenceRecord
from ..schemas.learning_schema import (
    CalibrationRow,
    CategoryPattern,
    LearningData,
    ScoreRange,
    ScoreThresholds,
)
from ..schemas.score_schema import DiligenceScore
from .scoring_engine import effective_category_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoricalRecord:
    """A past diligence: its final score and the decision taken, if any."""

    score: Optional[DiligenceScore]
    decision: Optional[str] = None


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _score_range(scores: list[int], average: float) -> ScoreRange:
    if not scores:
        return ScoreRange()
    return ScoreRange(min=min(scores), max=max(scores), avg=int(round(average)))


def build_calibration_rows(records: list[HistoricalRecord]) -> list[CalibrationRow]:
    """Average analyst override delta per category, most-sampled first.

    Uses every scored record, decided or not.
    """
    deltas: dict[str, list[float]] = {}
    for record in records:
        if record.score is None:
            continue
        for category in record.score.categories:
            if category.manual_override is None:
                continue
            deltas.setdefault(category.category, []).append(category.manual_override - category.score)

    rows = [
        CalibrationRow(
            category=category,
            average_delta=_mean(values),
            average_abs_delta=_mean([abs(v) for v in values]),
            sample_count=len(values),
        )
        for category, values in deltas.items()
    ]
    return sorted(rows, key=lambda row: -row.sample_count)


def analyze_learning_data(records: list[HistoricalRecord]) -> Optional[LearningData]:
    """Patterns across decided records; None when no record has a decision."""
    decided = [r for r in records if r.decision and r.score is not None]
    if not decided:
        return None

    invested = [r for r in decided if r.decision == "invested"]
    passed = [r for r in decided if r.decision == "passed"]
    pending = [r for r in decided if r.decision == "pending"]
    invested_scores = [r.score.overall for r in invested]
    passed_scores = [r.score.overall for r in passed]
    avg_invested = _mean(invested_scores)
    avg_passed = _mean(passed_scores)

    buckets: dict[str, dict[str, list[int]]] = {}
    for record in decided:
        for category in record.score.categories:
            bucket = buckets.setdefault(category.category, {"invested": [], "passed": []})
            if record.decision in bucket:
                bucket[record.decision].append(effective_category_score(category))

    patterns = [
        CategoryPattern(
            category=category,
            average_invested_score=_mean(bucket["invested"]),
            average_passed_score=_mean(bucket["passed"]),
            investment_count=len(bucket["invested"]),
        )
        for category, bucket in buckets.items()
    ]

    return LearningData(
        total_decisions=len(decided),
        invested=len(invested),
        passed=len(passed),
        pending=len(pending),
        average_invested_score=int(round(avg_invested)),
        average_passed_score=int(round(avg_passed)),
        category_patterns=sorted(patterns, key=lambda p: -p.investment_count),
        score_thresholds=ScoreThresholds(
            invested=_score_range(invested_scores, avg_invested),
            passed=_score_range(passed_scores, avg_passed),
        ),
        manual_override_calibration=build_calibration_rows(records),
    )


def format_learning_context(learning: Optional[LearningData]) -> str:
    """Prompt section with historical patterns; empty below 5 decisions."""
    if learning is None or learning.total_decisions < LEARNING_CONTEXT_MIN_DECISIONS:
        return ""

    insights = [
        "\n## Historical Investment Patterns\n",
        f"Based on {learning.total_decisions} past diligence reviews:\n",
        f"- Invested in: {learning.invested} companies (avg score: {learning.average_invested_score})",
        f"- Passed on: {learning.passed} companies (avg score: {learning.average_passed_score})",
    ]
    if learning.invested > 0 and learning.passed > 0:
        insights.append("\n**Key Patterns**:")
        for pattern in learning.category_patterns[:3]:
            if pattern.investment_count > 0:
                insights.append(
                    f"- {pattern.category}: Investments average {round(pattern.average_invested_score)} "
                    f"(passed: {round(pattern.average_passed_score)})"
                )
        invested_range = learning.score_thresholds.invested
        if invested_range.min > 0:
            insights.append(f"\n**Investment Score Range**: {invested_range.min}-{invested_range.max}")

    rows = [r for r in learning.manual_override_calibration if r.sample_count >= MANUAL_CALIBRATION_MIN_SAMPLES][:5]
    if rows:
        insights.append("\n**Manual Override Calibration Trends**:")
        for row in rows:
            direction = "+" if row.average_delta >= 0 else ""
            insights.append(
                f"- {row.category}: typical manual adjustment {direction}{round(row.average_delta)} points "
                f"({row.sample_count} samples)"
            )
    return "\n".join(insights)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
class LearningDataProvider(Protocol):
    def load(self) -> Optional[LearningData]:
        """Aggregated learning data, or None when there is no history."""
        ...


class StaticLearningDataProvider:
    """Provider over an in-memory record list."""

    def __init__(self, records: list[HistoricalRecord]):
        self._records = records

    def load(self) -> Optional[LearningData]:
        return analyze_learning_data(self._records)


class SqlLearningDataProvider:
    """Reads persisted diligence records through a session factory."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def load(self) -> Optional[LearningData]:
        db = self._session_factory()
        try:
            rows = db.query(DiligenceRecord).all()
            records = [record_from_row(row) for row in rows]
        finally:
            db.close()
        logger.info("[LEARNING] Loaded %d diligence records", len(records))
        return analyze_learning_data(records)


def record_from_row(row) -> HistoricalRecord:
    score = DiligenceScore.model_validate(json.loads(row.score_json)) if row.score_json else None
    decision = None
    if row.decision_json:
        decision = json.loads(row.decision_json).get("decision")
    return HistoricalRecord(score=score, decision=decision)
