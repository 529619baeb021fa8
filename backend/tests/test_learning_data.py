"""Learning data tests — decision patterns, override calibration rows, prompt context."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
from types import SimpleNamespace

from diligence.schemas.score_schema import CategoryScore, DiligenceScore
from diligence.services.learning_data import (
    HistoricalRecord,
    StaticLearningDataProvider,
    analyze_learning_data,
    build_calibration_rows,
    format_learning_context,
    record_from_row,
)


def _score(overall, team=60, team_override=None, market=60, market_override=None):
    return DiligenceScore(
        overall=overall,
        scored_at="2026-01-01T00:00:00+00:00",
        categories=[
            CategoryScore(category="Team", score=team, weight=50, manual_override=team_override),
            CategoryScore(category="Market", score=market, weight=50, manual_override=market_override),
        ],
    )


class TestCalibrationRows:
    def test_average_override_delta_per_category(self):
        records = [
            HistoricalRecord(score=_score(60, team_override=70)),
            HistoricalRecord(score=_score(60, team_override=80, market_override=50), decision="passed"),
            HistoricalRecord(score=None, decision="invested"),
        ]
        rows = build_calibration_rows(records)
        assert [r.category for r in rows] == ["Team", "Market"]
        team, market = rows
        assert team.average_delta == 15.0
        assert team.sample_count == 2
        assert market.average_delta == -10.0
        assert market.average_abs_delta == 10.0


class TestAnalyze:
    def test_no_decisions(self):
        assert analyze_learning_data([HistoricalRecord(score=_score(70))]) is None

    def test_patterns_and_thresholds(self):
        records = [
            HistoricalRecord(score=_score(80, team=90), decision="invested"),
            HistoricalRecord(score=_score(70, team=60, team_override=80), decision="invested"),
            HistoricalRecord(score=_score(40, team=30), decision="passed"),
            HistoricalRecord(score=_score(55), decision="pending"),
        ]
        learning = analyze_learning_data(records)
        assert learning.total_decisions == 4
        assert (learning.invested, learning.passed, learning.pending) == (2, 1, 1)
        assert learning.average_invested_score == 75
        assert learning.score_thresholds.invested.min == 70
        assert learning.score_thresholds.invested.max == 80

        team = next(p for p in learning.category_patterns if p.category == "Team")
        assert team.average_invested_score == 85.0
        assert team.average_passed_score == 30.0
        assert team.investment_count == 2

    def test_static_provider(self):
        provider = StaticLearningDataProvider([HistoricalRecord(score=_score(80), decision="invested")])
        assert provider.load().invested == 1


class TestLearningContext:
    def test_below_minimum_is_empty(self):
        learning = analyze_learning_data([HistoricalRecord(score=_score(80), decision="invested")])
        assert format_learning_context(learning) == ""
        assert format_learning_context(None) == ""

    def test_patterns_and_calibration_trends(self):
        records = [HistoricalRecord(score=_score(80, team_override=70), decision="invested") for _ in range(3)]
        records += [HistoricalRecord(score=_score(40), decision="passed") for _ in range(2)]
        context = format_learning_context(analyze_learning_data(records))

        assert "Based on 5 past diligence reviews" in context
        assert "- Invested in: 3 companies (avg score: 80)" in context
        assert "**Investment Score Range**: 80-80" in context
        assert "- Team: typical manual adjustment +10 points (3 samples)" in context


class TestRecordFromRow:
    def test_row_round_trip(self):
        row = SimpleNamespace(
            score_json=_score(72).model_dump_json(),
            decision_json=json.dumps({"decision": "invested", "decided_at": "2026-02-01T00:00:00+00:00"}),
        )
        record = record_from_row(row)
        assert record.score.overall == 72
        assert record.decision == "invested"

    def test_unscored_row(self):
        record = record_from_row(SimpleNamespace(score_json=None, decision_json=None))
        assert record.score is None
        assert record.decision is None
