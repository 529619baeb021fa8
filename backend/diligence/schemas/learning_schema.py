"""Pydantic schemas for historical decision learning data."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Decision = Literal["invested", "passed", "pending"]


class CategoryPattern(BaseModel):
    category: str
    average_invested_score: float = 0.0
    average_passed_score: float = 0.0
    investment_count: int = 0


class ScoreRange(BaseModel):
    min: int = 0
    max: int = 0
    avg: int = 0


class ScoreThresholds(BaseModel):
    invested: ScoreRange = Field(default_factory=ScoreRange)
    passed: ScoreRange = Field(default_factory=ScoreRange)


class CalibrationRow(BaseModel):
    """Historical analyst override behaviour for one category."""

    category: str
    average_delta: float
    average_abs_delta: float
    sample_count: int


class LearningData(BaseModel):
    total_decisions: int = 0
    invested: int = 0
    passed: int = 0
    pending: int = 0
    average_invested_score: int = 0
    average_passed_score: int = 0
    category_patterns: List[CategoryPattern] = Field(default_factory=list)
    score_thresholds: ScoreThresholds = Field(default_factory=ScoreThresholds)
    manual_override_calibration: List[CalibrationRow] = Field(default_factory=list)


class LearningDataResponse(BaseModel):
    has_data: bool
    learning_data: Optional[LearningData] = None
    message: Optional[str] = None
