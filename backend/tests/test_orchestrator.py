"""Orchestrator tests — primary scoring, chunked fallback, fatal failures, end-to-end.

The reasoning service is the in-memory FakeLLMClient from conftest; no
network and no backoff sleeps are involved.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

import pytest
from conftest import FakeLLMClient, model_categories, no_sleep, primary_scoring_response

from diligence.agents.diligence_agent import ScoringFailedError, score_diligence
from diligence.agents.diligence_agent.orchestrator import (
    CHUNKED_FAILURE_MESSAGE,
    PRIMARY_FAILURE_MESSAGE,
    ScoringRun,
    company_metadata_from,
    guarded_metrics,
    score_with_fallback,
)
from diligence.agents.diligence_agent.prompts import PromptInputs
from diligence.config import ScoringConfig
from diligence.schemas.learning_schema import CalibrationRow, LearningData
from diligence.schemas.metrics_schema import MetricSet, MetricValue
from diligence.schemas.research_schema import ScoringDocument
from diligence.services.calibration import CalibrationContext
from diligence.constants import NO_EVIDENCE_SENTINEL, PRIMARY_DATA_QUALITY_DEFAULT
from diligence.services.openai_client import LLMError, LLMResponseError, TokenLimitError


def _run(criteria, metrics=None):
    metrics = metrics or MetricSet()
    return ScoringRun(
        inputs=PromptInputs(company_name="Acme", criteria=criteria, extracted_facts="ARR: $1.2M"),
        calibration=CalibrationContext(metrics=metrics, extracted_facts="ARR: $1.2M"),
        metrics=metrics,
    )


def _score(run, llm, config):
    return asyncio.run(score_with_fallback(run, llm=llm, config=config, sleep=no_sleep))


def _capacity_errors(count=3):
    return [TokenLimitError("Request too large for gpt-4o", status_code=429) for _ in range(count)]


class TestPrimaryMode:
    def test_primary_success(self, criteria, config):
        llm = FakeLLMClient(scoring=primary_scoring_response())
        result = _score(_run(criteria), llm, config)

        score = result.score
        assert score.scoring_mode == "primary"
        assert score.overall == 66
        assert [c.score for c in score.categories] == [75, 60, 60]
        assert score.data_quality == 80
        assert score.thesis_answers.problem_solving == "Manual freight invoice audits"
        assert 1 <= len(score.follow_up_questions) <= 5
        assert result.company_metadata.industry == "Logistics"
        assert result.company_metadata.founders[0].name == "Ada"
        assert llm.calls_for("scoring")[0]["temperature"] == 0.3

    def test_missing_funding_evidence_forces_unknown(self, criteria, config):
        llm = FakeLLMClient(scoring=primary_scoring_response())
        result = _score(_run(criteria), llm, config)
        assert result.metrics.funding_amount.value == "unknown"

    def test_investor_questioning_pass(self, criteria):
        config = ScoringConfig(openai_api_key="k", retry_base_delay=0.0, retry_max_delay=0.0,
                               chunk_delay_seconds=0.0, investor_question_pass=True)
        llm = FakeLLMClient(
            scoring=primary_scoring_response(),
            questioning={"follow_up_questions": ["What is net revenue retention for the 2024 cohort?"]},
        )
        _score(_run(criteria), llm, config)
        assert len(llm.calls_for("questioning")) == 1

    def test_non_capacity_error_is_fatal(self, criteria, config):
        llm = FakeLLMClient(scoring=LLMError("invalid request", status_code=400))
        with pytest.raises(ScoringFailedError) as exc_info:
            _score(_run(criteria), llm, config)
        assert str(exc_info.value) == PRIMARY_FAILURE_MESSAGE
        assert len(llm.calls_for("scoring")) == 1
        assert llm.calls_for("analyst") == []

    def test_malformed_json_scores_with_defaults(self, criteria, config):
        llm = FakeLLMClient(scoring=LLMResponseError("Malformed JSON in completion: Expecting value"))
        score = _score(_run(criteria), llm, config).score

        assert score.scoring_mode == "primary"
        assert [c.category for c in score.categories] == ["Team", "Market", "Traction"]
        assert all(c.evidence == [NO_EVIDENCE_SENTINEL] for cat in score.categories for c in cat.criteria)
        assert score.data_quality == PRIMARY_DATA_QUALITY_DEFAULT
        assert 0 <= score.overall <= 100
        assert len(llm.calls_for("scoring")) == 1


class TestChunkedFallback:
    def test_capacity_error_falls_back_per_category(self, criteria, config):
        llm = FakeLLMClient(
            scoring=_capacity_errors(),
            analyst=[*model_categories(), {"data_quality": 61, "industry": "Logistics"}],
        )
        result = _score(_run(criteria), llm, config)

        assert result.score.scoring_mode == "chunked"
        assert result.score.overall == 66
        assert result.score.data_quality == 61
        assert len(llm.calls_for("scoring")) == 3
        assert len(llm.calls_for("analyst")) == 4
        assert "Category: Team" in llm.calls_for("analyst")[0]["user"]

    def test_malformed_category_chunk_uses_defaults(self, criteria, config):
        team, market, traction = model_categories()
        llm = FakeLLMClient(
            scoring=_capacity_errors(),
            analyst=[LLMResponseError("Completion JSON is not an object"), market, traction, {"data_quality": 61}],
        )
        score = _score(_run(criteria), llm, config).score

        assert score.scoring_mode == "chunked"
        assert score.categories[0].criteria[0].evidence == [NO_EVIDENCE_SENTINEL]
        assert score.categories[1].score == 60
        assert score.data_quality == 61

    def test_chunked_failure(self, criteria, config):
        llm = FakeLLMClient(scoring=_capacity_errors(), analyst=model_categories()[:1])
        with pytest.raises(ScoringFailedError) as exc_info:
            _score(_run(criteria), llm, config)
        assert str(exc_info.value) == CHUNKED_FAILURE_MESSAGE


class TestResultHelpers:
    def test_usable_funding_metric_kept(self, criteria):
        run = _run(criteria, MetricSet(funding_amount=MetricValue(value="$3M", source="manual")))
        assert guarded_metrics(run).funding_amount.value == "$3M"

    def test_company_metadata_camel_case(self):
        metadata = company_metadata_from({
            "companyOneLiner": "  Freight audits  ",
            "founders": [{"name": "Ada", "linkedinUrl": "https://linkedin.test/ada"}, {"name": "  "}],
        })
        assert metadata.company_one_liner == "Freight audits"
        assert [f.name for f in metadata.founders] == ["Ada"]
        assert metadata.founders[0].linkedin_url == "https://linkedin.test/ada"


class _FailingProvider:
    def load(self):
        raise RuntimeError("database unavailable")


class _StaticProvider:
    def __init__(self, learning):
        self.learning = learning

    def load(self):
        return self.learning


class TestScoreDiligence:
    def _llm(self):
        return FakeLLMClient(
            facts={"company_overview": {"what_they_do": "Freight audit automation"}},
            market=LLMError("service unavailable", status_code=503),
            scoring=primary_scoring_response(),
        )

    def _score(self, criteria, config, llm, provider):
        return asyncio.run(score_diligence(
            [ScoringDocument(file_name="deck.pdf", text="Acme automates freight audits.", type="deck")],
            criteria,
            "Acme",
            "https://acme.test",
            source_of_truth_metrics=MetricSet(arr=MetricValue(value="$2M", source="manual")),
            llm=llm,
            config=config,
            learning_provider=provider,
        ))

    def test_end_to_end(self, criteria, config):
        llm = self._llm()
        result = self._score(criteria, config, llm, _FailingProvider())

        assert result.score.scoring_mode == "primary"
        assert result.metrics.arr.value == "$2M"
        assert [call["kind"] for call in llm.calls][:2] == ["facts", "market"]
        prompt = llm.calls_for("scoring")[0]["user"]
        assert "## Company: Acme (https://acme.test)" in prompt
        assert "What They Do**: Freight audit automation" in prompt

    def test_learning_calibration_applied(self, criteria, config):
        learning = LearningData(
            total_decisions=1,
            manual_override_calibration=[
                CalibrationRow(category="Team", average_delta=10, average_abs_delta=10, sample_count=8),
            ],
        )
        result = self._score(criteria, config, self._llm(), _StaticProvider(learning))
        team = result.score.categories[0]
        assert team.calibration_adjustments == {"manual_override": 7.0}
        assert team.score == 82
        assert result.score.overall == 69
