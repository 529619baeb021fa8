"""Scoring orchestrator.

Flow:
  1. Primary mode: one JSON completion over the full prompt (rebuilt in
     compact mode when it is too large).
  2. On a capacity error that survives retries: chunked mode, one request
     per category, then one synthesis request for the qualitative fields.
  3. Both modes converge on normalization -> calibration -> answer
     preservation -> aggregation -> thesis refinement.

A malformed completion is treated as an empty one and filled with
normalization defaults. Any other failure is fatal and raised as
ScoringFailedError; no partial score is ever returned.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from ...config import ScoringConfig
from ...constants import (
    CHUNKED_DATA_QUALITY_DEFAULT,
    NOTES_SUMMARY_MIN_CHARS,
    PRIMARY_DATA_QUALITY_DEFAULT,
)
from ...schemas.metrics_schema import MetricSet, MetricValue
from ...schemas.research_schema import DiligenceNote
from ...schemas.score_schema import (
    CategoryScore,
    CompanyFounder,
    CompanyMetadata,
    DiligenceScore,
    ScoringResult,
    ThesisAnswers,
)
from ...services.calibration import CalibrationContext, funding_guard_active, run_calibration
from ...services.metric_parsing import has_usable_metric_value
from ...services.normalization_engine import (
    clamp_score,
    model_field,
    normalize_category,
    normalize_scored_categories,
)
from ...services.openai_client import LLMClient, LLMError, LLMResponseError, is_token_limit_error
from ...services.retry_policy import RetryPolicy, SleepFn, call_with_retry
from ...services.scoring_engine import (
    fill_metric_backed_criterion_answers,
    finalize_categories,
    preserve_criterion_answers,
)
from ...services.thesis_refinement import (
    build_follow_up_questions,
    coerce_thesis_answers,
    enforce_thesis_specificity,
    format_weak_criteria_context,
    get_weak_criteria,
    merge_thesis_answers,
)
from .prompts import (
    INVESTOR_QUESTIONING_SYSTEM,
    JSON_ANALYST_SYSTEM,
    NOTES_SUMMARY_SYSTEM,
    PromptInputs,
    build_category_scoring_prompt,
    build_investor_questioning_prompt,
    build_notes_summary_prompt,
    build_scoring_prompt,
    build_scoring_system_prompt,
    build_synthesis_prompt,
)

logger = logging.getLogger(__name__)

NOTES_SUMMARY_CONTENT_CHARS = 12_000
INVESTOR_PASS_MAX_WEAK_CRITERIA = 6
CHUNKED_FAILURE_MESSAGE = "Scoring failed after fallback. Please retry or reduce document volume."
PRIMARY_FAILURE_MESSAGE = "Failed to score diligence"


class ScoringFailedError(Exception):
    """Fatal scoring failure; surfaced to callers, never a partial score."""


@dataclass
class ScoringRun:
    """Request-scoped state shared by both scoring modes."""

    inputs: PromptInputs
    calibration: CalibrationContext
    metrics: MetricSet
    url_only: bool = False


# ---------------------------------------------------------------------------
# Optional pre- and post-passes
# ---------------------------------------------------------------------------
async def summarize_notes_for_scoring(
    company_name: str,
    notes: list[DiligenceNote],
    *,
    llm: LLMClient,
    policy: RetryPolicy,
) -> list[DiligenceNote]:
    """Condense long notes (transcripts) for the scoring prompt; raw notes on failure."""
    long_notes = [note for note in notes if len(note.content or "") > NOTES_SUMMARY_MIN_CHARS]
    if not long_notes:
        return notes

    payload = [
        {"id": note.id, "category": note.category, "content": note.content[:NOTES_SUMMARY_CONTENT_CHARS]}
        for note in long_notes
    ]
    try:
        data = await call_with_retry(
            lambda: llm.complete_json(
                system=NOTES_SUMMARY_SYSTEM,
                user=build_notes_summary_prompt(company_name, payload),
                temperature=0.2,
            ),
            policy.with_attempts(2),
            label="notes summary",
        )
    except LLMError as exc:
        logger.warning("[SCORING] Notes summarization failed, using raw notes: %s", exc)
        return notes

    summaries: dict[str, str] = {}
    for item in model_field(data, "summaries") or []:
        if not isinstance(item, dict):
            continue
        note_id = str(item.get("id") or "")
        summary = str(item.get("summary") or "").strip()
        if note_id and summary:
            summaries[note_id] = summary

    logger.info("[SCORING] Summarized %d of %d long notes", len(summaries), len(long_notes))
    return [
        note.model_copy(update={"content": summaries[note.id]}) if note.id in summaries else note
        for note in notes
    ]


async def run_investor_questioning_pass(
    company_name: str,
    thesis: Optional[ThesisAnswers],
    categories: list[CategoryScore],
    *,
    llm: LLMClient,
) -> Optional[dict]:
    """Partner-level concerns and questions for the most material weak criteria."""
    weak = get_weak_criteria(categories)[:INVESTOR_PASS_MAX_WEAK_CRITERIA]
    if not weak:
        return None
    try:
        data = await llm.complete_json(
            system=INVESTOR_QUESTIONING_SYSTEM,
            user=build_investor_questioning_prompt(company_name, thesis, format_weak_criteria_context(weak)),
            temperature=0.2,
        )
    except LLMError as exc:
        logger.warning("[SCORING] Investor questioning pass failed: %s", exc)
        return None
    return {
        "thesis_answers": model_field(data, "thesis_answers", "thesisAnswers"),
        "follow_up_questions": model_field(data, "follow_up_questions", "followUpQuestions"),
    }


# ---------------------------------------------------------------------------
# Shared convergence
# ---------------------------------------------------------------------------
def converge_categories(categories: list[CategoryScore], run: ScoringRun) -> tuple[list[CategoryScore], int]:
    """Calibration, analyst-input preservation, metric answers and aggregation."""
    categories = run_calibration(categories, run.calibration)
    categories = preserve_criterion_answers(categories, run.inputs.previous_score)
    categories = fill_metric_backed_criterion_answers(categories, run.metrics, run.calibration.evidence_context)
    return finalize_categories(categories, run.inputs.criteria)


async def refine_thesis(
    run: ScoringRun,
    model_data: Any,
    categories: list[CategoryScore],
    *,
    llm: LLMClient,
    config: ScoringConfig,
) -> tuple[Optional[ThesisAnswers], list[str]]:
    previous_score = run.inputs.previous_score
    raw_thesis = model_field(model_data, "thesis_answers", "thesisAnswers")
    baseline = enforce_thesis_specificity(coerce_thesis_answers(raw_thesis), categories, previous_score)

    questioning = None
    if config.investor_question_pass:
        questioning = await run_investor_questioning_pass(run.inputs.company_name, baseline, categories, llm=llm)

    merged = merge_thesis_answers(baseline, questioning["thesis_answers"] if questioning else None)
    refined = enforce_thesis_specificity(merged, categories, previous_score)

    direct_questions = (questioning or {}).get("follow_up_questions") or model_field(
        model_data, "follow_up_questions", "followUpQuestions"
    )
    return refined, build_follow_up_questions(direct_questions, refined, categories)


def _optional_text(value: Any) -> Optional[str]:
    return value.strip() or None if isinstance(value, str) else None


def company_metadata_from(model_data: Any) -> CompanyMetadata:
    founders = []
    raw_founders = model_field(model_data, "founders")
    for item in raw_founders if isinstance(raw_founders, list) else []:
        name = _optional_text(model_field(item, "name"))
        if name is None:
            continue
        founders.append(CompanyFounder(
            name=name,
            linkedin_url=_optional_text(model_field(item, "linkedin_url", "linkedinUrl")),
            title=_optional_text(model_field(item, "title")),
        ))
    return CompanyMetadata(
        company_one_liner=_optional_text(model_field(model_data, "company_one_liner", "companyOneLiner")),
        industry=_optional_text(model_field(model_data, "industry")),
        founders=founders,
    )


def guarded_metrics(run: ScoringRun) -> MetricSet:
    """Force funding amount to 'unknown' when the funding guard fired."""
    if not funding_guard_active(run.calibration) or has_usable_metric_value(run.metrics.funding_amount):
        return run.metrics
    return run.metrics.model_copy(update={"funding_amount": MetricValue(value="unknown", source="auto")})


async def _build_result(
    run: ScoringRun,
    model_data: Any,
    categories: list[CategoryScore],
    overall: int,
    *,
    mode: str,
    llm: LLMClient,
    config: ScoringConfig,
) -> ScoringResult:
    thesis, follow_ups = await refine_thesis(run, model_data, categories, llm=llm, config=config)
    default_quality = PRIMARY_DATA_QUALITY_DEFAULT if mode == "primary" else CHUNKED_DATA_QUALITY_DEFAULT
    score = DiligenceScore(
        overall=overall,
        categories=categories,
        data_quality=clamp_score(model_field(model_data, "data_quality", "dataQuality"), default_quality),
        scored_at=datetime.now(timezone.utc).isoformat(),
        thesis_answers=thesis,
        follow_up_questions=follow_ups,
        external_market_intelligence=run.inputs.external_intel,
        rescore_explanation=_optional_text(model_field(model_data, "rescore_explanation", "rescoreExplanation")),
        scoring_mode=mode,
    )
    logger.info("[SCORING] %s scoring completed. Overall: %d, Data Quality: %d", mode, score.overall, score.data_quality)
    return ScoringResult(score=score, metrics=guarded_metrics(run), company_metadata=company_metadata_from(model_data))


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------
async def _complete_or_empty(call, policy: RetryPolicy, *, label: str, sleep: SleepFn) -> Any:
    """Retried completion; an unparsable response becomes {} for the normalizer."""
    try:
        return await call_with_retry(call, policy, label=label, sleep=sleep)
    except LLMResponseError as exc:
        logger.warning("[SCORING] Unparsable %s response, using defaults: %s", label, exc)
        return {}


async def score_primary(
    run: ScoringRun,
    *,
    llm: LLMClient,
    config: ScoringConfig,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
) -> ScoringResult:
    prompt = build_scoring_prompt(run.inputs)
    if len(prompt) > config.compact_prompt_chars:
        logger.warning("[SCORING] Prompt is large (%d chars), switching to compact mode", len(prompt))
        prompt = build_scoring_prompt(run.inputs, compact=True)
    logger.info("[SCORING] Prompt size: %d chars (~%d tokens)", len(prompt), len(prompt) // 4)

    system = build_scoring_system_prompt(run.url_only)
    data = await _complete_or_empty(
        lambda: llm.complete_json(system=system, user=prompt, temperature=0.3),
        policy,
        label="primary scoring",
        sleep=sleep,
    )

    categories = normalize_scored_categories(run.inputs.criteria, model_field(data, "categories"))
    categories, overall = converge_categories(categories, run)
    return await _build_result(run, data, categories, overall, mode="primary", llm=llm, config=config)


async def score_by_category(
    run: ScoringRun,
    *,
    llm: LLMClient,
    config: ScoringConfig,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
) -> ScoringResult:
    chunk_policy = policy.with_attempts(3)
    scored: list[CategoryScore] = []
    for definition in run.inputs.criteria.categories:
        prompt = build_category_scoring_prompt(run.inputs, definition)
        logger.info("[SCORING] Scoring category chunk: %s (~%d tokens)", definition.name, len(prompt) // 4)
        data = await _complete_or_empty(
            lambda: llm.complete_json(system=JSON_ANALYST_SYSTEM, user=prompt, temperature=0.2),
            chunk_policy,
            label=f"category {definition.name}",
            sleep=sleep,
        )
        scored.append(normalize_category(definition, data))
        await sleep(config.chunk_delay_seconds)

    categories, overall = converge_categories(scored, run)
    synthesis = await _complete_or_empty(
        lambda: llm.complete_json(
            system=JSON_ANALYST_SYSTEM,
            user=build_synthesis_prompt(run.inputs, categories),
            temperature=0.25,
        ),
        chunk_policy,
        label="synthesis",
        sleep=sleep,
    )
    return await _build_result(run, synthesis, categories, overall, mode="chunked", llm=llm, config=config)


async def score_with_fallback(
    run: ScoringRun,
    *,
    llm: LLMClient,
    config: ScoringConfig,
    sleep: SleepFn = asyncio.sleep,
) -> ScoringResult:
    """Primary mode, degrading to chunked mode on capacity errors."""
    policy = RetryPolicy.from_config(config)
    try:
        return await score_primary(run, llm=llm, config=config, policy=policy, sleep=sleep)
    except LLMError as exc:
        if not is_token_limit_error(exc):
            logger.error("[SCORING] Primary scoring failed: %s", exc)
            raise ScoringFailedError(PRIMARY_FAILURE_MESSAGE) from exc
        logger.warning("[SCORING] Falling back to category-by-category scoring due to token/rate limits")

    try:
        return await score_by_category(run, llm=llm, config=config, policy=policy, sleep=sleep)
    except LLMError as exc:
        logger.error("[SCORING] Category-by-category fallback scoring failed: %s", exc)
        raise ScoringFailedError(CHUNKED_FAILURE_MESSAGE) from exc
