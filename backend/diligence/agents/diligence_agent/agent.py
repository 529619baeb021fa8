"""Diligence Agent: two-pass scoring of a company against an analyst rubric.

Entry points:
  score_diligence(...)                      -> ScoringResult
  run_tam_analysis(...)                     -> TamAnalysisResult
  extract_structured_facts_for_context(...) -> str

Flow (score_diligence):
  1. Pass 1: structured fact extraction from documents
  2. External market intelligence (LLM, evidence, sector heuristic tiers)
  3. Metric resolution: source of truth > facts > notes > raw documents
  4. Learning context from past decisions (optional, never blocking)
  5. Pass 2: primary scoring, chunked fallback on capacity errors
  6. Calibration, aggregation and thesis refinement

Only the scoring call itself is fatal; every other step degrades.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...config import ScoringConfig
from ...schemas.criteria_schema import CriteriaSchema
from ...schemas.learning_schema import LearningData
from ...schemas.market_schema import TamAnalysisResult
from ...schemas.metrics_schema import MetricSet
from ...schemas.research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    ScoringDocument,
    TeamResearch,
)
from ...schemas.score_schema import DiligenceScore, ScoringOptions, ScoringResult, ThesisAnswers
from ...services.calibration import CalibrationContext
from ...services.context_assembler import build_criterion_contexts
from ...services.learning_data import LearningDataProvider, format_learning_context
from ...services.market_sizing import derive_tam_alignment, resolve_founder_tam_claim
from ...services.metric_extractors import derive_all_metrics, notes_to_text
from ...services.metric_parsing import (
    derive_market_growth_band,
    format_magnitude_money,
    normalize_confidence_percent,
    parse_magnitude_value,
)
from ...services.openai_client import LLMClient
from ...services.retry_policy import RetryPolicy
from .fact_extraction import extract_company_facts, is_url_only
from .market_estimator import derive_external_market_intelligence
from .orchestrator import ScoringRun, score_with_fallback, summarize_notes_for_scoring
from .prompts import PromptInputs

logger = logging.getLogger(__name__)


def _load_learning(provider: Optional[LearningDataProvider]) -> Optional[LearningData]:
    if provider is None:
        return None
    try:
        return provider.load()
    except Exception as exc:
        logger.warning("[SCORING] Could not load learning data, proceeding without historical context: %s", exc)
        return None


# ---------------------------------------------------------------------------
# score_diligence
# ---------------------------------------------------------------------------
async def score_diligence(
    documents: list[ScoringDocument],
    criteria: CriteriaSchema,
    company_name: str,
    company_url: Optional[str] = None,
    notes: Optional[str] = None,
    categorized_notes: Optional[list[DiligenceNote]] = None,
    questions: Optional[list[DiligenceQuestion]] = None,
    company_enrichment: Optional[CompanyEnrichmentData] = None,
    team_research: Optional[TeamResearch] = None,
    portfolio_synergy: Optional[PortfolioSynergyResearch] = None,
    problem_necessity: Optional[ProblemNecessityResearch] = None,
    source_of_truth_metrics: Optional[MetricSet] = None,
    previous_score: Optional[DiligenceScore] = None,
    existing_thesis_answers: Optional[ThesisAnswers] = None,
    options: Optional[ScoringOptions] = None,
    *,
    llm: LLMClient,
    config: ScoringConfig,
    learning_provider: Optional[LearningDataProvider] = None,
) -> ScoringResult:
    """Score a company; raises ScoringFailedError when no score can be produced."""
    logger.info("[SCORING] Starting two-pass scoring for %s (%d documents)", company_name, len(documents))
    categorized_notes = categorized_notes or []
    options = options or ScoringOptions()
    policy = RetryPolicy.from_config(config)

    # Pass 1
    extracted_facts = await extract_company_facts(
        documents,
        company_name,
        llm=llm,
        max_chars=config.fact_extraction_max_chars,
        company_url=company_url,
        user_notes=notes,
    )
    external_intel = await derive_external_market_intelligence(
        company_name, company_url, extracted_facts, documents, llm=llm, policy=policy
    )
    raw_document_text = "\n".join(doc.text or "" for doc in documents)
    metrics = derive_all_metrics(
        source_of_truth=source_of_truth_metrics,
        extracted_facts=extracted_facts,
        notes=categorized_notes,
        raw_text=raw_document_text,
        external_intel=external_intel,
    )

    learning = _load_learning(learning_provider)

    # Pass 2
    notes_for_scoring = categorized_notes
    if options.summarize_notes_for_scoring or config.summarize_long_notes:
        notes_for_scoring = await summarize_notes_for_scoring(
            company_name, categorized_notes, llm=llm, policy=policy
        )

    inputs = PromptInputs(
        company_name=company_name,
        company_url=company_url,
        criteria=criteria,
        extracted_facts=extracted_facts,
        user_notes=notes,
        categorized_notes=notes_for_scoring,
        questions=questions or [],
        learning_context=format_learning_context(learning),
        previous_score=previous_score,
        existing_thesis=existing_thesis_answers,
        criterion_contexts=build_criterion_contexts(criteria, documents, extracted_facts),
        external_intel=external_intel,
        enrichment=company_enrichment,
        metrics=metrics,
        team_research=team_research,
        portfolio_synergy=portfolio_synergy,
        problem_necessity=problem_necessity,
    )
    calibration = CalibrationContext(
        external_intel=external_intel,
        metrics=metrics,
        enrichment=company_enrichment,
        team_research=team_research,
        portfolio_synergy=portfolio_synergy,
        problem_necessity=problem_necessity,
        calibration_profile=list(learning.manual_override_calibration) if learning is not None else [],
        extracted_facts=extracted_facts,
        user_notes="\n".join(part for part in (notes, notes_to_text(categorized_notes)) if part),
        raw_document_text=raw_document_text,
    )
    run = ScoringRun(inputs=inputs, calibration=calibration, metrics=metrics, url_only=is_url_only(documents))
    return await score_with_fallback(run, llm=llm, config=config)


# ---------------------------------------------------------------------------
# run_tam_analysis
# ---------------------------------------------------------------------------
async def run_tam_analysis(
    documents: list[ScoringDocument],
    company_name: str,
    company_url: Optional[str] = None,
    metrics: Optional[MetricSet] = None,
    enrichment: Optional[CompanyEnrichmentData] = None,
    *,
    llm: LLMClient,
    config: ScoringConfig,
) -> TamAnalysisResult:
    """Founder-claimed vs independently estimated TAM, with a readable explanation."""
    extracted_facts = await extract_company_facts(
        documents, company_name, llm=llm, max_chars=config.fact_extraction_max_chars, company_url=company_url
    )
    intel = await derive_external_market_intelligence(
        company_name, company_url, extracted_facts, documents, llm=llm, policy=RetryPolicy.from_config(config)
    )

    tss = intel.tam_sam_som if intel is not None else None
    founder_tam = resolve_founder_tam_claim(metrics, enrichment, intel) or "unknown"
    independent_tam = (tss.independent_estimate.tam if tss is not None else "") or "unknown"
    alignment = derive_tam_alignment(founder_tam, independent_tam, tss.comparison.alignment if tss else None)
    confidence = normalize_confidence_percent(tss.comparison.confidence if tss else 0)

    founder_value = parse_magnitude_value(founder_tam)
    independent_value = parse_magnitude_value(independent_tam)
    both_values = bool(founder_value and independent_value and founder_value > 0 and independent_value > 0)
    blended_tam = format_magnitude_money((founder_value + independent_value) / 2) if both_values else "unknown"
    discrepancy_ratio = (
        max(founder_value, independent_value) / min(founder_value, independent_value) if both_values else None
    )

    method = (tss.independent_estimate.method if tss else "") or "No independent method available."
    assumptions = [item for item in (tss.independent_estimate.assumptions if tss else []) if item][:6]
    growth_rate = (intel.market_growth.estimated_cagr if intel is not None else "") or "unknown"
    growth_confidence = normalize_confidence_percent(intel.market_growth.confidence if intel is not None else 0)
    delta_summary = (tss.comparison.delta_summary if tss else "") or (
        "Independent TAM estimate unavailable, so discrepancy cannot be computed yet."
        if not independent_value
        else "No delta summary available."
    )

    explanation = "\n".join([
        f"Founder TAM: {founder_tam}",
        f"Independent TAM: {independent_tam}",
        f"Blended TAM (average): {blended_tam if both_values else 'unknown (requires both TAM values)'}",
        f"Alignment: {alignment}",
        f"Confidence: {confidence}%",
        f"Discrepancy ratio: {discrepancy_ratio:.2f}x" if discrepancy_ratio is not None
        else "Discrepancy ratio: unavailable",
        f"Market growth estimate: {growth_rate} ({derive_market_growth_band(growth_rate)}, "
        f"confidence {growth_confidence}%)",
        f"Method: {method}",
        f"Assumptions: {'; '.join(assumptions) if assumptions else 'none provided'}",
        f"Delta summary: {delta_summary}",
    ])

    logger.info("[MARKET] TAM analysis for %s: founder %s vs independent %s (%s)",
                company_name, founder_tam, independent_tam, alignment)
    return TamAnalysisResult(
        founder_tam=founder_tam,
        independent_tam=independent_tam,
        blended_tam=blended_tam,
        alignment=alignment,
        confidence=confidence,
        discrepancy_ratio=discrepancy_ratio,
        method=method,
        assumptions=assumptions,
        delta_summary=delta_summary,
        explanation=explanation,
    )


# ---------------------------------------------------------------------------
# extract_structured_facts_for_context
# ---------------------------------------------------------------------------
async def extract_structured_facts_for_context(
    documents: list[ScoringDocument],
    company_name: str,
    company_url: Optional[str] = None,
    notes: Optional[str] = None,
    *,
    llm: LLMClient,
    config: ScoringConfig,
) -> str:
    """Structured facts for downstream context; '' when no document has text."""
    usable = [
        doc.model_copy(update={"file_name": doc.file_name.strip() or "Document"})
        for doc in documents
        if doc.text and doc.text.strip()
    ]
    if not usable:
        return ""
    return await extract_company_facts(
        usable,
        company_name,
        llm=llm,
        max_chars=config.fact_extraction_max_chars,
        company_url=company_url,
        user_notes=notes,
    )
