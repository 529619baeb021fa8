"""Diligence routes: record lifecycle, scoring, TAM analysis, overrides, decisions.

Endpoints:
  POST   /diligence/                           — Create a diligence record
  GET    /diligence/learning-data              — Historical decision patterns
  POST   /diligence/facts                      — Structured fact extraction only
  GET    /diligence/{diligence_id}             — Get a diligence record
  POST   /diligence/{diligence_id}/score       — Score / rescore a company
  POST   /diligence/{diligence_id}/tam-analysis — Founder vs independent TAM
  POST   /diligence/{diligence_id}/override    — Analyst category override
  DELETE /diligence/{diligence_id}/override/{category} — Remove an override
  POST   /diligence/{diligence_id}/decision    — Record invest / pass decision
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Type, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..agents.diligence_agent import (
    ScoringFailedError,
    extract_structured_facts_for_context,
    run_tam_analysis,
    score_diligence,
)
from ..agents.diligence_agent.prompts import URL_ONLY_DOC_NAME
from ..config import ScoringConfig
from ..database import SessionLocal, get_db
from ..models.diligence_record import DiligenceRecord
from ..schemas.api_schema import (
    CategoryOverrideRequest,
    DecisionRecord,
    DecisionRequest,
    DiligenceCreateRequest,
    DiligenceRecordResponse,
    FactsRequest,
    FactsResponse,
    ScoreRequest,
)
from ..schemas.learning_schema import LearningDataResponse
from ..schemas.market_schema import TamAnalysisResult
from ..schemas.metrics_schema import MetricSet
from ..schemas.research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    ScoringDocument,
    TeamResearch,
)
from ..schemas.score_schema import CompanyFounder, DiligenceScore
from ..services.learning_data import (
    LearningDataProvider,
    SqlLearningDataProvider,
    analyze_learning_data,
    record_from_row,
)
from ..services.openai_client import LLMClient, OpenAIChatClient
from ..services.scoring_engine import apply_category_override, remove_category_override

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/diligence",
    tags=["Diligence"],
)

M = TypeVar("M", bound=BaseModel)


# ── Dependencies ─────────────────────────────────────────────────────────

def get_scoring_config() -> ScoringConfig:
    return ScoringConfig.from_env()


def get_llm_client(config: ScoringConfig = Depends(get_scoring_config)) -> LLMClient:
    try:
        return OpenAIChatClient(config)
    except EnvironmentError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


def get_learning_provider() -> LearningDataProvider:
    return SqlLearningDataProvider(SessionLocal)


# ── Helpers ──────────────────────────────────────────────────────────────

def _dump(value: Optional[BaseModel]) -> Optional[str]:
    return value.model_dump_json() if value is not None else None


def _dump_list(items: list[BaseModel]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items])


def _load(raw: Optional[str], model: Type[M]) -> Optional[M]:
    return model.model_validate_json(raw) if raw else None


def _load_list(raw: Optional[str], model: Type[M]) -> list[M]:
    return [model.model_validate(item) for item in json.loads(raw)] if raw else []


def _record_to_response(record: DiligenceRecord) -> DiligenceRecordResponse:
    """Convert a DiligenceRecord ORM instance to a DiligenceRecordResponse."""
    return DiligenceRecordResponse(
        id=str(record.id),
        company_name=record.company_name,
        company_url=record.company_url,
        industry=record.industry,
        company_one_liner=record.company_one_liner,
        status=record.status or "pending",
        metrics=_load(record.metrics_json, MetricSet),
        score=_load(record.score_json, DiligenceScore),
        founders=_load_list(record.founders_json, CompanyFounder),
        tam_analysis=_load(record.tam_analysis_json, TamAnalysisResult),
        decision=_load(record.decision_json, DecisionRecord),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _get_record_or_404(db: Session, diligence_id: UUID) -> DiligenceRecord:
    record = db.query(DiligenceRecord).filter(DiligenceRecord.id == diligence_id).first()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Diligence record {diligence_id} not found",
        )
    return record


def _get_score_or_400(record: DiligenceRecord) -> DiligenceScore:
    score = _load(record.score_json, DiligenceScore)
    if score is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Diligence record has not been scored yet",
        )
    return score


def _require_category(score: DiligenceScore, category: str) -> None:
    if not any(item.category == category for item in score.categories):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Category '{category}' not found in score",
        )


# ── Routes ───────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=DiligenceRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Diligence Record",
)
def create_diligence(
    payload: DiligenceCreateRequest,
    db: Session = Depends(get_db),
) -> DiligenceRecordResponse:
    record = DiligenceRecord(
        company_name=payload.company_name.strip(),
        company_url=payload.company_url,
        industry=payload.industry,
        documents_json=_dump_list(payload.documents),
        notes_json=_dump_list(payload.notes),
        questions_json=_dump_list(payload.questions),
        enrichment_json=_dump(payload.enrichment),
        team_research_json=_dump(payload.team_research),
        portfolio_synergy_json=_dump(payload.portfolio_synergy),
        problem_necessity_json=_dump(payload.problem_necessity),
        metrics_json=_dump(payload.metrics),
        status="pending",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("[DILIGENCE] Created record %s for %s", record.id, record.company_name)
    return _record_to_response(record)


@router.get(
    "/learning-data",
    response_model=LearningDataResponse,
    summary="Historical Decision Patterns",
)
def get_learning_data(db: Session = Depends(get_db)) -> LearningDataResponse:
    records = [record_from_row(row) for row in db.query(DiligenceRecord).all()]
    learning = analyze_learning_data(records)
    if learning is None:
        return LearningDataResponse(has_data=False, message="No scored diligence records yet")
    return LearningDataResponse(has_data=True, learning_data=learning)


@router.post(
    "/facts",
    response_model=FactsResponse,
    summary="Extract Structured Facts",
)
async def extract_facts(
    payload: FactsRequest,
    llm: LLMClient = Depends(get_llm_client),
    config: ScoringConfig = Depends(get_scoring_config),
) -> FactsResponse:
    facts = await extract_structured_facts_for_context(
        payload.documents,
        payload.company_name,
        payload.company_url,
        payload.notes,
        llm=llm,
        config=config,
    )
    return FactsResponse(facts=facts)


@router.get(
    "/{diligence_id}",
    response_model=DiligenceRecordResponse,
    summary="Get Diligence Record",
)
def get_diligence(diligence_id: UUID, db: Session = Depends(get_db)) -> DiligenceRecordResponse:
    return _record_to_response(_get_record_or_404(db, diligence_id))


@router.post(
    "/{diligence_id}/score",
    response_model=DiligenceRecordResponse,
    summary="Score Diligence",
    response_description="Record with the new score, resolved metrics and company metadata",
)
async def score_record(
    diligence_id: UUID,
    payload: ScoreRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
    config: ScoringConfig = Depends(get_scoring_config),
    learning_provider: LearningDataProvider = Depends(get_learning_provider),
) -> DiligenceRecordResponse:
    """Score (or rescore) a company.

    The persisted score and metrics are passed back in as previous score and
    source of truth, so analyst input survives a rescore.
    """
    record = _get_record_or_404(db, diligence_id)
    documents = _load_list(record.documents_json, ScoringDocument)
    if not documents and record.company_url:
        documents = [ScoringDocument(
            file_name=URL_ONLY_DOC_NAME,
            text=f"Company: {record.company_name}\nWebsite: {record.company_url}",
        )]

    logger.info("[DILIGENCE] Scoring %s (%d documents)", record.company_name, len(documents))
    try:
        result = await score_diligence(
            documents,
            payload.criteria,
            record.company_name,
            record.company_url,
            payload.notes,
            _load_list(record.notes_json, DiligenceNote),
            _load_list(record.questions_json, DiligenceQuestion),
            _load(record.enrichment_json, CompanyEnrichmentData),
            _load(record.team_research_json, TeamResearch),
            _load(record.portfolio_synergy_json, PortfolioSynergyResearch),
            _load(record.problem_necessity_json, ProblemNecessityResearch),
            _load(record.metrics_json, MetricSet),
            _load(record.score_json, DiligenceScore),
            payload.existing_thesis_answers,
            payload.options,
            llm=llm,
            config=config,
            learning_provider=learning_provider,
        )
    except ScoringFailedError as exc:
        record.status = "failed"
        db.commit()
        logger.error("[DILIGENCE] Scoring failed for %s: %s", record.company_name, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    metadata = result.company_metadata
    record.score_json = result.score.model_dump_json()
    record.metrics_json = result.metrics.model_dump_json()
    if metadata.founders:
        record.founders_json = _dump_list(metadata.founders)
    record.company_one_liner = metadata.company_one_liner or record.company_one_liner
    record.industry = metadata.industry or record.industry
    record.status = "scored"
    db.commit()
    db.refresh(record)
    logger.info("[DILIGENCE] Scored %s: overall %d (%s mode)",
                record.company_name, result.score.overall, result.score.scoring_mode)
    return _record_to_response(record)


@router.post(
    "/{diligence_id}/tam-analysis",
    response_model=TamAnalysisResult,
    summary="Run TAM Analysis",
)
async def tam_analysis(
    diligence_id: UUID,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
    config: ScoringConfig = Depends(get_scoring_config),
) -> TamAnalysisResult:
    record = _get_record_or_404(db, diligence_id)
    result = await run_tam_analysis(
        _load_list(record.documents_json, ScoringDocument),
        record.company_name,
        record.company_url,
        _load(record.metrics_json, MetricSet),
        _load(record.enrichment_json, CompanyEnrichmentData),
        llm=llm,
        config=config,
    )
    record.tam_analysis_json = result.model_dump_json()
    db.commit()
    return result


@router.post(
    "/{diligence_id}/override",
    response_model=DiligenceRecordResponse,
    summary="Override Category Score",
)
def override_category(
    diligence_id: UUID,
    payload: CategoryOverrideRequest,
    db: Session = Depends(get_db),
) -> DiligenceRecordResponse:
    record = _get_record_or_404(db, diligence_id)
    score = _get_score_or_400(record)
    _require_category(score, payload.category)

    updated = apply_category_override(score, payload.category, payload.score, payload.reason, payload.suppress_topics)
    record.score_json = updated.model_dump_json()
    db.commit()
    db.refresh(record)
    logger.info("[DILIGENCE] Override %s=%d on %s", payload.category, payload.score, record.company_name)
    return _record_to_response(record)


@router.delete(
    "/{diligence_id}/override/{category}",
    response_model=DiligenceRecordResponse,
    summary="Remove Category Override",
)
def delete_category_override(
    diligence_id: UUID,
    category: str,
    db: Session = Depends(get_db),
) -> DiligenceRecordResponse:
    record = _get_record_or_404(db, diligence_id)
    score = _get_score_or_400(record)
    _require_category(score, category)

    record.score_json = remove_category_override(score, category).model_dump_json()
    db.commit()
    db.refresh(record)
    return _record_to_response(record)


@router.post(
    "/{diligence_id}/decision",
    response_model=DiligenceRecordResponse,
    summary="Record Investment Decision",
)
def record_decision(
    diligence_id: UUID,
    payload: DecisionRequest,
    db: Session = Depends(get_db),
) -> DiligenceRecordResponse:
    record = _get_record_or_404(db, diligence_id)
    decision = DecisionRecord(
        decision=payload.decision,
        reason=payload.reason,
        decided_at=datetime.now(timezone.utc).isoformat(),
    )
    record.decision_json = decision.model_dump_json()
    db.commit()
    db.refresh(record)
    logger.info("[DILIGENCE] Decision %s recorded for %s", payload.decision, record.company_name)
    return _record_to_response(record)
