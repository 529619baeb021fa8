"""External market estimator.

Builds the ExternalMarketIntelligence view used by prompts and calibration.

Flow:
  1. LLM tier: market-intelligence prompt over extracted facts and research
     documents, followed by a conservative TAM sizing prompt when the
     independent TAM is still unknown.
  2. Deterministic tier: largest market-size / growth figure found in the
     evidence text.
  3. Sector heuristic tier: fixed industry benchmarks, low confidence.

Each tier only fills fields the previous tier left as placeholders. A
failed LLM tier degrades to the deterministic tiers; the estimator never
raises and returns None only when nothing at all could be established.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from ...constants import (
    DETERMINISTIC_CONFIDENCE_FLOOR,
    FALLBACK_LLM_CONFIDENCE_CAP,
    FALLBACK_LLM_CONFIDENCE_DEFAULT,
    HEURISTIC_CONFIDENCE_CAP,
    HEURISTIC_CONFIDENCE_FLOOR,
    TAM_MIN_CREDIBLE_VALUE,
)
from ...schemas.market_schema import (
    Competitor,
    ExternalMarketIntelligence,
    IndependentTamEstimate,
    MarketGrowth,
    TamClaim,
    TamComparison,
    TamSamSom,
)
from ...schemas.research_schema import ScoringDocument
from ...services.context_assembler import build_external_research_context
from ...services.market_sizing import (
    derive_tam_alignment,
    estimate_market_growth_from_industry_context,
    estimate_tam_from_industry_context,
    extract_market_growth_from_evidence_text,
    extract_tam_from_evidence_text,
)
from ...services.metric_parsing import (
    derive_market_growth_band,
    first_regex_match,
    is_placeholder_metric_value,
    is_unknown_text,
    normalize_confidence_percent,
    parse_magnitude_value,
)
from ...services.normalization_engine import as_string_array, model_field
from ...services.openai_client import LLMClient, LLMError
from ...services.retry_policy import RetryPolicy, call_with_retry
from .prompts import (
    MARKET_INTEL_SYSTEM,
    MARKET_SIZING_SYSTEM,
    build_market_intel_prompt,
    build_market_sizing_prompt,
)

logger = logging.getLogger(__name__)

_GROWTH_EVIDENCE_PATTERNS = [
    re.compile(r"market\s+growth[^0-9]{0,20}(\d+(?:\.\d+)?%)", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?%)\s*(?:cagr|annual\s+growth|market\s+growth|industry\s+growth)", re.IGNORECASE),
]
_TAM_KEYWORD_RE = re.compile(r"\b(tam|sam|som|market\s+size)\b")
_TAM_MONEY_RE = re.compile(r"(\$|\b\d+(\.\d+)?\s*(billion|million|trillion|b|m|k)\b)")

_LEVELS = ("low", "medium", "high")
_ALIGNMENTS = ("aligned", "somewhat_aligned", "overstated", "understated", "unknown")
_GROWTH_BANDS = ("high", "moderate", "low", "unknown")

INSUFFICIENT_TAM_METHOD = "Insufficient evidence in provided materials/context."
INSUFFICIENT_TAM_ASSUMPTION = "No reliable TAM/SAM/SOM evidence found in current inputs."
MAX_GROWTH_EVIDENCE = 5
MAX_SIZING_ASSUMPTIONS = 6


def _str(value: Any, default: str = "") -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value.strip() if isinstance(value, str) else default


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if value in allowed else default


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ---------------------------------------------------------------------------
# Model JSON -> ExternalMarketIntelligence
# ---------------------------------------------------------------------------
def coerce_market_intelligence(raw: Any) -> ExternalMarketIntelligence:
    """Tolerant conversion of the market-intelligence JSON (snake_case or camelCase)."""
    raw = _dict(raw)
    tss = _dict(model_field(raw, "tam_sam_som", "tamSamSom"))
    claim = _dict(model_field(tss, "company_claim", "companyClaim"))
    independent = _dict(model_field(tss, "independent_estimate", "independentEstimate"))
    comparison = _dict(model_field(tss, "comparison"))
    growth = _dict(model_field(raw, "market_growth", "marketGrowth"))

    competitors = []
    for item in model_field(raw, "competitors") or []:
        if not isinstance(item, dict) or not _str(item.get("name")):
            continue
        competitors.append(Competitor(
            name=_str(item.get("name")),
            overlap=_choice(item.get("overlap"), _LEVELS, "medium"),
            funding_raised=_str(model_field(item, "funding_raised", "fundingRaised")),
            concern_level=_choice(model_field(item, "concern_level", "concernLevel"), _LEVELS, "medium"),
            rationale=_str(item.get("rationale")),
        ))

    threat = model_field(raw, "competitive_threat_score", "competitiveThreatScore")
    estimated_cagr = _str(model_field(growth, "estimated_cagr", "estimatedCagr"))

    return ExternalMarketIntelligence(
        tam_sam_som=TamSamSom(
            company_claim=TamClaim(
                tam=_str(claim.get("tam"), "unknown") or "unknown",
                sam=_str(claim.get("sam"), "unknown") or "unknown",
                som=_str(claim.get("som"), "unknown") or "unknown",
                source=_str(claim.get("source")),
            ),
            independent_estimate=IndependentTamEstimate(
                tam=_str(independent.get("tam"), "unknown") or "unknown",
                sam=_str(independent.get("sam"), "unknown") or "unknown",
                som=_str(independent.get("som"), "unknown") or "unknown",
                method=_str(independent.get("method")),
                assumptions=as_string_array(independent.get("assumptions")),
            ),
            comparison=TamComparison(
                alignment=_choice(comparison.get("alignment"), _ALIGNMENTS, "unknown"),
                delta_summary=_str(model_field(comparison, "delta_summary", "deltaSummary")),
                confidence=normalize_confidence_percent(comparison.get("confidence")),
            ),
        ),
        market_growth=MarketGrowth(
            estimated_cagr=estimated_cagr,
            growth_band=_choice(
                model_field(growth, "growth_band", "growthBand"),
                _GROWTH_BANDS,
                derive_market_growth_band(estimated_cagr),
            ),
            confidence=normalize_confidence_percent(growth.get("confidence")),
            evidence=as_string_array(growth.get("evidence"))[:MAX_GROWTH_EVIDENCE],
            summary=_str(growth.get("summary")),
        ),
        competitors=competitors,
        competitive_threat_score=threat if isinstance(threat, (int, float)) and not isinstance(threat, bool) else None,
        external_summary=_str(model_field(raw, "external_summary", "externalSummary")),
    )


# ---------------------------------------------------------------------------
# Post-processing of the LLM tier
# ---------------------------------------------------------------------------
def has_tam_evidence(evidence_text: str) -> bool:
    lower = (evidence_text or "").lower()
    return bool(_TAM_KEYWORD_RE.search(lower) and _TAM_MONEY_RE.search(lower))


def fill_growth_from_evidence(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    """Backfill CAGR from explicit growth phrases and set the growth summary default."""
    growth = intel.market_growth
    evidence_growth = (
        first_regex_match(evidence_text, _GROWTH_EVIDENCE_PATTERNS)
        or extract_market_growth_from_evidence_text(evidence_text)
    )
    cagr = growth.estimated_cagr or evidence_growth or ""
    band = growth.growth_band if growth.growth_band != "unknown" else derive_market_growth_band(cagr)
    summary = growth.summary or (
        f"Estimated market growth is {cagr} ({band} growth band)."
        if cagr
        else "Insufficient evidence to estimate market growth rate confidently."
    )
    return intel.model_copy(update={
        "market_growth": growth.model_copy(update={"estimated_cagr": cagr, "growth_band": band, "summary": summary}),
    })


def reset_unsupported_tam(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    """Discard an independent TAM when neither a company claim nor TAM evidence exists."""
    if not is_unknown_text(intel.tam_sam_som.company_claim.tam) or has_tam_evidence(evidence_text):
        return intel
    tss = intel.tam_sam_som.model_copy(update={
        "independent_estimate": IndependentTamEstimate(
            method=INSUFFICIENT_TAM_METHOD,
            assumptions=[INSUFFICIENT_TAM_ASSUMPTION],
        ),
        "comparison": intel.tam_sam_som.comparison.model_copy(update={"alignment": "unknown", "confidence": 0}),
    })
    return intel.model_copy(update={"tam_sam_som": tss})


def _independent_tam_missing(intel: ExternalMarketIntelligence) -> bool:
    return is_placeholder_metric_value(intel.tam_sam_som.independent_estimate.tam)


def _with_independent_tam(
    intel: ExternalMarketIntelligence,
    *,
    tam: str,
    method: str,
    assumptions: list[str],
    default_delta: str,
    confidence: int,
    sam: Optional[str] = None,
    som: Optional[str] = None,
) -> ExternalMarketIntelligence:
    tss = intel.tam_sam_som
    previous = tss.independent_estimate
    comparison = tss.comparison
    updated = tss.model_copy(update={
        "independent_estimate": IndependentTamEstimate(
            tam=tam,
            sam=sam or previous.sam or "unknown",
            som=som or previous.som or "unknown",
            method=method,
            assumptions=assumptions,
        ),
        "comparison": TamComparison(
            alignment=derive_tam_alignment(tss.company_claim.tam, tam, comparison.alignment),
            delta_summary=comparison.delta_summary or default_delta,
            confidence=confidence,
        ),
    })
    return intel.model_copy(update={"tam_sam_som": updated})


def apply_sizing_fallback(intel: ExternalMarketIntelligence, sizing: Any) -> ExternalMarketIntelligence:
    """Merge the conservative sizing response; confidence is bounded to 40."""
    sizing = _dict(sizing)
    tam = _str(sizing.get("tam"))
    if is_unknown_text(tam):
        return intel

    raw_assumptions = sizing.get("assumptions")
    assumptions = (
        as_string_array(raw_assumptions)[:MAX_SIZING_ASSUMPTIONS]
        if isinstance(raw_assumptions, list)
        else ["Heuristic estimate due to sparse direct market-size evidence."]
    )
    confidence = normalize_confidence_percent(sizing.get("confidence"))
    return _with_independent_tam(
        intel,
        tam=tam,
        sam=_str(sizing.get("sam")) or "unknown",
        som=_str(sizing.get("som")) or "unknown",
        method=_str(sizing.get("method")) or "Heuristic TAM triangulation fallback from available context.",
        assumptions=assumptions,
        default_delta="Independent estimate generated via conservative fallback triangulation.",
        confidence=min(FALLBACK_LLM_CONFIDENCE_CAP, confidence if confidence > 0 else FALLBACK_LLM_CONFIDENCE_DEFAULT),
    )


# ---------------------------------------------------------------------------
# Deterministic and heuristic tiers
# ---------------------------------------------------------------------------
def apply_deterministic_tam(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    if not _independent_tam_missing(intel):
        return intel
    tam = extract_tam_from_evidence_text(evidence_text)
    value = parse_magnitude_value(tam)
    if not tam or (value is not None and value < TAM_MIN_CREDIBLE_VALUE):
        return intel
    logger.info("[MARKET] Independent TAM from evidence text: %s", tam)
    return _with_independent_tam(
        intel,
        tam=tam,
        method="Deterministic extraction from external research snippets (market-size evidence).",
        assumptions=["Estimated from available external snippets containing TAM/market-size signals."],
        default_delta="Derived from market-size evidence in external snippets.",
        confidence=max(DETERMINISTIC_CONFIDENCE_FLOOR, intel.tam_sam_som.comparison.confidence),
    )


def apply_heuristic_tam(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    if not _independent_tam_missing(intel):
        return intel
    heuristic = estimate_tam_from_industry_context(evidence_text)
    if heuristic is None:
        return intel
    logger.info("[MARKET] Independent TAM from sector heuristic: %s", heuristic["tam"])
    confidence = max(HEURISTIC_CONFIDENCE_FLOOR, intel.tam_sam_som.comparison.confidence)
    return _with_independent_tam(
        intel,
        tam=heuristic["tam"],
        method=heuristic["method"],
        assumptions=heuristic["assumptions"],
        default_delta="Derived from sector benchmark heuristic.",
        confidence=min(HEURISTIC_CONFIDENCE_CAP, confidence),
    )


def _with_growth(
    intel: ExternalMarketIntelligence,
    cagr: str,
    confidence_floor: int,
    evidence_note: str,
    default_summary: str,
    confidence_cap: Optional[int] = None,
) -> ExternalMarketIntelligence:
    growth = intel.market_growth
    confidence = max(confidence_floor, growth.confidence)
    if confidence_cap is not None:
        confidence = min(confidence_cap, confidence)
    return intel.model_copy(update={
        "market_growth": MarketGrowth(
            estimated_cagr=cagr,
            growth_band=derive_market_growth_band(cagr),
            confidence=confidence,
            evidence=_unique([*growth.evidence, evidence_note])[:MAX_GROWTH_EVIDENCE],
            summary=growth.summary or default_summary,
        ),
    })


def apply_deterministic_growth(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    if not is_unknown_text(intel.market_growth.estimated_cagr):
        return intel
    growth = extract_market_growth_from_evidence_text(evidence_text)
    if not growth:
        return intel
    return _with_growth(
        intel,
        growth,
        DETERMINISTIC_CONFIDENCE_FLOOR,
        "Derived from external research growth-rate snippets.",
        f"Estimated market growth is {growth} from external research snippets.",
    )


def apply_heuristic_growth(intel: ExternalMarketIntelligence, evidence_text: str) -> ExternalMarketIntelligence:
    if not is_unknown_text(intel.market_growth.estimated_cagr):
        return intel
    growth = estimate_market_growth_from_industry_context(evidence_text)
    if not growth:
        return intel
    return _with_growth(
        intel,
        growth,
        HEURISTIC_CONFIDENCE_FLOOR,
        "Derived from sector-level growth heuristic.",
        f"Estimated market growth is {growth} based on sector-level benchmark heuristics.",
        confidence_cap=HEURISTIC_CONFIDENCE_CAP,
    )


def is_empty_intelligence(intel: ExternalMarketIntelligence) -> bool:
    tss = intel.tam_sam_som
    return (
        is_placeholder_metric_value(tss.independent_estimate.tam)
        and is_placeholder_metric_value(tss.company_claim.tam)
        and is_unknown_text(intel.market_growth.estimated_cagr)
        and not intel.competitors
        and intel.competitive_threat_score is None
        and not intel.external_summary
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
async def derive_external_market_intelligence(
    company_name: str,
    company_url: Optional[str],
    extracted_facts: str,
    documents: list[ScoringDocument],
    *,
    llm: LLMClient,
    policy: RetryPolicy,
) -> Optional[ExternalMarketIntelligence]:
    """Run the three estimator tiers; None when nothing could be established."""
    company_label = f"{company_name} ({company_url})" if company_url else company_name
    research_context = build_external_research_context(documents)
    evidence_text = f"{extracted_facts}\n{research_context}"
    llm_policy = policy.with_attempts(2)

    llm_available = True
    try:
        raw = await call_with_retry(
            lambda: llm.complete_json(
                system=MARKET_INTEL_SYSTEM,
                user=build_market_intel_prompt(company_label, extracted_facts, research_context),
                temperature=0.2,
            ),
            llm_policy,
            label="market intelligence",
        )
        intel = coerce_market_intelligence(raw)
    except LLMError as exc:
        logger.warning("[MARKET] Market intelligence call failed, using deterministic tiers: %s", exc)
        llm_available = False
        intel = ExternalMarketIntelligence()

    intel = fill_growth_from_evidence(intel, evidence_text)
    intel = reset_unsupported_tam(intel, evidence_text)

    if llm_available and _independent_tam_missing(intel):
        try:
            sizing = await call_with_retry(
                lambda: llm.complete_json(
                    system=MARKET_SIZING_SYSTEM,
                    user=build_market_sizing_prompt(
                        company_label,
                        intel.tam_sam_som.company_claim.tam,
                        extracted_facts,
                        research_context,
                    ),
                    temperature=0.15,
                ),
                llm_policy,
                label="TAM sizing",
            )
            intel = apply_sizing_fallback(intel, sizing)
        except LLMError as exc:
            logger.warning("[MARKET] TAM fallback sizing pass failed: %s", exc)

    intel = apply_deterministic_tam(intel, evidence_text)
    intel = apply_heuristic_tam(intel, evidence_text)
    intel = apply_deterministic_growth(intel, evidence_text)
    intel = apply_heuristic_growth(intel, evidence_text)

    if is_empty_intelligence(intel):
        logger.info("[MARKET] No market intelligence could be established for %s", company_name)
        return None

    logger.info(
        "[MARKET] Independent TAM %s (%s), growth %s",
        intel.tam_sam_som.independent_estimate.tam,
        intel.tam_sam_som.comparison.alignment,
        intel.market_growth.estimated_cagr or "unknown",
    )
    return intel
