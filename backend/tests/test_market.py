"""Market tests — evidence sizing, sector heuristics, TAM alignment, estimator tiers."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

from conftest import FakeLLMClient

from diligence.agents.diligence_agent.market_estimator import (
    INSUFFICIENT_TAM_METHOD,
    apply_deterministic_tam,
    apply_heuristic_growth,
    apply_heuristic_tam,
    apply_sizing_fallback,
    coerce_market_intelligence,
    derive_external_market_intelligence,
    reset_unsupported_tam,
)
from diligence.schemas.market_schema import (
    ExternalMarketIntelligence,
    IndependentTamEstimate,
    TamClaim,
    TamComparison,
    TamSamSom,
)
from diligence.schemas.metrics_schema import MetricSet, MetricValue
from diligence.schemas.research_schema import CompanyEnrichmentData
from diligence.services.market_sizing import (
    derive_tam_alignment,
    estimate_market_growth_from_industry_context,
    estimate_tam_from_industry_context,
    extract_market_growth_from_evidence_text,
    extract_tam_from_evidence_text,
    resolve_founder_tam_claim,
)
from diligence.services.retry_policy import RetryPolicy
from diligence.services.openai_client import LLMError


def _intel(claim="unknown", independent="unknown", confidence=0):
    return ExternalMarketIntelligence(
        tam_sam_som=TamSamSom(
            company_claim=TamClaim(tam=claim),
            independent_estimate=IndependentTamEstimate(tam=independent),
            comparison=TamComparison(confidence=confidence),
        )
    )


def _derive(llm, facts, documents=None):
    return asyncio.run(derive_external_market_intelligence(
        "Acme", "https://acme.test", facts, documents or [], llm=llm, policy=RetryPolicy(),
    ))


# ---------------------------------------------------------------------------
# Deterministic sizing
# ---------------------------------------------------------------------------

class TestEvidenceSizing:
    def test_largest_market_size_token_wins(self):
        text = "The total addressable market is $12B globally\nSAM: $3B\nRevenue $5M"
        assert extract_tam_from_evidence_text(text) == "$12B"

    def test_no_market_lines(self):
        assert extract_tam_from_evidence_text("Revenue $5M\nBurn $200K") is None

    def test_growth_ignores_outliers_and_non_growth_lines(self):
        text = "Industry CAGR of 14.6%\nMarket growth 200% in one niche\nChurn 5%"
        assert extract_market_growth_from_evidence_text(text) == "15%"


class TestSectorHeuristics:
    def test_first_matching_sector(self):
        assert estimate_tam_from_industry_context("AI copilot for procurement teams")["tam"] == "$10B"
        assert estimate_tam_from_industry_context("Cybersecurity for SMBs")["tam"] == "$150B"

    def test_heuristic_carries_assumptions(self):
        heuristic = estimate_tam_from_industry_context("fintech lending rails")
        assert heuristic["method"].startswith("Sector benchmark heuristic")
        assert len(heuristic["assumptions"]) == 3

    def test_no_sector(self):
        assert estimate_tam_from_industry_context("premium pet food") is None
        assert estimate_market_growth_from_industry_context("premium pet food") is None

    def test_growth_heuristic(self):
        assert estimate_market_growth_from_industry_context("clinical trial software") == "8%"


class TestTamAlignment:
    def test_ratio_bands(self):
        assert derive_tam_alignment("$20B", "$10B") == "overstated"
        assert derive_tam_alignment("$11.5B", "$10B") == "somewhat_aligned"
        assert derive_tam_alignment("$10B", "$10B") == "aligned"
        assert derive_tam_alignment("$8B", "$10B") == "somewhat_aligned"
        assert derive_tam_alignment("$5B", "$10B") == "understated"

    def test_missing_side_uses_fallback(self):
        assert derive_tam_alignment("unknown", "$10B") == "unknown"
        assert derive_tam_alignment(None, "$10B", "aligned") == "aligned"


class TestFounderTamClaim:
    def test_manual_metric_first(self):
        metrics = MetricSet(tam=MetricValue(value="$4B", source="manual"))
        enrichment = CompanyEnrichmentData(tam_range="$5B-$10B")
        assert resolve_founder_tam_claim(metrics, enrichment, None) == "$4B"

    def test_fact_metric_is_not_a_founder_claim(self):
        metrics = MetricSet(tam=MetricValue(value="$4B", source="auto", source_detail="facts"))
        enrichment = CompanyEnrichmentData(tam_range="$5B-$10B")
        assert resolve_founder_tam_claim(metrics, enrichment, None) == "$5B-$10B"

    def test_intel_claim_last(self):
        assert resolve_founder_tam_claim(None, None, _intel(claim="$8B")) == "$8B"
        assert resolve_founder_tam_claim(None, None, _intel()) is None


# ---------------------------------------------------------------------------
# Estimator post-processing
# ---------------------------------------------------------------------------

class TestCoercion:
    def test_camel_case_payload(self):
        intel = coerce_market_intelligence({
            "tamSamSom": {
                "companyClaim": {"tam": "$20B"},
                "independentEstimate": {"tam": "$9B", "assumptions": ["Bottom-up", ""]},
                "comparison": {"alignment": "overstated", "confidence": 0.7},
            },
            "marketGrowth": {"estimatedCagr": "12%"},
            "competitors": [
                {"name": "Rival", "concernLevel": "high", "overlap": "total"},
                {"name": ""},
            ],
            "competitiveThreatScore": 72,
        })
        tss = intel.tam_sam_som
        assert tss.company_claim.tam == "$20B"
        assert tss.independent_estimate.assumptions == ["Bottom-up"]
        assert tss.comparison.confidence == 70
        assert intel.market_growth.growth_band == "moderate"
        assert len(intel.competitors) == 1
        assert intel.competitors[0].overlap == "medium"
        assert intel.competitors[0].concern_level == "high"
        assert intel.competitive_threat_score == 72

    def test_garbage_payload(self):
        intel = coerce_market_intelligence(["not", "a", "dict"])
        assert intel.tam_sam_som.independent_estimate.tam == "unknown"
        assert intel.competitors == []


class TestTamReset:
    def test_unsupported_independent_tam_is_discarded(self):
        reset = reset_unsupported_tam(_intel(independent="$9B", confidence=60), "no sizing here")
        assert reset.tam_sam_som.independent_estimate.tam == "unknown"
        assert reset.tam_sam_som.independent_estimate.method == INSUFFICIENT_TAM_METHOD
        assert reset.tam_sam_som.comparison.confidence == 0

    def test_tam_evidence_keeps_estimate(self):
        kept = reset_unsupported_tam(_intel(independent="$9B"), "TAM is $5 billion per analyst report")
        assert kept.tam_sam_som.independent_estimate.tam == "$9B"


class TestSizingFallback:
    def test_confidence_is_capped(self):
        intel = apply_sizing_fallback(_intel(claim="$30B"), {"tam": "$6B", "confidence": 90})
        tss = intel.tam_sam_som
        assert tss.independent_estimate.tam == "$6B"
        assert tss.comparison.confidence == 40
        assert tss.comparison.alignment == "overstated"

    def test_default_confidence_and_assumption_limit(self):
        intel = apply_sizing_fallback(_intel(), {"tam": "$6B", "assumptions": [f"a{i}" for i in range(9)]})
        assert intel.tam_sam_som.comparison.confidence == 30
        assert len(intel.tam_sam_som.independent_estimate.assumptions) == 6

    def test_unknown_sizing_is_ignored(self):
        original = _intel()
        assert apply_sizing_fallback(original, {"tam": "unknown"}) == original


class TestFallbackTiers:
    def test_small_evidence_tam_rejected(self):
        intel = apply_deterministic_tam(_intel(), "Market size: $20M")
        assert intel.tam_sam_som.independent_estimate.tam == "unknown"

    def test_evidence_tam_accepted(self):
        intel = apply_deterministic_tam(_intel(), "Market size: $4B")
        assert intel.tam_sam_som.independent_estimate.tam == "$4B"
        assert intel.tam_sam_som.comparison.confidence == 20

    def test_heuristic_confidence_bounds(self):
        low = apply_heuristic_tam(_intel(), "procurement software")
        high = apply_heuristic_tam(_intel(confidence=70), "procurement software")
        assert low.tam_sam_som.comparison.confidence == 15
        assert high.tam_sam_som.comparison.confidence == 40

    def test_existing_tam_not_overwritten(self):
        intel = apply_heuristic_tam(_intel(independent="$2B"), "procurement software")
        assert intel.tam_sam_som.independent_estimate.tam == "$2B"

    def test_heuristic_growth(self):
        intel = apply_heuristic_growth(ExternalMarketIntelligence(), "cybersecurity")
        assert intel.market_growth.estimated_cagr == "12%"
        assert intel.market_growth.growth_band == "moderate"
        assert intel.market_growth.confidence == 15


# ---------------------------------------------------------------------------
# Estimator entry point
# ---------------------------------------------------------------------------

class TestDeriveExternalMarketIntelligence:
    def test_llm_tier_with_sizing_pass(self):
        llm = FakeLLMClient(
            market={
                "tam_sam_som": {"company_claim": {"tam": "$30B"}},
                "market_growth": {"estimated_cagr": "18%"},
                "external_summary": "Crowded category with two funded incumbents.",
            },
            sizing={"tam": "$6B", "method": "Seats x price", "confidence": 35},
        )
        intel = _derive(llm, "Industry: analytics")
        assert intel.tam_sam_som.independent_estimate.tam == "$6B"
        assert intel.tam_sam_som.comparison.alignment == "overstated"
        assert intel.market_growth.growth_band == "moderate"
        assert [call["temperature"] for call in llm.calls] == [0.2, 0.15]

    def test_llm_failure_degrades_to_heuristics(self):
        llm = FakeLLMClient(market=LLMError("service unavailable", status_code=500))
        intel = _derive(llm, "Industry: procurement software for manufacturers")
        assert intel is not None
        assert intel.tam_sam_som.independent_estimate.tam == "$10B"
        assert intel.market_growth.estimated_cagr == "10%"
        assert llm.calls_for("sizing") == []

    def test_nothing_established_returns_none(self):
        assert _derive(FakeLLMClient(), "") is None
