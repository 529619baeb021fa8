"""Calibration tests — each pass in isolation, then the whole pipeline for idempotence."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from diligence.schemas.learning_schema import CalibrationRow
from diligence.schemas.market_schema import (
    ExternalMarketIntelligence,
    IndependentTamEstimate,
    MarketGrowth,
    TamClaim,
    TamComparison,
    TamSamSom,
)
from diligence.schemas.metrics_schema import MetricSet, MetricValue
from diligence.schemas.research_schema import (
    Founder,
    NecessitySignal,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    TeamResearch,
)
from diligence.schemas.score_schema import CategoryScore, CriterionScore
from diligence.services.calibration import CalibrationContext, funding_guard_active, run_calibration
from diligence.services.calibration.category_passes import (
    apply_external_market_penalties,
    apply_manual_calibration,
    competitive_threat_penalty,
)
from diligence.services.calibration.guards import (
    FUNDING_GUARD_MISSING,
    FUNDING_GUARD_SUFFIX,
    apply_early_traction_calibration,
    apply_funding_raise_guard,
)
from diligence.services.calibration.market_passes import (
    apply_market_growth_calibration,
    apply_tam_comparison_calibration,
)
from diligence.services.calibration.research_passes import (
    apply_portfolio_synergy_calibration,
    apply_problem_necessity_calibration,
    apply_team_research_calibration,
)


def _criterion(name, score=60, confidence=70, status="supported", evidence=None, reasoning="Model reasoning."):
    return CriterionScore(
        name=name,
        score=score,
        confidence=confidence,
        evidence_status=status,
        evidence=evidence if evidence is not None else ["Deck slide 7"],
        reasoning=reasoning,
    )


def _category(name, criteria, weight=25):
    score = int(round(sum(c.score for c in criteria) / len(criteria)))
    return CategoryScore(category=name, score=score, weight=weight, criteria=criteria)


def _intel(founder_claim="unknown", independent="unknown", comparison_confidence=0, cagr="",
           growth_confidence=0, growth_evidence=None, threat=None):
    return ExternalMarketIntelligence(
        tam_sam_som=TamSamSom(
            company_claim=TamClaim(tam=founder_claim),
            independent_estimate=IndependentTamEstimate(
                tam=independent, method="Bottom-up seat count", assumptions=["40k mid-market firms."],
            ),
            comparison=TamComparison(confidence=comparison_confidence),
        ),
        market_growth=MarketGrowth(
            estimated_cagr=cagr,
            confidence=growth_confidence,
            evidence=growth_evidence or [],
            summary="Growth summary.",
        ),
        competitive_threat_score=threat,
    )


def _first(categories):
    return categories[0].criteria[0]


# ---------------------------------------------------------------------------
# Category-level passes
# ---------------------------------------------------------------------------

class TestManualCalibration:
    def test_damped_drift_applied_once(self):
        ctx = CalibrationContext(calibration_profile=[
            CalibrationRow(category="Team", average_delta=10, average_abs_delta=10, sample_count=8),
        ])
        categories = [_category("Team", [_criterion("Founder Experience", score=60)])]
        once = apply_manual_calibration(categories, ctx)
        assert once[0].score == 67
        assert _first(once).score == 67
        assert once[0].calibration_adjustments == {"manual_override": 7.0}
        assert apply_manual_calibration(once, ctx) == once

    def test_too_few_samples_ignored(self):
        ctx = CalibrationContext(calibration_profile=[
            CalibrationRow(category="Team", average_delta=10, average_abs_delta=10, sample_count=2),
        ])
        categories = [_category("Team", [_criterion("Founder Experience")])]
        assert apply_manual_calibration(categories, ctx) == categories


class TestExternalMarketPenalty:
    def test_threshold_bands(self):
        assert competitive_threat_penalty(85) == 8
        assert competitive_threat_penalty(65) == 4
        assert competitive_threat_penalty(64) == 0
        assert competitive_threat_penalty(None) == 0

    def test_market_and_pmf_penalized(self):
        ctx = CalibrationContext(external_intel=_intel(threat=85))
        categories = [
            _category("Market", [_criterion("Competition", score=70)]),
            _category("Product Market Fit", [_criterion("Retention", score=70)]),
            _category("Team", [_criterion("Founder Experience", score=70)]),
        ]
        result = apply_external_market_penalties(categories, ctx)
        assert [c.score for c in result] == [62, 66, 70]
        assert apply_external_market_penalties(result, ctx) == result


# ---------------------------------------------------------------------------
# Market passes
# ---------------------------------------------------------------------------

class TestTamComparison:
    def test_overstated_founder_claim(self):
        ctx = CalibrationContext(
            external_intel=_intel(independent="$10B", comparison_confidence=80),
            metrics=MetricSet(tam=MetricValue(value="$50B", source="manual")),
        )
        result = apply_tam_comparison_calibration([_category("Market", [_criterion("TAM")])], ctx)
        criterion = _first(result)
        assert criterion.reasoning.startswith("The founder-calculated TAM is $50B")
        assert "independent TAM is $10B" in criterion.reasoning
        assert criterion.confidence == 80

    def test_material_discrepancy_caps_confidence(self):
        ctx = CalibrationContext(
            external_intel=_intel(independent="$10B", comparison_confidence=80),
            metrics=MetricSet(tam=MetricValue(value="$60B", source="manual")),
        )
        criterion = _first(apply_tam_comparison_calibration([_category("Market", [_criterion("TAM")])], ctx))
        assert criterion.confidence == 55
        assert "Founder TAM and independent TAM differ materially (>5x)." in criterion.missing_data

    def test_both_sides_missing(self):
        ctx = CalibrationContext(external_intel=_intel())
        criterion = _first(apply_tam_comparison_calibration([_category("Market", [_criterion("TAM")])], ctx))
        assert criterion.evidence_status == "unknown"
        assert criterion.confidence == 40

    def test_non_tam_criteria_untouched(self):
        ctx = CalibrationContext(external_intel=_intel(independent="$10B"))
        categories = [_category("Team", [_criterion("Founder Experience")])]
        assert apply_tam_comparison_calibration(categories, ctx) == categories

    def test_tam_substring_in_name_untouched(self):
        ctx = CalibrationContext(external_intel=_intel(independent="$10B"))
        categories = [_category("Product", [_criterion("Tamper-proofing"), _criterion("Stamina")])]
        assert apply_tam_comparison_calibration(categories, ctx) == categories


class TestMarketGrowth:
    def test_high_band_floors_score(self):
        ctx = CalibrationContext(external_intel=_intel(
            cagr="25%", growth_confidence=60, growth_evidence=["Analyst report: 25% CAGR"],
        ))
        result = apply_market_growth_calibration(
            [_category("Market", [_criterion("Market Growth", score=50, status="unknown")])], ctx
        )
        criterion = _first(result)
        assert criterion.score == 65
        assert criterion.confidence == 70
        assert criterion.evidence_status == "weakly_supported"
        assert "Analyst report: 25% CAGR" in criterion.evidence
        assert result[0].score == 65

    def test_low_band_caps_score(self):
        ctx = CalibrationContext(metrics=MetricSet(market_growth_rate=MetricValue(value="3%")))
        criterion = _first(apply_market_growth_calibration(
            [_category("Market", [_criterion("Market Growth", score=80)])], ctx
        ))
        assert criterion.score == 55

    def test_unknown_band(self):
        criterion = _first(apply_market_growth_calibration(
            [_category("Market", [_criterion("Growth Rate", confidence=80)])], CalibrationContext()
        ))
        assert criterion.evidence_status == "unknown"
        assert criterion.confidence == 50
        assert "Reliable market growth/CAGR evidence is missing." in criterion.missing_data


# ---------------------------------------------------------------------------
# Research passes
# ---------------------------------------------------------------------------

class TestTeamResearch:
    def test_no_founders_and_no_inline_evidence(self):
        ctx = CalibrationContext(team_research=TeamResearch(summary="", founders=[]))
        criterion = _first(apply_team_research_calibration(
            [_category("Team", [_criterion("Experience", confidence=80, evidence=["Pitch deck slide 4"])])], ctx
        ))
        assert criterion.confidence <= 45
        assert criterion.evidence_status == "unknown"
        assert "No founder/team evidence found from team research." in criterion.missing_data

    def test_founders_cited_in_reasoning_and_evidence(self):
        ctx = CalibrationContext(team_research=TeamResearch(
            summary="Two technical founders with logistics background.",
            founders=[
                Founder(name="Ada", title="CEO", has_prior_exit=True, has_been_ceo=True,
                        prior_exits=["RouteCo (2019)"], linkedin_url="https://linkedin.test/ada"),
                Founder(name="Lin", title="CTO", experience_summary="Role history: Staff engineer at Stripe"),
            ],
        ))
        criterion = _first(apply_team_research_calibration(
            [_category("Team", [_criterion("Founder Experience", confidence=40, status="unknown")])], ctx
        ))
        assert "Ada (CEO) - prior exit, prior CEO" in criterion.reasoning
        assert "Prior exits: RouteCo (2019)." in criterion.reasoning
        assert "The CEO has verified prior CEO experience." in criterion.reasoning
        assert criterion.confidence == 50
        assert criterion.evidence_status == "weakly_supported"
        assert any(line.startswith("Founders identified:") for line in criterion.evidence)


class TestPortfolioSynergy:
    def test_no_matches(self):
        ctx = CalibrationContext(portfolio_synergy=PortfolioSynergyResearch(summary="Nothing close."))
        criterion = _first(apply_portfolio_synergy_calibration(
            [_category("Fit", [_criterion("Portfolio Synergy", confidence=80)])], ctx
        ))
        assert criterion.confidence == 50
        assert criterion.evidence_status == "unknown"


class TestProblemNecessity:
    def test_thin_vaccine_call(self):
        ctx = CalibrationContext(problem_necessity=ProblemNecessityResearch(
            summary="Regulatory mandate.",
            classification="vaccine",
            top_signals=[NecessitySignal(label="Compliance deadline", strength="high")],
        ))
        criterion = _first(apply_problem_necessity_calibration(
            [_category("Problem", [_criterion("Necessity", confidence=90)])], ctx
        ))
        assert criterion.confidence == 65
        assert criterion.reasoning.startswith("Problem necessity is classified as Vaccine.")


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

class TestFundingGuard:
    def _deal_terms(self):
        return [_category("Deal Terms", [_criterion(
            "Valuation", reasoning="The company is raising $3M at a $15M cap. Terms look standard.",
        )])]

    def test_invented_raise_removed(self):
        ctx = CalibrationContext(extracted_facts="Valuation: $15M cap")
        assert funding_guard_active(ctx)
        once = apply_funding_raise_guard(self._deal_terms(), ctx)
        criterion = _first(once)
        assert "raising $3M" not in criterion.reasoning
        assert criterion.reasoning.endswith(FUNDING_GUARD_SUFFIX)
        assert FUNDING_GUARD_MISSING in criterion.missing_data

        twice = apply_funding_raise_guard(once, ctx)
        assert _first(twice).reasoning.count(FUNDING_GUARD_SUFFIX) == 1
        assert twice == once

    def test_explicit_raise_disables_guard(self):
        ctx = CalibrationContext(user_notes="We are raising $3M on a SAFE.")
        assert not funding_guard_active(ctx)
        assert apply_funding_raise_guard(self._deal_terms(), ctx) == self._deal_terms()

    def test_funding_metric_disables_guard(self):
        ctx = CalibrationContext(metrics=MetricSet(funding_amount=MetricValue(value="$3M", source="manual")))
        assert not funding_guard_active(ctx)


class TestEarlyTraction:
    def test_pilots_floor_traction(self):
        ctx = CalibrationContext(raw_document_text="Running a paid pilot with two regional hospitals.")
        categories = [_category("Traction", [_criterion("Revenue", score=10, confidence=30, status="unknown")])]
        once = apply_early_traction_calibration(categories, ctx)
        criterion = _first(once)
        assert criterion.score == 30
        assert criterion.confidence == 45
        assert criterion.evidence_status == "weakly_supported"
        assert "Pilot/POC traction is explicitly mentioned." in criterion.evidence

        twice = apply_early_traction_calibration(once, ctx)
        assert _first(twice).reasoning.count("Early traction signals are present in materials") == 1

    def test_arr_present_skips(self):
        ctx = CalibrationContext(
            raw_document_text="Two paid pilots.",
            metrics=MetricSet(arr=MetricValue(value="$1M")),
        )
        categories = [_category("Traction", [_criterion("Revenue", score=10)])]
        assert apply_early_traction_calibration(categories, ctx) == categories


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestPipeline:
    def test_running_twice_equals_running_once(self):
        ctx = CalibrationContext(
            external_intel=_intel(
                founder_claim="$30B", independent="$8B", comparison_confidence=60,
                cagr="22%", growth_confidence=55, growth_evidence=["Sector CAGR 22%"], threat=70,
            ),
            metrics=MetricSet(),
            team_research=TeamResearch(summary="Repeat founders.", founders=[Founder(name="Ada", title="CEO")]),
            portfolio_synergy=PortfolioSynergyResearch(summary="None."),
            calibration_profile=[
                CalibrationRow(category="Team", average_delta=-6, average_abs_delta=6, sample_count=5),
            ],
            extracted_facts="Paid pilot signed with 3 carriers",
        )
        categories = [
            _category("Team", [_criterion("Founder Experience"), _criterion("CTO Depth")], weight=30),
            _category("Market", [_criterion("TAM"), _criterion("Market Growth", score=50)], weight=30),
            _category("Deal Terms", [_criterion("Valuation", reasoning="They are raising $2M.")], weight=20),
            _category("Traction", [_criterion("Revenue", score=20, status="unknown")], weight=20),
        ]
        once = run_calibration(categories, ctx)
        assert run_calibration(once, ctx) == once
        assert once[0].calibration_adjustments == {"manual_override": -3.0}
        assert once[1].calibration_adjustments == {"external_market": -4.0}
