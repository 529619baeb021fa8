"""Metric tests — text grammar, deterministic extractors, field-by-field merge.

Everything here is pure parsing; no LLM and no database is involved.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import re

from diligence.schemas.metrics_schema import MetricSet, MetricValue
from diligence.schemas.research_schema import DiligenceNote
from diligence.services.metric_extractors import (
    derive_all_metrics,
    derive_metrics_from_facts,
    derive_metrics_from_notes,
    derive_metrics_from_raw_text,
    derive_yoy_from_yearly_arr,
    pick_arr_value_from_text,
)
from diligence.services.metric_merge import merge_metric_value, merge_metrics
from diligence.services.metric_parsing import (
    derive_market_growth_band,
    extract_money_tokens,
    first_regex_match,
    format_magnitude_money,
    is_likely_money_token,
    is_placeholder_metric_value,
    normalize_confidence_percent,
    normalize_money_token,
    parse_magnitude_value,
    parse_money_to_number,
)


def _manual(value):
    return MetricValue(value=value, source="manual", source_detail="manual")


def _auto(value, detail="facts"):
    return MetricValue(value=value, source="auto", source_detail=detail)


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

class TestPlaceholders:
    def test_placeholder_variants(self):
        for raw in ("", "unknown", "N/A", "Not disclosed", "not_provided", "$ -", None):
            assert is_placeholder_metric_value(raw), raw

    def test_real_values_are_not_placeholders(self):
        assert not is_placeholder_metric_value("$1.2M")
        assert not is_placeholder_metric_value("18 months")


class TestMoneyTokens:
    def test_normalize_word_magnitudes(self):
        assert normalize_money_token("1.2 million") == "$1.2 M"
        assert normalize_money_token("$3M") == "$3M"
        assert normalize_money_token("   ") is None

    def test_multiples_are_not_money(self):
        assert not is_likely_money_token("3x")
        assert not is_likely_money_token("250")

    def test_money_shapes(self):
        assert is_likely_money_token("$40")
        assert is_likely_money_token("3M")
        assert is_likely_money_token("2 million")
        assert is_likely_money_token("1,500")

    def test_parse_money_to_number(self):
        assert parse_money_to_number("$1.5M") == 1_500_000
        assert parse_money_to_number("$250k") == 250_000
        assert parse_money_to_number("about $2M") is None

    def test_money_shapes_share_one_magnitude(self):
        values = {parse_money_to_number(normalize_money_token(raw)) for raw in ("$1.2M", "1.2 million", "$1,200,000")}
        assert values == {1_200_000}

    def test_bare_year_yields_to_money_on_same_line(self):
        assert extract_money_tokens("ARR as of 2024: $1.2M") == ["$1.2M"]
        assert extract_money_tokens("Contracted ARR (2024): 900K") == ["900K"]

    def test_bare_number_counts_when_alone(self):
        assert extract_money_tokens("Revenue last quarter 1500") == ["1500"]


class TestMagnitudes:
    def test_parse_magnitude_units(self):
        assert parse_magnitude_value("$30B") == 30_000_000_000
        assert parse_magnitude_value("1.5 trillion") == 1_500_000_000_000
        assert parse_magnitude_value("$2,500,000") == 2_500_000
        assert parse_magnitude_value("unknown") is None

    def test_format_magnitude_money(self):
        assert format_magnitude_money(30_000_000_000) == "$30B"
        assert format_magnitude_money(2_400_000) == "$2.4M"
        assert format_magnitude_money(0) == "unknown"
        assert format_magnitude_money(None) == "unknown"


class TestPercentages:
    def test_growth_bands(self):
        assert derive_market_growth_band("25%") == "high"
        assert derive_market_growth_band("20%") == "high"
        assert derive_market_growth_band("10% CAGR") == "moderate"
        assert derive_market_growth_band("3%") == "low"
        assert derive_market_growth_band("-2%") == "unknown"
        assert derive_market_growth_band("fast") == "unknown"

    def test_confidence_normalization(self):
        assert normalize_confidence_percent(0.65) == 65
        assert normalize_confidence_percent(85) == 85
        assert normalize_confidence_percent(150) == 100
        assert normalize_confidence_percent("abc") == 0
        assert normalize_confidence_percent(None) == 0

    def test_first_regex_match_order(self):
        patterns = [re.compile(r"tam:\s*(\S+)"), re.compile(r"market:\s*(\S+)")]
        assert first_regex_match("market: $5B tam: $9B", patterns) == "$9B"
        assert first_regex_match("nothing here", patterns) is None


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

class TestArrPicking:
    def test_contracted_arr_wins(self):
        text = "ARR: $400K\nContracted ARR: $1.2M"
        assert pick_arr_value_from_text(text) == "$1.2M"

    def test_projected_lines_ignored(self):
        text = "ARR: $500K\nProjected ARR 2027: $5M"
        assert pick_arr_value_from_text(text) == "$500K"

    def test_raise_lines_ignored(self):
        text = "Raising $3M to scale ARR\nARR: $750K"
        assert pick_arr_value_from_text(text) == "$750K"

    def test_yoy_from_yearly_arr(self):
        text = "ARR 2023: $1M\nARR 2024: $2.5M"
        assert derive_yoy_from_yearly_arr(text) == "150%"

    def test_yoy_from_contracted_arr_facts(self):
        facts = "Contracted ARR (2023): $500K\nContracted ARR (2024): $900K"
        metrics = derive_metrics_from_facts(facts)
        assert metrics.arr.value == "$900K"
        assert metrics.yoy_growth_rate.value == "80%"

    def test_year_in_label_is_not_arr(self):
        assert pick_arr_value_from_text("ARR as of 2024: $1.2M") == "$1.2M"

    def test_latest_year_wins_tie(self):
        text = "ARR 2023: $1M\nARR 2024: $2.5M"
        assert pick_arr_value_from_text(text) == "$2.5M"


class TestFactExtraction:
    def test_core_metrics_from_facts(self):
        facts = "ARR: $1.2M\nRaising: $3M\nCash on hand: $800K\nLead investor: Acme Ventures"
        metrics = derive_metrics_from_facts(facts)
        assert metrics.arr.value == "$1.2M"
        assert metrics.arr.source_detail == "facts"
        assert metrics.funding_amount.value == "$3M"
        assert metrics.lead.value == "Acme Ventures"

    def test_cash_on_hand_never_becomes_raise(self):
        facts = "Raising: $2M\nCash on hand: $2M"
        metrics = derive_metrics_from_facts(facts)
        assert metrics.funding_amount is None

    def test_runway_slots(self):
        facts = "Current runway: 9 months\nPost-funding runway: 24 months"
        metrics = derive_metrics_from_facts(facts)
        assert metrics.current_runway.value == "9 months"
        assert metrics.post_funding_runway.value == "24 months"

    def test_multiple_growth_gets_suffix(self):
        metrics = derive_metrics_from_facts("Revenue grew 3x YoY")
        assert metrics.yoy_growth_rate.value == "3x"


class TestNotesAndRawText:
    def test_notes_extraction(self):
        notes = [
            DiligenceNote(category="Market", title="Sizing", content="Market growth of 14% per year"),
            DiligenceNote(category="Deal", title="Round", content="Funding amount: $4M"),
        ]
        metrics = derive_metrics_from_notes(notes)
        assert metrics.market_growth_rate.value == "14%"
        assert metrics.market_growth_rate.source_detail == "notes"
        assert metrics.funding_amount.value == "$4M"

    def test_empty_notes(self):
        assert derive_metrics_from_notes([]) == MetricSet()

    def test_raw_text_raise_and_runway(self):
        metrics = derive_metrics_from_raw_text("We are raising a $2.5M seed round.\nCurrent runway: 11 months")
        assert metrics.funding_amount.value == "$2.5M"
        assert metrics.current_runway.value == "11 months"

    def test_source_of_truth_outranks_derived(self):
        metrics = derive_all_metrics(
            source_of_truth=MetricSet(arr=_manual("$2M")),
            extracted_facts="ARR: $1.2M",
            notes=[],
            raw_text="",
            external_intel=None,
        )
        assert metrics.arr.value == "$2M"
        assert metrics.arr.source == "manual"


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

class TestMerge:
    def test_manual_usable_kept(self):
        assert merge_metric_value(_manual("$2M"), _auto("$3M")).value == "$2M"

    def test_fresh_auto_replaces_stale_auto(self):
        assert merge_metric_value(_auto("$1M"), _auto("$3M")).value == "$3M"

    def test_derived_replaces_manual_placeholder(self):
        assert merge_metric_value(_manual("unknown"), _auto("$3M")).value == "$3M"

    def test_manual_placeholder_survives_when_nothing_derived(self):
        merged = merge_metric_value(_manual("unknown"), None)
        assert merged.value == "unknown"
        assert merged.source == "manual"

    def test_placeholder_derived_does_not_clobber(self):
        assert merge_metric_value(_auto("$1M"), _auto("n/a")).value == "$1M"

    def test_empty_values_dropped(self):
        assert merge_metric_value(None, _auto("   ")) is None

    def test_merge_is_idempotent(self):
        metrics = MetricSet(arr=_manual("$2M"), tam=_auto("$10B", "market_research"))
        assert merge_metrics(metrics, metrics) == metrics

    def test_slots_merge_independently(self):
        merged = merge_metrics(MetricSet(arr=_manual("$2M")), MetricSet(tam=_auto("$5B")))
        assert merged.arr.value == "$2M"
        assert merged.tam.value == "$5B"
