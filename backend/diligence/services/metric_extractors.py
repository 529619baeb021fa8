"""Deterministic metric extractors.

Derives canonical metrics (ARR, TAM, runway, raise amount, ...) from three
text sources with slightly different grammars:

  - structured facts produced by the fact-extraction pass  (source_detail=facts)
  - analyst notes filed by category                        (source_detail=notes)
  - raw document text                                      (source_detail=facts)

Rules
-----
- NO API calls
- NO LLMs
- Projection / forecast lines never feed ARR or YoY
- Every money value must look like money before it is kept
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from ..schemas.market_schema import ExternalMarketIntelligence
from ..schemas.metrics_schema import MetricSet
from ..schemas.research_schema import DiligenceNote
from .metric_merge import merge_metrics
from .metric_parsing import (
    MONEY_PATTERN,
    extract_money_tokens,
    filter_out_projected_lines,
    first_regex_match,
    has_projection_hint,
    is_likely_money_token,
    is_placeholder_metric_value,
    make_auto_metric,
    normalize_money_token,
    parse_money_to_number,
)

_I = re.IGNORECASE


def _money_after(prefix: str, gap: int = 20) -> re.Pattern:
    return re.compile(rf"{prefix}[^\d$]{{0,{gap}}}{MONEY_PATTERN}", _I)


# ── Shared pattern families ──────────────────────────────────────────────

_TAM_PATTERNS = [_money_after(r"\btam"), _money_after(r"market\s+size")]
_ACV_PATTERNS = [_money_after(r"\bacv"), _money_after(r"average\s+contract\s+value")]
_COMMITTED_PATTERNS = [
    _money_after(r"committed"),
    _money_after(r"commitments?"),
    _money_after(r"raised\s+so\s+far"),
]
_VALUATION_PATTERNS = [
    _money_after(r"valuation"),
    _money_after(r"post[-\s]?money"),
    _money_after(r"pre[-\s]?money"),
]
_LEAD_PATTERNS = [
    re.compile(r"lead\s+investor[^:\n]{0,20}[:\-]\s*([^\n]{3,120})", _I),
    re.compile(r"lead\s+vc[^:\n]{0,20}[:\-]\s*([^\n]{3,120})", _I),
    re.compile(r"lead\s+information[^:\n]{0,20}[:\-]\s*([^\n]{3,120})", _I),
]
_POST_FUNDING_RUNWAY_PATTERNS = [
    re.compile(r"post[-\s]?funding\s+runway[^:\n]{0,20}[:\-]\s*([^\n]{2,80})", _I),
    re.compile(r"runway\s+post[-\s]?funding[^:\n]{0,20}[:\-]\s*([^\n]{2,80})", _I),
    re.compile(r"target[^:\n]{0,30}runway[^:\n]{0,20}[:\-]\s*([^\n]{2,80})", _I),
    re.compile(r"target[^:\n]{0,20}[:\-]?\s*(\d+(?:\.\d+)?\s*(?:months?|mos?))\s+runway", _I),
    re.compile(
        r"(\d+(?:\.\d+)?\s*(?:months?|mos?))\s+runway[^.\n]{0,40}"
        r"(?:post[-\s]?funding|after\s+funding|after\s+raise)",
        _I,
    ),
]
_CURRENT_RUNWAY_PATTERNS = [re.compile(r"current\s+runway[^:\n]{0,20}[:\-]\s*([^\n]{2,80})", _I)]
_GENERIC_RUNWAY_PATTERNS = [re.compile(r"runway[^:\n]{0,20}[:\-]\s*([^\n]{2,80})", _I)]
_YOY_PATTERNS = [
    re.compile(r"(\d+(?:\.\d+)?%)\s*(?:yoy|year[-\s]?over[-\s]?year)", _I),
    re.compile(r"yoy\s+growth[^0-9]{0,20}(\d+(?:\.\d+)?%)", _I),
    re.compile(r"(\d+(?:\.\d+)?)x\s*(?:growth\s*)?(?:yoy|year[-\s]?over[-\s]?year)", _I),
    re.compile(r"(?:yoy|year[-\s]?over[-\s]?year)[^0-9]{0,20}(\d+(?:\.\d+)?)x", _I),
]

_RAISE_LINE_RE = re.compile(r"\b(raising|raise|funding\s+sought|seeking\s+to\s+raise|target\s+raise|committed)\b")
_ACTUAL_ARR_RE = re.compile(r"\b(contracted|booked|current|actual)\s+arr\b")
_ARR_SEARCH_PASSES = [
    re.compile(r"contracted\s+arr", _I),
    re.compile(r"\bcarr\b", _I),
    re.compile(r"\b(booked\s+)?arr\b", _I),
]
_YEAR_RE = re.compile(r"\b(20\d{2})\b")
_YEAR_MONEY_RE = re.compile(r"(\$[\d,.]+\s?[kmb]?)", _I)
_RUNWAY_STRIP_RE = re.compile(r"^[\s:;-]+|\s+$")


# ---------------------------------------------------------------------------
# ARR helpers
# ---------------------------------------------------------------------------
def pick_arr_value_from_text(text: str) -> Optional[str]:
    """Pick the most credible current-ARR money token from *text*.

    Passes run in order (contracted ARR, CARR, ARR); within a pass each
    candidate line is ranked and the first token of the best line wins.
    Ties go to the line with the latest year, then to the earliest line.
    """
    lines = [line.strip() for line in text.split("\n") if line.strip()]

    def _best_on_lines(matcher: re.Pattern) -> Optional[str]:
        best_token: Optional[str] = None
        best_score: Optional[int] = None
        best_year = 0
        for line in lines:
            if not matcher.search(line):
                continue
            lowered = line.lower()
            if _RAISE_LINE_RE.search(lowered) and not _ACTUAL_ARR_RE.search(lowered):
                continue
            if has_projection_hint(line):
                continue
            tokens = extract_money_tokens(line)
            if not tokens:
                continue
            score = (
                (40 if _ACTUAL_ARR_RE.search(lowered) else 0)
                + (15 if re.search(r"\bpaid\s+customers?\b", lowered) else 0)
                + (10 if re.search(r"\barr\b", lowered) else 0)
                - (5 if re.search(r"\b(potential|possible|roughly|about)\b", lowered) else 0)
            )
            year = max((int(y) for y in _YEAR_RE.findall(line)), default=0)
            if best_score is None or score > best_score or (score == best_score and year > best_year):
                best_token, best_score, best_year = tokens[0], score, year
        return best_token

    for matcher in _ARR_SEARCH_PASSES:
        token = _best_on_lines(matcher)
        if token:
            return token
    return None


def extract_yearly_arr_values(text: str, *, current_year: Optional[int] = None) -> list[tuple[int, float]]:
    """(year, value) pairs from non-projected ARR lines, one per year, ascending."""
    current_year = current_year or datetime.now().year
    by_year: dict[int, float] = {}
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line or has_projection_hint(line):
            continue
        if not re.search(r"arr|annual recurring revenue", line, _I):
            continue
        years = [int(m) for m in _YEAR_RE.findall(line)]
        amounts = _YEAR_MONEY_RE.findall(line)
        for year, amount in zip(years, amounts):
            parsed = parse_money_to_number(amount)
            if parsed and year <= current_year:
                if year not in by_year or parsed > by_year[year]:
                    by_year[year] = parsed
    return sorted(by_year.items())


def derive_yoy_from_yearly_arr(text: str) -> Optional[str]:
    yearly = extract_yearly_arr_values(text)
    if len(yearly) < 2:
        return None
    (_, previous), (_, latest) = yearly[-2], yearly[-1]
    if previous <= 0:
        return None
    return f"{round((latest - previous) / previous * 100)}%"


def _money_or_none(raw: Optional[str]) -> Optional[str]:
    if not is_likely_money_token(raw):
        return None
    return normalize_money_token(raw) or raw


def _clean_runway(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return _RUNWAY_STRIP_RE.sub("", raw) or None


def _multiple_suffix(value: Optional[str]) -> Optional[str]:
    if value and re.fullmatch(r"\d+(\.\d+)?", value):
        return f"{value}x"
    return value


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------
def derive_metrics_from_facts(
    extracted_facts: str,
    external_intel: Optional[ExternalMarketIntelligence] = None,
) -> MetricSet:
    """Metrics from the structured fact summary, backed by market intel for TAM/growth."""
    non_projected = filter_out_projected_lines(extracted_facts)

    arr = pick_arr_value_from_text(non_projected) or first_regex_match(
        extracted_facts, [_money_after(r"booked\s+arr")]
    )
    tam_from_facts = first_regex_match(extracted_facts, _TAM_PATTERNS)
    tam_from_external = None
    if external_intel is not None:
        tam_sam_som = external_intel.tam_sam_som
        tam_from_external = next(
            (
                candidate
                for candidate in (tam_sam_som.independent_estimate.tam, tam_sam_som.company_claim.tam)
                if candidate and not is_placeholder_metric_value(candidate)
            ),
            None,
        )
    tam = tam_from_facts or tam_from_external
    acv = first_regex_match(extracted_facts, _ACV_PATTERNS)
    funding = first_regex_match(extracted_facts, [
        _money_after(r"(?:raising|raise|funding\s+sought|seeking\s+to\s+raise|target\s+raise)", 30),
        _money_after(r"\braising", 15),
    ])
    cash_on_hand = first_regex_match(extracted_facts, [
        _money_after(r"cash\s+on\s+hand"),
        _money_after(r"cash"),
    ])
    committed = first_regex_match(extracted_facts, _COMMITTED_PATTERNS)
    valuation = first_regex_match(extracted_facts, _VALUATION_PATTERNS)
    lead = first_regex_match(extracted_facts, _LEAD_PATTERNS)
    post_funding_runway = first_regex_match(extracted_facts, _POST_FUNDING_RUNWAY_PATTERNS)
    current_runway = first_regex_match(extracted_facts, _CURRENT_RUNWAY_PATTERNS)
    if not current_runway and not post_funding_runway:
        current_runway = first_regex_match(extracted_facts, _GENERIC_RUNWAY_PATTERNS)

    yoy = _multiple_suffix(first_regex_match(extracted_facts, _YOY_PATTERNS))
    if not yoy:
        yoy = derive_yoy_from_yearly_arr(non_projected)

    funding_value = _money_or_none(funding)
    cash_value = _money_or_none(cash_on_hand)
    if funding_value and cash_value and normalize_money_token(funding_value) == normalize_money_token(cash_value):
        funding_value = None

    market_growth = None
    if external_intel is not None:
        cagr = external_intel.market_growth.estimated_cagr
        if cagr and not is_placeholder_metric_value(cagr):
            market_growth = cagr

    return MetricSet(
        arr=make_auto_metric(_money_or_none(arr), "facts"),
        tam=make_auto_metric(_money_or_none(tam), "facts" if tam_from_facts else "market_research"),
        market_growth_rate=make_auto_metric(market_growth, "market_research"),
        acv=make_auto_metric(_money_or_none(acv), "facts"),
        yoy_growth_rate=make_auto_metric(yoy, "facts"),
        funding_amount=make_auto_metric(funding_value, "facts"),
        committed=make_auto_metric(_money_or_none(committed), "facts"),
        valuation=make_auto_metric(_money_or_none(valuation), "facts"),
        lead=make_auto_metric(lead, "facts"),
        current_runway=make_auto_metric(_clean_runway(current_runway), "facts"),
        post_funding_runway=make_auto_metric(_clean_runway(post_funding_runway), "facts"),
    )


def notes_to_text(notes: list[DiligenceNote]) -> str:
    return "\n".join(f"{note.category or ''}\n{note.title or ''}\n{note.content or ''}" for note in notes)


def derive_metrics_from_notes(notes: Optional[list[DiligenceNote]]) -> MetricSet:
    """Metrics from categorized analyst notes."""
    notes_text = notes_to_text(notes or [])
    if not notes_text.strip():
        return MetricSet()

    arr = pick_arr_value_from_text(notes_text) or first_regex_match(notes_text, [
        _money_after(r"annual\s+recurring\s+revenue"),
        _money_after(r"revenue"),
    ])
    tam = first_regex_match(notes_text, _TAM_PATTERNS)
    acv = first_regex_match(notes_text, _ACV_PATTERNS)
    yoy = first_regex_match(notes_text, [
        _YOY_PATTERNS[0],
        _YOY_PATTERNS[1],
        re.compile(r"growth[^0-9]{0,20}(\d+(?:\.\d+)?x\s*(?:qoq|yoy))", _I),
        _YOY_PATTERNS[2],
        _YOY_PATTERNS[3],
    ])
    market_growth = first_regex_match(notes_text, [
        re.compile(r"market\s+growth[^0-9]{0,20}(\d+(?:\.\d+)?%)", _I),
        re.compile(r"(\d+(?:\.\d+)?%)\s*(?:market\s+growth|market\s+cagr|industry\s+cagr)", _I),
        re.compile(r"cagr[^0-9]{0,20}(\d+(?:\.\d+)?%)", _I),
    ])
    funding = first_regex_match(notes_text, [
        _money_after(r"raise\s+amount"),
        _money_after(r"funding\s+amount"),
        _money_after(r"round"),
        _money_after(r"funding\s+sought"),
        _money_after(r"seeking\s+to\s+raise"),
    ])
    committed = first_regex_match(notes_text, _COMMITTED_PATTERNS)
    valuation = first_regex_match(notes_text, _VALUATION_PATTERNS)
    lead = first_regex_match(notes_text, _LEAD_PATTERNS)
    post_funding_runway = first_regex_match(notes_text, _POST_FUNDING_RUNWAY_PATTERNS)
    current_runway = first_regex_match(notes_text, _CURRENT_RUNWAY_PATTERNS)
    if not current_runway and not post_funding_runway:
        current_runway = first_regex_match(notes_text, _GENERIC_RUNWAY_PATTERNS)

    return MetricSet(
        arr=make_auto_metric(_money_or_none(arr), "notes"),
        tam=make_auto_metric(_money_or_none(tam), "notes"),
        market_growth_rate=make_auto_metric(market_growth, "notes"),
        acv=make_auto_metric(_money_or_none(acv), "notes"),
        yoy_growth_rate=make_auto_metric(_multiple_suffix(yoy), "notes"),
        funding_amount=make_auto_metric(_money_or_none(funding), "notes"),
        committed=make_auto_metric(_money_or_none(committed), "notes"),
        valuation=make_auto_metric(_money_or_none(valuation), "notes"),
        lead=make_auto_metric(lead, "notes"),
        current_runway=make_auto_metric(_clean_runway(current_runway), "notes"),
        post_funding_runway=make_auto_metric(_clean_runway(post_funding_runway), "notes"),
    )


def derive_metrics_from_raw_text(raw_text: str) -> MetricSet:
    """Raise amount and runway straight from document text."""
    text = raw_text or ""
    if not text.strip():
        return MetricSet()

    funding = first_regex_match(text, [
        _money_after(r"(?:raising|raise|funding\s+sought|seeking\s+to\s+raise|target\s+raise)", 30),
        _money_after(r"\bpre[-\s]?seed", 30),
        _money_after(r"\bseed\s+round", 30),
    ])
    post_funding_runway = first_regex_match(text, [
        re.compile(r"post[-\s]?funding\s+runway[^:\n]{0,30}[:\-]?\s*([^\n]{2,80})", _I),
        re.compile(r"runway\s+post[-\s]?funding[^:\n]{0,30}[:\-]?\s*([^\n]{2,80})", _I),
        re.compile(r"target[^:\n]{0,20}[:\-]?\s*(\d+(?:\.\d+)?\s*(?:months?|mos?))\s+runway", _I),
        re.compile(
            r"(\d+(?:\.\d+)?\s*(?:months?|mos?))\s+runway[^.\n]{0,50}"
            r"(?:post[-\s]?funding|after\s+funding|after\s+raise)",
            _I,
        ),
    ])
    current_runway = first_regex_match(text, [
        re.compile(r"current\s+runway[^:\n]{0,30}[:\-]?\s*([^\n]{2,80})", _I),
    ])

    return MetricSet(
        funding_amount=make_auto_metric(_money_or_none(funding), "facts"),
        current_runway=make_auto_metric(_clean_runway(current_runway), "facts"),
        post_funding_runway=make_auto_metric(_clean_runway(post_funding_runway), "facts"),
    )


def derive_all_metrics(
    *,
    source_of_truth: Optional[MetricSet],
    extracted_facts: str,
    notes: Optional[list[DiligenceNote]],
    raw_text: str,
    external_intel: Optional[ExternalMarketIntelligence],
) -> MetricSet:
    """Resolve metrics: persisted source of truth over facts over notes over raw text."""
    from_facts = derive_metrics_from_facts(extracted_facts, external_intel)
    from_notes = derive_metrics_from_notes(notes)
    from_raw = derive_metrics_from_raw_text(raw_text)
    combined = merge_metrics(from_facts, merge_metrics(from_notes, from_raw))
    return merge_metrics(source_of_truth, combined)
