"""Deterministic market sizing.

Two fallback tiers used by the external market estimator when the
reasoning service leaves TAM or growth unknown:

  1. **Evidence extraction**: scan research / fact lines for market-size or
     growth language and keep the largest qualifying value.
  2. **Sector heuristic**: fixed industry-keyword benchmarks with stated
     assumptions, always low confidence.

Also hosts the founder-vs-independent TAM comparison shared by the
estimator, the TAM analysis entry point, and TAM calibration.

Rules
-----
- NO API calls
- NO LLMs
- Fully deterministic
"""

from __future__ import annotations

import re
from typing import Optional

from ..constants import (
    EVIDENCE_SCAN_MAX_LINES,
    MAX_GROWTH_PERCENT,
    SECTOR_HEURISTICS,
    TAM_OVERSTATED_RATIO,
    TAM_SOMEWHAT_HIGH_RATIO,
    TAM_SOMEWHAT_LOW_RATIO,
    TAM_UNDERSTATED_RATIO,
)
from ..schemas.market_schema import ExternalMarketIntelligence
from ..schemas.metrics_schema import MetricSet
from ..schemas.research_schema import CompanyEnrichmentData
from .metric_parsing import has_usable_metric_value, is_placeholder_metric_value, parse_magnitude_value

_TAM_LINE_RE = re.compile(r"(tam|sam|som|market\s+size|addressable\s+market|total\s+addressable)", re.IGNORECASE)
_TAM_MONEY_RE = re.compile(r"(\$?\d[\d,.]*(?:\.\d+)?\s?(?:trillion|billion|million|thousand|t|b|m|k))", re.IGNORECASE)
_GROWTH_LINE_RE = re.compile(
    r"(cagr|market\s+growth|industry\s+growth|growth\s+rate|year[-\s]?over[-\s]?year)",
    re.IGNORECASE,
)
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")


def _scan_lines(text: str) -> list[str]:
    lines = [line.strip() for line in (text or "").split("\n")]
    return [line for line in lines if line][:EVIDENCE_SCAN_MAX_LINES]


# ---------------------------------------------------------------------------
# Tier 2: evidence extraction
# ---------------------------------------------------------------------------
def extract_tam_from_evidence_text(text: str) -> Optional[str]:
    """Highest-magnitude money token on a market-size line, as written."""
    best_raw: Optional[str] = None
    best_value = 0.0
    for line in _scan_lines(text):
        if not _TAM_LINE_RE.search(line):
            continue
        for match in _TAM_MONEY_RE.finditer(line):
            raw = match.group(1).strip()
            parsed = parse_magnitude_value(raw)
            if parsed and parsed > best_value:
                best_raw, best_value = raw, parsed
    return best_raw


def extract_market_growth_from_evidence_text(text: str) -> Optional[str]:
    """Highest percentage in [0, 150] on a growth line, rounded to an integer."""
    best: Optional[float] = None
    for line in _scan_lines(text):
        if not _GROWTH_LINE_RE.search(line):
            continue
        for match in _PERCENT_RE.finditer(line):
            pct = float(match.group(1))
            if pct < 0 or pct > MAX_GROWTH_PERCENT:
                continue
            if best is None or pct > best:
                best = pct
    return f"{int(round(best))}%" if best is not None else None


# ---------------------------------------------------------------------------
# Tier 3: sector heuristics
# ---------------------------------------------------------------------------
def _find_sector(text: str) -> Optional[dict]:
    lower = (text or "").lower()
    for heuristic in SECTOR_HEURISTICS:
        if heuristic["pattern"].search(lower):
            return heuristic
    return None


def estimate_tam_from_industry_context(text: str) -> Optional[dict]:
    """{'tam', 'method', 'assumptions'} for the first matching sector, else None."""
    hit = _find_sector(text)
    if hit is None:
        return None
    return {"tam": hit["tam"], "method": hit["method"], "assumptions": list(hit["assumptions"])}


def estimate_market_growth_from_industry_context(text: str) -> Optional[str]:
    hit = _find_sector(text)
    return hit["growth"] if hit else None


# ---------------------------------------------------------------------------
# TAM comparison
# ---------------------------------------------------------------------------
def tam_ratio(founder_tam: Optional[str], independent_tam: Optional[str]) -> Optional[float]:
    founder_value = parse_magnitude_value(founder_tam)
    independent_value = parse_magnitude_value(independent_tam)
    if founder_value and independent_value and independent_value > 0:
        return founder_value / independent_value
    return None


def derive_tam_alignment(
    founder_tam: Optional[str],
    independent_tam: Optional[str],
    fallback: Optional[str] = None,
) -> str:
    """Classify founder/independent TAM ratio.

    >1.35 overstated, >1.1 somewhat_aligned, <0.65 understated,
    <0.9 somewhat_aligned, else aligned. Missing side -> fallback or unknown.
    """
    ratio = tam_ratio(founder_tam, independent_tam)
    if ratio is None:
        return fallback or "unknown"
    if ratio > TAM_OVERSTATED_RATIO:
        return "overstated"
    if ratio > TAM_SOMEWHAT_HIGH_RATIO:
        return "somewhat_aligned"
    if ratio < TAM_UNDERSTATED_RATIO:
        return "understated"
    if ratio < TAM_SOMEWHAT_LOW_RATIO:
        return "somewhat_aligned"
    return "aligned"


def resolve_founder_tam_claim(
    metrics: Optional[MetricSet],
    enrichment: Optional[CompanyEnrichmentData],
    intel: Optional[ExternalMarketIntelligence],
) -> Optional[str]:
    """Founder TAM: trusted metric (manual / notes / CRM), else intake range, else intel claim."""
    metric_tam = metrics.tam if metrics is not None else None
    if (
        has_usable_metric_value(metric_tam)
        and (metric_tam.source == "manual" or metric_tam.source_detail in ("notes", "hubspot"))
    ):
        return metric_tam.value
    tam_range = enrichment.tam_range if enrichment is not None else None
    if not is_placeholder_metric_value(tam_range):
        return tam_range
    claim = intel.tam_sam_som.company_claim.tam if intel is not None else None
    if not is_placeholder_metric_value(claim):
        return claim
    return None
