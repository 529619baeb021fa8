"""Metric text grammar: placeholders, money tokens, percentages, magnitudes.

Rules
-----
- NO API calls
- NO DB writes
- NO LLMs
- Pure string parsing, fully deterministic
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from ..constants import (
    GROWTH_BAND_HIGH_MIN,
    GROWTH_BAND_LOW_MIN,
    GROWTH_BAND_MODERATE_MIN,
    PLACEHOLDER_METRIC_VALUES,
)
from ..schemas.metrics_schema import MetricValue

# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------
MONEY_PATTERN = (
    r"(\$\s*\d[\d,.]*(?:\.\d+)?\s?(?:(?:[kmb]\b)|thousand|million|billion)?"
    r"|\d[\d,.]*(?:\.\d+)?\s?(?:(?:k|m|b)\b|thousand|million|billion)"
    r"|\d{4,})"
)
_MONEY_RE = re.compile(MONEY_PATTERN, re.IGNORECASE)

_PROJECTION_RE = re.compile(
    r"\b(projected|projection|forecast|plan|planned|target|expected|estimate|estimated|goal|outlook"
    r"|pipeline|towards?|aim(?:ing)?|plan\s+to\s+reach|run[-\s]?rate)\b",
    re.IGNORECASE,
)

_PLACEHOLDER_STRIP_RE = re.compile(r"[\s$:_-]")
_PERCENT_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*%")
_MAGNITUDE_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*(trillion|billion|million|thousand|t|b|m|k)?", re.IGNORECASE)
_MONEY_NUMBER_RE = re.compile(r"^(\d+(?:\.\d+)?)([kmb])?$")

_MAGNITUDE_UNITS = {
    "trillion": 1_000_000_000_000, "t": 1_000_000_000_000,
    "billion": 1_000_000_000, "b": 1_000_000_000,
    "million": 1_000_000, "m": 1_000_000,
    "thousand": 1_000, "k": 1_000,
}


# ---------------------------------------------------------------------------
# Placeholders and metric values
# ---------------------------------------------------------------------------
def is_placeholder_metric_value(raw: Optional[str]) -> bool:
    """True for empty text and for 'unknown', 'n/a', 'not disclosed' and friends."""
    if not raw:
        return True
    compact = _PLACEHOLDER_STRIP_RE.sub("", raw.strip().lower())
    return compact in PLACEHOLDER_METRIC_VALUES


def has_usable_metric_value(metric: Optional[MetricValue]) -> bool:
    return bool(metric is not None and metric.value and not is_placeholder_metric_value(metric.value))


def normalize_metric(metric: Optional[MetricValue]) -> Optional[MetricValue]:
    """Trim the value; drop metrics whose value is empty."""
    if metric is None or not metric.value or not metric.value.strip():
        return None
    return MetricValue(
        value=metric.value.strip(),
        source=metric.source or "auto",
        source_detail=metric.source_detail,
        updated_at=metric.updated_at or datetime.now(timezone.utc).isoformat(),
    )


def make_auto_metric(value: Optional[str], source_detail: str) -> Optional[MetricValue]:
    """Build an auto-sourced metric, or None when *value* is empty."""
    if not value or not value.strip():
        return None
    return MetricValue(value=value.strip(), source="auto", source_detail=source_detail)


# ---------------------------------------------------------------------------
# Regex helpers
# ---------------------------------------------------------------------------
def first_regex_match(text: str, patterns: list[re.Pattern]) -> Optional[str]:
    """Return group 1 of the first pattern that matches, stripped."""
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def has_projection_hint(line: str) -> bool:
    return bool(_PROJECTION_RE.search(line))


def filter_out_projected_lines(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line and not has_projection_hint(line))


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------
def normalize_money_token(raw: Optional[str]) -> Optional[str]:
    """'1.2 million' -> '$1.2 M'; always '$'-prefixed."""
    if not raw or not raw.strip():
        return None
    normalized = raw.strip()
    normalized = re.sub(r"\bthousand\b", "K", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\bmillion\b", "M", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\bbillion\b", "B", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    if not normalized.startswith("$"):
        normalized = f"${normalized}"
    return normalized


def is_likely_money_token(raw: Optional[str]) -> bool:
    """Reject multiples ('3x'); accept '$', magnitude words, or bare numbers >= 1000."""
    if not raw:
        return False
    value = raw.strip().lower()
    if not value:
        return False
    if re.search(r"x\b", value):
        return False
    if "$" in value:
        return True
    if re.search(r"\b(k|m|b|thousand|million|billion)\b", value):
        return True
    if re.search(r"\d\s?[kmb]\b", value):
        return True
    cleaned = re.sub(r"[,\s]", "", value)
    if not re.fullmatch(r"-?\d+(\.\d+)?", cleaned):
        return False
    return abs(float(cleaned)) >= 1000


def is_bare_number_token(raw: str) -> bool:
    """True for a plain number with no '$' and no magnitude ('2024', '1,500')."""
    return bool(re.fullmatch(r"-?[\d,.]+", raw.strip()))


def extract_money_tokens(text: str) -> list[str]:
    """Unique money-looking tokens in order of appearance.

    A bare number ('2024') only counts when its line has no '$' or
    magnitude token.
    """
    if not text:
        return []
    seen: list[str] = []
    for line in text.split("\n"):
        tokens = [
            token
            for token in ((match.group(1) or "").strip() for match in _MONEY_RE.finditer(line))
            if token and is_likely_money_token(token)
        ]
        if any(not is_bare_number_token(token) for token in tokens):
            tokens = [token for token in tokens if not is_bare_number_token(token)]
        for token in tokens:
            if token not in seen:
                seen.append(token)
    return seen


def parse_money_to_number(raw: Optional[str]) -> Optional[float]:
    """'$1.5M' -> 1_500_000.0; None when the text is not a plain money amount."""
    if not raw:
        return None
    cleaned = re.sub(r"[$,\s]", "", raw.strip().lower())
    match = _MONEY_NUMBER_RE.match(cleaned)
    if not match:
        return None
    multiplier = {"b": 1_000_000_000, "m": 1_000_000, "k": 1_000}.get(match.group(2) or "", 1)
    return float(match.group(1)) * multiplier


def parse_magnitude_value(raw: Optional[str]) -> Optional[float]:
    """First number in *raw* scaled by a trailing t/b/m/k or word unit."""
    if not raw:
        return None
    text = raw.lower().replace(",", "")
    match = _MAGNITUDE_RE.search(text)
    if not match:
        return None
    value = float(match.group(1))
    unit = (match.group(2) or "").lower()
    return value * _MAGNITUDE_UNITS.get(unit, 1)


def format_magnitude_money(value: Optional[float]) -> str:
    """Compact USD with at most one decimal: 30e9 -> '$30B', 2.55e6 -> '$2.6M'."""
    if not value:
        return "unknown"
    sign = "-" if value < 0 else ""
    amount = abs(value)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if amount >= threshold:
            return f"{sign}${_trim_decimal(round(amount / threshold, 1))}{suffix}"
    return f"{sign}${_trim_decimal(round(amount, 1))}"


def _trim_decimal(number: float) -> str:
    return f"{number:.1f}".rstrip("0").rstrip(".")


# ---------------------------------------------------------------------------
# Percentages and growth bands
# ---------------------------------------------------------------------------
def parse_percent_value(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    match = _PERCENT_RE.search(raw)
    if not match:
        return None
    return float(match.group(1))


def derive_market_growth_band(raw_rate: Optional[str]) -> str:
    """>=20% high, >=8% moderate, >=0% low, otherwise unknown."""
    pct = parse_percent_value(raw_rate)
    if pct is None:
        return "unknown"
    if pct >= GROWTH_BAND_HIGH_MIN:
        return "high"
    if pct >= GROWTH_BAND_MODERATE_MIN:
        return "moderate"
    if pct >= GROWTH_BAND_LOW_MIN:
        return "low"
    return "unknown"


def normalize_confidence_percent(value) -> int:
    """Fractions (<= 1) are scaled to percent; result clamped to 0-100."""
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if numeric != numeric or numeric in (float("inf"), float("-inf")):
        return 0
    if numeric <= 1:
        numeric *= 100
    return max(0, min(100, int(round(numeric))))


def is_unknown_text(value: Optional[str]) -> bool:
    if not value:
        return True
    normalized = value.strip().lower()
    return normalized in ("", "unknown", "n/a", "na")


def trim_trailing_punctuation(text: str) -> str:
    return re.sub(r"[.\s]+$", "", (text or "").strip()).strip()
