"""Metric merge engine.

merge_metrics(existing, derived) resolves every metric slot independently:

  1. existing manual, non-placeholder  -> keep existing
  2. derived non-placeholder           -> fresh value wins over stale
  3. existing non-placeholder          -> keep existing
  4. existing manual with any text     -> keep (manual placeholder stays)
  5. whichever exists                  -> keep it
  6. nothing                           -> None

Rules
-----
- NO API calls
- NO LLMs
- merge_metrics(m, m) == m
"""

from __future__ import annotations

from typing import Optional

from ..constants import METRIC_SLOTS
from ..schemas.metrics_schema import MetricSet, MetricValue
from .metric_parsing import has_usable_metric_value, normalize_metric


def merge_metric_value(
    existing: Optional[MetricValue],
    derived: Optional[MetricValue],
) -> Optional[MetricValue]:
    existing = normalize_metric(existing)
    derived = normalize_metric(derived)

    if existing is not None and existing.source == "manual" and has_usable_metric_value(existing):
        return existing
    if has_usable_metric_value(derived):
        return derived
    if has_usable_metric_value(existing):
        return existing
    if existing is not None and existing.source == "manual":
        return existing
    return existing or derived


def merge_metrics(existing: Optional[MetricSet], derived: Optional[MetricSet]) -> MetricSet:
    """Field-by-field merge; metric sets are never merged as a whole blob."""
    existing = existing or MetricSet()
    derived = derived or MetricSet()
    merged = {
        slot: merge_metric_value(getattr(existing, slot), getattr(derived, slot))
        for slot in METRIC_SLOTS
    }
    return MetricSet(**merged)
