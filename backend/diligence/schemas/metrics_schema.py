"""Pydantic schemas for canonical diligence metrics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

MetricSource = Literal["manual", "auto"]
MetricSourceDetail = Literal["notes", "facts", "hubspot", "manual", "market_research"]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetricValue(BaseModel):
    """One canonical metric value with provenance."""

    value: str = Field(..., description="Raw metric text, e.g. '$1.2M' or '18 months'")
    source: MetricSource = Field(default="auto", description="manual outranks auto when both are usable")
    source_detail: Optional[MetricSourceDetail] = Field(default=None, description="Where an auto value came from")
    updated_at: str = Field(default_factory=_utcnow_iso, description="ISO-8601 timestamp of last change")


class MetricSet(BaseModel):
    """Canonical key metrics for a company; every slot is optional."""

    arr: Optional[MetricValue] = None
    tam: Optional[MetricValue] = None
    market_growth_rate: Optional[MetricValue] = None
    acv: Optional[MetricValue] = None
    yoy_growth_rate: Optional[MetricValue] = None
    funding_amount: Optional[MetricValue] = None
    committed: Optional[MetricValue] = None
    valuation: Optional[MetricValue] = None
    deal_terms: Optional[MetricValue] = None
    lead: Optional[MetricValue] = None
    current_runway: Optional[MetricValue] = None
    post_funding_runway: Optional[MetricValue] = None
    location: Optional[MetricValue] = None
