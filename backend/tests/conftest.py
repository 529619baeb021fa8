"""Shared fixtures: an in-memory reasoning service and a rubric."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from diligence.agents.diligence_agent.prompts import (
    FACT_EXTRACTION_SYSTEM,
    INVESTOR_QUESTIONING_SYSTEM,
    JSON_ANALYST_SYSTEM,
    MARKET_INTEL_SYSTEM,
    MARKET_SIZING_SYSTEM,
    NOTES_SUMMARY_SYSTEM,
)
from diligence.config import ScoringConfig
from diligence.schemas.criteria_schema import CriteriaSchema
from diligence.services.openai_client import LLMError


class FakeLLMClient:
    """LLMClient double keyed by call kind.

    Kinds: facts, market, sizing, notes, questioning, analyst (category
    chunks and synthesis), scoring (primary). A kind maps to one response
    or a list consumed in order; exceptions are raised. Calls for a kind
    with nothing queued fail with a plain LLMError.
    """

    def __init__(self, **responses):
        self.responses = {kind: list(value) if isinstance(value, list) else [value]
                          for kind, value in responses.items()}
        self.calls = []

    def on(self, kind, *responses):
        self.responses.setdefault(kind, []).extend(responses)
        return self

    def calls_for(self, kind):
        return [call for call in self.calls if call["kind"] == kind]

    @staticmethod
    def kind_of(system):
        if system.startswith(FACT_EXTRACTION_SYSTEM):
            return "facts"
        return {
            MARKET_INTEL_SYSTEM: "market",
            MARKET_SIZING_SYSTEM: "sizing",
            NOTES_SUMMARY_SYSTEM: "notes",
            INVESTOR_QUESTIONING_SYSTEM: "questioning",
            JSON_ANALYST_SYSTEM: "analyst",
        }.get(system, "scoring")

    async def complete_json(self, *, system, user, temperature, max_tokens=None):
        kind = self.kind_of(system)
        self.calls.append({"kind": kind, "system": system, "user": user, "temperature": temperature})
        queue = self.responses.get(kind) or []
        if not queue:
            raise LLMError(f"No fake response queued for {kind}")
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


async def no_sleep(_seconds):
    return None


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def config():
    return ScoringConfig(
        openai_api_key="test-key",
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        chunk_delay_seconds=0.0,
    )


@pytest.fixture
def criteria():
    return CriteriaSchema.model_validate({
        "categories": [
            {
                "name": "Team",
                "weight": 40,
                "criteria": [
                    {"name": "Founder Experience", "description": "Relevant operating history"},
                    {"name": "Technical Depth", "description": "Ability to build the product"},
                ],
            },
            {
                "name": "Market",
                "weight": 35,
                "criteria": [
                    {"name": "Market Size", "description": "TAM and growth"},
                ],
            },
            {
                "name": "Traction",
                "weight": 25,
                "criteria": [
                    {"name": "Revenue", "description": "Current ARR and growth"},
                ],
            },
        ]
    })


# ---------------------------------------------------------------------------
# Model payloads for the rubric above
# ---------------------------------------------------------------------------
def model_criterion(name, score):
    return {
        "name": name,
        "score": score,
        "confidence": 80,
        "evidence_status": "supported",
        "evidence": [f"{name}: deck slide with 3 concrete data points"],
        "reasoning": f"{name} is backed by 3 customer references and a signed $40K contract.",
    }


def model_categories():
    """Team 75, Market 60, Traction 60 -> overall 66 under the fixture weights."""
    return [
        {"category": "Team", "score": 75,
         "criteria": [model_criterion("Founder Experience", 80), model_criterion("Technical Depth", 70)]},
        {"category": "Market", "score": 60, "criteria": [model_criterion("Market Size", 60)]},
        {"category": "Traction", "score": 60, "criteria": [model_criterion("Revenue", 60)]},
    ]


def primary_scoring_response(**extra):
    return {
        "categories": model_categories(),
        "data_quality": 80,
        "thesis_answers": {
            "problem_solving": "Manual freight invoice audits",
            "concerning": ["Retention data is missing for the 2024 customer cohort"],
        },
        "company_one_liner": "Freight audit automation for mid-market shippers",
        "industry": "Logistics",
        "founders": [{"name": "Ada", "title": "CEO"}],
        **extra,
    }
