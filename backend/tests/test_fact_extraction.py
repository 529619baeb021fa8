"""Fact extraction tests — formatted facts block, cash-on-hand guard, raw fallback."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

from conftest import FakeLLMClient

from diligence.agents.diligence_agent.fact_extraction import (
    extract_company_facts,
    is_url_only,
    raising_for_prompt,
)
from diligence.agents.diligence_agent.prompts import FACT_EXTRACTION_URL_ONLY_NOTE, URL_ONLY_DOC_NAME
from diligence.schemas.research_schema import ScoringDocument
from diligence.services.openai_client import LLMError

DECK = ScoringDocument(file_name="deck.pdf", text="Acme automates freight audits. ARR: $1.2M", type="deck")


def _extract(llm, documents, **kwargs):
    return asyncio.run(extract_company_facts(documents, "Acme", llm=llm, max_chars=50_000, **kwargs))


class TestRaisingGuard:
    def test_cash_on_hand_is_not_a_raise(self):
        assert raising_for_prompt("$2M", "Cash on hand: $2M") == "Not disclosed"
        assert raising_for_prompt("Cash on hand $2M", "") == "Not disclosed"

    def test_explicit_raise_kept(self):
        assert raising_for_prompt("$2M", "We are raising $2M. Cash on hand: $2M") == "$2M"

    def test_empty(self):
        assert raising_for_prompt("", "anything") == "Not disclosed"


class TestExtractCompanyFacts:
    def test_formats_structured_facts(self):
        llm = FakeLLMClient(facts={
            "companyOverview": {"whatTheyDo": "Freight audit automation", "industry": "Logistics"},
            "financials": {"raising": "$3M"},
            "team": {"founders": [{"name": "Ada", "background": "Ex-Maersk ops lead"}]},
            "data_quality": {"score": 72},
        })
        facts = _extract(llm, [DECK])
        assert "- **What They Do**: Freight audit automation" in facts
        assert "- **Raising**: $3M" in facts
        assert "- **Ada**: Ex-Maersk ops lead" in facts
        assert "- **Completeness Score**: 72/100" in facts
        assert "**SOURCE DOCUMENTS**: deck.pdf" in facts
        assert llm.calls[0]["temperature"] == 0.2

    def test_llm_failure_falls_back_to_raw_documents(self):
        llm = FakeLLMClient(facts=LLMError("upstream timeout", status_code=504))
        facts = _extract(llm, [DECK])
        assert facts == "### deck.pdf\nAcme automates freight audits. ARR: $1.2M"

    def test_url_only_instructions(self):
        doc = ScoringDocument(file_name=URL_ONLY_DOC_NAME, text="Company: Acme\nURL: https://acme.test")
        assert is_url_only([doc])
        llm = FakeLLMClient(facts={})
        _extract(llm, [doc], company_url="https://acme.test")
        call = llm.calls[0]
        assert call["system"].endswith(FACT_EXTRACTION_URL_ONLY_NOTE)
        assert "CRITICAL: This is URL-only analysis" in call["user"]

    def test_user_notes_in_prompt(self):
        llm = FakeLLMClient(facts={})
        _extract(llm, [DECK], user_notes="Met the CEO at a logistics summit")
        assert "## Investor's Initial Notes:\nMet the CEO at a logistics summit" in llm.calls[0]["user"]
