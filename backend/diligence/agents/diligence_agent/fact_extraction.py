"""Pass 1: structured fact extraction.

Turns raw document text into a fixed markdown block of company facts that
every later prompt and metric extractor reads. Extraction failures never
abort scoring; the raw documents are used instead.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from ...constants import FACT_EXTRACTION_DOC_SLICE, RAW_FACTS_FALLBACK_SLICE
from ...schemas.research_schema import ScoringDocument
from ...services.context_assembler import truncate_documents
from ...services.metric_parsing import normalize_money_token
from ...services.normalization_engine import model_field
from ...services.openai_client import LLMClient, LLMError
from .prompts import (
    FACT_EXTRACTION_SYSTEM,
    FACT_EXTRACTION_URL_ONLY_NOTE,
    URL_ONLY_DOC_NAME,
    build_fact_extraction_prompt,
)

logger = logging.getLogger(__name__)

_EXPLICIT_RAISE_RE = re.compile(
    r"(raise\s+amount|raising\s+\$|funding\s+amount|funding\s+sought|seeking\s+to\s+raise"
    r"|round\s+(size|amount)|we\s+are\s+raising|currently\s+raising)",
    re.IGNORECASE,
)
_CASH_ON_HAND_RE = re.compile(
    r"cash\s+on\s+hand[^$0-9]{0,20}(\$?\s*\d[\d,]*(?:\.\d+)?\s?(?:[kmb]|thousand|million|billion)?)",
    re.IGNORECASE,
)


def is_url_only(documents: list[ScoringDocument]) -> bool:
    return len(documents) == 1 and documents[0].file_name == URL_ONLY_DOC_NAME


# ── Formatting helpers ──────────────────────────────────────────────────

def _text(value: Any, fallback: str) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _display_list(value: Any, fallback: str = "Not specified") -> str:
    if isinstance(value, list):
        cleaned = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return ", ".join(cleaned) if cleaned else fallback
    return _text(value, fallback)


def _section(facts: dict, snake: str, camel: str) -> dict:
    value = model_field(facts, snake, camel)
    return value if isinstance(value, dict) else {}


def raising_for_prompt(raising_raw: str, context_text: str) -> str:
    """Hide a 'raising' value that is really the cash-on-hand figure."""
    raising_raw = (raising_raw or "").strip()
    if re.search(r"cash\s+on\s+hand", raising_raw, re.IGNORECASE):
        return "Not disclosed"

    cash_match = _CASH_ON_HAND_RE.search(context_text or "")
    if raising_raw and cash_match and not _EXPLICIT_RAISE_RE.search(context_text or ""):
        raising_money = normalize_money_token(raising_raw)
        cash_money = normalize_money_token(cash_match.group(1))
        if raising_money is not None and raising_money == cash_money:
            return "Not disclosed"

    return raising_raw or "Not disclosed"


def format_extracted_facts(facts: dict, raising: str, source_names: list[str]) -> str:
    """Render the extraction JSON as the markdown facts block used by scoring prompts."""
    overview = _section(facts, "company_overview", "companyOverview")
    problem = _section(facts, "problem", "problem")
    solution = _section(facts, "solution", "solution")
    customers = _section(facts, "customers", "customers")
    market = _section(facts, "market", "market")
    traction = _section(facts, "traction", "traction")
    team = _section(facts, "team", "team")
    business_model = _section(facts, "business_model", "businessModel")
    financials = _section(facts, "financials", "financials")
    go_to_market = _section(facts, "go_to_market", "goToMarket")
    risks = _section(facts, "risks", "risks")
    data_quality = _section(facts, "data_quality", "dataQuality")

    founders = model_field(team, "founders") or []
    founder_lines = "\n".join(
        f"- **{_text(founder.get('name'), 'Unnamed founder')}**: "
        f"{_text(founder.get('background'), 'Background not specified')}"
        for founder in founders
        if isinstance(founder, dict)
    ) or "- Founder information not available"

    completeness = model_field(data_quality, "score")
    completeness = completeness if isinstance(completeness, (int, float)) and completeness else 50

    return f"""
## Extracted Company Facts (Structured Analysis)

### Company Overview
- **What They Do**: {_text(model_field(overview, 'what_they_do', 'whatTheyDo'), 'Not specified')}
- **Industry**: {_text(model_field(overview, 'industry'), 'Not specified')}
- **Stage**: {_text(model_field(overview, 'stage'), 'Not specified')}

### Problem & Solution
- **Problem**: {_text(model_field(problem, 'description'), 'Not specified')}
- **Target Market**: {_text(model_field(problem, 'target_market', 'targetMarket'), 'Not specified')}
- **Solution**: {_text(model_field(solution, 'product'), 'Not specified')}
- **Approach**: {_text(model_field(solution, 'approach'), 'Not specified')}
- **Differentiation**: {_text(model_field(solution, 'differentiation'), 'Not specified')}

### Customers & Market
- **Ideal Customer Profile**: {_text(model_field(customers, 'ideal_customer_profile', 'idealCustomerProfile'), 'Not specified')}
- **Target Segments**: {_display_list(model_field(customers, 'target_segments', 'targetSegments'))}
- **TAM/SAM**: {_text(model_field(market, 'tam'), 'Not specified')}
- **Key Competitors**: {_display_list(model_field(market, 'competitors'))}

### Traction & Metrics
- **Revenue**: {_text(model_field(traction, 'revenue'), 'Not disclosed')}
- **Customers**: {_text(model_field(traction, 'customers'), 'Not disclosed')}
- **Growth**: {_text(model_field(traction, 'growth'), 'Not disclosed')}
- **Partnerships**: {_display_list(model_field(traction, 'partnerships'), 'None mentioned')}

### Team
{founder_lines}
- **Domain Expertise**: {_text(model_field(team, 'domain_expertise', 'domainExpertise'), 'Not specified')}

### Business Model & Financials
- **Revenue Model**: {_text(model_field(business_model, 'revenue_model', 'revenueModel'), 'Not specified')}
- **Pricing**: {_text(model_field(business_model, 'pricing'), 'Not specified')}
- **Unit Economics**: {_text(model_field(business_model, 'unit_economics', 'unitEconomics'), 'Not disclosed')}
- **Raising**: {raising}
- **Valuation**: {_text(model_field(financials, 'valuation'), 'Not disclosed')}

### Go-to-Market
- **Strategy**: {_text(model_field(go_to_market, 'strategy'), 'Not specified')}
- **Channels**: {_display_list(model_field(go_to_market, 'channels'))}

### Key Risks Identified
- **Execution Risks**: {_display_list(model_field(risks, 'execution'), 'None identified')}
- **Market Risks**: {_display_list(model_field(risks, 'market'), 'None identified')}
- **Competitive Risks**: {_display_list(model_field(risks, 'competition'), 'None identified')}

### Data Quality Assessment
- **Completeness Score**: {completeness}/100
- **Missing Information**: {_display_list(model_field(data_quality, 'missing_information', 'missingInformation'), 'None noted')}

---
**SOURCE DOCUMENTS**: {', '.join(source_names)}
"""


def raw_documents_fallback(documents: list[ScoringDocument]) -> str:
    return "\n\n".join(f"### {doc.file_name}\n{doc.text[:RAW_FACTS_FALLBACK_SLICE]}" for doc in documents)


# ── Entry point ─────────────────────────────────────────────────────────

async def extract_company_facts(
    documents: list[ScoringDocument],
    company_name: str,
    *,
    llm: LLMClient,
    max_chars: int,
    company_url: Optional[str] = None,
    user_notes: Optional[str] = None,
) -> str:
    """Pass 1: extract structured facts; falls back to raw document text on failure."""
    logger.info("[FACTS] Extracting structured facts from %d document(s)", len(documents))

    url_only = is_url_only(documents)
    truncated = truncate_documents(documents, max_chars)
    documents_text = "\n\n".join(
        f"### {doc.file_name} ({doc.type})\n{doc.text[:FACT_EXTRACTION_DOC_SLICE]}" for doc in truncated
    )
    prompt = build_fact_extraction_prompt(
        company_name,
        documents_text,
        company_url=company_url,
        user_notes=user_notes,
        url_only=url_only,
    )
    system = FACT_EXTRACTION_SYSTEM + (FACT_EXTRACTION_URL_ONLY_NOTE if url_only else "")

    try:
        facts = await llm.complete_json(system=system, user=prompt, temperature=0.2)
    except LLMError as exc:
        logger.warning("[FACTS] Fact extraction failed, using raw documents for scoring: %s", exc)
        return raw_documents_fallback(documents)

    financials = _section(facts, "financials", "financials")
    raising = raising_for_prompt(
        _text(model_field(financials, "raising"), ""),
        f"{documents_text}\n{user_notes or ''}",
    )
    formatted = format_extracted_facts(facts, raising, [doc.file_name for doc in truncated])
    logger.info("[FACTS] Pass 1 complete: extracted structured facts (%d chars)", len(formatted))
    return formatted
