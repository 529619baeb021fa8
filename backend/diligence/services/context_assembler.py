"""Prompt Context Assembler.

Builds every text section the scoring prompts are made of: document
truncation, criterion-level evidence snippets, and the formatted signals
(metrics, investors, team, industry, location, growth, synergy, necessity,
intake, external intelligence, analyst context).

Rules
-----
- NO API calls
- NO LLMs
- Optional inputs render an explicit "Unknown" line or an empty section,
  never raise
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from ..constants import (
    CRITERION_KEYWORD_STOPWORDS,
    DOCUMENT_PRIORITY,
    DOCUMENT_TRUNCATION_MARKER,
    NUMERIC_SNIPPET_BONUS,
    PROMPT_TRUNCATION_MARKER,
    RESEARCH_CONTEXT_DOC_NAMES,
    RESEARCH_DOC_SNIPPET_CHARS,
    SNIPPET_FACTS_CHARS,
    SNIPPET_MAX_CHARS,
    SNIPPET_MAX_PARTS_PER_DOC,
    SNIPPETS_PER_CRITERION,
)
from ..schemas.criteria_schema import CriteriaSchema
from ..schemas.market_schema import ExternalMarketIntelligence
from ..schemas.metrics_schema import MetricSet, MetricValue
from ..schemas.research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    NecessitySignal,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    ScoringDocument,
    TeamResearch,
)
from ..schemas.score_schema import DiligenceScore, ThesisAnswers
from .metric_parsing import derive_market_growth_band, has_usable_metric_value, normalize_confidence_percent

logger = logging.getLogger(__name__)

_TOKEN_CLEAN_RE = re.compile(r"[^a-z0-9\s]")
_NUMERIC_EVIDENCE_RE = re.compile(r"\$?\d+[kmb%]?", re.IGNORECASE)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
_INVESTOR_NUMBER_STRIP_RE = re.compile(r"[$,%\s]")
_PLAIN_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_US_LOCATION_RE = re.compile(r"(united states|usa|u\.s\.|\bus\b)")


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------
def truncate_for_prompt(value: Optional[str], max_chars: int) -> str:
    if not value:
        return ""
    if len(value) <= max_chars:
        return value
    return value[:max_chars] + PROMPT_TRUNCATION_MARKER


def truncate_documents(documents: list[ScoringDocument], max_chars: int) -> list[ScoringDocument]:
    """Fit documents into *max_chars*, filling deck > financial > legal > other."""
    total_chars = sum(len(doc.text) for doc in documents)
    if total_chars <= max_chars:
        return documents

    logger.info("[FACTS] Documents exceed %d chars (%d total), truncating", max_chars, total_chars)
    ordered = sorted(documents, key=lambda doc: DOCUMENT_PRIORITY.get(doc.type, 999))

    result: list[ScoringDocument] = []
    remaining = max_chars
    for doc in ordered:
        if remaining <= 0:
            break
        allocated = min(len(doc.text), remaining)
        truncated = allocated < len(doc.text)
        text = doc.text[:allocated] + (DOCUMENT_TRUNCATION_MARKER if truncated else "")
        result.append(doc.model_copy(update={"text": text}))
        remaining -= allocated
        if truncated:
            logger.info("[FACTS] Truncated %r from %d to %d chars", doc.file_name, len(doc.text), allocated)
    return result


# ---------------------------------------------------------------------------
# Criterion evidence snippets
# ---------------------------------------------------------------------------
@dataclass
class CriterionSnippet:
    source: str
    excerpt: str
    relevance: float = 0.0


@dataclass
class CriterionContext:
    """Top evidence snippets retrieved for one criterion."""

    category: str
    criterion: str
    snippets: list[CriterionSnippet] = field(default_factory=list)


def tokenize_text(text: str) -> list[str]:
    return [token for token in _TOKEN_CLEAN_RE.sub(" ", text.lower()).split() if len(token) >= 4]


def build_criterion_keywords(category_name: str, criterion_name: str, description: str) -> list[str]:
    tokens = tokenize_text(f"{category_name} {criterion_name} {description}")
    return list(dict.fromkeys(t for t in tokens if t not in CRITERION_KEYWORD_STOPWORDS))


def score_snippet_for_criterion(snippet_text: str, keywords: list[str]) -> float:
    """Keyword hits, plus a half point when the snippet carries a number."""
    if not snippet_text.strip() or not keywords:
        return 0.0
    lower = snippet_text.lower()
    score = float(sum(1 for keyword in keywords if keyword in lower))
    if _NUMERIC_EVIDENCE_RE.search(snippet_text):
        score += NUMERIC_SNIPPET_BONUS
    return score


def _collect_snippets(documents: list[ScoringDocument], extracted_facts: str) -> list[CriterionSnippet]:
    snippets = [CriterionSnippet(source="Extracted Company Facts", excerpt=extracted_facts[:SNIPPET_FACTS_CHARS])]
    for doc in documents:
        parts = [part.strip() for part in _PARAGRAPH_SPLIT_RE.split(doc.text) if part.strip()]
        for part in parts[:SNIPPET_MAX_PARTS_PER_DOC]:
            snippets.append(CriterionSnippet(source=doc.file_name, excerpt=part[:SNIPPET_MAX_CHARS]))
    return snippets


def build_criterion_contexts(
    criteria: CriteriaSchema,
    documents: list[ScoringDocument],
    extracted_facts: str,
) -> list[CriterionContext]:
    """Rank facts and document paragraphs against each criterion's keywords."""
    snippets = _collect_snippets(documents, extracted_facts)
    contexts: list[CriterionContext] = []
    for category in criteria.categories:
        for criterion in category.criteria:
            keywords = build_criterion_keywords(category.name, criterion.name, criterion.description)
            scored = [
                CriterionSnippet(s.source, s.excerpt, score_snippet_for_criterion(s.excerpt, keywords))
                for s in snippets
            ]
            ranked = sorted((s for s in scored if s.relevance > 0), key=lambda s: -s.relevance)
            contexts.append(CriterionContext(
                category=category.name,
                criterion=criterion.name,
                snippets=ranked[:SNIPPETS_PER_CRITERION],
            ))
    return contexts


def format_criterion_contexts(contexts: list[CriterionContext]) -> str:
    if not contexts:
        return "No criterion-specific evidence contexts available."

    blocks = []
    for context in contexts:
        if context.snippets:
            lines = "\n".join(
                f"{idx}. [{s.source}] {s.excerpt} (relevance: {s.relevance:.1f})"
                for idx, s in enumerate(context.snippets, start=1)
            )
        else:
            lines = (
                '1. No direct supporting snippet found. Mark evidenceStatus as "unknown" '
                "unless other sections provide evidence."
            )
        blocks.append(f"### {context.category} > {context.criterion}\n{lines}")
    return "\n\n".join(blocks)


def build_external_research_context(documents: list[ScoringDocument]) -> str:
    """Web research / website / description docs, else the first three documents."""
    prioritized = [
        doc for doc in documents
        if any(name in doc.file_name for name in RESEARCH_CONTEXT_DOC_NAMES)
    ]
    selected = prioritized or documents[:3]
    return "\n\n".join(
        f"## {doc.file_name}\n{truncate_for_prompt(doc.text, RESEARCH_DOC_SNIPPET_CHARS)}" for doc in selected
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _or(value: Optional[str], fallback: str = "Unknown") -> str:
    return value.strip() if value and value.strip() else fallback


def _display_number(value: Optional[float], fallback: str = "unknown") -> str:
    if value is None:
        return fallback
    return f"{value:g}"


def _metric(metrics: Optional[MetricSet], slot: str) -> Optional[MetricValue]:
    return getattr(metrics, slot, None) if metrics is not None else None


# ---------------------------------------------------------------------------
# Deterministic signals
# ---------------------------------------------------------------------------
_METRIC_LABELS: list[tuple[str, str]] = [
    ("ARR", "arr"),
    ("TAM", "tam"),
    ("Market Growth Rate", "market_growth_rate"),
    ("ACV", "acv"),
    ("YoY Growth Rate", "yoy_growth_rate"),
    ("Funding Amount", "funding_amount"),
    ("Committed", "committed"),
    ("Valuation", "valuation"),
    ("Deal Terms", "deal_terms"),
    ("Lead", "lead"),
    ("Current Runway", "current_runway"),
    ("Post-Funding Runway", "post_funding_runway"),
    ("Location", "location"),
]


def format_source_of_truth_metrics(metrics: Optional[MetricSet]) -> str:
    lines = ["## Source of Truth Metrics", "These metrics are canonical for scoring if present."]
    for label, slot in _METRIC_LABELS:
        metric = _metric(metrics, slot)
        value = metric.value if metric is not None and metric.value else "Unknown"
        source = f" (source: {metric.source})" if metric is not None else ""
        lines.append(f"- {label}: {value}{source}")
    return "\n".join(lines)


def _parse_plain_number(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    cleaned = _INVESTOR_NUMBER_STRIP_RE.sub("", raw)
    if not _PLAIN_NUMBER_RE.match(cleaned):
        return None
    return float(cleaned)


def commitment_signal(ratio: Optional[float]) -> str:
    if ratio is None:
        return "Unknown commitment progress"
    if ratio >= 0.5:
        return "Strong (>=50% committed)"
    if ratio > 0:
        return "Partial commitment (<50% committed)"
    return "No commitments"


def format_state_of_investors_signal(
    metrics: Optional[MetricSet],
    enrichment: Optional[CompanyEnrichmentData],
) -> str:
    funding_metric = _metric(metrics, "funding_amount")
    committed_metric = _metric(metrics, "committed")
    funding_raw = (funding_metric.value if funding_metric else None) or (enrichment.funding_amount if enrichment else None)
    committed_raw = (committed_metric.value if committed_metric else None) or (
        enrichment.current_commitments if enrichment else None
    )
    lead_info = _or(enrichment.lead_information if enrichment else None)

    funding = _parse_plain_number(funding_raw)
    committed = _parse_plain_number(committed_raw)
    ratio = committed / funding if funding and funding > 0 and committed is not None else None
    ratio_pct = f"{int(ratio * 100 + 0.5)}%" if ratio is not None else "Unknown"

    return f"""## Deal Round Participation Signal (State of Investors)
- Funding Amount: {funding_raw or 'Unknown'}
- Committed So Far: {committed_raw or 'Unknown'}
- Percent of Round Committed: {ratio_pct}
- Commitment Signal: {commitment_signal(ratio)}
- Lead / Investor Information: {lead_info}

State-of-investors rubric (apply explicitly):
- Best: >=50% committed AND a credible lead VC (or clearly strong VC participation).
- Next best: no lead yet but meaningful commitments from credible VCs.
- Weak: no commitments or only vague/unknown investor participation.
- If investor quality is unknown, reduce confidence and ask specific follow-up questions about lead and participant quality.
- Do not label this criterion strong without explicit evidence of both commitment progress and investor quality."""


def format_team_research_signal(team_research: Optional[TeamResearch]) -> str:
    if team_research is None:
        return ""

    founder_lines = []
    for founder in team_research.founders[:8]:
        signals = ", ".join(
            label for flag, label in (
                (founder.has_prior_exit, "prior exit"),
                (founder.has_been_ceo, "prior CEO"),
                (founder.has_been_cto, "prior CTO"),
            ) if flag
        )
        exits = "; ".join([e for e in founder.prior_exits if e][:3])
        line = f"- {founder.name}"
        if founder.title:
            line += f" ({founder.title})"
        if signals:
            line += f" | {signals}"
        if exits:
            line += f" | exits: {exits}"
        if founder.experience_summary:
            line += f" | notes: {founder.experience_summary}"
        founder_lines.append(line)

    return f"""## Team Research Signal
Use this as high-priority evidence for team-quality criteria.
- Team score: {_display_number(team_research.team_score)}/100
- Summary: {_or(team_research.summary, 'No summary provided')}
- Analyzed at: {_or(team_research.analyzed_at, 'unknown')}
{chr(10).join(founder_lines) or '- No founder-level details captured'}

Team scoring rubric (apply explicitly for team criteria):
- Strong positive: specific prior exits and directly relevant repeat leadership in CEO/CTO roles.
- Moderate positive: partial leadership fit or strong domain depth without full role-history proof.
- Conservative: sparse, conflicting, or unverified founder evidence.
- In reasoning, explicitly state CEO-prior-CEO and CTO-prior-CTO signals when available."""


def format_industry_thesis_signal(enrichment: Optional[CompanyEnrichmentData]) -> str:
    reported = "Unknown"
    if enrichment is not None:
        reported = enrichment.industry_sector or enrichment.investment_sector or enrichment.industry or "Unknown"

    return f"""## Industry Thesis Signal
Use this rubric for industry-oriented criteria, balancing explicit sector opportunity with workflow/data/adoption fit.

Company-reported industry signal: {reported}

Priority spend sectors over the next decade (positive signal when fit is strong):
- Financial services
- Insurance (claims, underwriting, policy servicing)
- Healthcare administration (payer/provider back office)
- Manufacturing and supply chain
- Cybersecurity

Workflow/data/adoption thesis sectors (positive when workflow depth + proprietary data + low prior software penetration are strong):
- Construction and specialty contracting
- Banking back office operations
- Global trade and logistics operations
- Field service / offline operations (utilities, HVAC, telecom, industrial services)

General industry scoring lens:
- High: clear fit to one or more priority sectors OR strong workflow-data-adoption thesis evidence.
- Medium: adjacent/unclear sector fit but credible workflow depth and software wedge.
- Low: weak workflow depth, limited proprietary data advantage, or low evidence of durable software adoption tailwinds.
- Always cite concrete proof points (workflow complexity, data uniqueness, adoption baseline) rather than generic sector labels."""


def _structured_location(enrichment: Optional[CompanyEnrichmentData]) -> str:
    if enrichment is None:
        return ""
    parts = [enrichment.city, enrichment.state, enrichment.country]
    return ", ".join(p.strip() for p in parts if p and p.strip())


def location_band(effective_location: str, country: Optional[str] = None) -> str:
    """Fund location band: U.S. preferred, Canada next, remote acceptable."""
    target = (country or effective_location).lower()
    if "remote" in effective_location.lower():
        return "Remote (acceptable but lower conviction than specific U.S. location)"
    if _US_LOCATION_RE.search(target):
        return "U.S. based (preferred)"
    if "canada" in target:
        return "Canada based (usually investable)"
    if effective_location == "Unknown":
        return "Unknown location"
    return "Outside U.S./Canada (typically non-investable)"


def format_location_signal(
    metrics: Optional[MetricSet],
    enrichment: Optional[CompanyEnrichmentData],
) -> str:
    location_metric = _metric(metrics, "location")
    metric_location = location_metric.value.strip() if location_metric and location_metric.value else ""
    effective = metric_location or _structured_location(enrichment) or "Unknown"
    country = enrichment.country if enrichment is not None and enrichment.country else None

    return f"""## Location Signal
- Effective location: {effective}
- Location band: {location_band(effective, country)}

Location rubric for scoring:
- Best: clearly U.S.-based with a specific operating location.
- Next best: Canada.
- Decent: remote/distributed (if other fundamentals are strong), but generally below a clear U.S. operating base.
- Weak: outside U.S./Canada for this fund mandate.
- If location is unclear, lower confidence and request explicit HQ + core operating footprint."""


def format_market_growth_signal(
    intel: Optional[ExternalMarketIntelligence],
    metrics: Optional[MetricSet],
) -> str:
    growth_metric = _metric(metrics, "market_growth_rate")
    explicit = growth_metric.value if has_usable_metric_value(growth_metric) else None
    growth = intel.market_growth if intel is not None else None
    estimated_cagr = explicit or (growth.estimated_cagr if growth is not None else None) or "unknown"
    confidence = normalize_confidence_percent(growth.confidence if growth is not None else None)
    evidence = " | ".join([e for e in (growth.evidence if growth is not None else []) if e][:4])
    summary = _or(growth.summary if growth is not None else None, "No market growth summary available.")

    return f"""## Market Growth Signal
Use this for criteria like "Market Growth" and "How quickly/slowly is the market growing?"
- Estimated CAGR / annual growth: {estimated_cagr}
- Growth band: {derive_market_growth_band(estimated_cagr)}
- Confidence: {confidence}/100
- Evidence: {evidence or 'No direct growth evidence captured'}
- Summary: {summary}

Market growth rubric:
- High growth: >=20% annualized growth.
- Moderate growth: 8%-19% annualized growth.
- Low growth: 0%-7% annualized growth.
- Unknown: insufficient evidence; score conservatively and lower confidence."""


def format_portfolio_synergy_signal(synergy: Optional[PortfolioSynergyResearch]) -> str:
    if synergy is None:
        return ""
    match_lines = "\n".join(
        f"- {match.company_name} ({match.synergy_type}): {match.rationale}" for match in synergy.matches[:8]
    )

    return f"""## Portfolio Synergy Signal
Use this for criteria like "Are there synergies with the portfolio?"
- Synergy score: {_display_number(synergy.synergy_score)}/100
- Summary: {_or(synergy.summary, 'No summary provided')}
- Source: {_or(synergy.source_url)}
- Analyzed at: {_or(synergy.analyzed_at, 'unknown')}
{match_lines or '- No portfolio matches identified'}

Synergy rubric:
- High: clear, practical opportunities across similar space, similar customer base, or complementary offering partnerships.
- Medium: thematic overlap exists but practical GTM/product partnership path is weaker.
- Low: limited meaningful overlap or unclear practical collaboration pathways.
- Always cite specific portfolio company examples in reasoning when available."""


def _signal_lines(signals: list[NecessitySignal]) -> str:
    return "\n".join(f"- {s.label} ({s.strength or 'n/a'}): {s.evidence}" for s in signals[:6])


def format_problem_necessity_signal(necessity: Optional[ProblemNecessityResearch]) -> str:
    if necessity is None:
        return ""

    return f"""## Problem Necessity Signal (Vitamin / Advil / Vaccine)
Use this for criteria like "How necessary is the problem they are solving?"
- Necessity score: {_display_number(necessity.necessity_score)}/100
- Classification: {necessity.classification or 'unknown'}
- Summary: {_or(necessity.summary, 'No summary provided')}
- Analyzed at: {_or(necessity.analyzed_at, 'unknown')}

Top necessity signals:
{_signal_lines(necessity.top_signals) or '- none'}

Counter-signals:
{_signal_lines(necessity.counter_signals) or '- none'}

Rubric:
- Vaccine: mandated / existential / severe consequence of inaction.
- Advil: acute, recurring, must-fix pain with clear downside.
- Vitamin: nice-to-have optimization without urgent downside.
- If evidence is sparse, lower confidence and avoid over-classifying as vaccine."""


def format_enrichment_data(enrichment: Optional[CompanyEnrichmentData]) -> str:
    """Founder intake block; empty when no intake was captured."""
    if enrichment is None:
        return ""
    e = enrichment

    return f"""## FOUNDER-PROVIDED COMPANY DATA (company intake)
Treat the following fields as founder-provided inputs from intake forms. Use them as strong signals, cross-check against materials when possible, and flag material discrepancies.
- Company Name: {_or(e.name)}
- Domain: {_or(e.domain)}
- Website: {_or(e.website)}
- Industry/Sector: {_or(e.industry_sector or e.industry)}
- Investment Sector: {_or(e.investment_sector)}
- Product Categorization: {_or(e.product_categorization)}
- Funding Stage: {_or(e.funding_stage)}
- Funding Amount: {_or(e.funding_amount)}
- Funding Terms/Valuation: {_or(e.funding_valuation)}
- Current Commitments: {_or(e.current_commitments)}
- TAM Range: {_or(e.tam_range)}
- Current Runway: {_or(e.current_runway)}
- Planned Runway Post-Funding: {_or(e.post_funding_runway)}
- Annual Revenue: {_or(e.annual_revenue)}
- Employees: {_or(e.number_of_employees)}
- Founded Year: {_or(e.founded_year)}
- Location: {_structured_location(e) or 'Unknown'}
- LinkedIn: {_or(e.linkedin_url)}
- Lead Information: {_or(e.lead_information)}
- Additional Founder Notes: {_or(e.anything_else, 'None provided')}
- Founder Description: {_or(e.description, 'Not provided')}
- Pitch Deck URL: {_or(e.pitch_deck_url, 'Not provided')}

Instructions:
- Use TAM, runway, funding stage, funding amount, commitments, and valuation directly in relevant scoring criteria.
- Treat Founder Description as high-quality founder context when interpreting product, customer, and GTM.
- If intake data and document evidence conflict, explicitly call out the discrepancy and lower confidence.
- Do not ignore intake data when document coverage is sparse."""


def format_external_market_intelligence(intel: Optional[ExternalMarketIntelligence]) -> str:
    if intel is None:
        return "External market intelligence not available."

    claim = intel.tam_sam_som.company_claim
    independent = intel.tam_sam_som.independent_estimate
    comparison = intel.tam_sam_som.comparison
    growth = intel.market_growth
    competitors = "\n".join(
        f"- {c.name} | overlap: {c.overlap or 'unknown'} | raised: {c.funding_raised or 'unknown'}"
        f" | concern: {c.concern_level or 'unknown'}" + (f" | {c.rationale}" if c.rationale else "")
        for c in intel.competitors[:8]
    ) or "- No competitor list available"

    return f"""## External Market Intelligence

### TAM/SAM/SOM (Independent vs Company Claim)
- Claimed TAM/SAM/SOM: {claim.tam or 'n/a'} / {claim.sam or 'n/a'} / {claim.som or 'n/a'}
- Independent TAM/SAM/SOM: {independent.tam or 'n/a'} / {independent.sam or 'n/a'} / {independent.som or 'n/a'}
- Alignment: {comparison.alignment or 'unknown'}
- Delta summary: {comparison.delta_summary or 'n/a'}
- Confidence: {comparison.confidence}%

### Market Growth
- Estimated growth rate (CAGR): {growth.estimated_cagr or 'unknown'}
- Growth band: {growth.growth_band or 'unknown'}
- Confidence: {growth.confidence}%
- Evidence: {' | '.join(growth.evidence[:3]) or 'n/a'}
- Summary: {growth.summary or 'n/a'}

### Competitor Landscape
{competitors}

- Competitive threat score: {_display_number(intel.competitive_threat_score, 'n/a')}/100
- External summary: {intel.external_summary or 'n/a'}"""


# ---------------------------------------------------------------------------
# Analyst context
# ---------------------------------------------------------------------------
def format_user_criterion_context(
    previous_score: Optional[DiligenceScore],
    category_name: Optional[str] = None,
) -> str:
    """Factual answers, perspectives and score overrides the analyst left on criteria."""
    if previous_score is None or not previous_score.categories:
        return ""

    chunks = []
    for category in previous_score.categories:
        if category_name and category.category != category_name:
            continue
        for criterion in category.criteria:
            answer = (criterion.answer or "").strip()
            perspective = (criterion.user_perspective or "").strip()
            if not answer and not perspective and criterion.manual_override is None:
                continue
            lines = [f"### {category.category} / {criterion.name}"]
            if answer:
                lines.append(f"- Factual Answer: {answer}")
            if perspective:
                lines.append(f"- User Perspective: {perspective}")
            if criterion.manual_override is not None:
                lines.append(f"- User Score Override: {criterion.manual_override} (AI score: {criterion.score})")
            chunks.append("\n".join(lines))

    if not chunks:
        return ""
    return "## User-Provided Criterion Context\nUse this criterion-level context as strong input where relevant:\n\n" + "\n\n".join(chunks)


def format_notes_section(
    categorized_notes: Optional[list[DiligenceNote]],
    user_notes: Optional[str] = None,
) -> str:
    if categorized_notes:
        grouped: dict[str, list[str]] = {}
        for note in categorized_notes:
            grouped.setdefault(note.category, []).append(f"- {note.content}")
        body = "\n\n".join(f"### {category}\n" + "\n".join(lines) for category, lines in grouped.items())
        return f"""

## Investor's Categorized Notes and Observations:

{body}

**IMPORTANT**: The notes above are from the investor/analyst reviewing this deal, organized by criteria category. These notes contain valuable context, initial impressions, concerns, questions, and observations that should be heavily weighted in your scoring. When scoring each category, pay special attention to the notes for that category.

---
"""
    if user_notes:
        return f"""

## User's Notes and Observations:

{user_notes}

**IMPORTANT**: The notes above are from the investor/analyst reviewing this deal. These notes contain valuable context, initial impressions, concerns, questions, and observations that should be heavily weighted in your analysis. Consider these notes as critical insider information that provides context the documents may not reveal.

---
"""
    return ""


def _split_questions(questions: Optional[list[DiligenceQuestion]]) -> tuple[list[DiligenceQuestion], list[DiligenceQuestion]]:
    questions = questions or []
    return (
        [q for q in questions if q.status == "answered"],
        [q for q in questions if q.status == "open"],
    )


def _answered_text(answered: list[DiligenceQuestion]) -> str:
    return "\n\n".join(f"Q: {q.question}\nA: {q.answer or '(No answer provided)'}" for q in answered)


def format_questions_section(questions: Optional[list[DiligenceQuestion]]) -> str:
    answered, open_questions = _split_questions(questions)
    section = ""
    if answered:
        section += f"""
## RESOLVED QUESTIONS (Confirmed Facts)

The following questions have been answered and should be treated as confirmed, verified facts in your scoring:

{_answered_text(answered)}

**CRITICAL INSTRUCTION**: These answered questions provide verified information. Use them as authoritative facts. DO NOT regenerate these questions in your "Top 3 Open Questions" or follow-up recommendations. They are resolved.

---
"""
    if open_questions:
        open_text = "\n".join(f"- {q.question}" for q in open_questions)
        section += f"""
## ACTIVE OPEN QUESTIONS (Information Gaps)

The following questions remain unanswered and represent key information gaps:

{open_text}

**IMPORTANT**: When scoring criteria related to these open questions, you should:
1. Lower confidence scores if the question represents a material information gap
2. Note the missing information in your reasoning
3. Include relevant unanswered questions in your follow-up recommendations
4. DO refine or rephrase these questions if you have better/more specific versions based on the materials

---
"""
    return section


def format_questions_brief(questions: Optional[list[DiligenceQuestion]], *, resolved_warning: bool = False) -> str:
    """Short resolved / open question block for per-category and synthesis prompts."""
    answered, open_questions = _split_questions(questions)
    section = ""
    if answered:
        section += f"\n## Resolved Questions (Confirmed Facts)\n{_answered_text(answered)}\n"
        if resolved_warning:
            section += (
                '**CRITICAL**: DO NOT regenerate these answered questions in your "Top 3 Questions for the '
                'Founder" or follow-up recommendations. They are resolved.\n'
            )
    if open_questions:
        section += "\n## Active Open Questions\n" + "\n".join(f"- {q.question}" for q in open_questions) + "\n"
    return section


def format_previous_score_context(previous_score: Optional[DiligenceScore]) -> str:
    if previous_score is None:
        return ""
    category_lines = "\n".join(
        f"- {c.category}: {c.manual_override if c.manual_override is not None else c.score}/100"
        + (" (manually overridden)" if c.manual_override is not None else "")
        for c in previous_score.categories
    )

    return f"""
## Previous Score (Re-scoring in Progress)

**Previous Overall Score**: {previous_score.overall}/100
**Previous Category Scores**:
{category_lines}

**IMPORTANT FOR RE-SCORING**:
- You are re-scoring this company with updated or additional information.
- Compare your new scores to the previous scores above.
- At the end of your analysis, provide a "rescoreExplanation" field that explains:
  * What new information influenced the scoring
  * Which categories changed significantly and why
  * Key insights that emerged from the new data
- Be specific about what changed and why (e.g., "Team score increased from 65 to 78 due to new information about founder's successful exits")

---
"""


def _numbered(items: list[str]) -> str:
    return "\n".join(f"{idx}. {item}" for idx, item in enumerate(items, start=1))


def format_manual_thesis_context(thesis: Optional[ThesisAnswers]) -> str:
    """Analyst-edited thesis; only rendered when it was manually edited."""
    if thesis is None or not thesis.manually_edited:
        return ""

    founder_block = ""
    fq = thesis.founder_questions
    if fq.questions or fq.primary_concern or fq.key_gaps:
        founder_block = (
            f"\n**Questions for Founders:**\n{_numbered(fq.questions)}\n\n"
            f"**Primary Concern:** {fq.primary_concern}\n\n"
            f"**Key Information Gaps:** {fq.key_gaps}"
        )

    return f"""
## User's Investment Thesis (Manually Edited)

The investor has provided the following refined investment thesis. **Use this as critical context when scoring.**
These insights represent the investor's refined understanding of the opportunity and should heavily inform your scoring decisions.

**Problem Being Solved:**
{thesis.problem_solving}

**Solution Approach:**
{thesis.solution}

**Ideal Customer Profile:**
{thesis.ideal_customer}

**What's Exciting:**
{_numbered(thesis.exciting)}

**What's Concerning:**
{_numbered(thesis.concerning)}{founder_block}

**IMPORTANT**: Since the investor has manually refined this thesis, it reflects their deep analysis and should be considered authoritative context. Your scoring should align with these insights while still being objective about the underlying criteria.

---
"""
