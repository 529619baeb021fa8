"""Prompt templates for diligence scoring.

Contains:
1. System instructions for each reasoning-service call
2. Prompt builders that stitch the context assembler's sections into the
   primary scoring, per-category, synthesis, fact-extraction, market and
   questioning prompts
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional

from ...constants import (
    CATEGORY_PROMPT_LIMITS,
    MARKET_PROMPT_FACTS_LIMIT,
    MARKET_PROMPT_RESEARCH_LIMIT,
    PROMPT_LIMITS,
)
from ...schemas.criteria_schema import CategoryDefinition, CriteriaSchema
from ...schemas.market_schema import ExternalMarketIntelligence
from ...schemas.metrics_schema import MetricSet
from ...schemas.research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    TeamResearch,
)
from ...schemas.score_schema import CategoryScore, DiligenceScore, ThesisAnswers
from ...services.context_assembler import (
    CriterionContext,
    format_criterion_contexts,
    format_enrichment_data,
    format_external_market_intelligence,
    format_industry_thesis_signal,
    format_location_signal,
    format_manual_thesis_context,
    format_market_growth_signal,
    format_notes_section,
    format_portfolio_synergy_signal,
    format_previous_score_context,
    format_problem_necessity_signal,
    format_questions_brief,
    format_questions_section,
    format_source_of_truth_metrics,
    format_state_of_investors_signal,
    format_team_research_signal,
    format_user_criterion_context,
    truncate_for_prompt,
)

URL_ONLY_DOC_NAME = "Company Information"


# ── System instructions ─────────────────────────────────────────────────

JSON_ANALYST_SYSTEM = "You are an expert VC analyst. Return valid JSON only."

FACT_EXTRACTION_SYSTEM = """\
You are a document analysis expert extracting structured facts for venture capital due diligence.
Extract only factual information - no opinions, scoring, or recommendations yet.
Be thorough but concise. Cite specific details and numbers."""

FACT_EXTRACTION_URL_ONLY_NOTE = (
    "\n\nFor URL-only analysis: Use your knowledge of this specific company to provide accurate facts. "
    "If you don't know the company, indicate limited information is available."
)

MARKET_INTEL_SYSTEM = "You are a venture market intelligence analyst. Return strict JSON only."
MARKET_SIZING_SYSTEM = "You are a conservative venture market sizing analyst. Return strict JSON only."
NOTES_SUMMARY_SYSTEM = (
    "You are an investment analyst assistant. Summarize notes without changing factual meaning. "
    "Return JSON only."
)
INVESTOR_QUESTIONING_SYSTEM = "You are a rigorous VC diligence associate. Be concise, specific, and evidence-driven."


def build_scoring_system_prompt(url_only: bool = False) -> str:
    """System instruction for the primary scoring call."""
    if url_only:
        step_one = (
            "RESEARCH THE SPECIFIC COMPANY: Look at the company name and URL provided. Determine what they "
            "ACTUALLY do (their real product/service and industry). DO NOT assume or use generic startup "
            "analysis. Match your analysis to their ACTUAL business."
        )
        step_five = (
            "Provide detailed TAM estimates, competitive landscape analysis, and market insights for the ACTUAL "
            "industry/product category this company operates in based on the URL and company name"
        )
        critical = (
            "\nCRITICAL: The company name and URL tell you what they do. Analyze the CORRECT industry and product "
            "type. If you recognize the company from training data, use that knowledge. If not, make educated "
            "inferences from the domain/name but be honest about uncertainty. NEVER provide analysis for the "
            "wrong industry.\n"
        )
        evidence_source = " from your knowledge of this company and its market"
    else:
        step_one = "Thoroughly analyze all provided documents (pitch decks, financial statements, etc.)"
        step_five = "Assess the quality and completeness of the provided information"
        critical = ""
        evidence_source = " from the documents"

    return f"""You are an expert venture capital analyst conducting comprehensive due diligence on startups and companies. Your role is to:

1. {step_one}
2. Score the company against specific investment criteria
3. Provide evidence-based reasoning for each score with SPECIFIC details (not generic statements)
4. Identify key strengths and concerns based on actual company information
5. {step_five}
6. **Identify Red Flags**: Flag any dealbreakers or serious concerns (regulatory issues, unit economics problems, weak team, oversaturated market, unrealistic projections)
7. **Competitive Differentiation**: Analyze what makes this company uniquely defensible vs competitors
8. **Market Timing**: Assess "why now" - is this the right time for this solution/market?
9. Generate highly specific, tactical questions for the founder that reference actual details from the materials (not generic startup questions)
{critical}
**CRITICAL FOR FOUNDER QUESTIONS**: Your questions must be specific to THIS company's actual situation. Reference specific metrics, claims, or gaps from their materials. Examples:
- BAD: "What's your customer acquisition strategy?"
- GOOD: "You mention $50K MRR with 15 customers but show 30% churn. What specific changes are you making to reduce churn, and what's causing customers to leave?"

**INVESTMENT CONTEXT**: You are evaluating for a Seed-stage B2B VC fund focused on AI-first solutions. Consider:
- Team quality and domain expertise
- Product-market fit evidence
- Scalability and defensibility
- Market size and timing
- Capital efficiency and unit economics

Be objective, thorough, and cite specific evidence{evidence_source} in your analysis."""


# ── Shared inputs ───────────────────────────────────────────────────────

@dataclass
class PromptInputs:
    """Everything the scoring prompts draw on for one run."""

    company_name: str
    criteria: CriteriaSchema
    extracted_facts: str = ""
    company_url: Optional[str] = None
    user_notes: Optional[str] = None
    categorized_notes: list[DiligenceNote] = field(default_factory=list)
    questions: list[DiligenceQuestion] = field(default_factory=list)
    learning_context: str = ""
    previous_score: Optional[DiligenceScore] = None
    existing_thesis: Optional[ThesisAnswers] = None
    criterion_contexts: list[CriterionContext] = field(default_factory=list)
    external_intel: Optional[ExternalMarketIntelligence] = None
    enrichment: Optional[CompanyEnrichmentData] = None
    metrics: Optional[MetricSet] = None
    team_research: Optional[TeamResearch] = None
    portfolio_synergy: Optional[PortfolioSynergyResearch] = None
    problem_necessity: Optional[ProblemNecessityResearch] = None

    @property
    def company_label(self) -> str:
        return f"{self.company_name} ({self.company_url})" if self.company_url else self.company_name


def _limits(compact: bool) -> dict[str, int]:
    index = 1 if compact else 0
    return {key: pair[index] for key, pair in PROMPT_LIMITS.items()}


def _criteria_sections(criteria: CriteriaSchema) -> str:
    sections = []
    for category in criteria.categories:
        lines = "\n".join(
            f"- **{c.name}**: {c.description}\n  Scoring Guidance: {c.scoring_guidance}" for c in category.criteria
        )
        sections.append(f"### {category.name} (Weight: {category.weight:g}%)\n{lines}")
    return "\n\n".join(sections)


def _strict_name_map(criteria: CriteriaSchema) -> str:
    return "\n\n".join(
        f"Category: {category.name}\n" + "\n".join(f"- {c.name}" for c in category.criteria)
        for category in criteria.categories
    )


# ── Primary scoring prompt ──────────────────────────────────────────────

THESIS_QUESTIONS_BLOCK = """\
## Investment Thesis Questions

First, answer these five key questions based on the documents:

1. **What problem are they solving?** - Identify the core problem or pain point the company is addressing. Be specific about the market need.

2. **How are they solving this problem?** - Describe their solution, approach, and unique value proposition. What makes their solution different?

3. **What is their ideal customer profile?** - Describe who their target customers are: demographics, use cases, pain points, and why they would buy this solution.

4. **What is exciting about this deal?** - Provide 3-5 bullet points highlighting the most compelling aspects: market opportunity, team strengths, traction, competitive advantages, or unique insights.

5. **What is concerning about this deal?** - Provide 3-5 bullet points identifying key risks, challenges, or red flags: execution risks, market concerns, competition, or gaps in the pitch.

6. **Due Diligence Follow-up** - Based on your deep analysis of the documents, scoring, and identified gaps:
   - **Top 3 Questions for the Founder**: Generate 3 highly specific, tactical questions that address:
     * Critical assumptions you identified that need validation
     * Specific gaps in the business model, go-to-market strategy, or unit economics
     * The most concerning risks or challenges you scored poorly
     * Missing details about competitive advantages, market positioning, or execution plans
     **CRITICAL**: Make these questions SPECIFIC to THIS company, their actual product/market/strategy. Reference specific details from their materials. Avoid generic questions like "What's your traction?" Instead: "Given your $50K MRR and 15 customers, what's driving the 30% month-over-month churn rate mentioned in the deck?"
   - **Primary Concern**: Identify the single most concerning aspect that would most likely derail this investment or cause failure. Be specific and reference your scoring analysis.
   - **Critical Information Gaps**: List the exact documents, metrics, data points, or evidence that are missing and would materially change your investment decision. Be specific (e.g., "Unit economics data including CAC, LTV, payback period by customer segment" not "more financial data")."""

SCORING_INSTRUCTIONS_BLOCK = """\
## Instructions:

**CRITICAL SCORING RULES - Evidence-Based Analysis:**

1. **Prioritize Information Sources in This Order:**
   - **HIGHEST PRIORITY**: Investor notes and manually edited thesis (these reflect deep human analysis)
   - **SECOND PRIORITY**: Extracted structured facts from documents (verified data points)
   - **THIRD PRIORITY**: Scoring criteria definitions (framework to apply)

2. **Evidence Citation Requirements:**
   - Every score MUST have specific evidence from the extracted facts or notes
   - Use direct quotes or specific data points (not generic statements)
   - If a criterion lacks evidence, score conservatively and note the gap
   - Evidence array should contain: specific metrics, quotes, or fact references

3. **Avoid Generic Analysis:**
   - BAD: "Strong team with relevant experience"
   - GOOD: "CEO has 8 years at Tesla leading battery division (extracted facts: Team section)"
   - BAD: "Large market opportunity"
   - GOOD: "TAM: $12B manufacturing software market growing at 18% CAGR (extracted facts: Market section)"

4. **Weight Your Sources:**
   - If investor notes contradict document data, heavily favor the notes (they have context)
   - If data quality is low, note it and score accordingly
   - Missing information = lower score + explicit mention in reasoning

5. **Be Specific in Reasoning:**
   - Reference exact sections from extracted facts
   - Cite specific numbers, dates, metrics
   - Explain why the evidence led to that score

6. **Confidence Calibration (Required Per Criterion):**
   - Return confidence score from 0-100 for each criterion
   - 80-100: strong direct evidence with concrete metrics
   - 60-79: decent evidence but some assumptions
   - 40-59: weak evidence, partial support
   - 0-39: insufficient evidence or contradictions

7. **Evidence Status (Required Per Criterion):**
   - "supported": clear direct evidence supports the score
   - "weakly_supported": some support but important gaps remain
   - "unknown": not enough evidence to score confidently
   - "contradicted": evidence conflicts with key claims

8. **Missing Data + Follow-Up Questions (Required Per Criterion):**
   - missing_data: list exact missing facts/metrics that affect this criterion
   - follow_up_questions: 1-3 tactical, company-specific questions to resolve gaps
   - Also provide a top-level follow_up_questions array with the best 5 overall questions

9. **Name Fidelity (Required):**
   - For each category object, "category" must exactly match one category name from "Required Category and Criterion Names"
   - For each criterion object, "name" must exactly match one criterion under that category
   - If evidence is sparse, still return the exact category/criterion names with conservative scoring

10. **Reasoning Structure (Required Per Criterion):**
   - Write each criterion reasoning in natural prose (no section labels).
   - Include these three elements in one concise narrative: what you conclude, the concrete support (metric/quote/fact), and why it changes conviction/risk.
   - Avoid generic statements without concrete facts.
   - If no concrete evidence exists, explicitly state that and mark conservative implications.

11. **Thesis Concerns + Follow-Up Specificity (Required):**
   - "concerning" bullets must reference a concrete metric, claim, contradiction, or missing evidence.
   - Founder follow-up questions must reference specific evidence gaps (not generic startup questions).
   - For each follow-up question, include enough context so the founder knows exactly what data is being requested.

12. **External Research Integration (Required):**
   - Compare company-claimed TAM/SAM/SOM against the independent estimate in External Market Intelligence.
   - If claims appear overstated or low-confidence, score Market criteria more conservatively and explain why.
   - Use competitor funding and overlap data to assess competitive risk and defensibility.

13. **TAM Criterion Framework (Required):**
   - For the TAM criterion, explicitly compare:
     1) Founder-claimed TAM (from Source of Truth Metrics / founder intake),
     2) Independent TAM estimate (External Market Intelligence).
   - Include both values in reasoning and classify alignment: aligned, somewhat_aligned, overstated, understated, or unknown.
   - Base TAM criterion scoring primarily on this comparison (not generic market language).
   - If either side is missing, lower confidence and score conservatively.

14. **Team Criterion Framework (Required):**
   - For team/founder criteria (including "What are the strengths and proof points of the team?"), explicitly incorporate Team Research Signal.
   - In reasoning, reference:
     1) specific prior exits (if any),
     2) CEO has-been-CEO signal,
     3) CTO has-been-CTO signal.
   - If those signals are missing or weak, keep confidence conservative and state evidence gaps explicitly.

15. **Source of Truth Metrics Precedence (Required):**
   - If ARR/TAM/Market Growth/ACV/YoY Growth metrics are provided in "Source of Truth Metrics", treat them as authoritative.
   - Only deviate if stronger contradictory evidence is explicitly present, and then call out the contradiction in reasoning.
   - Do not mark a concern as negative if cited metric evidence is strictly positive.

16. **Industry Criterion Framework (Required):**
   - For industry-oriented criteria, apply both:
     1) priority spend sector fit, and
     2) workflow/data/adoption thesis fit.
   - A company can score well via either (or both) if evidence is concrete.
   - Do not over-score based on sector label alone; require specific operational proof points.

17. **Location Criterion Framework (Required):**
   - Prefer U.S.-based teams, with Canada as generally acceptable.
   - Treat remote/distributed as acceptable but below a clear U.S. location unless other evidence is very strong.
   - Score outside U.S./Canada conservatively for this fund mandate.
   - If location evidence is unclear, reduce confidence and call out the missing data.

18. **Portfolio Synergy Criterion Framework (Required):**
   - For portfolio-synergy criteria, explicitly evaluate overlap in:
     1) similar space,
     2) similar customer base,
     3) complementary offering/partnership potential.
   - Reference specific portfolio company examples when evidence exists.
   - If no concrete overlap is found, score conservatively and state the evidence gap.

19. **Problem Necessity Criterion Framework (Required):**
   - For necessity criteria, explicitly classify using Vitamin / Advil / Vaccine.
   - Support classification with concrete evidence on urgency, consequence of inaction, recurrence, and mandate/compliance.
   - If evidence is sparse, keep classification conservative and lower confidence.

20. **Market Growth Criterion Framework (Required):**
   - For market growth criteria, explicitly assess how quickly/slowly the market is growing using the Market Growth Signal.
   - Include estimated CAGR (or explicitly state unknown), growth band (high/moderate/low/unknown), confidence, and at least one concrete evidence line.
   - Use this baseline score rubric (adjust +/-10 only with strong company-specific evidence):
     * High growth (>=20% CAGR): 75-90
     * Moderate growth (8%-19% CAGR): 55-74
     * Low growth (0%-7% CAGR): 35-54
     * Negative/contracting growth: 20-40
     * Unknown growth (insufficient evidence): 30-50 max
   - Confidence requirements:
     * >=80 only with 2+ concrete, recent evidence points.
     * 60-79 with one strong source or multiple weak signals.
     * <=59 when evidence is sparse, indirect, conflicting, or stale.
   - Evidence status requirements:
     * "supported" only when CAGR/growth claim is directly evidenced.
     * "weakly_supported" when growth is inferred from partial signals.
     * "unknown" when no reliable growth signal exists.
   - Missing-data requirements:
     * If confidence <70, include explicit missing_data entries (e.g., source recency, segment-specific growth, regional split, methodology).
   - If growth evidence is weak or missing, lower confidence and score conservatively."""

SCORING_OUTPUT_BLOCK = """\
Provide your analysis in the following JSON format:

```json
{
  "company_one_liner": "1-2 sentence description of what the company does. Do NOT start with the company name.",
  "industry": "Primary industry/vertical/market sector the company operates in or serves (e.g., 'Real Estate', 'Healthcare', 'Manufacturing'). Prefer the vertical/market over business model.",
  "founders": [
    {"name": "Founder Name", "linkedin_url": "https://www.linkedin.com/in/profile (if found)", "title": "CEO"}
  ],
  "thesis_answers": {
    "problem_solving": "The company addresses [specific problem] which affects [target market]...",
    "solution": "They solve this through [approach/technology]. Their unique value proposition is [differentiation]...",
    "ideal_customer": "The ideal customer is [customer description]...",
    "exciting": ["Market opportunity details and growth potential", "..."],
    "concerning": ["Execution risk in specific area", "..."],
    "founder_questions": {
      "questions": ["Specific question about strategy/execution based on analysis", "...", "..."],
      "primary_concern": "The single most concerning aspect requiring immediate clarification",
      "key_gaps": "Specific missing information that would impact decision"
    }
  },
  "overall": 75,
  "data_quality": 80,
  "follow_up_questions": ["Five best overall due diligence follow-up questions based on missing evidence and risks"],
  "rescore_explanation": "Optional: only for a re-score. Explain what changed and why.",
  "categories": [
    {
      "category": "Team",
      "score": 85,
      "weight": 25,
      "weighted_score": 21.25,
      "criteria": [
        {
          "name": "Founder Experience",
          "score": 90,
          "confidence": 88,
          "evidence_status": "supported",
          "reasoning": "Founders have 10+ years experience in the industry...",
          "evidence": ["Quote from document supporting this score"],
          "missing_data": ["No quantified team hiring plan for next 12 months"],
          "follow_up_questions": ["You cite founder-led enterprise sales. What is the hiring timeline for first 2 AEs?"]
        }
      ]
    }
  ]
}
```

**Scoring Guidelines:**
- Score each criterion from 0-100 (0 = major concern, 50 = meets expectations, 100 = exceptional)
- Calculate weighted scores: category_score * category_weight / 100
- Overall score is the sum of all weighted category scores
- Provide specific evidence quotes from documents
- Identify 3-5 key strengths and 3-5 key concerns
- Data quality (0-100) reflects completeness of information: 100 = comprehensive data, 50 = adequate but gaps, 0 = insufficient data
- If information is missing for a criterion, note it in reasoning and score accordingly

**Important:**
- Quote specific passages from documents as evidence
- Be consistent in scoring across criteria
- Make founder questions highly specific to THIS company's actual situation, not generic startup questions
- Reference specific data points, metrics, or statements from the documents when formulating questions"""


def build_scoring_prompt(inputs: PromptInputs, *, compact: bool = False) -> str:
    """Full single-request scoring prompt; *compact* applies the tighter section limits."""
    limits = _limits(compact)

    user_criterion_context = truncate_for_prompt(
        format_user_criterion_context(inputs.previous_score), limits["previous_score"]
    )
    hierarchy_context = "".join([
        truncate_for_prompt(inputs.learning_context, limits["learning"]),
        truncate_for_prompt(format_previous_score_context(inputs.previous_score), limits["previous_score"]),
        f"{user_criterion_context}\n\n---\n" if user_criterion_context else "",
        truncate_for_prompt(format_manual_thesis_context(inputs.existing_thesis), limits["thesis"]),
        truncate_for_prompt(format_notes_section(inputs.categorized_notes, inputs.user_notes), limits["notes"]),
        format_questions_section(inputs.questions),
    ])

    sections = [
        f"# Due Diligence Scoring Task\n\n## Company: {inputs.company_label}",
        f"# INFORMATION HIERARCHY (Process in this order)\n\n{hierarchy_context}\n\n"
        + truncate_for_prompt(inputs.extracted_facts, limits["facts"]),
        truncate_for_prompt(format_external_market_intelligence(inputs.external_intel), limits["external_intel"]),
        format_market_growth_signal(inputs.external_intel, inputs.metrics),
        format_source_of_truth_metrics(inputs.metrics),
        format_enrichment_data(inputs.enrichment),
        format_state_of_investors_signal(inputs.metrics, inputs.enrichment),
        format_team_research_signal(inputs.team_research),
        format_industry_thesis_signal(inputs.enrichment) + "\n\n"
        + format_location_signal(inputs.metrics, inputs.enrichment),
        format_portfolio_synergy_signal(inputs.portfolio_synergy),
        format_problem_necessity_signal(inputs.problem_necessity),
        THESIS_QUESTIONS_BLOCK,
        f"## Scoring Criteria:\n\n{_criteria_sections(inputs.criteria)}",
        "## Required Category and Criterion Names\n\n"
        "Use these names exactly in your JSON output. Do not rename, merge, or invent categories/criteria:\n\n"
        + truncate_for_prompt(_strict_name_map(inputs.criteria), limits["name_map"]),
        "## Criterion-Specific Evidence Retrieval Context\n\n"
        "Use this section to ground each criterion in specific supporting snippets. If a criterion has weak or "
        "missing evidence, mark evidence_status accordingly and generate follow-up questions to close the gap.\n\n"
        + truncate_for_prompt(format_criterion_contexts(inputs.criterion_contexts), limits["criterion_context"]),
        SCORING_INSTRUCTIONS_BLOCK + "\n\n" + SCORING_OUTPUT_BLOCK,
    ]
    return "\n\n---\n\n".join(sections)


# ── Chunked mode: per-category and synthesis prompts ────────────────────

CATEGORY_RULES_BLOCK = """\
Rules:
- Use EXACT criterion names listed above.
- Be specific and non-generic.
- If evidence is weak, lower confidence and use unknown/weakly_supported.
- Keep evidence tied to numbers or concrete claims whenever possible.
- Write criterion reasoning as natural prose with a clear conclusion, concrete support, and investment implication.
- Avoid phrases like "strong team" or "large market" unless backed by specific facts/metrics.
- For Market/Product criteria, explicitly reference TAM/SAM/SOM comparison and competitor threat data when available.
- For the TAM criterion, explicitly compare founder-claimed TAM vs independent TAM estimate and classify alignment before finalizing score.
- For team/founder criteria, explicitly cite prior exits and CEO/CTO role-history signals from Team Research Signal when available.
- For industry criteria, explicitly evaluate both sector priority fit and workflow/data/adoption thesis fit with concrete evidence.
- For location criteria, apply the fund location rubric (U.S. preferred, Canada acceptable, remote decent, outside U.S./Canada conservative).
- For portfolio-synergy criteria, explicitly analyze similar space, similar customer base, and complementary offering opportunities versus named portfolio companies.
- For necessity criteria, explicitly apply Vitamin/Advil/Vaccine framing with concrete urgency and consequence-of-inaction evidence.
- For market growth criteria:
  * Explicitly use Market Growth Signal (estimated CAGR + growth band + confidence + evidence).
  * Apply this baseline rubric: high growth (>=20%) => 75-90, moderate (8%-19%) => 55-74, low (0%-7%) => 35-54, negative growth => 20-40, unknown => max 50.
  * Do not use evidence_status="supported" unless a concrete growth rate or equivalent direct evidence is present.
  * If confidence <70, include missing_data describing what growth evidence is absent (recency, methodology, segment breakdown, geography).
- Use Source of Truth metrics (ARR/TAM/Market Growth/ACV/YoY Growth) as authoritative when present unless stronger contradictory evidence exists.
- If ARR is missing but materials cite signed/paid pilots, design partners, LOIs, or named customer deployments, treat that as early commercial traction (not zero traction). Reflect it in reasoning with appropriately conservative confidence.
- Do not claim a negative risk if the cited metric evidence is only positive."""


def _category_notes(inputs: PromptInputs, category_name: str) -> str:
    return "\n".join(
        f"- {note.content}"
        for note in inputs.categorized_notes
        if note.category == category_name or note.category.lower() == "overall"
    )


def build_category_scoring_prompt(inputs: PromptInputs, category: CategoryDefinition) -> str:
    """Scoring prompt scoped to a single category."""
    criteria_lines = "\n".join(
        f"- {c.name}: {c.description}\n  Guidance: {c.scoring_guidance}" for c in category.criteria
    )
    scoped_contexts = [ctx for ctx in inputs.criterion_contexts if ctx.category == category.name]
    notes = _category_notes(inputs, category.name) or inputs.user_notes or "No investor notes provided."

    signals = "\n\n".join(
        section for section in (
            format_user_criterion_context(inputs.previous_score, category.name),
            format_state_of_investors_signal(inputs.metrics, inputs.enrichment),
            format_team_research_signal(inputs.team_research),
            format_industry_thesis_signal(inputs.enrichment),
            format_market_growth_signal(inputs.external_intel, inputs.metrics),
            format_portfolio_synergy_signal(inputs.portfolio_synergy),
            format_problem_necessity_signal(inputs.problem_necessity),
        ) if section
    )

    output_schema = json.dumps(
        {
            "category": category.name,
            "score": "0-100",
            "criteria": [{
                "name": "EXACT criterion name from above",
                "score": "0-100",
                "confidence": "0-100",
                "evidence_status": "supported | weakly_supported | unknown | contradicted",
                "reasoning": "Specific reasoning with data points",
                "evidence": ["Specific quotes or metrics"],
                "missing_data": ["What is missing for confidence"],
                "follow_up_questions": ["1-3 tactical questions for this criterion"],
            }],
        },
        indent=2,
    )

    return f"""# Category Scoring Task
Company: {inputs.company_label}
Category: {category.name}
Weight: {category.weight:g}%

## Facts
{truncate_for_prompt(inputs.extracted_facts, CATEGORY_PROMPT_LIMITS['facts'])}

## External Market Intelligence
{truncate_for_prompt(format_external_market_intelligence(inputs.external_intel), CATEGORY_PROMPT_LIMITS['external_intel'])}

{format_enrichment_data(inputs.enrichment)}

{format_source_of_truth_metrics(inputs.metrics)}

{signals}

## Relevant Notes
{truncate_for_prompt(notes, CATEGORY_PROMPT_LIMITS['notes'])}
{format_questions_brief(inputs.questions)}
## Criteria In Scope
{criteria_lines}

## Criterion Evidence Snippets
{truncate_for_prompt(format_criterion_contexts(scoped_contexts), CATEGORY_PROMPT_LIMITS['snippets'])}

Return JSON:
{output_schema}

{CATEGORY_RULES_BLOCK}"""


SYNTHESIS_OUTPUT_BLOCK = """\
Return JSON:
{
  "company_one_liner": "1-2 sentence company description (do NOT start with company name)",
  "industry": "Primary industry/vertical/market (prefer vertical over business model, e.g., 'Real Estate' not 'B2B SaaS')",
  "founders": [{"name": "", "linkedin_url": "", "title": ""}],
  "data_quality": 0,
  "thesis_answers": {
    "problem_solving": "...",
    "solution": "...",
    "ideal_customer": "...",
    "exciting": ["..."],
    "concerning": ["..."],
    "founder_questions": {
      "questions": ["...", "...", "..."],
      "primary_concern": "...",
      "key_gaps": "..."
    }
  },
  "follow_up_questions": ["Top 5 overall follow-up questions"],
  "rescore_explanation": "Only when previous score exists"
}

Rules:
- Questions must be highly specific to this company and the evidence gaps.
- Keep outputs concise, concrete, and evidence-aware.
- "concerning" bullets must include substantiated evidence or explicit missing data.
- Founder questions must request specific metrics, documents, or timelines tied to weak criteria.
- Include at least one concern or follow-up grounded in external TAM/SAM/SOM or competitor findings when available.
- Use Source of Truth metrics as authoritative unless explicit stronger contradictions are present."""


def build_synthesis_prompt(inputs: PromptInputs, categories: list[CategoryScore]) -> str:
    """Cross-category synthesis prompt for the qualitative fields."""
    summary_lines = []
    for category in categories:
        low_confidence = ", ".join([c.name for c in category.criteria if c.confidence < 60][:2])
        suffix = f" (low confidence: {low_confidence})" if low_confidence else ""
        summary_lines.append(f"- {category.category}: {category.score}/100{suffix}")

    previous = (
        f"## Previous Overall Score\n{inputs.previous_score.overall}/100" if inputs.previous_score is not None else ""
    )

    return f"""# Diligence Synthesis Task
Company: {inputs.company_label}

## Extracted Facts
{truncate_for_prompt(inputs.extracted_facts, CATEGORY_PROMPT_LIMITS['facts'])}

## Category Scores
{chr(10).join(summary_lines)}

## External Market Intelligence
{truncate_for_prompt(format_external_market_intelligence(inputs.external_intel), 6000)}

{format_enrichment_data(inputs.enrichment)}

{format_source_of_truth_metrics(inputs.metrics)}

{previous}
{format_questions_brief(inputs.questions, resolved_warning=True)}
{SYNTHESIS_OUTPUT_BLOCK}"""


# ── Fact extraction ─────────────────────────────────────────────────────

FACT_EXTRACTION_SCHEMA = """\
```json
{
  "company_overview": {"what_they_do": "", "industry": "", "stage": "", "founded": ""},
  "problem": {"description": "", "target_market": "", "pain_points": [""]},
  "solution": {"product": "", "approach": "", "differentiation": "", "value_proposition": ""},
  "customers": {"ideal_customer_profile": "", "target_segments": [""], "use_cases": [""]},
  "traction": {"revenue": "", "customers": "", "growth": "", "partnerships": [""], "other": ""},
  "team": {"founders": [{"name": "", "background": "", "linkedin_url": ""}], "key_hires": "", "domain_expertise": ""},
  "market": {"tam": "", "sam": "", "market_trends": [""], "competitors": [""]},
  "business_model": {"pricing": "", "revenue_model": "", "unit_economics": ""},
  "financials": {"raising": "", "valuation": "", "terms": "", "runway": "", "burn_rate": ""},
  "go_to_market": {"strategy": "", "channels": [""], "sales_cycle": ""},
  "risks": {"execution": [""], "market": [""], "competition": [""], "team": [""]},
  "data_quality": {"score": 85, "missing_information": [""]}
}
```"""


def build_fact_extraction_prompt(
    company_name: str,
    documents_text: str,
    *,
    company_url: Optional[str] = None,
    user_notes: Optional[str] = None,
    url_only: bool = False,
) -> str:
    url_block = ""
    if url_only:
        url_block = (
            f'\nCRITICAL: This is URL-only analysis. The company name is "{company_name}" and URL is '
            f'"{company_url}".\nYou must identify what this SPECIFIC company actually does based on the name/URL, '
            "not generic assumptions.\nUse your knowledge of this company if you have it. If you don't recognize "
            "them, indicate limited information available.\n"
        )
    notes_block = f"\n## Investor's Initial Notes:\n{user_notes}\n" if user_notes else ""

    return f"""You are extracting structured facts from investment materials for {company_name}.
{url_block}
## Documents to Analyze:
{documents_text}
{notes_block}
## Task:
Extract ONLY factual information from the documents above into these structured categories. Be specific and cite numbers/details where available.

Return a JSON object with this structure:

{FACT_EXTRACTION_SCHEMA}

**Rules:**
- Only include facts that are explicitly stated or clearly implied
- Use "Not mentioned" or "Unknown" if information is missing
- Include specific numbers, dates, and metrics when available
- Keep descriptions concise but specific
- Do not editorialize or score - just extract facts"""


# ── External market intelligence ────────────────────────────────────────

def build_market_intel_prompt(company_label: str, extracted_facts: str, research_context: str) -> str:
    return f"""Analyze external market data for {company_label}.

Use available materials to produce:
1) Independent TAM/SAM/SOM estimate and compare to company claims.
2) Real competitor list with funding and concern levels.

Return JSON only:
{{
  "tam_sam_som": {{
    "company_claim": {{"tam": "", "sam": "", "som": "", "source": ""}},
    "independent_estimate": {{"tam": "", "sam": "", "som": "", "method": "", "assumptions": [""]}},
    "comparison": {{"alignment": "aligned|somewhat_aligned|overstated|understated|unknown", "delta_summary": "", "confidence": 0}}
  }},
  "market_growth": {{
    "estimated_cagr": "",
    "growth_band": "high|moderate|low|unknown",
    "confidence": 0,
    "evidence": [""],
    "summary": ""
  }},
  "competitors": [
    {{"name": "", "overlap": "low|medium|high", "funding_raised": "", "concern_level": "low|medium|high", "rationale": ""}}
  ],
  "competitive_threat_score": 0,
  "external_summary": ""
}}

Extracted facts:
{truncate_for_prompt(extracted_facts, MARKET_PROMPT_FACTS_LIMIT)}

External/web context:
{truncate_for_prompt(research_context, MARKET_PROMPT_RESEARCH_LIMIT)}

Rules:
- Be conservative if evidence is weak.
- Prefer explicit numbers and citations from provided content.
- If data is missing, mark unknown and lower confidence.
- For market growth, prefer explicit CAGR / annual growth rates from credible context; if only directional evidence exists, keep confidence low and classify growth_band conservatively.
- When direct market-size numbers are missing, provide a conservative order-of-magnitude estimate ONLY if the materials provide sufficient market/segment clues. In that case:
  - clearly label it as heuristic,
  - include explicit assumptions,
  - keep comparison confidence <= 40 unless strong support exists.
- Use "unknown" only when there is not enough information to produce even a conservative heuristic estimate."""


def build_market_sizing_prompt(
    company_label: str,
    founder_tam: Optional[str],
    extracted_facts: str,
    research_context: str,
) -> str:
    return f"""You are estimating an independent TAM for {company_label}.

Goal:
- Produce a conservative independent TAM/SAM/SOM estimate even when direct external numbers are sparse,
- BUT only if there is enough contextual signal from the provided materials.

Return JSON only:
{{
  "tam": "",
  "sam": "",
  "som": "",
  "method": "",
  "assumptions": [""],
  "confidence": 0
}}

Guidance:
- If precise values are unavailable, provide order-of-magnitude estimates (e.g., "$8B", "$10B-$15B").
- Keep confidence conservative (<=40) for heuristic estimates.
- If there is truly insufficient signal, return tam/sam/som as "unknown" with method explaining why.
- Do not copy founder TAM blindly; provide a sanity-checked independent view.

Founder/company TAM context:
{founder_tam or 'unknown'}

Extracted facts:
{truncate_for_prompt(extracted_facts, MARKET_PROMPT_FACTS_LIMIT)}

External/web context:
{truncate_for_prompt(research_context, MARKET_PROMPT_RESEARCH_LIMIT)}"""


# ── Notes summarization and investor questioning ────────────────────────

def build_notes_summary_prompt(company_name: str, payload: list[dict]) -> str:
    return f"""Summarize long investor notes for scoring context on {company_name}.
These may include call transcripts or verbose notes. Preserve only scoring-relevant details.

Return JSON:
{{
  "summaries": [
    {{
      "id": "note id",
      "summary": "3-6 bullet points with concrete facts, metrics, claims, concerns, and missing evidence"
    }}
  ]
}}

Input notes:
{json.dumps(payload)}"""


def build_investor_questioning_prompt(
    company_name: str,
    thesis: Optional[ThesisAnswers],
    weak_criteria_context: str,
) -> str:
    concerns = "\n".join(f"- {item}" for item in (thesis.concerning[:5] if thesis else []))
    questions = "\n".join(f"- {item}" for item in (thesis.founder_questions.questions[:5] if thesis else []))

    return f"""You are preparing partner-level venture diligence questions for {company_name}.

Use the risk context below to produce focused, evidence-anchored outputs.
Avoid generic startup questions.

## Existing concerns
{concerns or '- none'}

## Existing founder questions
{questions or '- none'}

## Highest-materiality weak criteria
{weak_criteria_context}

## Output requirements
- Return ONLY valid JSON.
- "concerning": exactly 3 bullets, each tied to concrete evidence or an explicit missing metric.
- "founder_questions.questions": exactly 3 tactical questions, each referencing a concrete claim/metric/gap.
- "founder_questions.primary_concern": one sentence.
- "founder_questions.key_gaps": concise semicolon-delimited list of missing data.
- "follow_up_questions": exactly 5 best overall due diligence questions ranked by decision impact.

JSON schema:
{{
  "thesis_answers": {{
    "concerning": ["..."],
    "founder_questions": {{
      "questions": ["..."],
      "primary_concern": "...",
      "key_gaps": "..."
    }}
  }},
  "follow_up_questions": ["..."]
}}"""
