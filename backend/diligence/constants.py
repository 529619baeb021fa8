"""Centralized constants for the diligence scoring pipeline.

This module is the SINGLE SOURCE OF TRUTH for tuned thresholds, sector
benchmarks, and keyword sets. Reused by:
  - Metric extractors
  - External market estimator
  - Normalization layer and calibration passes
  - Thesis refinement
"""

from __future__ import annotations

import re

# ── Metric placeholders ─────────────────────────────────────────────────
# Compared after lower-casing and stripping whitespace, "$", ":", "_", "-".

PLACEHOLDER_METRIC_VALUES: frozenset[str] = frozenset({
    "",
    "unknown",
    "na",
    "n/a",
    "notavailable",
    "notprovided",
    "notdisclosed",
    "notspecified",
    "none",
})

METRIC_SLOTS: tuple[str, ...] = (
    "arr",
    "tam",
    "market_growth_rate",
    "acv",
    "yoy_growth_rate",
    "funding_amount",
    "committed",
    "valuation",
    "deal_terms",
    "lead",
    "current_runway",
    "post_funding_runway",
    "location",
)

# ── Score defaults ──────────────────────────────────────────────────────

DEFAULT_CRITERION_SCORE = 50
DEFAULT_CRITERION_CONFIDENCE = 55
DEFAULT_INSUFFICIENT_EVIDENCE_CAP = 60
CONTRADICTED_SCORE_CAP = 40
WEAK_EVIDENCE_CAP_HEADROOM = 10
WEAK_EVIDENCE_CAP_CEILING = 70
MAX_EVIDENCE_LINES = 5
MAX_CRITERION_FOLLOW_UPS = 3
PRIMARY_DATA_QUALITY_DEFAULT = 50
CHUNKED_DATA_QUALITY_DEFAULT = 60

NO_EVIDENCE_SENTINEL = "No direct evidence cited."
DEFAULT_REASONING = "Model response did not include criterion-specific reasoning."

EVIDENCE_STATUSES: tuple[str, ...] = ("supported", "weakly_supported", "unknown", "contradicted")

# ── Market growth bands (annualized %) ──────────────────────────────────

GROWTH_BAND_HIGH_MIN = 20.0
GROWTH_BAND_MODERATE_MIN = 8.0
GROWTH_BAND_LOW_MIN = 0.0

# ── TAM alignment (founder / independent ratio) ─────────────────────────

TAM_OVERSTATED_RATIO = 1.35
TAM_SOMEWHAT_HIGH_RATIO = 1.1
TAM_UNDERSTATED_RATIO = 0.65
TAM_SOMEWHAT_LOW_RATIO = 0.9
TAM_MATERIAL_DISCREPANCY_RATIO = 5.0
TAM_MIN_CREDIBLE_VALUE = 50_000_000

# ── External market estimator confidence bounds ─────────────────────────

FALLBACK_LLM_CONFIDENCE_CAP = 40
FALLBACK_LLM_CONFIDENCE_DEFAULT = 30
DETERMINISTIC_CONFIDENCE_FLOOR = 20
HEURISTIC_CONFIDENCE_FLOOR = 15
HEURISTIC_CONFIDENCE_CAP = 40
MAX_GROWTH_PERCENT = 150.0
EVIDENCE_SCAN_MAX_LINES = 1200

RESEARCH_CONTEXT_DOC_NAMES: frozenset[str] = frozenset({
    "Current Web Research",
    "Website Content",
    "Company Description",
})

# ── Sector heuristic table ──────────────────────────────────────────────
# First matching pattern wins; order matters.

SECTOR_HEURISTICS: list[dict] = [
    {
        "pattern": re.compile(r"(procurement|supply\s*chain|manufactur(ing|er)|industrial\s+software)"),
        "tam": "$10B",
        "growth": "10%",
        "method": "Sector benchmark heuristic for procurement and industrial software markets.",
        "assumptions": [
            "Primary segment aligns with industrial procurement/workflow software.",
            "Global software spend in this segment is commonly in high single-digit to low double-digit billions.",
            "Conservative midpoint benchmark selected due to limited direct TAM evidence in source materials.",
        ],
    },
    {
        "pattern": re.compile(r"(recruit(ing|ment)|hrtech|talent)"),
        "tam": "$10B",
        "growth": "10%",
        "method": "Sector benchmark heuristic for recruitment and HR technology.",
        "assumptions": [
            "Primary segment aligns with recruiting and talent workflow software.",
            "Broad HR/recruiting software spend supports a multi-billion TAM range.",
            "Conservative benchmark selected due to limited company-specific TAM evidence.",
        ],
    },
    {
        "pattern": re.compile(r"(cyber|security|infosec)"),
        "tam": "$150B",
        "growth": "12%",
        "method": "Sector benchmark heuristic for cybersecurity markets.",
        "assumptions": [
            "Primary segment aligns with cybersecurity software/services.",
            "Global cybersecurity spend commonly exceeds $100B.",
            "Conservative benchmark selected due to limited segment split evidence.",
        ],
    },
    {
        "pattern": re.compile(r"(fintech|payments|lending|banking)"),
        "tam": "$50B",
        "growth": "9%",
        "method": "Sector benchmark heuristic for fintech infrastructure and software.",
        "assumptions": [
            "Primary segment aligns with fintech/payments software.",
            "Global spend on fintech software/infrastructure supports a large multi-billion TAM.",
            "Conservative benchmark selected pending tighter ICP segmentation.",
        ],
    },
    {
        "pattern": re.compile(r"(healthcare|medtech|clinical)"),
        "tam": "$30B",
        "growth": "8%",
        "method": "Sector benchmark heuristic for healthcare software.",
        "assumptions": [
            "Primary segment aligns with healthcare/clinical workflow software.",
            "Healthcare software spend supports a large multi-billion TAM.",
            "Conservative benchmark selected pending narrower sub-segment data.",
        ],
    },
    {
        "pattern": re.compile(
            r"(title\s+insurance|title\s+company|title\s+agent|real\s+estate\s+closing|closing\s+workflow"
            r"|proptech|legaltech|property\s+transaction)"
        ),
        "tam": "$25B",
        "growth": "9%",
        "method": "Sector benchmark heuristic for title, real-estate closing, and property-transaction workflow software.",
        "assumptions": [
            "Primary segment aligns with title and real-estate transaction operations software.",
            "U.S. title and closing workflow spend supports a large multi-billion software TAM.",
            "Conservative benchmark selected due to limited direct company-specific TAM evidence.",
        ],
    },
]

# ── Prompt limits (full, compact) ───────────────────────────────────────

PROMPT_LIMITS: dict[str, tuple[int, int]] = {
    "facts": (35_000, 18_000),
    "learning": (6_000, 2_500),
    "previous_score": (3_500, 2_000),
    "thesis": (7_000, 4_000),
    "notes": (9_000, 5_000),
    "name_map": (6_000, 3_000),
    "criterion_context": (22_000, 10_000),
    "external_intel": (14_000, 7_000),
}

CATEGORY_PROMPT_LIMITS: dict[str, int] = {
    "facts": 12_000,
    "external_intel": 5_000,
    "notes": 2_500,
    "snippets": 7_000,
}

MARKET_PROMPT_FACTS_LIMIT = 9_000
MARKET_PROMPT_RESEARCH_LIMIT = 16_000
RESEARCH_DOC_SNIPPET_CHARS = 5_000
FACT_EXTRACTION_DOC_SLICE = 30_000
RAW_FACTS_FALLBACK_SLICE = 20_000
NOTES_SUMMARY_MIN_CHARS = 1_400

PROMPT_TRUNCATION_MARKER = "\n\n[... truncated for token limits ...]"
DOCUMENT_TRUNCATION_MARKER = "\n\n[... Document truncated due to size limits ...]"

DOCUMENT_PRIORITY: dict[str, int] = {"deck": 1, "financial": 2, "legal": 3, "other": 4}

# ── Criterion context snippets ──────────────────────────────────────────

SNIPPET_FACTS_CHARS = 12_000
SNIPPET_MAX_PARTS_PER_DOC = 25
SNIPPET_MAX_CHARS = 320
SNIPPETS_PER_CRITERION = 2
NUMERIC_SNIPPET_BONUS = 0.5

CRITERION_KEYWORD_STOPWORDS: frozenset[str] = frozenset({
    "this", "that", "with", "from", "into", "about", "their", "there", "which",
    "while", "where", "score", "scoring", "criteria", "guidance", "against",
    "startup", "company", "companies",
})

# ── Calibration thresholds ──────────────────────────────────────────────

MANUAL_CALIBRATION_MIN_SAMPLES = 3
MANUAL_CALIBRATION_FULL_STRENGTH_SAMPLES = 8
MANUAL_CALIBRATION_CONFIDENCE_PIVOT = 65
MANUAL_CALIBRATION_DAMPING = 0.7
MANUAL_CALIBRATION_BOUND = 12.0

EXTERNAL_THREAT_HIGH = 80
EXTERNAL_THREAT_MEDIUM = 65
EXTERNAL_PENALTY_HIGH = 8
EXTERNAL_PENALTY_MEDIUM = 4

EARLY_TRACTION_SCORE_FLOOR = 30
EARLY_TRACTION_CONFIDENCE_FLOOR = 45

# ── Reasoning quality ───────────────────────────────────────────────────

GENERIC_REASONING_PHRASES: tuple[str, ...] = (
    "strong team",
    "large market",
    "good traction",
    "promising opportunity",
    "solid potential",
    "relevant experience",
    "compelling product",
    "clear value proposition",
    "significant opportunity",
)
MIN_SPECIFIC_REASONING_CHARS = 80

STATUS_IMPLICATIONS: dict[str, str] = {
    "supported": "This supports conviction in the score.",
    "weakly_supported": "This supports the score but still leaves material uncertainty.",
    "contradicted": "This contradicts key assumptions and warrants a conservative score.",
    "unknown": "Evidence is limited, so the score is intentionally conservative.",
}

# ── Thesis refinement ───────────────────────────────────────────────────

MATERIALITY_UNKNOWN_BONUS = 12.0
MATERIALITY_CONFIDENCE_PIVOT = 70
MATERIALITY_CONFIDENCE_DIVISOR = 5.0

DEDUPE_THRESHOLD_DEFAULT = 0.58
DEDUPE_THRESHOLD_CONCERNS = 0.52
DEDUPE_THRESHOLD_QUESTIONS = 0.5
DEDUPE_THRESHOLD_FOLLOW_UPS = 0.52

THESIS_TOKEN_STOPWORDS: frozenset[str] = frozenset({
    "the", "and", "for", "with", "this", "that", "from", "into", "about",
    "because", "evidence", "suggests", "remains", "material", "risk", "key",
})

SUPPRESSIBLE_TOPICS: tuple[str, ...] = (
    "burn", "runway", "churn", "competition", "competitor", "valuation", "team", "market",
)

KEY_GAPS_FALLBACK = "Key evidence gaps remain on low-confidence criteria."

# ── Learning data ───────────────────────────────────────────────────────

LEARNING_CONTEXT_MIN_DECISIONS = 5
