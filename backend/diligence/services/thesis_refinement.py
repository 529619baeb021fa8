"""Thesis & Question Refinement Engine.

Turns calibrated criteria into investor-facing concerns and founder
questions that cite actual evidence or name an actual gap.

Pipeline
--------
1. Rank criteria by materiality (how much a weak score matters).
2. Synthesize a concern / question for the top criteria from their best
   evidence line or first missing-data item.
3. Merge with model-proposed candidates, drop topics the analyst
   suppressed through an override, de-duplicate by token Jaccard.
4. Rank by specificity + materiality and keep the top few.

Rules
-----
- NO API calls
- NO LLMs
- Never invents unsupported text; every synthesized line quotes evidence
  or a missing-data item
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from ..constants import (
    DEDUPE_THRESHOLD_CONCERNS,
    DEDUPE_THRESHOLD_DEFAULT,
    DEDUPE_THRESHOLD_FOLLOW_UPS,
    DEDUPE_THRESHOLD_QUESTIONS,
    DEFAULT_CRITERION_CONFIDENCE,
    KEY_GAPS_FALLBACK,
    MATERIALITY_CONFIDENCE_DIVISOR,
    MATERIALITY_CONFIDENCE_PIVOT,
    MATERIALITY_UNKNOWN_BONUS,
    NO_EVIDENCE_SENTINEL,
    SUPPRESSIBLE_TOPICS,
    THESIS_TOKEN_STOPWORDS,
)
from ..schemas.score_schema import CategoryScore, CriterionScore, DiligenceScore, FounderQuestions, ThesisAnswers
from .normalization_engine import as_string_array, model_field

_TOKEN_STRIP_RE = re.compile(r"[^a-z0-9\s]")
_SPECIFIC_SIGNAL_RE = re.compile(
    r"\d|%|\$|arr|mrr|tam|sam|som|cac|ltv|churn|retention|runway|customers?|months?|quarters?",
    re.IGNORECASE,
)
_HORIZON_RE = re.compile(r"\b(next\s+(6|12)\s+months?|next\s+2\s+quarters?)\b", re.IGNORECASE)
_GENERIC_QUESTION_RE = re.compile(
    r"\b(what'?s your strategy|tell us more|can you elaborate|how big is the market)\b", re.IGNORECASE
)
_CONCERN_KEYWORD_RE = re.compile(
    r"evidence|missing|gap|contradiction|risk|runway|retention|churn|tam|cac|ltv", re.IGNORECASE
)
_NOT_CONCERNED_RE = re.compile(r"not\s+concerned\s+about\s+([a-z0-9\s\-]+)")

_MATERIALITY_WINDOW = 8
_CATEGORY_HIT_FACTOR = 0.05
_CRITERION_HIT_FACTOR = 0.08


@dataclass(frozen=True)
class WeakCriterion:
    """A criterion ranked by how much its weakness should worry an investor."""

    criterion: CriterionScore
    category: str
    category_weight: float
    materiality: float

    @property
    def name(self) -> str:
        return self.criterion.name

    @property
    def confidence(self) -> int:
        c = self.criterion.confidence
        return c if c is not None else DEFAULT_CRITERION_CONFIDENCE


# ---------------------------------------------------------------------------
# Materiality
# ---------------------------------------------------------------------------
def criterion_materiality(criterion: CriterionScore, category_weight: float) -> float:
    """(100 - score) * weight/100 + 12 if unknown/contradicted + max(0, 70 - confidence)/5."""
    confidence = criterion.confidence if criterion.confidence is not None else DEFAULT_CRITERION_CONFIDENCE
    status_penalty = MATERIALITY_UNKNOWN_BONUS if criterion.evidence_status in ("unknown", "contradicted") else 0.0
    return (
        (100 - criterion.score) * (category_weight / 100)
        + status_penalty
        + max(0, MATERIALITY_CONFIDENCE_PIVOT - confidence) / MATERIALITY_CONFIDENCE_DIVISOR
    )


def get_weak_criteria(categories: list[CategoryScore]) -> list[WeakCriterion]:
    """All criteria, most material first; ties go to the lower confidence."""
    ranked = [
        WeakCriterion(
            criterion=criterion,
            category=category.category,
            category_weight=category.weight,
            materiality=criterion_materiality(criterion, category.weight),
        )
        for category in categories
        for criterion in category.criteria
    ]
    return sorted(ranked, key=lambda item: (-item.materiality, item.confidence))


# ---------------------------------------------------------------------------
# Synthesized lines
# ---------------------------------------------------------------------------
def best_evidence_line(criterion: CriterionScore) -> Optional[str]:
    return next(
        (line for line in criterion.evidence if line and line.strip() and line != NO_EVIDENCE_SENTINEL),
        None,
    )


def build_substantiated_concern(weak: WeakCriterion) -> str:
    evidence = best_evidence_line(weak.criterion)
    base = f"{weak.category}: {weak.name} remains a material risk."
    if evidence:
        return f"{base} Evidence suggests: {evidence}"
    if weak.criterion.missing_data:
        return f"{base} Key evidence gap: {weak.criterion.missing_data[0]}."
    return f"{base} Evidence is currently limited in the available materials."


def build_substantiated_question(weak: WeakCriterion) -> str:
    missing = next((item for item in weak.criterion.missing_data if item), None)
    prefix = f"{weak.category} / {weak.name}"
    if missing:
        return f"{prefix}: Can you provide {missing}? How would this change your current plan over the next 12 months?"
    evidence = best_evidence_line(weak.criterion)
    if evidence:
        return (
            f'{prefix}: You stated "{evidence}". What specific operating metric and timeline will validate '
            "this claim in the next 2 quarters?"
        )
    return f"{prefix}: What concrete KPI should we use to validate execution progress in the next 6 months?"


def normalize_question_line(question: str) -> str:
    trimmed = (question or "").strip()
    if not trimmed:
        return ""
    with_mark = trimmed if trimmed.endswith("?") else f"{trimmed}?"
    return re.sub(r"\s+", " ", with_mark).strip()


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------
def token_set(text: str) -> set[str]:
    cleaned = _TOKEN_STRIP_RE.sub(" ", text.lower())
    return {token for token in cleaned.split() if len(token) > 3 and token not in THESIS_TOKEN_STOPWORDS}


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    intersection = len(a & b)
    union = len(a) + len(b) - intersection
    return intersection / union if union else 0.0


def dedupe_similar_lines(lines: list[str], similarity_threshold: float = DEDUPE_THRESHOLD_DEFAULT) -> list[str]:
    """Keep the first of any group of lines whose token sets overlap >= threshold."""
    result: list[str] = []
    signatures: list[set[str]] = []
    for line in lines:
        trimmed = line.strip()
        if not trimmed:
            continue
        current = token_set(trimmed)
        if any(jaccard_similarity(existing, current) >= similarity_threshold for existing in signatures):
            continue
        result.append(trimmed)
        signatures.append(current)
    return result


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def score_question_specificity(question: str) -> float:
    normalized = question.lower()
    score = 0.0
    if len(normalized) >= 70:
        score += 1.2
    if len(normalized) < 35:
        score -= 1.5
    if _SPECIFIC_SIGNAL_RE.search(normalized):
        score += 3
    if re.search(r'[":]', question):
        score += 0.8
    if _HORIZON_RE.search(normalized):
        score += 0.8
    if _GENERIC_QUESTION_RE.search(normalized):
        score -= 2
    return score


def score_question_materiality(question: str, weak_criteria: list[WeakCriterion]) -> float:
    normalized = question.lower()
    score = 0.0
    for weak in weak_criteria[:_MATERIALITY_WINDOW]:
        if weak.category.lower() in normalized:
            score += weak.materiality * _CATEGORY_HIT_FACTOR
        if weak.name.lower() in normalized:
            score += weak.materiality * _CRITERION_HIT_FACTOR
    return score


def _rank(lines: list[str], scorer) -> list[str]:
    scored = [(line, scorer(line)) for line in lines]
    # sorted() is stable, so equal scores keep candidate order
    return [line for line, _ in sorted(scored, key=lambda item: -item[1])]


# ---------------------------------------------------------------------------
# Suppressed topics
# ---------------------------------------------------------------------------
def extract_suppressed_risk_topics(previous_score: Optional[DiligenceScore]) -> list[str]:
    """Topics an analyst silenced through a category override."""
    if previous_score is None:
        return []
    topics: list[str] = []
    for category in previous_score.categories:
        topics.extend(topic.lower() for topic in category.override_suppress_topics if topic)
        if category.manual_override is None or not category.override_reason:
            continue
        reason = category.override_reason.lower()
        topics.extend(topic for topic in SUPPRESSIBLE_TOPICS if topic in reason)
        topics.extend(match.strip() for match in _NOT_CONCERNED_RE.findall(reason) if match.strip())
    return list(dict.fromkeys(topic for topic in topics if topic))


def text_matches_suppressed_topics(text: str, topics: list[str]) -> bool:
    if not text or not topics:
        return False
    normalized = text.lower()
    return any(topic.lower() in normalized for topic in topics)


def criterion_matches_suppressed_topics(weak: WeakCriterion, topics: list[str]) -> bool:
    if not topics:
        return False
    c = weak.criterion
    corpus = f"{weak.category} {c.name} {c.reasoning} {' '.join(c.evidence)} {' '.join(c.missing_data)}"
    return text_matches_suppressed_topics(corpus, topics)


# ---------------------------------------------------------------------------
# Model thesis payloads
# ---------------------------------------------------------------------------
def _string_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def coerce_thesis_answers(raw: Any) -> Optional[ThesisAnswers]:
    """Build ``ThesisAnswers`` from model JSON (snake_case or camelCase keys)."""
    if isinstance(raw, ThesisAnswers):
        return raw
    if not isinstance(raw, dict):
        return None
    founder_raw = model_field(raw, "founder_questions", "founderQuestions")
    founder_raw = founder_raw if isinstance(founder_raw, dict) else {}

    def _text(item: Any, *keys: str) -> str:
        value = model_field(item, *keys)
        return value.strip() if isinstance(value, str) else ""

    return ThesisAnswers(
        problem_solving=_text(raw, "problem_solving", "problemSolving"),
        solution=_text(raw, "solution"),
        ideal_customer=_text(raw, "ideal_customer", "idealCustomer"),
        exciting=_string_list(model_field(raw, "exciting")),
        concerning=_string_list(model_field(raw, "concerning")),
        founder_questions=FounderQuestions(
            questions=_string_list(model_field(founder_raw, "questions")),
            primary_concern=_text(founder_raw, "primary_concern", "primaryConcern"),
            key_gaps=_text(founder_raw, "key_gaps", "keyGaps"),
        ),
        manually_edited=bool(model_field(raw, "manually_edited", "manuallyEdited")),
    )


def merge_thesis_answers(base: Optional[ThesisAnswers], override: Any) -> Optional[ThesisAnswers]:
    """Overlay the non-empty fields of *override* onto *base*."""
    incoming = coerce_thesis_answers(override)
    if incoming is None:
        return base
    if base is None:
        return incoming

    update = {
        field: getattr(incoming, field)
        for field in ("problem_solving", "solution", "ideal_customer", "exciting", "concerning")
        if getattr(incoming, field)
    }
    founder_update = {
        field: getattr(incoming.founder_questions, field)
        for field in ("questions", "primary_concern", "key_gaps")
        if getattr(incoming.founder_questions, field)
    }
    update["founder_questions"] = base.founder_questions.model_copy(update=founder_update)
    return base.model_copy(update=update)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def enforce_thesis_specificity(
    thesis: Optional[ThesisAnswers],
    categories: list[CategoryScore],
    previous_score: Optional[DiligenceScore] = None,
) -> Optional[ThesisAnswers]:
    """Replace concerns / founder questions with evidence-anchored, ranked ones."""
    if not categories:
        return thesis
    base = thesis or ThesisAnswers()

    suppressed = extract_suppressed_risk_topics(previous_score)
    all_weak = get_weak_criteria(categories)
    weak = [item for item in all_weak if not criterion_matches_suppressed_topics(item, suppressed)]
    # over-suppression falls back to every weak criterion
    top_weak = (weak or all_weak)[:6]
    generated_concerns = [build_substantiated_concern(item) for item in top_weak[:4]]
    generated_questions = [build_substantiated_question(item) for item in top_weak[:5]]

    incoming_concerns = [
        item for item in base.concerning
        if not text_matches_suppressed_topics(item, suppressed) and len(item.strip()) >= 20
    ]
    concerns = _rank(
        dedupe_similar_lines(generated_concerns + incoming_concerns, DEDUPE_THRESHOLD_CONCERNS),
        lambda c: score_question_specificity(c) * 0.4
        + score_question_materiality(c, top_weak)
        + (1 if _CONCERN_KEYWORD_RE.search(c) else 0),
    )[:3]

    incoming_questions = [
        q for q in (normalize_question_line(item) for item in base.founder_questions.questions)
        if q and not text_matches_suppressed_topics(q, suppressed) and len(q) >= 25
    ]
    questions = _rank(
        [
            q for q in dedupe_similar_lines(generated_questions + incoming_questions, DEDUPE_THRESHOLD_QUESTIONS)
            if not text_matches_suppressed_topics(q, suppressed)
        ],
        lambda q: score_question_specificity(q) + score_question_materiality(q, top_weak),
    )[:3]

    final_concerns = concerns or generated_concerns[:3]
    final_questions = questions or generated_questions[:3]

    primary_concern = base.founder_questions.primary_concern.strip()
    if primary_concern and text_matches_suppressed_topics(primary_concern, suppressed):
        primary_concern = ""
    primary_concern = primary_concern or (final_concerns[0] if final_concerns else "") or (
        generated_concerns[0] if generated_concerns else ""
    )

    gaps = [item for weak_item in top_weak for item in weak_item.criterion.missing_data if item][:5]
    key_gaps = "; ".join(dict.fromkeys(gaps)) or base.founder_questions.key_gaps or KEY_GAPS_FALLBACK

    return base.model_copy(update={
        "concerning": final_concerns,
        "founder_questions": base.founder_questions.model_copy(update={
            "questions": final_questions,
            "primary_concern": primary_concern,
            "key_gaps": key_gaps,
        }),
    })


def build_follow_up_questions(
    direct_questions: Any,
    thesis: Optional[ThesisAnswers],
    categories: list[CategoryScore],
) -> list[str]:
    """Top 5 diligence follow-ups across model, thesis, criteria and synthesis."""
    weak = get_weak_criteria(categories)
    synthesized = [build_substantiated_question(item) for item in weak[:5]]
    candidates = (
        as_string_array(direct_questions)
        + (list(thesis.founder_questions.questions) if thesis is not None else [])
        + [q for category in categories for c in category.criteria for q in c.follow_up_questions]
        + synthesized
    )
    normalized = list(dict.fromkeys(q for q in (normalize_question_line(c) for c in candidates) if q))
    deduped = dedupe_similar_lines(normalized, DEDUPE_THRESHOLD_FOLLOW_UPS)
    ranked = _rank(deduped, lambda q: score_question_specificity(q) + score_question_materiality(q, weak))
    return [q for q in ranked[:5] + synthesized if q][:5]


def format_weak_criteria_context(weak_criteria: list[WeakCriterion]) -> str:
    """Numbered weak-criteria block for the investor questioning prompt."""
    lines = []
    for index, weak in enumerate(weak_criteria, start=1):
        evidence = best_evidence_line(weak.criterion) or "No concrete evidence line captured"
        missing = "; ".join(weak.criterion.missing_data[:2]) or "No explicit missing data listed"
        lines.append(
            f"{index}. {weak.category} / {weak.name} (score={weak.criterion.score}, "
            f"confidence={weak.confidence}, materiality={weak.materiality:.1f})\n"
            f"- Evidence anchor: {evidence}\n"
            f"- Missing data: {missing}"
        )
    return "\n".join(lines)
