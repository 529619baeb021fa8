"""Team, portfolio-synergy and problem-necessity calibration.

Each pass folds a structured research artefact into the matching
criteria: confidence bounds, evidence status, and a reasoning paragraph
that cites the research explicitly.
"""

from __future__ import annotations

import re
from typing import Optional

from ...schemas.research_schema import Founder, NecessitySignal
from ...schemas.score_schema import CategoryScore, CriterionScore
from ..normalization_engine import clamp_score
from .context import CalibrationContext, criterion_confidence, unique, with_criteria

_I = re.IGNORECASE

_TEAM_CATEGORY_RE = re.compile(r"(team|founder)", _I)
_TEAM_CRITERION_RE = re.compile(r"(team|founder|ceo|cto)", _I)
_INLINE_FOUNDER_RE = re.compile(r"\b(founder|founding|ceo|cto)\b", _I)
_CEO_TITLE_RE = re.compile(r"(^|\b)ceo(\b|$)", _I)
_CTO_TITLE_RE = re.compile(r"(^|\b)cto(\b|$)", _I)
_ROLE_HISTORY_RE = re.compile(r"Role history:\s*([^|]+)", _I)
_ROLE_AT_RE = re.compile(
    r"\b(founder|co[-\s]?founder|ceo|cto|vp|head|director|principal|lead|engineer|architect)"
    r"\s+at\s+[A-Z][A-Za-z0-9&.\- ]{1,60}",
    _I,
)
_TEAM_SUMMARY_NOISE = [
    re.compile(r"there\s+is\s+currently\s+no\s+verifiable\s+information\s+available\s+about\s+the\s+found(ing|er)\s+team[^.]*\.?", _I),
    re.compile(r"there\s+is\s+insufficient\s+information\s+available\s+about\s+the\s+found(ing|er)\s+team[^.]*\.?", _I),
    re.compile(r"no\s+founder(?:-|\s*)level\s+details\s+(captured|available)[^.]*\.?", _I),
]

_SYNERGY_RE = re.compile(r"(synerg|portfolio)", _I)
_NECESSITY_CATEGORY_RE = re.compile(r"(necess|vitamin|advil|vaccine)", _I)
_NECESSITY_CRITERION_RE = re.compile(r"(necess|vitamin|advil|vaccine|problem\s+they\s+are\s+solving)", _I)

_SYNERGY_LABELS = {
    "similar_space": "similar space",
    "similar_customer": "similar customer",
    "complementary_offering": "complementary offering",
}


def _lift_unknown(status: str) -> str:
    return "weakly_supported" if not status or status == "unknown" else status


# ── Team research ────────────────────────────────────────────────────────

def _clean_team_summary(summary: str) -> str:
    cleaned = (summary or "").strip()
    for pattern in _TEAM_SUMMARY_NOISE:
        cleaned = pattern.sub("", cleaned)
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def _founder_highlight(founder: Founder) -> str:
    signals = ", ".join(
        label
        for flag, label in (
            (founder.has_prior_exit, "prior exit"),
            (founder.has_been_ceo, "prior CEO"),
            (founder.has_been_cto, "prior CTO"),
        )
        if flag
    )
    title = f" ({founder.title})" if founder.title else ""
    return f"{founder.name}{title}{f' - {signals}' if signals else ''}"


def _founder_role_history(founder: Founder) -> str:
    summary = founder.experience_summary or ""
    if not summary:
        return ""
    history = _ROLE_HISTORY_RE.search(summary)
    if history and history.group(1).strip():
        return f"{founder.name}: {history.group(1).strip()}"
    role_at = _ROLE_AT_RE.search(summary)
    return f"{founder.name}: {role_at.group(0).strip()}" if role_at else ""


def _leadership_sentence(role: str, founder: Optional[Founder], has_history: bool, has_profiles: bool) -> str:
    if founder is None:
        return f"{role} prior leadership evidence is limited in current materials."
    if has_history:
        return f"The {role} has verified prior {role} experience."
    if has_profiles:
        return (
            f"The {role} profile is present, but prior {role} history is not yet fully verified "
            "from accessible sources."
        )
    return f"No verified prior {role} experience was identified for the {role}."


def is_team_criterion(category_name: str, criterion_name: str) -> bool:
    return bool(_TEAM_CATEGORY_RE.search(category_name) or _TEAM_CRITERION_RE.search(criterion_name))


def apply_team_research_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    research = ctx.team_research
    if research is None:
        return categories

    founders = research.founders
    ceo = next((f for f in founders if _CEO_TITLE_RE.search(f.title or "")), None)
    cto = next((f for f in founders if _CTO_TITLE_RE.search(f.title or "")), None)
    exits = [item for founder in founders for item in founder.prior_exits if item]
    exits_text = "; ".join(exits[:4]) if exits else "No verified prior exits were identified"
    has_profiles = any(
        (founder.linkedin_url or "").strip() or (founder.experience_summary or "").strip() for founder in founders
    )
    highlights = "; ".join(_founder_highlight(f) for f in founders[:4])
    role_history = [line for line in (_founder_role_history(f) for f in founders) if line][:4]
    summary = _clean_team_summary(research.summary)
    ceo_sentence = _leadership_sentence("CEO", ceo, bool(ceo and ceo.has_been_ceo), has_profiles)
    cto_sentence = _leadership_sentence("CTO", cto, bool(cto and cto.has_been_cto), has_profiles)

    def _calibrate(criterion: CriterionScore) -> CriterionScore:
        missing = list(criterion.missing_data)
        confidence = criterion_confidence(criterion)
        status = criterion.evidence_status
        inline_text = f"{ctx.evidence_context}\n" + "\n".join(criterion.evidence)
        has_inline = bool(_INLINE_FOUNDER_RE.search(inline_text))

        if not founders:
            if not has_inline:
                confidence = min(confidence, 45)
                status = "unknown"
                missing.append("No founder/team evidence found from team research.")
            else:
                confidence = max(confidence, 45)
                status = _lift_unknown(status)
                missing.append("Founder evidence is present in materials but not yet externally verified.")
        elif not exits:
            confidence = min(confidence, 75)
            status = _lift_unknown(status)
            missing.append("No specific prior exits verified from available evidence.")
        if has_profiles:
            confidence = max(confidence, 50)
            status = _lift_unknown(status)

        if summary:
            opening = summary
        elif has_inline:
            opening = "Founding team context is present in company materials."
        else:
            opening = "Team context is available from identified founders and role history."
        signals_sentence = (
            f"Founder signals include {highlights}."
            if highlights
            else "Founder-specific signal detail is limited in current materials."
        )
        roles_sentence = f"Prior roles noted: {'; '.join(role_history)}." if role_history else ""
        reasoning = (
            f"{opening} {signals_sentence} {roles_sentence} Prior exits: {exits_text}. "
            f"{ceo_sentence} {cto_sentence}"
        )

        evidence = list(criterion.evidence)
        if highlights and not any(re.search(r"founders?\s+identified", line, _I) for line in evidence):
            evidence.append(f"Founders identified: {highlights}.")
        if role_history and not any(re.search(r"prior roles noted", line, _I) for line in evidence):
            evidence.append(f"Prior roles noted: {'; '.join(role_history)}.")
        if has_profiles and not any(re.search(r"founder profile", line, _I) for line in evidence):
            evidence.append("Founder profile evidence is available (LinkedIn/profile background) and was incorporated.")

        return criterion.model_copy(update={
            "confidence": clamp_score(confidence, criterion_confidence(criterion)),
            "evidence_status": status,
            "reasoning": reasoning,
            "evidence": evidence,
            "missing_data": unique(missing),
        })

    return _calibrate_matching(categories, is_team_criterion, _calibrate)


# ── Portfolio synergy ────────────────────────────────────────────────────

def is_synergy_criterion(category_name: str, criterion_name: str) -> bool:
    return bool(_SYNERGY_RE.search(category_name) or _SYNERGY_RE.search(criterion_name))


def apply_portfolio_synergy_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    research = ctx.portfolio_synergy
    if research is None:
        return categories

    matches = research.matches
    similar_space = sum(1 for m in matches if m.synergy_type == "similar_space")
    similar_customer = sum(1 for m in matches if m.synergy_type == "similar_customer")
    complementary = sum(1 for m in matches if m.synergy_type == "complementary_offering")
    top_matches = "; ".join(
        f"{m.company_name} ({_SYNERGY_LABELS.get(m.synergy_type, 'complementary offering')})" for m in matches[:4]
    )

    if matches:
        mix = (
            "complementary offerings"
            if complementary > similar_space and complementary > similar_customer
            else "a mix of similar-space and customer overlap"
        )
        mix_sentence = f"Most overlap appears in {mix} relationships."
    else:
        mix_sentence = ""
    examples_sentence = (
        f"Specific portfolio examples include {top_matches}."
        if top_matches
        else "No specific portfolio company overlaps were identified in current evidence."
    )
    reasoning = (
        f"{research.summary or 'No portfolio-synergy summary was provided.'} {examples_sentence} {mix_sentence}"
    ).strip()

    def _calibrate(criterion: CriterionScore) -> CriterionScore:
        missing = list(criterion.missing_data)
        confidence = criterion_confidence(criterion)
        status = criterion.evidence_status
        if not matches:
            confidence = min(confidence, 50)
            status = "unknown"
            missing.append("No concrete portfolio overlap identified yet.")
        return criterion.model_copy(update={
            "confidence": clamp_score(confidence, criterion_confidence(criterion)),
            "evidence_status": status,
            "reasoning": reasoning,
            "missing_data": unique(missing),
        })

    return _calibrate_matching(categories, is_synergy_criterion, _calibrate)


# ── Problem necessity ────────────────────────────────────────────────────

def _format_signal(signal: NecessitySignal) -> str:
    strength = f" ({signal.strength})" if signal.strength else ""
    evidence = f": {signal.evidence}" if signal.evidence else ""
    return f"{signal.label}{strength}{evidence}"


def is_necessity_criterion(category_name: str, criterion_name: str) -> bool:
    return bool(_NECESSITY_CATEGORY_RE.search(category_name) or _NECESSITY_CRITERION_RE.search(criterion_name))


def apply_problem_necessity_calibration(categories: list[CategoryScore], ctx: CalibrationContext) -> list[CategoryScore]:
    """No signals caps confidence at 50; a vaccine call with < 2 signals caps it at 65."""
    research = ctx.problem_necessity
    if research is None:
        return categories

    top_signals = research.top_signals
    classification = research.classification or "unknown"
    top_text = " ".join(_format_signal(s) for s in top_signals[:3])
    counter_text = " ".join(_format_signal(s) for s in research.counter_signals[:2])
    summary = research.summary.strip() or "No dedicated necessity summary was produced."
    reasoning = (
        f"Problem necessity is classified as {classification[:1].upper()}{classification[1:]}. {summary} "
        + (
            f"Primary demand signals include {top_text}."
            if top_text
            else "No concrete positive demand signals were identified from current materials."
        )
        + " "
        + (
            f"Counter-signals include {counter_text}."
            if counter_text
            else "No major counter-signals were identified in the current evidence set."
        )
    )

    def _calibrate(criterion: CriterionScore) -> CriterionScore:
        missing = list(criterion.missing_data)
        confidence = criterion_confidence(criterion)
        status = criterion.evidence_status
        if not top_signals:
            confidence = min(confidence, 50)
            status = "unknown"
            missing.append("No concrete necessity signals identified yet.")
        if classification == "vaccine" and len(top_signals) < 2:
            confidence = min(confidence, 65)
            missing.append("Vaccine classification has limited supporting signals.")
        return criterion.model_copy(update={
            "confidence": clamp_score(confidence, criterion_confidence(criterion)),
            "evidence_status": status,
            "reasoning": reasoning,
            "missing_data": unique(missing),
        })

    return _calibrate_matching(categories, is_necessity_criterion, _calibrate)


# ---------------------------------------------------------------------------
def _calibrate_matching(categories, predicate, calibrate) -> list[CategoryScore]:
    result = []
    for category in categories:
        hits = [predicate(category.category, c.name) for c in category.criteria]
        if not any(hits):
            result.append(category)
            continue
        criteria = [calibrate(c) if hit else c for c, hit in zip(category.criteria, hits)]
        result.append(with_criteria(category, criteria))
    return result
