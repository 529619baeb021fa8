"""Thesis refinement tests — materiality, evidence-anchored lines, suppression, dedupe."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from diligence.constants import NO_EVIDENCE_SENTINEL
from diligence.schemas.score_schema import CategoryScore, CriterionScore, DiligenceScore, ThesisAnswers
from diligence.services.thesis_refinement import (
    WeakCriterion,
    build_follow_up_questions,
    build_substantiated_concern,
    build_substantiated_question,
    coerce_thesis_answers,
    criterion_materiality,
    dedupe_similar_lines,
    enforce_thesis_specificity,
    extract_suppressed_risk_topics,
    get_weak_criteria,
    jaccard_similarity,
    merge_thesis_answers,
    normalize_question_line,
)


def _criterion(name, score, status="supported", evidence=None, missing=None, confidence=70):
    return CriterionScore(
        name=name,
        score=score,
        confidence=confidence,
        evidence_status=status,
        evidence=evidence if evidence is not None else [],
        missing_data=missing or [],
    )


def _weak(criterion, category="Traction", weight=50):
    return WeakCriterion(
        criterion=criterion,
        category=category,
        category_weight=weight,
        materiality=criterion_materiality(criterion, weight),
    )


def _categories():
    return [
        CategoryScore(category="Finance", score=30, weight=50, criteria=[
            _criterion("Burn Rate", 30, status="unknown", evidence=[NO_EVIDENCE_SENTINEL],
                       missing=["Monthly burn breakdown"]),
        ]),
        CategoryScore(category="Traction", score=40, weight=50, criteria=[
            _criterion("Retention", 40, status="weakly_supported",
                       evidence=["Logo churn was 4% last quarter"], missing=["Cohort retention by segment"]),
        ]),
    ]


class TestMateriality:
    def test_formula(self):
        criterion = _criterion("Moat", 40, status="unknown", confidence=50)
        assert criterion_materiality(criterion, 50) == 46.0

    def test_weakest_first(self):
        ranked = get_weak_criteria(_categories())
        assert [w.name for w in ranked] == ["Burn Rate", "Retention"]
        assert ranked[0].materiality == 47.0


class TestSynthesizedLines:
    def test_concern_quotes_evidence(self):
        weak = _weak(_criterion("Retention", 40, evidence=[NO_EVIDENCE_SENTINEL, "Logo churn was 4%"]))
        assert build_substantiated_concern(weak) == (
            "Traction: Retention remains a material risk. Evidence suggests: Logo churn was 4%"
        )

    def test_concern_names_gap(self):
        weak = _weak(_criterion("Retention", 40, missing=["Cohort data"]))
        assert build_substantiated_concern(weak).endswith("Key evidence gap: Cohort data.")

    def test_question_prefers_missing_data(self):
        weak = _weak(_criterion("Retention", 40, evidence=["Logo churn was 4%"], missing=["cohort data"]))
        assert build_substantiated_question(weak).startswith("Traction / Retention: Can you provide cohort data?")

    def test_question_quotes_evidence(self):
        weak = _weak(_criterion("Retention", 40, evidence=["Logo churn was 4%"]))
        assert 'You stated "Logo churn was 4%"' in build_substantiated_question(weak)

    def test_normalize_question_line(self):
        assert normalize_question_line("  What is   churn ") == "What is churn?"
        assert normalize_question_line("   ") == ""


class TestSimilarity:
    def test_near_duplicates_dropped(self):
        lines = [
            "Can you share monthly churn by cohort for 2024?",
            "Can you share monthly churn by cohort for 2024 please?",
            "What is the blended CAC across channels?",
        ]
        assert dedupe_similar_lines(lines) == [lines[0], lines[2]]

    def test_empty_sets(self):
        assert jaccard_similarity(set(), {"churn"}) == 0.0


class TestSuppressedTopics:
    def test_topics_from_override(self):
        previous = DiligenceScore(overall=50, scored_at="2026-01-01T00:00:00+00:00", categories=[
            CategoryScore(
                category="Market", score=50, weight=100, manual_override=70,
                override_reason="Not concerned about competition this early",
                override_suppress_topics=["Burn"],
            ),
        ])
        topics = extract_suppressed_risk_topics(previous)
        assert topics[:2] == ["burn", "competition"]
        assert "competition this early" in topics

    def test_no_previous_score(self):
        assert extract_suppressed_risk_topics(None) == []


class TestThesisPayloads:
    def test_camel_case_coercion(self):
        thesis = coerce_thesis_answers({
            "problemSolving": "Manual freight audits",
            "exciting": "Strong technical founder",
            "founderQuestions": {"questions": ["What is churn?", ""], "primaryConcern": "Churn"},
        })
        assert thesis.problem_solving == "Manual freight audits"
        assert thesis.exciting == ["Strong technical founder"]
        assert thesis.founder_questions.questions == ["What is churn?"]
        assert thesis.founder_questions.primary_concern == "Churn"

    def test_merge_overlays_non_empty_fields(self):
        base = ThesisAnswers(problem_solving="Audits", solution="Agent")
        merged = merge_thesis_answers(base, {"solution": "Copilot", "problem_solving": ""})
        assert merged.problem_solving == "Audits"
        assert merged.solution == "Copilot"
        assert merge_thesis_answers(base, "garbage") == base


class TestEnforceSpecificity:
    def test_suppressed_topics_removed(self):
        previous = DiligenceScore(overall=40, scored_at="2026-01-01T00:00:00+00:00", categories=[
            CategoryScore(category="Finance", score=30, weight=50, override_suppress_topics=["burn"]),
        ])
        thesis = ThesisAnswers(concerning=["Burn is high and runway is short at 8 months"])
        refined = enforce_thesis_specificity(thesis, _categories(), previous)

        assert refined.concerning
        assert not any("burn" in line.lower() for line in refined.concerning)
        assert refined.concerning[0].startswith("Traction: Retention remains a material risk.")
        assert refined.founder_questions.questions[0].startswith(
            "Traction / Retention: Can you provide Cohort retention by segment?"
        )
        assert refined.founder_questions.key_gaps == "Cohort retention by segment"
        assert refined.founder_questions.primary_concern == refined.concerning[0]

    def test_unsuppressed_weakest_leads(self):
        refined = enforce_thesis_specificity(None, _categories())
        assert refined.founder_questions.key_gaps == "Monthly burn breakdown; Cohort retention by segment"
        assert len(refined.concerning) == 2

    def test_no_categories(self):
        assert enforce_thesis_specificity(None, []) is None


class TestFollowUps:
    def test_direct_questions_merged_and_capped(self):
        questions = build_follow_up_questions(["What is your CAC payback by channel"], None, _categories())
        assert "What is your CAC payback by channel?" in questions
        assert 1 <= len(questions) <= 5
        assert all(q.endswith("?") for q in questions)
