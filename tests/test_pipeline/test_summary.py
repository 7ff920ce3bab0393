"""Tests for the job-queue summary."""

from ats_optimizer.models.element import ElementCategory
from ats_optimizer.models.matching import MatchType
from ats_optimizer.models.optimization import (
    IterationRecord,
    OptimizationMetrics,
    OptimizationResult,
    TerminationReason,
)
from ats_optimizer.models.recommendation import (
    Recommendation,
    RecommendationMetadata,
    Recommendations,
    RecommendationType,
)
from ats_optimizer.models.scoring import Gap, MatchResult, ScoreBreakdown, Strength
from ats_optimizer.pipeline.summary import build_job_summary
from conftest import make_element


def _strength(text, importance, category=ElementCategory.SKILL):
    return Strength(
        element=make_element(text, category, importance=importance),
        resume_element=make_element(text, section="skills"),
        match_type=MatchType.EXACT,
        strength=1.0,
        dimension="skills",
        importance=importance,
    )


def _gap(text, importance, category=ElementCategory.SKILL):
    return Gap(
        element=make_element(text, category, importance=importance),
        dimension="skills",
        importance=importance,
    )


def _record(round_, score, resume, match_result, priority=()):
    return IterationRecord(
        round=round_,
        score=score,
        resume_version=resume,
        match_result=match_result,
        recommendations=Recommendations(
            summary="",
            priority=tuple(priority),
            metadata=RecommendationMetadata(
                iteration_round=round_, current_score=score, target_score=0.8
            ),
        ),
    )


def _result(records, final_resume, final_score, reason=TerminationReason.MAX_ITERATIONS):
    return OptimizationResult(
        final_resume=final_resume,
        final_score=final_score,
        iterations=tuple(records),
        termination_reason=reason,
        metrics=OptimizationMetrics(
            initial_score=records[0].score,
            final_score=final_score,
            improvement=final_score - records[0].score,
            iteration_count=len(records),
        ),
        warnings=("Matching failed for section 'skills'",),
    )


def _match_result(score, strengths=(), gaps=()):
    return MatchResult(
        overall_score=score,
        breakdown=ScoreBreakdown(scores={"skills": score}, weights={"skills": 1.0}),
        strengths=tuple(strengths),
        gaps=tuple(gaps),
    )


class TestBuildJobSummary:
    def test_uses_final_round(self):
        kubernetes = Recommendation(
            type=RecommendationType.ADD_SKILL,
            element="Kubernetes",
            importance=0.95,
            suggestion='Make "Kubernetes" explicit',
        )
        first = _record(1, 0.5, "v1", _match_result(0.5, gaps=[_gap("Python", 0.9)]))
        last = _record(
            2,
            0.7,
            "v2",
            _match_result(
                0.7,
                strengths=[
                    _strength("Python", 0.9),
                    _strength("python", 0.6),
                    _strength("Mentoring", 0.5, ElementCategory.ATTRIBUTE),
                ],
                gaps=[_gap("Kubernetes", 0.95)],
            ),
            priority=[kubernetes],
        )

        summary = build_job_summary(_result([first, last], "v2", 0.7))

        assert summary.final_score == 0.7
        assert summary.termination_reason == "max_iterations"
        assert [(s.name, s.importance) for s in summary.matched_skills] == [("Python", 0.9)]
        assert [s.name for s in summary.missing_skills] == ["Kubernetes"]
        assert summary.gap_suggestions == ['Make "Kubernetes" explicit']
        assert summary.recommendations == ['[add_skill] Make "Kubernetes" explicit']
        assert summary.warnings == ["Matching failed for section 'skills'"]

    def test_revision_failed_reports_best_round(self):
        best = _record(1, 0.6, "v1", _match_result(0.6, strengths=[_strength("Go", 0.8)]))
        worse = _record(2, 0.5, "v2", _match_result(0.5, gaps=[_gap("Go", 0.8)]))

        summary = build_job_summary(
            _result([best, worse], "v1", 0.6, TerminationReason.REVISION_FAILED)
        )

        assert [s.name for s in summary.matched_skills] == ["Go"]
        assert summary.missing_skills == []

    def test_explicit_match_result_wins(self):
        record = _record(1, 0.6, "v1", _match_result(0.6))
        override = _match_result(0.6, gaps=[_gap("Rust", 0.7)])

        summary = build_job_summary(_result([record], "v1", 0.6), override)

        assert [s.name for s in summary.missing_skills] == ["Rust"]
