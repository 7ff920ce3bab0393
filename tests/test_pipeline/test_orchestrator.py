"""Tests for the optimization orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ats_optimizer.config import AppConfig, OptimizationConfig
from ats_optimizer.errors import (
    CapabilityAuthError,
    ConfigurationError,
    IterationError,
    ParsingError,
    ScoringError,
)
from ats_optimizer.models.element import DocumentSection, ParsedDocument, Role
from ats_optimizer.models.matching import MatchReport
from ats_optimizer.models.optimization import IterationRecord, TerminationReason
from ats_optimizer.models.recommendation import RecommendationMetadata, Recommendations
from ats_optimizer.models.scoring import MatchResult, ScoreBreakdown
from ats_optimizer.pipeline.orchestrator import (
    OptimizationOrchestrator,
    RoundOutcome,
    evaluate_termination,
    stalled_rounds,
)
from ats_optimizer.pipeline.parser_stage import (
    JOB_SYSTEM_PROMPT,
    RESUME_SYSTEM_PROMPT,
    ElementParser,
)
from ats_optimizer.pipeline.resume_reviser import SYSTEM_PROMPT as REVISER_PROMPT
from ats_optimizer.pipeline.scorer import Scorer
from ats_optimizer.pipeline.semantic_matcher import SYSTEM_PROMPT as MATCHER_PROMPT
from ats_optimizer.pipeline.semantic_matcher import SemanticMatcher
from conftest import extraction_payload, make_element, make_match

SKILLS_ONLY = {"skills": 1.0}


def _doc(role, *elements):
    return ParsedDocument(
        role=role,
        sections=(DocumentSection(name="requirements", elements=tuple(elements), confidence=0.8),),
    )


def _match_result(score, warnings=()):
    return MatchResult(
        overall_score=score,
        breakdown=ScoreBreakdown(scores={"skills": score}, weights=SKILLS_ONLY),
        warnings=tuple(warnings),
    )


def _record(round_, score):
    return IterationRecord(
        round=round_,
        score=score,
        resume_version=f"v{round_}",
        recommendations=Recommendations(
            summary="",
            metadata=RecommendationMetadata(
                iteration_round=round_, current_score=score, target_score=0.8
            ),
        ),
    )


def _revisions():
    """Reviser that returns 'résumé v2', 'résumé v3', ..."""
    counter = iter(range(2, 100))

    async def revise(resume_text, recommendations):
        return f"résumé v{next(counter)}"

    return AsyncMock(side_effect=revise)


def _orchestrator(mock_llm_client, scores, *, reviser=None, warnings=(), job_elements=None):
    job = job_elements if job_elements is not None else [make_element("Python", importance=0.9)]

    parser = AsyncMock(spec=ElementParser)

    async def parse(text, role):
        if Role(role) is Role.JOB:
            return _doc(Role.JOB, *job)
        return _doc(Role.RESUME, make_element("Python", section="skills"))

    parser.parse.side_effect = parse

    matcher = AsyncMock(spec=SemanticMatcher)
    matcher.match.return_value = MatchReport(matches=tuple(make_match(e) for e in job))

    scorer = MagicMock(spec=Scorer)
    scorer.score.side_effect = [_match_result(s, warnings) for s in scores]

    return OptimizationOrchestrator(
        mock_llm_client,
        AppConfig(),
        parser=parser,
        matcher=matcher,
        scorer=scorer,
        reviser=reviser or _revisions(),
    )


class TestEvaluateTermination:
    def test_empty_history_continues(self):
        assert evaluate_termination([], OptimizationConfig()) is None

    def test_target_beats_max_iterations(self):
        history = [_record(1, 0.5), _record(2, 0.85)]
        config = OptimizationConfig(target_score=0.8, max_iterations=2)

        assert evaluate_termination(history, config) is TerminationReason.TARGET_REACHED

    def test_max_iterations_beats_early_stopping(self):
        history = [_record(1, 0.5), _record(2, 0.5), _record(3, 0.5)]
        config = OptimizationConfig(max_iterations=3, early_stopping_rounds=2)

        assert evaluate_termination(history, config) is TerminationReason.MAX_ITERATIONS

    def test_keeps_going_while_improving(self):
        history = [_record(1, 0.5), _record(2, 0.6)]
        assert evaluate_termination(history, OptimizationConfig()) is None

    def test_stall_measured_against_best_prior_round(self):
        history = [_record(1, 0.7), _record(2, 0.6), _record(3, 0.65)]
        assert stalled_rounds(history, 0.01) == 2

    def test_real_improvement_resets_stall(self):
        history = [_record(1, 0.7), _record(2, 0.705), _record(3, 0.75)]
        assert stalled_rounds(history, 0.01) == 0

    def test_improvement_exactly_at_threshold_counts(self):
        history = [_record(1, 0.7), _record(2, 0.71)]
        assert stalled_rounds(history, 0.01) == 0


class TestRunTermination:
    async def test_target_reached_in_first_round(self, mock_llm_client):
        reviser = _revisions()
        orchestrator = _orchestrator(mock_llm_client, [0.82], reviser=reviser)

        result = await orchestrator.run(
            "job", "résumé v1", optimization=OptimizationConfig(target_score=0.8)
        )

        assert result.termination_reason is TerminationReason.TARGET_REACHED
        assert len(result.iterations) == 1
        assert result.final_score == 0.82
        assert result.final_resume == "résumé v1"
        reviser.assert_not_awaited()

    async def test_early_stopping(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.70, 0.705, 0.706])
        config = OptimizationConfig(
            target_score=0.8, max_iterations=5, early_stopping_rounds=2, min_improvement=0.01
        )

        result = await orchestrator.run("job", "résumé v1", optimization=config)

        assert result.termination_reason is TerminationReason.EARLY_STOPPING
        assert len(result.iterations) == 3
        assert result.final_score == 0.706
        assert result.final_resume == "résumé v3"

    async def test_max_iterations_regardless_of_trend(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.4, 0.5, 0.6])
        config = OptimizationConfig(target_score=0.9, max_iterations=3)

        result = await orchestrator.run("job", "résumé v1", optimization=config)

        assert result.termination_reason is TerminationReason.MAX_ITERATIONS
        assert len(result.iterations) == 3
        assert result.metrics.initial_score == 0.4
        assert result.metrics.improvement == pytest.approx(0.2)

    async def test_history_is_ordered_and_versioned(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.4, 0.5, 0.6])

        result = await orchestrator.run(
            "job", "résumé v1", optimization=OptimizationConfig(max_iterations=3)
        )

        assert [r.round for r in result.iterations] == [1, 2, 3]
        assert [r.resume_version for r in result.iterations] == [
            "résumé v1",
            "résumé v2",
            "résumé v3",
        ]
        assert [r.recommendations.metadata.iteration_round for r in result.iterations] == [1, 2, 3]
        assert all(r.match_result is not None for r in result.iterations)

    async def test_job_parsed_once_per_run(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.4, 0.5, 0.6])

        await orchestrator.run("job", "résumé v1", optimization=OptimizationConfig(max_iterations=3))

        roles = [Role(c.args[1]) for c in orchestrator.parser.parse.call_args_list]
        assert roles.count(Role.JOB) == 1
        assert roles.count(Role.RESUME) == 3


class TestRevisionFailures:
    async def test_single_failure_is_retried(self, mock_llm_client):
        calls = []

        async def flaky(resume_text, recommendations):
            calls.append(resume_text)
            if len(calls) == 1:
                raise IterationError("Revision failed: timeout")
            return "résumé v2"

        orchestrator = _orchestrator(mock_llm_client, [0.5, 0.85], reviser=AsyncMock(side_effect=flaky))

        result = await orchestrator.run("job", "résumé v1")

        assert result.termination_reason is TerminationReason.TARGET_REACHED
        assert result.final_resume == "résumé v2"
        assert len(calls) == 2
        assert any("attempt 1" in w for w in result.warnings)

    async def test_empty_revision_counts_as_failure(self, mock_llm_client):
        reviser = AsyncMock(side_effect=["  ", "résumé v2"])
        orchestrator = _orchestrator(mock_llm_client, [0.5, 0.85], reviser=reviser)

        result = await orchestrator.run("job", "résumé v1")

        assert result.final_resume == "résumé v2"
        assert reviser.await_count == 2

    async def test_two_failures_end_run_with_best_round(self, mock_llm_client):
        outcomes = ["résumé v2", IterationError("bad"), IterationError("worse")]
        orchestrator = _orchestrator(
            mock_llm_client, [0.6, 0.5], reviser=AsyncMock(side_effect=outcomes)
        )

        result = await orchestrator.run("job", "résumé v1")

        assert result.termination_reason is TerminationReason.REVISION_FAILED
        assert len(result.iterations) == 2
        assert result.final_score == 0.6
        assert result.final_resume == "résumé v1"
        assert len([w for w in result.warnings if "Revision attempt" in w]) == 2

    async def test_unexpected_reviser_error_ends_run_gracefully(self, mock_llm_client):
        reviser = AsyncMock(side_effect=RuntimeError("external reviser blew up"))
        orchestrator = _orchestrator(mock_llm_client, [0.3], reviser=reviser)

        result = await orchestrator.run("job", "résumé v1")

        assert result.termination_reason is TerminationReason.REVISION_FAILED
        assert result.final_score == 0.3
        assert result.final_resume == "résumé v1"
        assert reviser.await_count == 2
        assert any("blew up" in w for w in result.warnings)

    async def test_scoring_error_from_reviser_propagates(self, mock_llm_client):
        reviser = AsyncMock(side_effect=ScoringError("bad weights"))
        orchestrator = _orchestrator(mock_llm_client, [0.3], reviser=reviser)

        with pytest.raises(ScoringError):
            await orchestrator.run("job", "résumé v1")

    async def test_auth_failure_aborts(self, mock_llm_client):
        reviser = AsyncMock(side_effect=CapabilityAuthError("invalid x-api-key"))
        orchestrator = _orchestrator(mock_llm_client, [0.5], reviser=reviser)

        with pytest.raises(CapabilityAuthError):
            await orchestrator.run("job", "résumé v1")

        assert reviser.await_count == 1


class TestRunControl:
    async def test_invalid_weights_rejected_before_any_round(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.5])
        config = OptimizationConfig()
        config.dimension_weights["skills"] = 0.9

        with pytest.raises(ConfigurationError):
            await orchestrator.run("job", "résumé", optimization=config)

        orchestrator.parser.parse.assert_not_awaited()

    async def test_job_without_elements_aborts(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.5], job_elements=[])

        with pytest.raises(ParsingError):
            await orchestrator.run("job", "résumé")

    async def test_cancel_before_first_round(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.5])
        cancel = asyncio.Event()
        cancel.set()

        result = await orchestrator.run("job", "résumé v1", cancel_event=cancel)

        assert result.termination_reason is TerminationReason.CANCELLED
        assert result.iterations == ()
        assert result.final_score == 0.0
        assert result.final_resume == "résumé v1"

    async def test_cancel_mid_run_keeps_history(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.5, 0.6, 0.7])
        cancel = asyncio.Event()

        def on_phase(phase, detail):
            if phase == "revising":
                cancel.set()

        result = await orchestrator.run(
            "job", "résumé v1", cancel_event=cancel, on_phase=on_phase
        )

        assert result.termination_reason is TerminationReason.CANCELLED
        assert len(result.iterations) == 1
        assert result.final_score == 0.5

    async def test_phase_callback(self, mock_llm_client):
        phases = []
        orchestrator = _orchestrator(mock_llm_client, [0.9])

        await orchestrator.run("job", "résumé", on_phase=lambda p, d: phases.append(p))

        assert phases == ["initializing", "scoring", "evaluating", "terminated"]

    async def test_round_warnings_surface_in_result(self, mock_llm_client):
        warning = "Matching failed for section 'skills' (2 elements): down"
        orchestrator = _orchestrator(mock_llm_client, [0.9], warnings=[warning])

        result = await orchestrator.run("job", "résumé")

        assert result.warnings == (warning,)
        assert result.iterations[0].warnings == (warning,)

    async def test_analyze_scores_once(self, mock_llm_client):
        orchestrator = _orchestrator(mock_llm_client, [0.6])

        outcome = await orchestrator.analyze("job", "résumé")

        assert isinstance(outcome, RoundOutcome)
        assert outcome.match_result.overall_score == 0.6
        assert outcome.recommendations.metadata.iteration_round == 1
        assert outcome.themes[0].element.text == "Python"


class TestEndToEnd:
    async def test_revision_closes_gap(self, mock_llm_client):
        async def dispatch(prompt, system=None, **kwargs):
            if system == JOB_SYSTEM_PROMPT:
                return extraction_payload(
                    (
                        "Requirements",
                        [
                            {"text": "Python", "category": "skill", "importance": 0.9},
                            {
                                "text": "Kubernetes",
                                "category": "skill",
                                "importance": 0.9,
                                "position": {"start": 20, "end": 30},
                            },
                        ],
                    )
                )
            if system == RESUME_SYSTEM_PROMPT:
                skills = [{"text": "Python", "category": "skill"}]
                if "Kubernetes" in prompt:
                    skills.append({"text": "Kubernetes", "category": "skill"})
                return extraction_payload(("Skills", skills))
            if system == MATCHER_PROMPT:
                return {"matches": []}
            if system == REVISER_PROMPT:
                return {"resume_text": "Skills: Python, Kubernetes (ran our staging cluster)"}
            raise AssertionError(f"unexpected call: {system[:40]}")

        mock_llm_client.generate_json.side_effect = dispatch
        orchestrator = OptimizationOrchestrator(mock_llm_client, AppConfig())

        result = await orchestrator.run(
            "Requirements: Python, Kubernetes",
            "Skills: Python",
            optimization=OptimizationConfig(target_score=0.8, dimension_weights=SKILLS_ONLY),
        )

        assert result.termination_reason is TerminationReason.TARGET_REACHED
        assert [r.score for r in result.iterations] == [pytest.approx(0.5), pytest.approx(1.0)]
        first = result.iterations[0]
        assert [g.element.text for g in first.match_result.gaps] == ["Kubernetes"]
        assert first.recommendations.priority[0].element == "Kubernetes"
        assert "Kubernetes" in result.final_resume
