"""Iteration controller - drives parse -> match -> score -> recommend -> revise rounds."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from ats_optimizer.cache.response_cache import ResponseCache
from ats_optimizer.clients.llm_client import LLMClient
from ats_optimizer.config import AppConfig, OptimizationConfig, validate_dimension_weights
from ats_optimizer.errors import (
    CapabilityAuthError,
    ConfigurationError,
    ParsingError,
    ScoringError,
)
from ats_optimizer.models.element import ParsedDocument, Role
from ats_optimizer.models.matching import MatchReport
from ats_optimizer.models.optimization import (
    IterationRecord,
    OptimizationMetrics,
    OptimizationResult,
    TerminationReason,
)
from ats_optimizer.models.recommendation import Recommendations
from ats_optimizer.models.scoring import MatchResult, Theme
from ats_optimizer.pipeline.parser_stage import ElementParser
from ats_optimizer.pipeline.recommender import RecommendationContext, RecommendationGenerator
from ats_optimizer.pipeline.resume_reviser import LLMResumeReviser, ResumeReviser
from ats_optimizer.pipeline.scorer import Scorer
from ats_optimizer.pipeline.semantic_matcher import SemanticMatcher
from ats_optimizer.pipeline.theme_extractor import ThemeExtractor

logger = logging.getLogger(__name__)

# One retry per round before the run gives up on revision
REVISION_ATTEMPTS = 2

# Absorbs float noise when comparing score improvements
_EPSILON = 1e-9


class RunPhase(str, Enum):
    INITIALIZING = "initializing"
    SCORING = "scoring"
    EVALUATING = "evaluating"
    REVISING = "revising"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RoundOutcome:
    """Everything one scoring pass produced for a single résumé version."""

    parsed_job: ParsedDocument
    parsed_resume: ParsedDocument
    themes: tuple[Theme, ...]
    match_report: MatchReport
    match_result: MatchResult
    recommendations: Recommendations


@dataclass(frozen=True)
class RunState:
    """Immutable snapshot of a run; each transition returns a new one."""

    phase: RunPhase
    job_text: str
    resume_text: str
    parsed_job: ParsedDocument | None = None
    themes: tuple[Theme, ...] = ()
    outcome: RoundOutcome | None = None
    history: tuple[IterationRecord, ...] = ()
    termination_reason: TerminationReason | None = None
    warnings: tuple[str, ...] = ()

    @property
    def round(self) -> int:
        return len(self.history)

    def advance(self, phase: RunPhase, **changes) -> RunState:
        return replace(self, phase=phase, **changes)

    def terminate(self, reason: TerminationReason, *warnings: str) -> RunState:
        return replace(
            self,
            phase=RunPhase.TERMINATED,
            termination_reason=reason,
            warnings=self.warnings + warnings,
        )


def stalled_rounds(history: Sequence[IterationRecord], min_improvement: float) -> int:
    """Consecutive trailing rounds that improved on the best prior round by less than ``min_improvement``."""
    stall = 0
    best = None
    for record in history:
        if best is not None:
            if record.score - best + _EPSILON < min_improvement:
                stall += 1
            else:
                stall = 0
        best = record.score if best is None else max(best, record.score)
    return stall


def evaluate_termination(
    history: Sequence[IterationRecord],
    config: OptimizationConfig,
) -> TerminationReason | None:
    """Pick the single termination reason for ``history``, or None to keep going.

    Checked in order: target reached, max iterations, early stopping.
    """
    if not history:
        return None
    if history[-1].score >= config.target_score:
        return TerminationReason.TARGET_REACHED
    if len(history) >= config.max_iterations:
        return TerminationReason.MAX_ITERATIONS
    if stalled_rounds(history, config.min_improvement) >= config.early_stopping_rounds:
        return TerminationReason.EARLY_STOPPING
    return None


class OptimizationOrchestrator:
    """Runs the optimization loop as an explicit state machine."""

    def __init__(
        self,
        llm: LLMClient,
        config: AppConfig | None = None,
        *,
        cache: ResponseCache | None = None,
        parser: ElementParser | None = None,
        matcher: SemanticMatcher | None = None,
        theme_extractor: ThemeExtractor | None = None,
        scorer: Scorer | None = None,
        recommender: RecommendationGenerator | None = None,
        reviser: ResumeReviser | None = None,
    ):
        self.llm = llm
        self.config = config or AppConfig()
        model = self.config.llm.model
        self.parser = parser or ElementParser(llm, cache=cache, model=model)
        self.matcher = matcher or SemanticMatcher(
            llm,
            batch_size=self.config.matcher.batch_size,
            max_concurrency=self.config.matcher.max_concurrency,
            min_strength=self.config.matcher.min_strength,
            model=model,
        )
        self.theme_extractor = theme_extractor or ThemeExtractor()
        self.scorer = scorer or Scorer(self.config.scoring)
        self.recommender = recommender or RecommendationGenerator(
            self.config.recommendations, llm=llm, model=model
        )
        self.reviser = reviser

    async def run(
        self,
        job_text: str,
        resume_text: str,
        *,
        optimization: OptimizationConfig | None = None,
        reviser: ResumeReviser | None = None,
        cancel_event: asyncio.Event | None = None,
        on_phase: Callable[[str, str], None] | None = None,
    ) -> OptimizationResult:
        """Optimize ``resume_text`` against ``job_text`` until a termination rule fires.

        Args:
            job_text: Job posting as plain text. Parsed once per run.
            resume_text: Initial résumé as plain text.
            optimization: Termination policy and weights; defaults to config.
            reviser: Revision step; defaults to the LLM reviser.
            cancel_event: Checked before every state transition.
            on_phase: Optional callback(phase_name, detail) for progress.

        Raises ConfigurationError before any round when the weights are
        invalid. Parsing, authentication and scoring failures abort the run.
        """
        optimization = optimization or self.config.optimization
        validate_dimension_weights(optimization.dimension_weights)
        reviser = reviser or self.reviser or LLMResumeReviser(self.llm, model=self.config.llm.model)

        start = time.monotonic()

        def _notify(phase: str, detail: str = ""):
            if on_phase:
                on_phase(phase, detail)

        state = RunState(phase=RunPhase.INITIALIZING, job_text=job_text, resume_text=resume_text)
        while state.phase is not RunPhase.TERMINATED:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Run cancelled after %d rounds", state.round)
                state = state.terminate(TerminationReason.CANCELLED)
                break
            _notify(state.phase.value, f"round {state.round + 1}")
            if state.phase is RunPhase.INITIALIZING:
                state = await self._initialize(state)
            elif state.phase is RunPhase.SCORING:
                state = await self._score(state, optimization)
            elif state.phase is RunPhase.EVALUATING:
                state = self._evaluate(state, optimization)
            elif state.phase is RunPhase.REVISING:
                state = await self._revise(state, reviser)

        result = self._finish(state, time.monotonic() - start)
        _notify(
            RunPhase.TERMINATED.value,
            f"{result.termination_reason.value}, score {result.final_score:.3f}",
        )
        return result

    async def analyze(self, job_text: str, resume_text: str) -> RoundOutcome:
        """Single scoring pass without the revision loop."""
        parsed_job, themes = await self._prepare_job(job_text)
        return await self._score_resume(
            parsed_job, themes, job_text, resume_text, self.config.optimization, iteration_round=1
        )

    async def _initialize(self, state: RunState) -> RunState:
        parsed_job, themes = await self._prepare_job(state.job_text)
        return state.advance(RunPhase.SCORING, parsed_job=parsed_job, themes=themes)

    async def _score(self, state: RunState, optimization: OptimizationConfig) -> RunState:
        outcome = await self._score_resume(
            state.parsed_job,
            state.themes,
            state.job_text,
            state.resume_text,
            optimization,
            iteration_round=state.round + 1,
        )
        return state.advance(RunPhase.EVALUATING, outcome=outcome)

    def _evaluate(self, state: RunState, optimization: OptimizationConfig) -> RunState:
        outcome = state.outcome
        record = IterationRecord(
            round=state.round + 1,
            score=outcome.match_result.overall_score,
            recommendations=outcome.recommendations,
            resume_version=state.resume_text,
            breakdown=outcome.match_result.breakdown,
            match_result=outcome.match_result,
            warnings=outcome.match_result.warnings,
        )
        history = (*state.history, record)
        logger.info("Round %d scored %.3f", record.round, record.score)

        reason = evaluate_termination(history, optimization)
        state = state.advance(RunPhase.EVALUATING, history=history, outcome=None)
        if reason is not None:
            logger.info("Terminating after round %d: %s", record.round, reason.value)
            return state.terminate(reason)
        return state.advance(RunPhase.REVISING)

    async def _revise(self, state: RunState, reviser: ResumeReviser) -> RunState:
        recommendations = state.history[-1].recommendations
        failures: list[str] = []
        for attempt in range(1, REVISION_ATTEMPTS + 1):
            try:
                revised = await reviser(state.resume_text, recommendations)
            except (CapabilityAuthError, ConfigurationError, ScoringError):
                raise
            except Exception as e:
                # Any other failure from an injected reviser uses up one attempt
                message = f"Revision attempt {attempt} in round {state.round} failed: {e}"
                logger.warning(message)
                failures.append(message)
                continue
            if not revised or not revised.strip():
                message = f"Revision attempt {attempt} in round {state.round} returned empty text"
                logger.warning(message)
                failures.append(message)
                continue
            return state.advance(
                RunPhase.SCORING,
                resume_text=revised,
                warnings=state.warnings + tuple(failures),
            )

        logger.error("Revision failed twice in round %d, stopping", state.round)
        return replace(state, warnings=state.warnings + tuple(failures)).terminate(
            TerminationReason.REVISION_FAILED
        )

    async def _prepare_job(self, job_text: str) -> tuple[ParsedDocument, tuple[Theme, ...]]:
        parsed_job = await self.parser.parse(job_text, Role.JOB)
        if not parsed_job.elements:
            raise ParsingError("Job posting produced no elements to score against")
        themes = tuple(
            self.theme_extractor.extract_themes(parsed_job, n=self.config.scoring.theme_count)
        )
        return parsed_job, themes

    async def _score_resume(
        self,
        parsed_job: ParsedDocument,
        themes: tuple[Theme, ...],
        job_text: str,
        resume_text: str,
        optimization: OptimizationConfig,
        *,
        iteration_round: int,
    ) -> RoundOutcome:
        parsed_resume = await self.parser.parse(resume_text, Role.RESUME)
        # Every batch settles before scoring sees any match
        report = await self.matcher.match(parsed_job.elements, parsed_resume.elements)
        match_result = self.scorer.score(report, themes, optimization)
        recommendations = self.recommender.recommend(
            match_result,
            RecommendationContext(
                iteration_round=iteration_round,
                target_score=optimization.target_score,
                themes=themes,
            ),
        )
        if self.config.recommendations.llm_summary:
            recommendations = await self.recommender.summarize(recommendations, job_text)
        return RoundOutcome(
            parsed_job=parsed_job,
            parsed_resume=parsed_resume,
            themes=themes,
            match_report=report,
            match_result=match_result,
            recommendations=recommendations,
        )

    def _finish(self, state: RunState, elapsed: float) -> OptimizationResult:
        """The single exit point: assemble the result from the full history."""
        history = state.history
        reason = state.termination_reason
        warnings = [w for record in history for w in record.warnings]
        warnings.extend(state.warnings)

        if not history:
            final_resume, final_score, initial_score = state.resume_text, 0.0, 0.0
        else:
            if reason is TerminationReason.REVISION_FAILED:
                # max() keeps the earliest of equal scores
                chosen = max(history, key=lambda r: r.score)
            else:
                chosen = history[-1]
            final_resume, final_score = chosen.resume_version, chosen.score
            initial_score = history[0].score

        return OptimizationResult(
            final_resume=final_resume,
            final_score=final_score,
            iterations=history,
            termination_reason=reason,
            metrics=OptimizationMetrics(
                initial_score=initial_score,
                final_score=final_score,
                improvement=final_score - initial_score,
                iteration_count=len(history),
            ),
            warnings=tuple(dict.fromkeys(warnings)),
            elapsed_seconds=elapsed,
        )
