"""Pydantic models for the iteration history and the final run result."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from ats_optimizer.models.recommendation import Recommendations
from ats_optimizer.models.scoring import MatchResult, ScoreBreakdown


class TerminationReason(str, Enum):
    TARGET_REACHED = "target_reached"
    MAX_ITERATIONS = "max_iterations"
    EARLY_STOPPING = "early_stopping"
    REVISION_FAILED = "revision_failed"
    CANCELLED = "cancelled"


class IterationRecord(BaseModel):
    """One round of the loop. Never mutated after it is appended."""

    model_config = ConfigDict(frozen=True)

    round: int
    score: float
    recommendations: Recommendations
    resume_version: str
    breakdown: ScoreBreakdown | None = None
    match_result: MatchResult | None = None
    warnings: tuple[str, ...] = ()


class OptimizationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    initial_score: float
    final_score: float
    improvement: float
    iteration_count: int


class OptimizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    final_resume: str
    final_score: float
    iterations: tuple[IterationRecord, ...]
    termination_reason: TerminationReason
    metrics: OptimizationMetrics
    warnings: tuple[str, ...] = ()
    elapsed_seconds: float = 0.0
