"""Pydantic models for Recommendation Generator output."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class RecommendationType(str, Enum):
    ADD_SKILL = "add_skill"
    ADD_EXPERIENCE = "add_experience"
    REFRAME = "reframe"
    EMPHASIZE = "emphasize"
    QUANTIFY = "quantify"


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RecommendationType
    element: str  # triggering job element text
    importance: float
    suggestion: str
    example: str = ""
    explanation: str = ""
    job_requirement_reference: str = ""
    resume_reference: str | None = None  # only set for rewording items
    contribution: float | None = None


class RecommendationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    iteration_round: int
    current_score: float
    target_score: float
    themes: tuple[str, ...] = ()


class Recommendations(BaseModel):
    """Three disjoint ordered lists plus a short synthesis."""

    model_config = ConfigDict(frozen=True)

    summary: str
    priority: tuple[Recommendation, ...] = ()
    optional: tuple[Recommendation, ...] = ()
    rewording: tuple[Recommendation, ...] = ()
    metadata: RecommendationMetadata

    @property
    def all_items(self) -> list[Recommendation]:
        return [*self.priority, *self.optional, *self.rewording]
