"""Pydantic models for Theme Extractor and Scorer output."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ats_optimizer.models.element import Element
from ats_optimizer.models.matching import MatchType


class Theme(BaseModel):
    model_config = ConfigDict(frozen=True)

    element: Element
    salience: float
    rank: int  # 1 = most salient
    weight: float = Field(ge=0.0, le=1.0)  # salience relative to the top theme


class Gap(BaseModel):
    """A job element with no adequate résumé match."""

    model_config = ConfigDict(frozen=True)

    element: Element
    dimension: str
    importance: float = Field(ge=0.0, le=1.0)
    impact: float = 0.0
    potential_gain: float = 0.0  # overall score added if fully matched
    strength: float = 0.0  # best sub-floor match strength, 0 when unmatched

    @property
    def category(self) -> str:
        return self.element.category.value


class Strength(BaseModel):
    """A job element with an adequate résumé match."""

    model_config = ConfigDict(frozen=True)

    element: Element
    resume_element: Element
    match_type: MatchType
    strength: float = Field(ge=0.0, le=1.0)
    dimension: str
    importance: float = 0.5
    contribution: float = 0.0


class DimensionScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    score: float = Field(ge=0.0, le=1.0)
    weight: float
    weighted_score: float
    element_count: int = 0


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    scores: dict[str, float]
    weights: dict[str, float]
    details: dict[str, DimensionScore] = {}

    def __getitem__(self, dimension: str) -> float:
        return self.scores[dimension]


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_score: float = Field(ge=0.0, le=1.0)
    breakdown: ScoreBreakdown
    gaps: tuple[Gap, ...] = ()
    strengths: tuple[Strength, ...] = ()
    warnings: tuple[str, ...] = ()
