"""Pydantic models for Semantic Matcher output."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ats_optimizer.models.element import Element


class MatchType(str, Enum):
    EXACT = "exact"
    SYNONYM = "synonym"
    RELATED = "related"
    UNRELATED = "unrelated"


class SemanticMatch(BaseModel):
    """One job element paired with its best résumé element, if any."""

    model_config = ConfigDict(frozen=True)

    job_element: Element
    resume_element: Element | None = None
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    match_type: MatchType = MatchType.UNRELATED

    @property
    def matched(self) -> bool:
        return self.resume_element is not None and self.match_type is not MatchType.UNRELATED


class MatchReport(BaseModel):
    """All matches for a round plus warnings from degraded batches."""

    model_config = ConfigDict(frozen=True)

    matches: tuple[SemanticMatch, ...] = ()
    warnings: tuple[str, ...] = ()


class TaggedElement(BaseModel):
    """A job element with its resolved scoring dimension and weight."""

    model_config = ConfigDict(frozen=True)

    element: Element
    dimension: str
    importance: float
    boost: float = 1.0
    match: SemanticMatch

    @property
    def weight(self) -> float:
        return self.importance * self.boost
