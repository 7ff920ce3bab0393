"""Pydantic models for structured job/résumé facts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    JOB = "job"
    RESUME = "resume"


class ElementCategory(str, Enum):
    KEYWORD = "keyword"
    SKILL = "skill"
    ATTRIBUTE = "attribute"
    EXPERIENCE = "experience"
    LEVEL = "level"
    CONCEPT = "concept"


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int = 0
    end: int = 0


class Element(BaseModel):
    """A normalized fact extracted from text. Immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    text: str
    normalized_text: str
    tags: frozenset[str] = frozenset()
    context: str = ""
    position: Position = Field(default_factory=Position)
    section: str = "general"
    category: ElementCategory = ElementCategory.KEYWORD
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    mentions: int = Field(default=1, ge=1)


class DocumentSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    elements: tuple[Element, ...] = ()
    confidence: float = Field(ge=0.0, le=1.0)


class ParsedDocument(BaseModel):
    """Elements grouped by source section, with per-section confidence."""

    model_config = ConfigDict(frozen=True)

    role: Role
    sections: tuple[DocumentSection, ...] = ()
    content_hash: str = ""

    @property
    def elements(self) -> list[Element]:
        return [el for section in self.sections for el in section.elements]

    def section(self, name: str) -> DocumentSection | None:
        for s in self.sections:
            if s.name == name:
                return s
        return None

    @property
    def confidence(self) -> dict[str, float]:
        return {s.name: s.confidence for s in self.sections}


ParsedJob = ParsedDocument
ParsedResume = ParsedDocument
