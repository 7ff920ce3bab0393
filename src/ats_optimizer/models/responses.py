"""Strict schemas for text-understanding service responses.

Every payload is validated against one of these before any field reaches
the scoring math.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ats_optimizer.models.element import ElementCategory


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PositionPayload(_Payload):
    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)


class ElementPayload(_Payload):
    text: str = Field(min_length=1)
    normalized_text: str = Field(default="", alias="normalizedText")
    tags: list[str] = []
    category: ElementCategory = ElementCategory.KEYWORD
    context: str = ""
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    position: PositionPayload = Field(default_factory=PositionPayload)

    @field_validator("category", mode="before")
    @classmethod
    def _lowercase_category(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class SectionPayload(_Payload):
    name: str = Field(min_length=1)
    elements: list[ElementPayload]


class ExtractionPayload(_Payload):
    sections: list[SectionPayload]


class MatchPayload(_Payload):
    job_index: int = Field(alias="jobIndex", ge=0)
    resume_index: int = Field(alias="resumeIndex", ge=0)
    match_type: str = Field(default="related", alias="matchType")
    strength: float = Field(ge=0.0, le=1.0, validation_alias=AliasChoices("strength", "confidence"))

    @field_validator("match_type", mode="before")
    @classmethod
    def _known_match_type(cls, value):
        value = str(value).strip().lower()
        if value not in ("exact", "synonym", "related", "unrelated"):
            # "semantic" and free-form labels count as related
            return "related"
        return value


class BatchMatchPayload(_Payload):
    matches: list[MatchPayload]


class SummaryPayload(_Payload):
    summary: str = Field(min_length=1)


class RevisionPayload(_Payload):
    resume_text: str = Field(min_length=1, alias="resumeText")
