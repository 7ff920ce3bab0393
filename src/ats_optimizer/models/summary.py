"""Pydantic models for the job-queue hand-off."""

from __future__ import annotations

from pydantic import BaseModel


class SkillImportance(BaseModel):
    name: str
    importance: float


class JobMatchSummary(BaseModel):
    final_score: float
    termination_reason: str
    matched_skills: list[SkillImportance]
    missing_skills: list[SkillImportance]
    gap_suggestions: list[str]
    recommendations: list[str]
    warnings: list[str] = []
