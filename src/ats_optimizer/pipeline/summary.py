"""Job-queue hand-off: condense a run into a JobMatchSummary."""

from __future__ import annotations

from ats_optimizer.models.element import ElementCategory
from ats_optimizer.models.optimization import OptimizationResult
from ats_optimizer.models.scoring import MatchResult
from ats_optimizer.models.summary import JobMatchSummary, SkillImportance

_SKILL_CATEGORIES = (ElementCategory.SKILL, ElementCategory.KEYWORD, ElementCategory.CONCEPT)


def build_job_summary(
    result: OptimizationResult,
    match_result: MatchResult | None = None,
) -> JobMatchSummary:
    """Summarize ``result`` for persistence by the job queue.

    ``match_result`` defaults to the round whose résumé became the final one.
    """
    if match_result is None:
        match_result = _final_match_result(result)

    matched: list[SkillImportance] = []
    missing: list[SkillImportance] = []
    gap_suggestions: list[str] = []
    recommendations: list[str] = []

    if match_result is not None:
        matched = _unique(
            SkillImportance(name=s.element.text, importance=round(s.importance, 4))
            for s in match_result.strengths
            if s.element.category in _SKILL_CATEGORIES
        )
        missing = _unique(
            SkillImportance(name=g.element.text, importance=round(g.importance, 4))
            for g in match_result.gaps
            if g.element.category in _SKILL_CATEGORIES
        )

    record = _final_record(result)
    if record is not None:
        recs = record.recommendations
        gap_suggestions = [r.suggestion for r in (*recs.priority, *recs.optional)]
        recommendations = [f"[{r.type.value}] {r.suggestion}" for r in recs.all_items]

    return JobMatchSummary(
        final_score=result.final_score,
        termination_reason=result.termination_reason.value,
        matched_skills=matched,
        missing_skills=missing,
        gap_suggestions=gap_suggestions,
        recommendations=recommendations,
        warnings=list(result.warnings),
    )


def _final_record(result: OptimizationResult):
    for record in reversed(result.iterations):
        if record.resume_version == result.final_resume and record.score == result.final_score:
            return record
    return result.iterations[-1] if result.iterations else None


def _final_match_result(result: OptimizationResult) -> MatchResult | None:
    record = _final_record(result)
    return record.match_result if record is not None else None


def _unique(items) -> list[SkillImportance]:
    seen: dict[str, SkillImportance] = {}
    for item in items:
        key = item.name.lower()
        if key not in seen or item.importance > seen[key].importance:
            seen[key] = item
    return sorted(seen.values(), key=lambda s: -s.importance)
