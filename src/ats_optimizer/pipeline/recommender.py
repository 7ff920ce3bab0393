"""Recommendation Generator - turns a MatchResult into ordered, actionable advice."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from ats_optimizer.clients.llm_client import LLMClient
from ats_optimizer.config import RecommendationConfig
from ats_optimizer.errors import CapabilityAuthError, CapabilityError, ParsingError
from ats_optimizer.models.element import ElementCategory
from ats_optimizer.models.recommendation import (
    Recommendation,
    RecommendationMetadata,
    Recommendations,
    RecommendationType,
)
from ats_optimizer.models.responses import SummaryPayload
from ats_optimizer.models.scoring import Gap, MatchResult, Strength, Theme
from ats_optimizer.utils.json_parser import validate_payload
from ats_optimizer.utils.text import normalize_text

logger = logging.getLogger(__name__)

# Gaps at or above this importance are reported as critical in the summary
CRITICAL_IMPORTANCE = 0.8

_DIGITS = re.compile(r"\d")

_GAP_SUGGESTIONS: dict[ElementCategory, str] = {
    ElementCategory.SKILL: (
        'Make "{text}" explicit where your existing experience already shows it; '
        "list it under skills only if you have used it"
    ),
    ElementCategory.EXPERIENCE: (
        'Surface work history or projects that align with "{text}"'
    ),
    ElementCategory.ATTRIBUTE: (
        'Show "{text}" in your summary or through accomplishments you already have'
    ),
    ElementCategory.KEYWORD: (
        'Use the wording "{text}" where it already fits your experience'
    ),
    ElementCategory.CONCEPT: (
        'Point to existing projects or certifications that demonstrate "{text}"'
    ),
    ElementCategory.LEVEL: (
        'Make the scope of your existing roles visible so "{text}" is evident'
    ),
}

_GAP_EXAMPLES: dict[ElementCategory, str] = {
    ElementCategory.SKILL: 'e.g. "Developed [existing project] using {text}"',
    ElementCategory.EXPERIENCE: 'e.g. "Led {text} work that resulted in [specific outcome]"',
    ElementCategory.ATTRIBUTE: 'e.g. "Demonstrated {text} by [specific achievement]"',
    ElementCategory.KEYWORD: 'e.g. mention "{text}" in the context of a relevant project',
    ElementCategory.CONCEPT: 'e.g. "Applied {text} to [specific project or outcome]"',
    ElementCategory.LEVEL: 'e.g. "[Role] owning [scope], matching {text} expectations"',
}

SUMMARY_SYSTEM_PROMPT = """\
You are a résumé coach. Rewrite the given optimization summary as two or three
plain sentences for the candidate. Keep the scores and the named items exactly
as given. Do not add skills, experience or advice that is not in the input.

Respond with JSON only:
{"summary": "..."}"""


@dataclass(frozen=True)
class RecommendationContext:
    """Round-level inputs the generator needs besides the MatchResult."""

    iteration_round: int = 1
    target_score: float = 0.8
    themes: tuple[Theme, ...] = ()


class RecommendationGenerator:
    def __init__(
        self,
        config: RecommendationConfig | None = None,
        *,
        llm: LLMClient | None = None,
        model: str | None = None,
    ):
        self.config = config or RecommendationConfig()
        self.llm = llm
        self.model = model

    def recommend(
        self,
        match_result: MatchResult,
        context: RecommendationContext | None = None,
    ) -> Recommendations:
        """Split gaps into priority/optional and derive rewording items.

        Gap items only name the gap's own job element; rewording items may
        also reference résumé content that already matched.
        """
        context = context or RecommendationContext()
        themed = {normalize_text(t.element.text) for t in context.themes}

        priority_gaps, optional_gaps = self.classify_gaps(
            match_result.gaps, match_result.overall_score, context.target_score
        )
        priority = self._order([self._gap_item(g) for g in priority_gaps], themed)
        optional = self._order([self._gap_item(g) for g in optional_gaps], themed)
        rewording = self._order(
            self._rewording_items(match_result.strengths), themed, limit=self.config.max_items
        )

        summary = build_summary(
            match_result, context.iteration_round, context.target_score, priority, context.themes
        )
        logger.info(
            "Recommendations: %d priority, %d optional, %d rewording",
            len(priority), len(optional), len(rewording),
        )
        return Recommendations(
            summary=summary,
            priority=tuple(priority),
            optional=tuple(optional),
            rewording=tuple(rewording),
            metadata=RecommendationMetadata(
                iteration_round=context.iteration_round,
                current_score=match_result.overall_score,
                target_score=context.target_score,
                themes=tuple(t.element.text for t in context.themes),
            ),
        )

    def classify_gaps(
        self,
        gaps: Sequence[Gap],
        current_score: float,
        target_score: float,
    ) -> tuple[list[Gap], list[Gap]]:
        """Return (priority, optional) gaps; every gap lands in exactly one list."""
        threshold = self.config.priority_threshold
        if threshold is not None:
            priority = [g for g in gaps if g.importance >= threshold]
            optional = [g for g in gaps if g.importance < threshold]
            return priority, optional

        # Adaptive: high-importance gaps, plus enough of the next most
        # important ones to plausibly close the distance to the target.
        needed = max(0.0, target_score - current_score)
        ranked = sorted(
            gaps, key=lambda g: (-g.importance, -g.potential_gain, g.element.position.start)
        )
        priority, optional = [], []
        covered = 0.0
        for gap in ranked:
            if gap.importance >= self.config.high_importance or covered < needed:
                priority.append(gap)
                covered += gap.potential_gain
            else:
                optional.append(gap)
        return priority, optional

    def _gap_item(self, gap: Gap) -> Recommendation:
        text = gap.element.text
        category = gap.element.category
        rec_type = (
            RecommendationType.ADD_SKILL
            if category is ElementCategory.SKILL
            else RecommendationType.ADD_EXPERIENCE
        )
        return Recommendation(
            type=rec_type,
            element=text,
            importance=gap.importance,
            suggestion=_GAP_SUGGESTIONS[category].format(text=text),
            example=_GAP_EXAMPLES[category].format(text=text),
            explanation=_gap_explanation(text, category.value, gap.importance),
            job_requirement_reference=_requirement_reference(
                text, category.value, gap.importance
            ),
            contribution=gap.potential_gain,
        )

    def _rewording_items(self, strengths: Sequence[Strength]) -> list[Recommendation]:
        items = []
        for strength in strengths:
            job_text = strength.element.text
            resume_text = strength.resume_element.text
            category = strength.element.category.value
            reference = _requirement_reference(job_text, category, strength.importance)

            if strength.strength < self.config.rewording_threshold:
                items.append(
                    Recommendation(
                        type=RecommendationType.REFRAME,
                        element=job_text,
                        importance=strength.importance,
                        suggestion=(
                            f'Strengthen the match for "{job_text}" by rephrasing '
                            f'"{resume_text}" in the posting\'s terms'
                        ),
                        example=f'Before: "{resume_text}"\nAfter: wording that uses "{job_text}"',
                        explanation=(
                            f'"{resume_text}" only partially matches "{job_text}" '
                            f"({strength.strength:.0%} match)."
                        ),
                        job_requirement_reference=reference,
                        resume_reference=resume_text,
                        contribution=strength.contribution,
                    )
                )
            elif strength.importance >= self.config.high_importance:
                if _DIGITS.search(resume_text):
                    rec_type = RecommendationType.EMPHASIZE
                    suggestion = f'Move "{resume_text}" to a more prominent position'
                    example = "Lead the relevant role or summary with it"
                else:
                    rec_type = RecommendationType.QUANTIFY
                    suggestion = f'Add the measurable results you achieved to "{resume_text}"'
                    example = f'Before: "{resume_text}"\nAfter: "{resume_text}" + [team size, % change, budget]'
                items.append(
                    Recommendation(
                        type=rec_type,
                        element=job_text,
                        importance=strength.importance,
                        suggestion=suggestion,
                        example=example,
                        explanation=(
                            f'"{job_text}" is an important requirement and your résumé '
                            "already demonstrates it."
                        ),
                        job_requirement_reference=reference,
                        resume_reference=resume_text,
                        contribution=strength.contribution,
                    )
                )
        return items

    def _order(
        self, items: list[Recommendation], themed: set[str], limit: int | None = None
    ) -> list[Recommendation]:
        """Theme-aligned first, then importance descending.

        Gap lists are never cut; only rewording items take a ``limit``.
        """
        ranked = sorted(
            items,
            key=lambda r: (normalize_text(r.element) not in themed, -r.importance),
        )
        return ranked if limit is None else ranked[:limit]

    async def summarize(self, recommendations: Recommendations, job_text: str = "") -> Recommendations:
        """Rewrite the summary through the text-understanding service.

        Falls back to the deterministic summary on any recoverable failure.
        """
        if self.llm is None:
            return recommendations

        items = "\n".join(
            f"- {r.type.value}: {r.element}" for r in recommendations.priority[:3]
        )
        prompt = f"""Current summary:
{recommendations.summary}

Top priority items:
{items or "- none"}

Job posting excerpt:
{job_text[:1500]}

Respond with JSON only."""
        try:
            data = await self.llm.generate_json(
                prompt=prompt, system=SUMMARY_SYSTEM_PROMPT, model=self.model
            )
            payload = validate_payload(data, SummaryPayload)
        except CapabilityAuthError:
            raise
        except (CapabilityError, ParsingError) as e:
            logger.warning("Summary rewrite failed, keeping generated summary: %s", e)
            return recommendations
        return recommendations.model_copy(update={"summary": payload.summary.strip()})


def build_summary(
    match_result: MatchResult,
    iteration_round: int,
    target_score: float,
    priority: Sequence[Recommendation],
    themes: Sequence[Theme] = (),
) -> str:
    current = match_result.overall_score
    summary = (
        f"Iteration {iteration_round}: current match score is {current:.1%} "
        f"(target: {target_score:.1%}). "
    )
    if current >= target_score:
        summary += "Target achieved. "
    else:
        summary += f"Gap to target: {target_score - current:.1%}. "

    critical = sum(1 for g in match_result.gaps if g.importance >= CRITICAL_IMPORTANCE)
    if critical:
        summary += f"{critical} critical requirement{'s' if critical > 1 else ''} missing. "

    if priority:
        top = list(priority)[:3]
        parts = [
            f'{i}) {"Add" if r.type in (RecommendationType.ADD_SKILL, RecommendationType.ADD_EXPERIENCE) else "Improve"} "{r.element}"'
            for i, r in enumerate(top, start=1)
        ]
        summary += f"Top {len(top)} priorit{'ies' if len(top) > 1 else 'y'}: " + "; ".join(parts) + "."

    if themes:
        summary += " Key themes: " + ", ".join(t.element.text for t in list(themes)[:3]) + "."
    return summary.strip()


def _requirement_reference(text: str, category: str, importance: float) -> str:
    return f'Job requirement: "{text}" ({category}, importance: {importance:.2f})'


def _gap_explanation(text: str, category: str, importance: float) -> str:
    if importance >= 0.9:
        level, note = "critical", "This is likely a must-have for the role"
    elif importance >= CRITICAL_IMPORTANCE:
        level, note = "high-priority", "This will significantly affect your candidacy"
    else:
        level, note = "important", "Including it would improve your match score"
    return (
        f'The posting lists "{text}" as a {level} {category} requirement. {note}. '
        "If you already have related experience, make it explicit using the posting's terminology."
    )
