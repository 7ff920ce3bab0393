"""Scorer - turns semantic matches into dimension scores, gaps and strengths."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from ats_optimizer.config import (
    DIMENSIONS,
    WEIGHT_TOLERANCE,
    OptimizationConfig,
    ScoringConfig,
)
from ats_optimizer.errors import ScoringError
from ats_optimizer.models.element import ElementCategory
from ats_optimizer.models.matching import MatchReport, SemanticMatch, TaggedElement
from ats_optimizer.models.scoring import (
    DimensionScore,
    Gap,
    MatchResult,
    ScoreBreakdown,
    Strength,
    Theme,
)

logger = logging.getLogger(__name__)

CATEGORY_DIMENSIONS: dict[ElementCategory, str] = {
    ElementCategory.KEYWORD: "keywords",
    ElementCategory.CONCEPT: "keywords",
    ElementCategory.SKILL: "skills",
    ElementCategory.ATTRIBUTE: "attributes",
    ElementCategory.EXPERIENCE: "experience",
    ElementCategory.LEVEL: "level",
}

# Score for a dimension the posting never mentions
NEUTRAL_SCORE = 1.0


class Scorer:
    def __init__(self, scoring: ScoringConfig | None = None):
        self.scoring = scoring or ScoringConfig()

    def score(
        self,
        matches: MatchReport | Sequence[SemanticMatch],
        themes: Sequence[Theme] = (),
        config: OptimizationConfig | None = None,
    ) -> MatchResult:
        """Score one round of matches.

        Raises ScoringError when the dimension weights do not sum to 1.0 or a
        match strength falls outside [0, 1].
        """
        config = config or OptimizationConfig()
        weights = dict(config.dimension_weights)
        self._check_weights(weights)

        warnings: tuple[str, ...] = ()
        if isinstance(matches, MatchReport):
            warnings = matches.warnings
            matches = matches.matches

        tagged = self.tag_elements(matches, themes)
        # Dimensions left out of the weights still report gaps and strengths
        by_dimension: dict[str, list[TaggedElement]] = {d: [] for d in weights}
        for item in tagged:
            by_dimension.setdefault(item.dimension, []).append(item)

        weight_total = sum(weights.values())
        floor = self.scoring.strength_floor
        details: dict[str, DimensionScore] = {}
        gaps: list[Gap] = []
        strengths: list[Strength] = []

        for dimension, items in by_dimension.items():
            dim_weight = weights.get(dimension, 0.0)
            total = sum(item.weight for item in items)
            if total > 0:
                shares = [item.weight / total for item in items]
            else:
                # All elements at zero importance count equally
                shares = [1.0 / len(items)] * len(items) if items else []

            if not items:
                dim_score = NEUTRAL_SCORE
            else:
                matched = sum(
                    share * item.match.strength
                    for share, item in zip(shares, items)
                    if self._is_strength(item, floor)
                )
                dim_score = min(1.0, max(0.0, matched))

            details[dimension] = DimensionScore(
                name=dimension,
                score=dim_score,
                weight=dim_weight,
                weighted_score=dim_weight * dim_score,
                element_count=len(items),
            )

            for element_share, item in zip(shares, items):
                share = dim_weight * element_share
                if self._is_strength(item, floor):
                    strengths.append(
                        Strength(
                            element=item.element,
                            resume_element=item.match.resume_element,
                            match_type=item.match.match_type,
                            strength=item.match.strength,
                            dimension=dimension,
                            importance=min(1.0, item.weight),
                            contribution=share * item.match.strength / weight_total,
                        )
                    )
                else:
                    strength = item.match.strength if item.match.matched else 0.0
                    gaps.append(
                        Gap(
                            element=item.element,
                            dimension=dimension,
                            importance=min(1.0, item.weight),
                            impact=item.importance * (1.0 - strength),
                            potential_gain=share,
                            strength=strength,
                        )
                    )

        overall = sum(d.weighted_score for d in details.values())
        overall = min(1.0, max(0.0, overall))

        gaps.sort(key=lambda g: (-g.importance, g.element.position.start))
        strengths.sort(key=lambda s: (-s.contribution, s.element.position.start))

        logger.info(
            "Scored %.3f (%d strengths, %d gaps)", overall, len(strengths), len(gaps)
        )
        return MatchResult(
            overall_score=overall,
            breakdown=ScoreBreakdown(
                scores={d: s.score for d, s in details.items()},
                weights=weights,
                details=details,
            ),
            gaps=tuple(gaps),
            strengths=tuple(strengths),
            warnings=warnings,
        )

    def tag_elements(
        self,
        matches: Sequence[SemanticMatch],
        themes: Sequence[Theme] = (),
    ) -> list[TaggedElement]:
        """Resolve each matched job element's dimension and theme boost."""
        theme_weights = {t.element.normalized_text: t.weight for t in themes}
        boost_range = self.scoring.theme_boost - 1.0

        tagged = []
        for match in matches:
            if not 0.0 <= match.strength <= 1.0 or math.isnan(match.strength):
                raise ScoringError(
                    f"Match strength {match.strength!r} for '{match.job_element.text}' "
                    "is outside [0, 1]"
                )
            element = match.job_element
            theme_weight = theme_weights.get(element.normalized_text)
            boost = 1.0 if theme_weight is None else 1.0 + boost_range * theme_weight
            tagged.append(
                TaggedElement(
                    element=element,
                    dimension=dimension_for(element.category),
                    importance=element.importance,
                    boost=boost,
                    match=match,
                )
            )
        return tagged

    @staticmethod
    def _is_strength(item: TaggedElement, floor: float) -> bool:
        return item.match.matched and item.match.strength >= floor

    @staticmethod
    def _check_weights(weights: dict[str, float]) -> None:
        if not weights:
            raise ScoringError("Dimension weights are empty")
        unknown = sorted(set(weights) - set(DIMENSIONS))
        if unknown:
            raise ScoringError(f"Unknown dimensions in weights: {unknown}")
        if any(w < 0 or math.isnan(w) for w in weights.values()):
            raise ScoringError("Dimension weights must be non-negative")
        total = sum(weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ScoringError(f"Dimension weights sum to {total:.6f}, expected 1.0")


def dimension_for(category: ElementCategory) -> str:
    return CATEGORY_DIMENSIONS[ElementCategory(category)]
