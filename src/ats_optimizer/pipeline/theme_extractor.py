"""Theme Extractor - ranks job elements by how much the posting emphasizes them."""

from __future__ import annotations

import logging

from ats_optimizer.models.element import Element, ParsedDocument
from ats_optimizer.models.scoring import Theme
from ats_optimizer.utils.text import count_mentions

logger = logging.getLogger(__name__)

DEFAULT_THEME_COUNT = 6

SECTION_WEIGHTS: dict[str, float] = {
    "requirements": 1.0,
    "qualifications": 1.0,
    "responsibilities": 0.8,
    "general": 0.7,
    "nice_to_have": 0.4,
}
DEFAULT_SECTION_WEIGHT = 0.7

# Each repeated mention adds this much, up to MAX_REPETITION_FACTOR
REPETITION_STEP = 0.25
MAX_REPETITION_FACTOR = 2.0


class ThemeExtractor:
    """Deterministic salience ranking; no external calls."""

    def __init__(self, section_weights: dict[str, float] | None = None):
        self.section_weights = {**SECTION_WEIGHTS, **(section_weights or {})}

    def extract_themes(self, parsed_job: ParsedDocument, n: int = DEFAULT_THEME_COUNT) -> list[Theme]:
        """Return the top ``n`` job elements by salience, most salient first."""
        if n < 1:
            return []
        elements = parsed_job.elements
        if not elements:
            return []

        scored = []
        for index, element in enumerate(elements):
            salience = self.salience(element, elements)
            if salience <= 0:
                continue
            scored.append((salience, element.position.start, index, element))

        scored.sort(key=lambda item: (-item[0], item[1], item[2]))
        top = scored[:n]
        if not top:
            return []

        top_salience = top[0][0]
        themes = [
            Theme(
                element=element,
                salience=round(salience, 6),
                rank=rank,
                weight=min(1.0, salience / top_salience),
            )
            for rank, (salience, _, _, element) in enumerate(top, start=1)
        ]
        logger.debug("Themes: %s", [t.element.text for t in themes])
        return themes

    def salience(self, element: Element, elements: list[Element]) -> float:
        section_weight = self.section_weights.get(element.section, DEFAULT_SECTION_WEIGHT)
        return element.importance * section_weight * self._repetition(element, elements)

    def _repetition(self, element: Element, elements: list[Element]) -> float:
        repeats = element.mentions - 1
        for other in elements:
            if other is element or not other.context:
                continue
            repeats += count_mentions(other.context, element.normalized_text)
        return min(MAX_REPETITION_FACTOR, 1.0 + REPETITION_STEP * repeats)
