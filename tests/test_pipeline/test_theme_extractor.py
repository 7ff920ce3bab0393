"""Tests for the Theme Extractor."""

import pytest

from ats_optimizer.models.element import DocumentSection, ParsedDocument, Role
from ats_optimizer.pipeline.theme_extractor import ThemeExtractor
from conftest import make_element


def _job(*elements):
    sections: dict[str, list] = {}
    for element in elements:
        sections.setdefault(element.section, []).append(element)
    return ParsedDocument(
        role=Role.JOB,
        sections=tuple(
            DocumentSection(name=name, elements=tuple(items), confidence=0.8)
            for name, items in sections.items()
        ),
    )


class TestSalience:
    def test_section_weight_applies(self):
        extractor = ThemeExtractor()
        required = make_element("Python", importance=0.9)
        optional = make_element("Kafka", importance=0.9, section="nice_to_have")

        assert extractor.salience(required, [required, optional]) == pytest.approx(0.9)
        assert extractor.salience(optional, [required, optional]) == pytest.approx(0.36)

    def test_unknown_section_uses_default_weight(self):
        element = make_element("Python", importance=1.0, section="perks")
        assert ThemeExtractor().salience(element, [element]) == pytest.approx(0.7)

    def test_repeated_mentions_raise_salience(self):
        element = make_element("Python", importance=0.5, mentions=3)
        assert ThemeExtractor().salience(element, [element]) == pytest.approx(0.75)

    def test_repetition_factor_is_capped(self):
        element = make_element("Python", importance=0.5, mentions=20)
        assert ThemeExtractor().salience(element, [element]) == pytest.approx(1.0)

    def test_mentions_in_other_contexts_count(self):
        python = make_element("Python", importance=0.8)
        django = make_element("Django", context="Django and Python services", start=30)

        assert ThemeExtractor().salience(python, [python, django]) == pytest.approx(1.0)

    def test_section_weight_override(self):
        element = make_element("Kafka", importance=1.0, section="nice_to_have")
        extractor = ThemeExtractor(section_weights={"nice_to_have": 0.9})

        assert extractor.salience(element, [element]) == pytest.approx(0.9)


class TestExtractThemes:
    def test_ranked_by_salience(self):
        job = _job(
            make_element("Kafka", importance=0.9, section="nice_to_have", start=200),
            make_element("Python", importance=0.95, start=10),
            make_element("PostgreSQL", importance=0.6, start=40),
        )

        themes = ThemeExtractor().extract_themes(job, n=3)

        assert [t.element.text for t in themes] == ["Python", "PostgreSQL", "Kafka"]
        assert [t.rank for t in themes] == [1, 2, 3]
        assert themes[0].weight == 1.0
        assert themes[1].weight == pytest.approx(0.6 / 0.95)

    def test_limited_to_n(self, job_elements):
        themes = ThemeExtractor().extract_themes(_job(*job_elements), n=2)
        assert len(themes) == 2

    def test_ties_go_to_earlier_position(self):
        job = _job(
            make_element("Go", importance=0.8, start=50),
            make_element("Rust", importance=0.8, start=5),
        )

        themes = ThemeExtractor().extract_themes(job, n=2)

        assert [t.element.text for t in themes] == ["Rust", "Go"]

    def test_zero_importance_elements_are_not_themes(self):
        job = _job(
            make_element("Python", importance=0.9),
            make_element("Team lunches", importance=0.0, start=20),
        )

        themes = ThemeExtractor().extract_themes(job)

        assert [t.element.text for t in themes] == ["Python"]

    def test_empty_job_or_zero_count(self, job_elements):
        extractor = ThemeExtractor()
        assert extractor.extract_themes(ParsedDocument(role=Role.JOB)) == []
        assert extractor.extract_themes(_job(*job_elements), n=0) == []

    def test_deterministic(self, job_elements):
        job = _job(*job_elements)
        extractor = ThemeExtractor()

        assert extractor.extract_themes(job) == extractor.extract_themes(job)
