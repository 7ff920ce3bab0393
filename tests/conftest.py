"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ats_optimizer.clients.llm_client import LLMClient, LLMResponse
from ats_optimizer.models.element import Element, ElementCategory, Position
from ats_optimizer.models.matching import MatchType, SemanticMatch
from ats_optimizer.utils.text import normalize_text


def make_element(
    text: str,
    category: ElementCategory | str = ElementCategory.SKILL,
    *,
    importance: float = 0.5,
    section: str = "requirements",
    start: int = 0,
    context: str = "",
    mentions: int = 1,
    confidence: float | None = None,
) -> Element:
    return Element(
        text=text,
        normalized_text=normalize_text(text),
        context=context,
        position=Position(start=start, end=start + len(text)),
        section=section,
        category=ElementCategory(category),
        importance=importance,
        confidence=confidence,
        mentions=mentions,
    )


def make_match(
    job: Element,
    resume: Element | None = None,
    strength: float = 1.0,
    match_type: MatchType = MatchType.EXACT,
) -> SemanticMatch:
    if resume is None:
        return SemanticMatch(job_element=job)
    return SemanticMatch(
        job_element=job, resume_element=resume, strength=strength, match_type=match_type
    )


def extraction_payload(*sections: tuple[str, list[dict]]) -> dict:
    """Build an extraction response in the wire format the parser expects."""
    return {"sections": [{"name": name, "elements": elements} for name, elements in sections]}


@pytest.fixture
def sample_job_text() -> str:
    return """Senior Backend Engineer

Requirements:
- 5+ years of Python experience (required)
- Strong PostgreSQL and Redis skills
- Experience designing RESTful APIs
- Kubernetes in production

Responsibilities:
- Build and operate high-traffic services
- Mentor engineers and lead design reviews

Nice to have:
- Kafka or other message queues
- Open source contributions
"""


@pytest.fixture
def sample_resume_text() -> str:
    return """Jordan Lee
jordan@example.com

Experience:
- Acme Corp (2019 - present), Backend Engineer
  - Built Python/Django REST APIs serving 1M requests per day
  - Cut PostgreSQL query latency by 40%
  - Introduced Redis caching

Skills:
- Python, Django, PostgreSQL, Redis, Docker, AWS
"""


@pytest.fixture
def job_elements() -> list[Element]:
    return [
        make_element("Python", importance=0.95, start=10),
        make_element("PostgreSQL", importance=0.75, start=40),
        make_element("Kubernetes", importance=0.95, start=90),
        make_element("Mentoring", ElementCategory.ATTRIBUTE, section="responsibilities", start=150),
        make_element("Kafka", importance=0.4, section="nice_to_have", start=200),
    ]


@pytest.fixture
def resume_elements() -> list[Element]:
    return [
        make_element("Python", section="skills", start=5),
        make_element("Postgres", section="skills", start=20),
        make_element("Docker", section="skills", start=40),
        make_element(
            "Coached two junior developers",
            ElementCategory.EXPERIENCE,
            section="experience",
            start=80,
        ),
    ]


@pytest.fixture
def mock_llm_client() -> LLMClient:
    """Create a mock LLM client."""
    client = AsyncMock(spec=LLMClient)
    client.generate = AsyncMock(
        return_value=LLMResponse(text="{}", input_tokens=100, output_tokens=50)
    )
    client.generate_json = AsyncMock(return_value={})
    return client
