"""Parser Stage - turns raw job/résumé text into a sectioned element set."""

from __future__ import annotations

import logging

from ats_optimizer.cache.response_cache import ResponseCache, content_hash
from ats_optimizer.clients.llm_client import LLMClient
from ats_optimizer.errors import (
    CapabilityAuthError,
    CapabilityError,
    FieldError,
    InputValidationError,
    ParsingError,
)
from ats_optimizer.models.element import (
    DocumentSection,
    Element,
    ParsedDocument,
    Position,
    Role,
)
from ats_optimizer.models.responses import ElementPayload, ExtractionPayload
from ats_optimizer.pipeline.theme_extractor import DEFAULT_SECTION_WEIGHT, SECTION_WEIGHTS
from ats_optimizer.utils.json_parser import validate_payload
from ats_optimizer.utils.text import normalize_text, prepare_for_parsing

logger = logging.getLogger(__name__)

# Used when the service reports no element-level confidence for a section
DEFAULT_SECTION_CONFIDENCE = 0.6

JOB_SECTIONS = ("requirements", "qualifications", "responsibilities", "nice_to_have", "general")
RESUME_SECTIONS = ("summary", "experience", "skills", "education", "certifications", "general")

_ELEMENT_SCHEMA = """\
{
  "sections": [
    {
      "name": "<section name>",
      "elements": [
        {
          "text": "exact phrase as it appears",
          "normalizedText": "lowercase normalized form",
          "tags": ["technical_skill" | "soft_skill" | "attribute" | "concept" | ...],
          "category": "keyword|skill|attribute|experience|level|concept",
          "context": "surrounding sentence",
          "importance": 0.0-1.0,
          "confidence": 0.0-1.0,
          "position": {"start": 0, "end": 10}
        }
      ]
    }
  ]
}"""

JOB_SYSTEM_PROMPT = f"""\
You are an ATS parser that extracts structured requirements from job postings.

Extract keywords, skills (technical and soft), attributes (education,
certifications, domain knowledge), experience requirements, seniority level
and concepts (methodologies, practices). Keep multi-word phrases together
("machine learning", "project management") and preserve acronyms (API, CI/CD).

Group elements by section: {", ".join(JOB_SECTIONS)}.

Importance scoring:
- "required", "must have", "essential", "mandatory" -> 0.95
- "strongly preferred", "highly desired", "important" -> 0.75
- no explicit indicator -> 0.5
- "preferred", "nice to have", "bonus", "a plus" -> 0.4
- conflicting indicators -> use the highest

Report how confident you are in each extracted element as "confidence".
Do not infer requirements the posting does not state.

Respond with JSON only, in exactly this structure:
{_ELEMENT_SCHEMA}"""

RESUME_SYSTEM_PROMPT = f"""\
You are an ATS parser that extracts structured facts from résumés.

Extract skills, tools, experience statements, accomplishments, education,
certifications, seniority signals and concepts the candidate demonstrates.
Keep multi-word phrases together and preserve acronyms. Extract only what the
résumé actually says.

Group elements by section: {", ".join(RESUME_SECTIONS)}.
Set importance to how prominently the résumé presents each fact (0.0-1.0).
Report how confident you are in each extracted element as "confidence".

Respond with JSON only, in exactly this structure:
{_ELEMENT_SCHEMA}"""


class ElementParser:
    """Extract elements via the text-understanding service, with caching."""

    def __init__(
        self,
        llm: LLMClient,
        *,
        cache: ResponseCache | None = None,
        model: str | None = None,
        default_confidence: float = DEFAULT_SECTION_CONFIDENCE,
    ):
        self.llm = llm
        self.cache = cache if cache is not None else ResponseCache()
        self.model = model
        self.default_confidence = default_confidence

    async def parse(self, text: str, role: Role | str) -> ParsedDocument:
        """Parse ``text`` as a job posting or résumé.

        Raises InputValidationError for empty input and ParsingError when
        the service response fails the extraction schema.
        """
        role = Role(role)
        prepared = prepare_for_parsing(text or "")
        if not prepared:
            raise InputValidationError(
                f"Cannot parse {role.value} text",
                [FieldError(field=f"{role.value}_text", message="must not be empty")],
            )

        key = content_hash("parsed", role.value, text)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Parsed %s served from cache", role.value)
            return ParsedDocument.model_validate_json(cached)

        logger.info("Parsing %s (%d chars)", role.value, len(prepared))
        try:
            data = await self.llm.generate_json(
                prompt=self._build_prompt(prepared, role),
                system=JOB_SYSTEM_PROMPT if role is Role.JOB else RESUME_SYSTEM_PROMPT,
                model=self.model,
            )
        except CapabilityAuthError:
            raise
        except CapabilityError as e:
            raise ParsingError(f"Could not parse {role.value}: {e}") from e
        payload = validate_payload(data, ExtractionPayload)
        document = self._build_document(payload, role, key)

        serialized = document.model_dump_json()
        self.cache.put(key, serialized)
        # Return the cached form so repeated parses are identical
        return ParsedDocument.model_validate_json(serialized)

    def _build_prompt(self, text: str, role: Role) -> str:
        label = "job posting" if role is Role.JOB else "résumé"
        return f"""Extract structured elements from the following {label}:

---
{text}
---

Respond with JSON only."""

    def _build_document(self, payload: ExtractionPayload, role: Role, key: str) -> ParsedDocument:
        merged: dict[str, dict[str, Element]] = {}
        confidences: dict[str, list[float]] = {}
        seen: dict[str, str] = {}  # normalized text -> owning section

        for section in payload.sections:
            name = _section_name(section.name)
            bucket = merged.setdefault(name, {})
            scores = confidences.setdefault(name, [])
            for item in section.elements:
                element = _to_element(item, name)
                if not element.normalized_text:
                    continue
                if item.confidence is not None:
                    scores.append(item.confidence)
                owner = seen.get(element.normalized_text)
                if owner is None:
                    seen[element.normalized_text] = name
                    bucket[element.normalized_text] = element
                    continue
                combined = _merge(merged[owner][element.normalized_text], element)
                if _section_weight(name) > _section_weight(owner):
                    # A duplicate moves to the section that weighs it most
                    del merged[owner][element.normalized_text]
                    seen[element.normalized_text] = name
                    bucket[element.normalized_text] = combined.model_copy(update={"section": name})
                else:
                    merged[owner][element.normalized_text] = combined

        sections = []
        for name, bucket in merged.items():
            scores = confidences[name]
            confidence = sum(scores) / len(scores) if scores else self.default_confidence
            sections.append(
                DocumentSection(
                    name=name,
                    elements=tuple(bucket.values()),
                    confidence=round(confidence, 4),
                )
            )

        total = sum(len(s.elements) for s in sections)
        logger.info("Parsed %s: %d elements in %d sections", role.value, total, len(sections))
        return ParsedDocument(role=role, sections=tuple(sections), content_hash=key)


def _section_weight(name: str) -> float:
    return SECTION_WEIGHTS.get(name, DEFAULT_SECTION_WEIGHT)


def _section_name(raw: str) -> str:
    name = normalize_text(raw).replace(" ", "_").replace("-", "_")
    return name or "general"


def _to_element(item: ElementPayload, section: str) -> Element:
    normalized = normalize_text(item.normalized_text or item.text)
    start = item.position.start
    end = max(item.position.end, start)
    return Element(
        text=item.text.strip(),
        normalized_text=normalized,
        tags=frozenset(t.strip().lower() for t in item.tags if t and t.strip()),
        context=item.context.strip(),
        position=Position(start=start, end=end),
        section=section,
        category=item.category,
        importance=item.importance,
        confidence=item.confidence,
    )


def _merge(first: Element, other: Element) -> Element:
    """Consolidate a duplicate: keep first position, max importance, all tags."""
    contexts = [c for c in (first.context, other.context) if c]
    context = " | ".join(dict.fromkeys(contexts))
    confidence = first.confidence
    if other.confidence is not None:
        confidence = max(confidence or 0.0, other.confidence)
    return first.model_copy(
        update={
            "tags": first.tags | other.tags,
            "context": context,
            "importance": max(first.importance, other.importance),
            "confidence": confidence,
            "mentions": first.mentions + other.mentions,
        }
    )
