"""Résumé Reviser - applies a round's recommendations to the current résumé text."""

from __future__ import annotations

import logging
from typing import Protocol

from ats_optimizer.clients.llm_client import LLMClient
from ats_optimizer.errors import CapabilityAuthError, CapabilityError, IterationError, ParsingError
from ats_optimizer.models.recommendation import Recommendations
from ats_optimizer.models.responses import RevisionPayload
from ats_optimizer.utils.json_parser import validate_payload

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a professional résumé writer revising a résumé for an applicant
tracking system.

Rules:
1. Use only facts already present in the résumé. Never invent employers,
   titles, dates, degrees, certifications, skills or numbers.
2. Apply the recommendations by rewording, reordering and surfacing existing
   content in the job posting's terminology.
3. When a recommendation asks for something the résumé cannot support, skip it.
4. Keep the résumé's structure and plain-text formatting.

Respond with JSON only:
{"resume_text": "the full revised résumé"}"""


class ResumeReviser(Protocol):
    """Injected revision step: current text + recommendations -> revised text."""

    async def __call__(self, resume_text: str, recommendations: Recommendations) -> str: ...


class LLMResumeReviser:
    def __init__(self, llm: LLMClient, model: str | None = None, temperature: float = 0.3):
        self.llm = llm
        self.model = model
        self.temperature = temperature

    async def __call__(self, resume_text: str, recommendations: Recommendations) -> str:
        """Return revised résumé text. Raises IterationError on failure."""
        prompt = f"""Revise the résumé below according to the recommendations.

## Recommendations
{self._format_recommendations(recommendations)}

## Current résumé
{resume_text}

Return the complete revised résumé. Respond with JSON only."""

        try:
            data = await self.llm.generate_json(
                prompt=prompt,
                system=SYSTEM_PROMPT,
                model=self.model,
                temperature=self.temperature,
            )
            payload = validate_payload(data, RevisionPayload)
        except CapabilityAuthError:
            raise
        except (CapabilityError, ParsingError) as e:
            raise IterationError(f"Revision failed: {e}") from e

        revised = payload.resume_text.strip()
        if not revised:
            raise IterationError("Revision returned an empty résumé")
        logger.info("Revised résumé (%d -> %d chars)", len(resume_text), len(revised))
        return revised

    def _format_recommendations(self, recommendations: Recommendations) -> str:
        parts = [f"Summary: {recommendations.summary}"]

        if recommendations.priority:
            parts.append("\nPriority:")
            for r in recommendations.priority:
                parts.append(f"  - [{r.type.value}] {r.suggestion}")
        if recommendations.optional:
            parts.append("\nOptional:")
            for r in recommendations.optional:
                parts.append(f"  - [{r.type.value}] {r.suggestion}")
        if recommendations.rewording:
            parts.append("\nRewording:")
            for r in recommendations.rewording:
                parts.append(f"  - [{r.type.value}] {r.suggestion}")

        return "\n".join(parts)
