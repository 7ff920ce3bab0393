"""Semantic Matcher - pairs job elements with their best résumé evidence."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

from ats_optimizer.clients.llm_client import LLMClient
from ats_optimizer.errors import (
    CapabilityAuthError,
    CapabilityError,
    ParsingError,
    SemanticAnalysisError,
)
from ats_optimizer.models.element import Element
from ats_optimizer.models.matching import MatchReport, MatchType, SemanticMatch
from ats_optimizer.models.responses import BatchMatchPayload
from ats_optimizer.utils.json_parser import validate_payload

logger = logging.getLogger(__name__)

SYNONYM_STRENGTH = 0.95

SYNONYM_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"javascript", "js", "ecmascript"}),
    frozenset({"typescript", "ts"}),
    frozenset({"python", "py"}),
    frozenset({"react", "reactjs", "react.js"}),
    frozenset({"vue", "vuejs", "vue.js"}),
    frozenset({"angular", "angularjs"}),
    frozenset({"node", "nodejs", "node.js"}),
    frozenset({"postgresql", "postgres", "psql"}),
    frozenset({"mongodb", "mongo"}),
    frozenset({"kubernetes", "k8s"}),
    frozenset({"amazon web services", "aws"}),
    frozenset({"google cloud platform", "gcp", "google cloud"}),
    frozenset({"machine learning", "ml"}),
    frozenset({"artificial intelligence", "ai"}),
    frozenset({"continuous integration", "ci/cd", "ci"}),
    frozenset({"leadership", "led team", "managed team", "team lead"}),
    frozenset({"communication", "communicate", "communicating"}),
    frozenset({"problem solving", "problem-solving", "troubleshooting"}),
    frozenset({"senior", "sr", "lead", "principal"}),
    frozenset({"junior", "jr", "entry level", "entry-level"}),
)

SYSTEM_PROMPT = """\
You are an ATS semantic matcher. Match each job element to the single best
résumé element that provides evidence for it.

Match types:
- "exact": same requirement in the same words
- "synonym": different words with the same meaning (e.g. "JavaScript" and "JS")
- "related": same category or a close concept (e.g. "PyTorch" and "deep learning")
- "unrelated": no meaningful evidence (omit these)

Strength: 0.95 strong synonym, 0.7-0.9 related, 0.5-0.7 loose similarity.
Omit matches below 0.5. Use the indices exactly as given.

Respond with JSON only:
{
  "matches": [
    {"jobIndex": 0, "resumeIndex": 3, "matchType": "synonym", "strength": 0.95}
  ]
}"""


@dataclass(frozen=True)
class _Candidate:
    resume_index: int
    strength: float
    match_type: MatchType


class SemanticMatcher:
    """Batched, concurrency-capped matching against the text-understanding service."""

    def __init__(
        self,
        llm: LLMClient,
        *,
        batch_size: int = 20,
        max_concurrency: int = 4,
        min_strength: float = 0.5,
        model: str | None = None,
    ):
        self.llm = llm
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.min_strength = min_strength
        self.model = model
        self._synonyms: dict[str, frozenset[str]] = {}
        for group in SYNONYM_GROUPS:
            for term in group:
                self._synonyms[term] = group

    async def match(
        self,
        job_elements: list[Element],
        resume_elements: list[Element],
    ) -> MatchReport:
        """Return exactly one SemanticMatch per job element, in job order.

        A failed batch leaves its job elements unmatched and adds a warning;
        only authentication failures propagate.
        """
        job_elements = list(job_elements)
        resume_elements = list(resume_elements)
        candidates: dict[int, list[_Candidate]] = {i: [] for i in range(len(job_elements))}

        pending = self._local_pass(job_elements, resume_elements, candidates)
        warnings: list[str] = []

        if pending and resume_elements:
            batches = self._make_batches(job_elements, pending)
            semaphore = asyncio.Semaphore(self.max_concurrency)
            logger.info(
                "Matching %d job elements in %d batches (concurrency %d)",
                len(pending), len(batches), self.max_concurrency,
            )
            # Join barrier: every batch settles before any result is consumed
            results = await asyncio.gather(
                *(
                    self._run_batch(semaphore, section, indices, job_elements, resume_elements)
                    for section, indices in batches
                ),
                return_exceptions=True,
            )
            fatal: BaseException | None = None
            for (section, indices), result in zip(batches, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, SemanticAnalysisError):
                        fatal = fatal or result
                        continue
                    warning = f"Matching failed for section '{section}' ({len(indices)} elements): {result}"
                    logger.warning(warning)
                    warnings.append(warning)
                    continue
                for job_index, candidate in result:
                    candidates[job_index].append(candidate)
            if fatal is not None:
                raise fatal

        matches = tuple(
            self._select(job_elements[i], candidates[i], resume_elements)
            for i in range(len(job_elements))
        )
        return MatchReport(matches=matches, warnings=tuple(warnings))

    def _local_pass(
        self,
        job_elements: list[Element],
        resume_elements: list[Element],
        candidates: dict[int, list[_Candidate]],
    ) -> list[int]:
        """Exact and dictionary-synonym matches; returns job indices still open."""
        by_key: dict[str, int] = {}
        for index, element in enumerate(resume_elements):
            by_key.setdefault(element.normalized_text, index)

        pending = []
        for job_index, element in enumerate(job_elements):
            key = element.normalized_text
            if key in by_key:
                candidates[job_index].append(_Candidate(by_key[key], 1.0, MatchType.EXACT))
                continue
            synonym = self._find_synonym(key, by_key)
            if synonym is not None:
                candidates[job_index].append(
                    _Candidate(synonym, SYNONYM_STRENGTH, MatchType.SYNONYM)
                )
                continue
            pending.append(job_index)
        return pending

    def _find_synonym(self, key: str, by_key: dict[str, int]) -> int | None:
        group = self._synonyms.get(key)
        if not group:
            return None
        hits = [by_key[term] for term in group if term != key and term in by_key]
        return min(hits) if hits else None

    def _make_batches(
        self, job_elements: list[Element], pending: list[int]
    ) -> list[tuple[str, list[int]]]:
        """Group open job indices by section, then chunk by batch size."""
        by_section: dict[str, list[int]] = {}
        for index in pending:
            by_section.setdefault(job_elements[index].section, []).append(index)

        batches = []
        for section, indices in by_section.items():
            for start in range(0, len(indices), self.batch_size):
                batches.append((section, indices[start : start + self.batch_size]))
        return batches

    async def _run_batch(
        self,
        semaphore: asyncio.Semaphore,
        section: str,
        indices: list[int],
        job_elements: list[Element],
        resume_elements: list[Element],
    ) -> list[tuple[int, _Candidate]]:
        async with semaphore:
            try:
                data = await self.llm.generate_json(
                    prompt=self._build_prompt(indices, job_elements, resume_elements),
                    system=SYSTEM_PROMPT,
                    model=self.model,
                )
                payload = validate_payload(data, BatchMatchPayload)
            except CapabilityAuthError:
                raise
            except (CapabilityError, ParsingError) as e:
                raise SemanticAnalysisError(str(e)) from e

        found = []
        for item in payload.matches:
            if item.job_index >= len(indices) or item.resume_index >= len(resume_elements):
                raise SemanticAnalysisError(
                    f"match index out of range (job {item.job_index}, résumé {item.resume_index})"
                )
            match_type = MatchType(item.match_type)
            if match_type is MatchType.UNRELATED:
                continue
            found.append(
                (indices[item.job_index], _Candidate(item.resume_index, item.strength, match_type))
            )
        return found

    def _build_prompt(
        self,
        indices: list[int],
        job_elements: list[Element],
        resume_elements: list[Element],
    ) -> str:
        resume_payload = [
            {
                "index": i,
                "text": el.text,
                "category": el.category.value,
                "context": el.context,
            }
            for i, el in enumerate(resume_elements)
        ]
        job_payload = [
            {
                "index": batch_index,
                "text": job_elements[job_index].text,
                "category": job_elements[job_index].category.value,
                "context": job_elements[job_index].context,
            }
            for batch_index, job_index in enumerate(indices)
        ]
        return f"""Match each job element to the best résumé element if a meaningful match exists.

Résumé elements (JSON):
{json.dumps(resume_payload, ensure_ascii=False)}

Job elements to match (JSON):
{json.dumps(job_payload, ensure_ascii=False)}

Respond with JSON only."""

    def _select(
        self,
        job_element: Element,
        candidates: list[_Candidate],
        resume_elements: list[Element],
    ) -> SemanticMatch:
        viable = [c for c in candidates if c.strength >= self.min_strength]
        if not viable:
            return SemanticMatch(job_element=job_element)
        # Highest strength wins; ties go to the earlier résumé position
        best = min(
            viable,
            key=lambda c: (
                -c.strength,
                resume_elements[c.resume_index].position.start,
                c.resume_index,
            ),
        )
        return SemanticMatch(
            job_element=job_element,
            resume_element=resume_elements[best.resume_index],
            strength=best.strength,
            match_type=best.match_type,
        )
