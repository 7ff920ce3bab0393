"""Tests for the Résumé Reviser."""

import pytest

from ats_optimizer.errors import CapabilityAuthError, CapabilityTimeoutError, IterationError
from ats_optimizer.models.recommendation import (
    Recommendation,
    RecommendationMetadata,
    Recommendations,
    RecommendationType,
)
from ats_optimizer.pipeline.resume_reviser import SYSTEM_PROMPT, LLMResumeReviser


@pytest.fixture
def recommendations():
    return Recommendations(
        summary="Iteration 1: current match score is 60.0% (target: 80.0%).",
        priority=(
            Recommendation(
                type=RecommendationType.ADD_SKILL,
                element="Kubernetes",
                importance=0.95,
                suggestion='Make "Kubernetes" explicit where your experience already shows it',
            ),
        ),
        rewording=(
            Recommendation(
                type=RecommendationType.QUANTIFY,
                element="Leadership",
                importance=0.85,
                suggestion='Add the measurable results you achieved to "Led the platform team"',
                resume_reference="Led the platform team",
            ),
        ),
        metadata=RecommendationMetadata(iteration_round=1, current_score=0.6, target_score=0.8),
    )


class TestLLMResumeReviser:
    async def test_returns_revised_text(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.return_value = {"resume_text": "  Revised résumé\n"}

        revised = await LLMResumeReviser(mock_llm_client)("Original résumé", recommendations)

        assert revised == "Revised résumé"

    async def test_prompt_carries_resume_and_recommendations(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.return_value = {"resumeText": "Revised"}

        await LLMResumeReviser(mock_llm_client, temperature=0.2)("Original résumé", recommendations)

        kwargs = mock_llm_client.generate_json.call_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["temperature"] == 0.2
        assert "Original résumé" in kwargs["prompt"]
        assert "[add_skill]" in kwargs["prompt"]
        assert "[quantify]" in kwargs["prompt"]
        assert "Optional:" not in kwargs["prompt"]

    async def test_capability_failure_becomes_iteration_error(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.side_effect = CapabilityTimeoutError("down")

        with pytest.raises(IterationError, match="down"):
            await LLMResumeReviser(mock_llm_client)("text", recommendations)

    async def test_malformed_payload_becomes_iteration_error(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.return_value = {"text": "Revised"}

        with pytest.raises(IterationError):
            await LLMResumeReviser(mock_llm_client)("text", recommendations)

    async def test_blank_result_is_a_failure(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.return_value = {"resume_text": "   "}

        with pytest.raises(IterationError, match="empty"):
            await LLMResumeReviser(mock_llm_client)("text", recommendations)

    async def test_auth_failure_propagates(self, mock_llm_client, recommendations):
        mock_llm_client.generate_json.side_effect = CapabilityAuthError("bad key")

        with pytest.raises(CapabilityAuthError):
            await LLMResumeReviser(mock_llm_client)("text", recommendations)
