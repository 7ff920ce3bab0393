"""Claude API wrapper with async support, retry policy and response cache."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import anthropic
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ats_optimizer.cache.response_cache import ResponseCache, content_hash
from ats_optimizer.errors import CapabilityAuthError, CapabilityError, CapabilityTimeoutError
from ats_optimizer.utils.json_parser import extract_json

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    anthropic.APIConnectionError,  # includes APITimeoutError
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    asyncio.TimeoutError,
)

FATAL_ERRORS: tuple[type[BaseException], ...] = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient capability failures only."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0

    def is_transient(self, exc: BaseException) -> bool:
        return isinstance(exc, TRANSIENT_ERRORS)

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay
            ),
            retry=retry_if_exception(self.is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


@dataclass
class LLMResponse:
    """Response from the LLM including usage metadata."""

    text: str
    input_tokens: int
    output_tokens: int


class LLMClient:
    """Async Claude API client: the text-understanding capability."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        cache: ResponseCache | None = None,
        model: str = DEFAULT_MODEL,
    ):
        kwargs: dict = {}
        if api_key is not None:
            kwargs["api_key"] = api_key
        if timeout is not None:
            kwargs["timeout"] = timeout
        self.client = anthropic.AsyncAnthropic(**kwargs)
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache = cache
        self.model = model
        self._token_log: list[tuple[str, int, int]] = []  # (model, input_tokens, output_tokens)

    async def _call_api(
        self,
        prompt: str,
        system: str,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> anthropic.types.Message:
        """Make the actual API call, retrying transient failures."""
        messages = [{"role": "user", "content": prompt}]
        kwargs: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        async for attempt in self.retry_policy.retrying():
            with attempt:
                request = self.client.messages.create(**kwargs)
                if self.timeout is not None:
                    return await asyncio.wait_for(request, timeout=self.timeout)
                return await request
        raise CapabilityError("retry loop exited without a result")  # pragma: no cover

    async def generate(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Send a prompt to Claude and return the text response with usage."""
        model = model or self.model
        logger.debug("LLM call: model=%s", model)
        try:
            message = await self._call_api(
                prompt=prompt,
                system=system,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except FATAL_ERRORS as e:
            logger.error("LLM call rejected: %s", e)
            raise CapabilityAuthError(f"Text-understanding service rejected credentials: {e}") from e
        except TRANSIENT_ERRORS as e:
            logger.error("LLM call failed after %d attempts", self.retry_policy.max_attempts)
            raise CapabilityTimeoutError(
                f"Text-understanding service unavailable after "
                f"{self.retry_policy.max_attempts} attempts: {e}"
            ) from e
        except anthropic.APIError as e:
            logger.error("LLM call failed", exc_info=True)
            raise CapabilityError(f"Text-understanding service error: {e}") from e

        input_tokens = message.usage.input_tokens
        output_tokens = message.usage.output_tokens
        logger.debug("LLM response: %d input, %d output tokens", input_tokens, output_tokens)
        self._token_log.append((model, input_tokens, output_tokens))
        return LLMResponse(
            text=message.content[0].text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def generate_json(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        *,
        use_cache: bool = True,
    ) -> dict | list:
        """Send a prompt and parse JSON from the response.

        Deterministic calls (temperature 0) are served from the response
        cache when one is configured. Only responses that parse as JSON are
        cached.
        """
        model = model or self.model
        key = None
        if self.cache is not None and use_cache and temperature == 0.0:
            key = content_hash("llm", model, system, prompt, str(max_tokens))
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("LLM cache hit: %s", key[:12])
                return extract_json(cached)

        response = await self.generate(
            prompt=prompt,
            system=system,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        data = extract_json(response.text)
        if key is not None:
            self.cache.put(key, response.text)
        return data

    def get_token_summary(self) -> dict:
        """Return accumulated token usage and reset the log."""
        summary = {
            "input": sum(t[1] for t in self._token_log),
            "output": sum(t[2] for t in self._token_log),
            "calls": list(self._token_log),
        }
        self._token_log.clear()
        return summary
