"""LLM-powered sentiment analysis over OpenRouter's OpenAI-compatible API."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from cryptomood.models import Batch, SentimentVerdict
from cryptomood.prompts import PromptBuilder

logger = logging.getLogger(__name__)

# ── System prompt used for every analysis call ─────────────────────────────
_SYSTEM_PROMPT = (
    "You are an expert cryptocurrency market sentiment analyst specializing in "
    "social media sentiment analysis. You analyze tweets and social media posts "
    "to determine market sentiment, mood, and emotional indicators that could "
    "influence crypto market behavior. Focus on genuine sentiment rather than "
    "just keyword analysis."
)

_APP_TITLE = "Crypto Sentiment Analysis - Market Mood Detection"

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")

REQUIRED_FIELDS = ("overall_sentiment", "sentiment_intensity", "analysis", "summary")


class ProviderError(Exception):
    """Raised when the LLM provider cannot be reached or answers badly."""


class VerdictError(ValueError):
    """Base class for unusable model answers."""


class VerdictParseError(VerdictError):
    """The answer does not contain a JSON object."""


class VerdictValidationError(VerdictError):
    """The answer is JSON but does not satisfy the verdict schema."""


def extract_json_text(content: str) -> str:
    """Return the body of the first ```json fence, or the whole answer."""
    match = _FENCED_JSON_RE.search(content)
    if match:
        return match.group(1)
    return content.strip()


def parse_verdict(content: str) -> SentimentVerdict:
    """Decode and validate a raw model answer into a ``SentimentVerdict``."""
    try:
        data = json.loads(extract_json_text(content))
    except json.JSONDecodeError as exc:
        raise VerdictParseError(f"Failed to parse AI response: {exc}") from exc
    if not isinstance(data, dict):
        raise VerdictParseError(
            f"Failed to parse AI response: expected a JSON object, got {type(data).__name__}"
        )

    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        raise VerdictValidationError(
            f"AI response missing required fields: {', '.join(missing)}"
        )
    try:
        return SentimentVerdict.model_validate(data)
    except ValidationError as exc:
        raise VerdictValidationError(f"AI response failed validation: {exc}") from exc


class AnalysisClient:
    """Sends a rendered batch to the model and returns its verdict.

    A single request is made per call. Timeouts and transport failures
    surface as ``ProviderError`` and are never retried here.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        *,
        prompt_builder: PromptBuilder | None = None,
        timeout: float = 60.0,
        max_tokens: int = 10000,
        temperature: float = 0.3,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self.model = model
        self.prompts = prompt_builder or PromptBuilder()
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._client = client

    # ── public ──────────────────────────────────────────────────────────

    async def analyze(self, batch: Batch) -> SentimentVerdict:
        """Run sentiment analysis for *batch*."""
        logger.info("Running AI sentiment analysis with %s …", self.model)
        prompt = self.prompts.build(batch)

        content = await self._chat(_SYSTEM_PROMPT, prompt)
        verdict = parse_verdict(content)
        if not verdict.created_at:
            verdict.created_at = datetime.now(UTC).isoformat()

        logger.info(
            "Sentiment analysis complete: overall=%s intensity=%s",
            verdict.overall_sentiment,
            verdict.sentiment_intensity,
        )
        return verdict

    # ── private ─────────────────────────────────────────────────────────

    async def _chat(self, system: str, user: str) -> str:
        """Send one chat-completion request and return the answer text."""
        if self._client is not None:
            return await self._complete(self._client, system, user)

        # A fresh client per call keeps the HTTP pool on the caller's loop.
        async with AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
        ) as client:
            return await self._complete(client, system, user)

    async def _complete(self, client: Any, system: str, user: str) -> str:
        try:
            resp = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    extra_headers={"X-Title": _APP_TITLE},
                ),
                timeout=self._timeout,
            )
        except (TimeoutError, openai.APITimeoutError) as exc:
            raise ProviderError(f"LLM request timed out after {self._timeout:g}s") from exc
        except openai.APIError as exc:
            raise ProviderError(f"LLM request failed: {exc}") from exc

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise ProviderError("LLM response had no choices") from exc
        return (content or "").strip()
