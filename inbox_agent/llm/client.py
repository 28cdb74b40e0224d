"""
Streaming LLM client.

``submit`` yields response chunks as they arrive; the final chunk carries the
token usage for the call. Callers never parse partial output: ``complete``
(and ``collect_stream``) buffer the whole stream before anything reads it.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import anthropic

from ..config import Config
from ..exceptions import LLMResponseError
from ..structured_logging import StructuredLogger

_FENCE_PATTERN = re.compile(r'^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$', re.DOTALL)


@dataclass(frozen=True)
class UsageMetadata:
    """Token counts reported for a single model call."""

    prompt_tokens: int = 0
    candidates_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class StreamChunk:
    """One piece of a streamed response."""

    text: Optional[str] = None
    usage: Optional[UsageMetadata] = None


@dataclass(frozen=True)
class LLMResponse:
    """A fully buffered response."""

    text: str
    usage: Optional[UsageMetadata] = None


class LLMClient:
    """Thin async wrapper around the Anthropic Messages streaming API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[Any] = None):
        self.api_key = api_key if api_key is not None else Config.ANTHROPIC_API_KEY
        self.model = model or Config.LLM_MODEL
        self.logger = StructuredLogger("llm_client")
        self._client = client
        if self._client is None and self.api_key:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)

    def is_configured(self) -> bool:
        return self._client is not None

    async def submit(self, prompt: str, temperature: float = 0.2,
                     max_tokens: Optional[int] = None) -> AsyncIterator[StreamChunk]:
        """Stream a single-turn completion for ``prompt``."""
        if not self.is_configured():
            raise LLMResponseError("LLM client not configured: ANTHROPIC_API_KEY is not set")

        async with self._client.messages.stream(
            model=self.model,
            max_tokens=max_tokens or Config.LLM_MAX_TOKENS,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield StreamChunk(text=text)
            final_message = await stream.get_final_message()

        usage = getattr(final_message, 'usage', None)
        if usage is not None:
            prompt_tokens = usage.input_tokens or 0
            output_tokens = usage.output_tokens or 0
            yield StreamChunk(usage=UsageMetadata(
                prompt_tokens=prompt_tokens,
                candidates_tokens=output_tokens,
                total_tokens=prompt_tokens + output_tokens,
            ))

    async def complete(self, prompt: str, temperature: float = 0.2,
                       max_tokens: Optional[int] = None) -> LLMResponse:
        """Submit ``prompt`` and return the fully buffered response."""
        response = await collect_stream(self.submit(prompt, temperature, max_tokens))
        self.logger.debug("LLM call completed", {
            "model": self.model,
            "response_chars": len(response.text),
            "total_tokens": response.usage.total_tokens if response.usage else None,
        })
        return response


async def collect_stream(chunks: AsyncIterator[StreamChunk]) -> LLMResponse:
    """Join every chunk's text; usage comes from the last chunk that has it."""
    parts = []
    usage = None
    async for chunk in chunks:
        if chunk.text:
            parts.append(chunk.text)
        if chunk.usage is not None:
            usage = chunk.usage
    return LLMResponse(text=''.join(parts), usage=usage)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    stripped = text.strip()
    match = _FENCE_PATTERN.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_json_response(text: str) -> Any:
    """Parse a JSON model response, tolerating markdown fences."""
    cleaned = strip_code_fences(text or '')
    if not cleaned:
        raise LLMResponseError("Empty LLM response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"LLM response is not valid JSON: {e.msg}", raw_response=text[:500])
