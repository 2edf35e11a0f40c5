"""
Anthropic (Claude) Generation Adapter for the Guided Tutor engine

Maps generation requests onto the Anthropic Messages API.
"""

from typing import AsyncIterator

import anthropic

from guided_tutor.models.generation import GenerationRequest, GenerationResponse
from guided_tutor.services.generation import BaseGenerationService


DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-latest"


class AnthropicGeneration(BaseGenerationService):
    """Generation port backed by Claude."""

    provider = "anthropic"

    def __init__(self, api_key: str, model: str = DEFAULT_CLAUDE_MODEL, **kwargs):
        super().__init__(model, **kwargs)
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self.timeout, max_retries=0)

    def _build_kwargs(self, request: GenerationRequest) -> dict:
        return {
            "model": self.model,
            "max_tokens": request.params.max_tokens,
            "temperature": min(request.params.temperature, 1.0),
            "messages": [{"role": "user", "content": request.prompt}],
        }

    async def _complete(self, request: GenerationRequest) -> GenerationResponse:
        response = await self.client.messages.create(**self._build_kwargs(request))
        text = "".join(block.text for block in response.content if block.type == "text")
        return GenerationResponse(
            text=text,
            model=response.model,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            finish_reason=response.stop_reason,
        )

    async def _stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        async with self.client.messages.stream(**self._build_kwargs(request)) as stream:
            async for text in stream.text_stream:
                yield text

    def _is_transient_error(self, e: Exception) -> bool:
        if isinstance(
            e,
            (anthropic.RateLimitError, anthropic.APITimeoutError, anthropic.APIConnectionError),
        ):
            return True
        return super()._is_transient_error(e)
