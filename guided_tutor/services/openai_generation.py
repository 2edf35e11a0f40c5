"""
OpenAI Generation Adapter for the Guided Tutor engine

Chat Completions through the async OpenAI client, buffered or streamed.
"""

from typing import AsyncIterator

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, RateLimitError

from guided_tutor.models.generation import GenerationRequest, GenerationResponse
from guided_tutor.services.generation import BaseGenerationService


DEFAULT_OPENAI_MODEL = "gpt-4o"


class OpenAIGeneration(BaseGenerationService):
    """Generation port backed by OpenAI chat completions."""

    provider = "openai"

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL, **kwargs):
        super().__init__(model, **kwargs)
        self.client = AsyncOpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)

    def _build_kwargs(self, request: GenerationRequest) -> dict:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.params.max_tokens,
            "temperature": request.params.temperature,
        }

    async def _complete(self, request: GenerationRequest) -> GenerationResponse:
        response = await self.client.chat.completions.create(**self._build_kwargs(request))
        choice = response.choices[0]
        usage = response.usage
        return GenerationResponse(
            text=choice.message.content or "",
            model=response.model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            finish_reason=choice.finish_reason,
        )

    async def _stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        stream = await self.client.chat.completions.create(
            **self._build_kwargs(request),
            stream=True,
        )
        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await stream.close()

    def _is_transient_error(self, e: Exception) -> bool:
        if isinstance(e, (RateLimitError, APITimeoutError, APIConnectionError)):
            return True
        return super()._is_transient_error(e)
