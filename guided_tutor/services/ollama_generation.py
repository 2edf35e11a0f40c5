"""
Ollama Generation Adapter for the Guided Tutor engine

Local inference through an Ollama server's /api/generate endpoint. Streaming
responses arrive as newline-delimited JSON objects; the object with
"done": true ends the stream.
"""

import json
from typing import AsyncIterator

import httpx

from guided_tutor.logging_config import get_logger
from guided_tutor.models.generation import GenerationRequest, GenerationResponse
from guided_tutor.services.generation import BaseGenerationService


logger = get_logger("ollama")

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"


class OllamaGeneration(BaseGenerationService):
    """Generation port backed by a local Ollama server."""

    provider = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        client: httpx.AsyncClient | None = None,
        **kwargs,
    ):
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    def _build_payload(self, request: GenerationRequest, stream: bool) -> dict:
        return {
            "model": self.model,
            "prompt": request.prompt,
            "stream": stream,
            "options": {
                "temperature": request.params.temperature,
                "num_predict": request.params.max_tokens,
            },
        }

    async def _complete(self, request: GenerationRequest) -> GenerationResponse:
        response = await self.client.post("/api/generate", json=self._build_payload(request, False))
        response.raise_for_status()
        data = response.json()
        return GenerationResponse(
            text=data.get("response", ""),
            model=self.model,
            prompt_tokens=data.get("prompt_eval_count"),
            completion_tokens=data.get("eval_count"),
            finish_reason=data.get("done_reason"),
        )

    async def _stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        async with self.client.stream(
            "POST",
            "/api/generate",
            json=self._build_payload(request, True),
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed stream line: {line[:80]}")
                    continue
                if data.get("response"):
                    yield data["response"]
                if data.get("done"):
                    return

    async def list_models(self) -> list[str]:
        """Models installed on the server (empty when it is unreachable)."""
        try:
            response = await self.client.get("/api/tags")
            response.raise_for_status()
        except httpx.HTTPError:
            return []
        return [model["name"] for model in response.json().get("models", [])]

    async def aclose(self) -> None:
        await self.client.aclose()

    def _is_transient_error(self, e: Exception) -> bool:
        if isinstance(e, (httpx.TimeoutException, httpx.TransportError)):
            return True
        if isinstance(e, httpx.HTTPStatusError):
            return e.response.status_code in (429, 502, 503, 504)
        return super()._is_transient_error(e)
