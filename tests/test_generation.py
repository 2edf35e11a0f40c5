"""
Unit Tests for the generation port adapters

Tests the shared retry behaviour, stream termination and the Ollama adapter
against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from guided_tutor.config import Settings
from guided_tutor.exceptions import ConfigurationError, GenerationUnavailableError
from guided_tutor.models.generation import (
    GenerationParams,
    GenerationRequest,
    GenerationResponse,
    LayerKind,
    PromptLayer,
)
from guided_tutor.services.generation import BaseGenerationService, create_generation_port
from guided_tutor.services.ollama_generation import OllamaGeneration


def _request(stream: bool = False) -> GenerationRequest:
    return GenerationRequest(
        layers=[PromptLayer(kind=kind, content=kind.name.lower()) for kind in LayerKind],
        params=GenerationParams(stream=stream),
    )


class FlakyService(BaseGenerationService):
    """Adapter whose first calls fail with a configurable error."""

    provider = "flaky"

    def __init__(self, failures: int, error: Exception, pieces=("Hello ", "there?")):
        super().__init__("flaky-model", max_retries=3, initial_retry_delay=0)
        self.failures = failures
        self.error = error
        self.pieces = pieces
        self.calls = 0

    async def _complete(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return GenerationResponse(text="".join(self.pieces), model=self.model)

    async def _stream_text(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        for piece in self.pieces:
            yield piece


class TestBaseGenerationService:
    """Test suite for the shared retry logic."""

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        service = FlakyService(failures=2, error=ConnectionError("reset"))

        response = await service.generate(_request())

        assert response.text == "Hello there?"
        assert service.calls == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        service = FlakyService(failures=5, error=ConnectionError("reset"))

        with pytest.raises(GenerationUnavailableError) as exc_info:
            await service.generate(_request())

        assert exc_info.value.attempts == 3
        assert exc_info.value.model_name == "flaky-model"

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        service = FlakyService(failures=1, error=ValueError("bad request"))

        with pytest.raises(GenerationUnavailableError):
            await service.generate(_request())

        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_stream_ends_with_single_done_chunk(self):
        service = FlakyService(failures=1, error=ConnectionError("reset"))

        chunks = [chunk async for chunk in service.generate_stream(_request(stream=True))]

        assert [chunk.text for chunk in chunks] == ["Hello ", "there?", ""]
        assert [chunk.done for chunk in chunks] == [False, False, True]
        assert [chunk.index for chunk in chunks] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stream_failure_surfaces_as_unavailable(self):
        service = FlakyService(failures=5, error=ValueError("bad request"))

        with pytest.raises(GenerationUnavailableError):
            async for _ in service.generate_stream(_request(stream=True)):
                pass


class TestOllamaGeneration:
    """Test suite for OllamaGeneration over a mocked transport."""

    def _service(self, handler) -> OllamaGeneration:
        client = httpx.AsyncClient(
            base_url="http://ollama.test",
            transport=httpx.MockTransport(handler),
        )
        return OllamaGeneration(
            base_url="http://ollama.test",
            model="llama3.2",
            client=client,
            initial_retry_delay=0,
        )

    @pytest.mark.asyncio
    async def test_generate(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["payload"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"response": "What do you notice?", "done": True, "eval_count": 5},
            )

        service = self._service(handler)
        response = await service.generate(_request())
        await service.aclose()

        assert response.text == "What do you notice?"
        assert response.completion_tokens == 5
        assert seen["payload"]["stream"] is False
        assert seen["payload"]["options"]["num_predict"] == 1024

    @pytest.mark.asyncio
    async def test_stream_parses_ndjson(self):
        body = "\n".join([
            json.dumps({"response": "What ", "done": False}),
            "not json",
            json.dumps({"response": "now?", "done": False}),
            json.dumps({"response": "", "done": True}),
        ])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body.encode())

        service = self._service(handler)
        chunks = [chunk async for chunk in service.generate_stream(_request(stream=True))]
        await service.aclose()

        assert "".join(chunk.text for chunk in chunks) == "What now?"
        assert chunks[-1].done

    @pytest.mark.asyncio
    async def test_server_overload_is_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"response": "Ready?", "done": True})

        service = self._service(handler)
        response = await service.generate(_request())
        await service.aclose()

        assert response.text == "Ready?"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_list_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"models": [{"name": "llama3.2"}, {"name": "mistral"}]})

        service = self._service(handler)
        models = await service.list_models()
        await service.aclose()

        assert models == ["llama3.2", "mistral"]

    @pytest.mark.asyncio
    async def test_list_models_when_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        service = self._service(handler)
        models = await service.list_models()
        await service.aclose()

        assert models == []


class TestGenerationFactory:

    def test_ollama_provider(self):
        port = create_generation_port(Settings(generation_provider="ollama", ollama_model="mistral"))

        assert port.provider == "ollama"
        assert port.model_name == "mistral"

    @pytest.mark.parametrize("provider", ["openai", "anthropic"])
    def test_remote_provider_needs_key(self, provider):
        settings = Settings(generation_provider=provider, openai_api_key=None, anthropic_api_key=None)

        with pytest.raises(ConfigurationError):
            create_generation_port(settings)

    def test_remote_providers(self):
        openai_port = create_generation_port(
            Settings(generation_provider="openai", openai_api_key="sk-test", openai_model="gpt-4o-mini")
        )
        anthropic_port = create_generation_port(
            Settings(generation_provider="anthropic", anthropic_api_key="sk-ant-test")
        )

        assert openai_port.provider == "openai"
        assert openai_port.model_name == "gpt-4o-mini"
        assert anthropic_port.provider == "anthropic"
