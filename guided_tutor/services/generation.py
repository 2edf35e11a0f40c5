"""
Generation Port for the Guided Tutor engine

This module defines the interface the orchestrator uses to produce text, and
the shared retry logic every backend adapter builds on:
- Automatic retry with exponential backoff for transient errors
  (rate limits, timeouts, dropped connections)
- Every failure surfaces as GenerationUnavailableError
- Streams are finite and always end with one chunk where done=True

Usage:
    from guided_tutor.services.generation import create_generation_port
    from guided_tutor.config import settings

    port = create_generation_port(settings)
    response = await port.generate(request)

    async for chunk in port.generate_stream(request):
        if chunk.done:
            break
"""

import asyncio
import time
from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, TYPE_CHECKING

from guided_tutor.exceptions import ConfigurationError, GenerationUnavailableError
from guided_tutor.logging_config import get_logger, log_generation_event
from guided_tutor.models.generation import GenerationRequest, GenerationResponse, StreamChunk

if TYPE_CHECKING:
    from guided_tutor.config import Settings


logger = get_logger("generation")


# ===========================================
# Protocol (Interface)
# ===========================================


class GenerationPort(Protocol):
    """
    Protocol for text generation backends.

    `generate_stream` returns an async iterator that can be closed early;
    closing it must abort the underlying backend call.
    """

    @property
    def model_name(self) -> str:
        ...

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...

    def generate_stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        ...


# ===========================================
# Base Adapter
# ===========================================


class BaseGenerationService:
    """
    Shared behaviour for backend adapters.

    Subclasses implement `_complete` (one buffered call), `_stream_text`
    (an async iterator of text pieces) and the error classifiers.
    """

    provider = "base"

    def __init__(
        self,
        model: str,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: float = 60,
    ):
        """
        Args:
            model: Backend model identifier
            max_retries: Transport attempts before giving up
            initial_retry_delay: Initial delay between retries (seconds)
            timeout: Request timeout in seconds
        """
        self.model = model
        self.max_retries = max(1, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.model

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Produce a complete response, retrying transient failures."""
        log_generation_event(
            logger=logger,
            model=self.model,
            status="starting",
            caller=f"generation:{self.provider}",
            params={
                "max_tokens": request.params.max_tokens,
                "temperature": request.params.temperature,
                "estimated_tokens": request.estimated_tokens,
            },
        )
        start_time = time.time()
        return await self._execute_with_retry_async(lambda: self._complete(request), start_time)

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream a response as chunks, ending with a done=True chunk.

        Transient failures are retried only until the first piece of text
        arrives; after that a failure raises GenerationUnavailableError.
        """
        start_time = time.time()
        delay = self.initial_retry_delay
        index = 0

        for attempt in range(self.max_retries):
            try:
                async with aclosing(self._stream_text(request)) as pieces:
                    async for text in pieces:
                        if text:
                            yield StreamChunk(index=index, text=text)
                            index += 1
                break
            except Exception as e:
                if index == 0 and self._is_transient_error(e) and attempt + 1 < self.max_retries:
                    logger.warning(
                        f"{self.model} stream failed to open (attempt {attempt + 1}/{self.max_retries}): {e}"
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                raise self._unavailable(e, attempt + 1, start_time) from e

        log_generation_event(
            logger=logger,
            model=self.model,
            status="complete",
            caller=f"generation:{self.provider}",
            output={"chunks": index},
            duration_ms=int((time.time() - start_time) * 1000),
        )
        yield StreamChunk(index=index, done=True)

    # ===========================================
    # Adapter hooks
    # ===========================================

    async def _complete(self, request: GenerationRequest) -> GenerationResponse:
        raise NotImplementedError

    def _stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        raise NotImplementedError

    def _is_transient_error(self, e: Exception) -> bool:
        """Whether the error is worth retrying."""
        return isinstance(e, (asyncio.TimeoutError, ConnectionError))

    # ===========================================
    # Retry
    # ===========================================

    async def _execute_with_retry_async(
        self,
        api_call_fn: Callable[[], Awaitable[Any]],
        start_time: float,
    ) -> Any:
        """Execute async API call with retry logic."""
        last_error = None
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            try:
                result = await api_call_fn()
                duration_ms = int((time.time() - start_time) * 1000)

                log_generation_event(
                    logger=logger,
                    model=self.model,
                    status="complete",
                    caller=f"generation:{self.provider}",
                    output={"response_length": len(getattr(result, "text", "") or "")},
                    duration_ms=duration_ms,
                    attempts=attempt + 1,
                )
                return result

            except Exception as e:
                if self._is_transient_error(e):
                    last_error = e
                    log_generation_event(
                        logger=logger,
                        model=self.model,
                        status="retrying",
                        caller=f"generation:{self.provider}",
                        error=str(e),
                        attempts=attempt + 1,
                    )
                    if attempt + 1 < self.max_retries:
                        await asyncio.sleep(delay)
                        delay *= 2
                else:
                    raise self._unavailable(e, attempt + 1, start_time) from e

        raise self._unavailable(last_error, self.max_retries, start_time, exhausted=True)

    def _unavailable(
        self,
        error: Exception,
        attempts: int,
        start_time: float,
        exhausted: bool = False,
    ) -> GenerationUnavailableError:
        duration_ms = int((time.time() - start_time) * 1000)
        log_generation_event(
            logger=logger,
            model=self.model,
            status="failed",
            caller=f"generation:{self.provider}",
            error=str(error),
            duration_ms=duration_ms,
            attempts=attempts,
        )
        message = f"Failed after {attempts} attempts: {error}" if exhausted else str(error)
        return GenerationUnavailableError(message, self.model, attempts)


# ===========================================
# Factory Function
# ===========================================


def create_generation_port(settings: "Settings") -> GenerationPort:
    """
    Build the adapter selected by GENERATION_PROVIDER.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    provider = settings.generation_provider
    common = {
        "max_retries": settings.llm_max_retries,
        "timeout": settings.llm_timeout_seconds,
    }

    if provider == "ollama":
        from guided_tutor.services.ollama_generation import OllamaGeneration

        return OllamaGeneration(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            **common,
        )

    if provider == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY", "required when GENERATION_PROVIDER=openai")
        from guided_tutor.services.openai_generation import OpenAIGeneration

        return OpenAIGeneration(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            **common,
        )

    if provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY", "required when GENERATION_PROVIDER=anthropic")
        from guided_tutor.services.anthropic_generation import AnthropicGeneration

        return AnthropicGeneration(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            **common,
        )

    raise ConfigurationError("GENERATION_PROVIDER", f"unknown provider '{provider}'")
