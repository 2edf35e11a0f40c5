"""
Generation Models for the Guided Tutor engine

Models:
    - LayerKind: Prompt layers in their fixed composition order
    - PromptLayer: One rendered instructional fragment
    - GenerationParams: Sampling parameters
    - GenerationRequest: Complete request handed to a generation port
    - GenerationResponse: Buffered response
    - StreamChunk: One incremental piece of a streamed response
"""

from enum import IntEnum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class LayerKind(IntEnum):
    """Prompt layers. The integer value is the composition position."""

    IDENTITY = 1
    TEACHING_RULES = 2
    LEARNER_CONTEXT = 3
    FALLBACK = 4
    LEARNER_MESSAGE = 5


class PromptLayer(BaseModel):
    """A rendered instructional fragment."""

    kind: LayerKind
    content: str


class GenerationParams(BaseModel):
    """Sampling parameters for one generation."""

    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    stream: bool = False


class GenerationRequest(BaseModel):
    """
    A fully assembled generation request.

    Layers appear exactly once each, in LayerKind order.
    """

    layers: list[PromptLayer]
    params: GenerationParams = Field(default_factory=GenerationParams)
    estimated_tokens: int = 0
    truncated_entries: int = Field(
        default=0,
        description="History entries dropped to fit the token budget"
    )

    @model_validator(mode="after")
    def _check_layer_order(self) -> "GenerationRequest":
        kinds = [layer.kind for layer in self.layers]
        if kinds != sorted(LayerKind):
            raise ValueError(f"Prompt layers out of order: {[k.name for k in kinds]}")
        return self

    @property
    def prompt(self) -> str:
        return "\n\n".join(layer.content for layer in self.layers)

    def layer(self, kind: LayerKind) -> PromptLayer:
        return self.layers[kind - 1]


class GenerationResponse(BaseModel):
    """A complete, buffered response."""

    text: str
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    finish_reason: Optional[str] = None


class StreamChunk(BaseModel):
    """
    One piece of a streamed response.

    A stream ends with exactly one chunk where done is True; that chunk may
    carry trailing text.
    """

    index: int
    text: str = ""
    done: bool = False
