"""
Turn Models for the Guided Tutor engine

Models:
    - TurnInput: What the learner submitted
    - TurnOutcome / FallbackReason: How a turn ended
    - OrchestrationResult: Result of one turn
    - TurnStreamEvent: Event emitted while a streamed turn runs
"""

from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field

from guided_tutor.models.session import LifecycleState
from guided_tutor.models.validation import ValidationResult


class TurnInput(BaseModel):
    """Learner input for one turn."""

    message: str = Field(min_length=1, description="Learner message")
    screen_id: Optional[str] = Field(
        default=None,
        description="Screen the client believes is active"
    )


class TurnOutcome(str, Enum):
    VALIDATED = "VALIDATED"
    FALLBACK = "FALLBACK"


class FallbackReason(str, Enum):
    SAFETY = "SAFETY"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    GENERATION_UNAVAILABLE = "GENERATION_UNAVAILABLE"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    CONTEXT_TOO_LARGE = "CONTEXT_TOO_LARGE"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class OrchestrationResult(BaseModel):
    """Result of processing a turn."""

    session_id: str
    turn_id: str
    response: str = Field(description="Text released to the learner")
    outcome: TurnOutcome
    fallback_reason: Optional[FallbackReason] = None
    attempts: int = Field(default=0, description="Generation attempts made")
    validation: Optional[ValidationResult] = Field(
        default=None,
        description="Verdict on the released candidate (None on fallback; rejected drafts stay in the turn logs)"
    )
    state: Optional[LifecycleState] = Field(
        default=None,
        description="Session state after the turn (None if the session could not be read)"
    )
    screen_id: Optional[str] = None
    screen_advanced: bool = False
    session_completed: bool = False

    @property
    def is_fallback(self) -> bool:
        return self.outcome == TurnOutcome.FALLBACK


class TurnStreamEvent(BaseModel):
    """
    Event emitted by a streamed turn.

    Sequence: one "accepted", any number of "chunk"/"discard", one "result".
    Speculative chunks are unvalidated; a "discard" tells the client to drop
    everything speculative received so far.
    """

    type: Literal["accepted", "chunk", "discard", "result"]
    text: str = ""
    speculative: bool = False
    state: Optional[LifecycleState] = None
    screen_id: Optional[str] = None
    result: Optional[OrchestrationResult] = None
