"""
Session State Models for the Guided Tutor engine

This module defines the canonical per-session record owned by the
orchestrator.

Models:
    - LifecycleState: Session lifecycle states
    - Message: One transcript entry
    - Session: Complete session state
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Any
from pydantic import BaseModel, Field, model_validator
import uuid

from guided_tutor.models.lesson import Lesson, Problem, format_screen_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(str, Enum):
    """Lifecycle of a session. COMPLETED is terminal."""

    IDLE = "IDLE"
    ASSESSING_LEVEL = "ASSESSING_LEVEL"
    IN_LESSON = "IN_LESSON"
    COMPLETED = "COMPLETED"


class Message(BaseModel):
    """
    Individual message in a session transcript.

    Represents a single exchange between learner and instructor.
    """

    role: Literal["learner", "instructor"] = Field(
        description="Role of the message sender"
    )
    content: str = Field(
        description="Message content text"
    )
    screen_id: Optional[str] = Field(
        default=None,
        description="Screen active when the message was sent"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the message was created"
    )


# ===========================================
# Main Session State
# ===========================================


class Session(BaseModel):
    """
    Complete state for one tutoring session.

    Only the orchestrator mutates sessions, and it does so by building a new
    record through `moved_to` / `model_copy`; the state/screen invariant is
    checked every time a Session is validated.
    """

    # ===========================================
    # Identification
    # ===========================================
    session_id: str = Field(
        default_factory=lambda: f"sess_{uuid.uuid4().hex[:12]}",
        description="Opaque session identifier"
    )
    learner_id: str = Field(
        description="Owning learner"
    )
    instructor_profile_id: str = Field(
        description="Instructor profile applied during prompt assembly"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Session creation time"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update time"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="When the session reached COMPLETED"
    )

    # ===========================================
    # Lesson & Progress
    # ===========================================
    lesson: Lesson = Field(
        description="Lesson being taught"
    )
    state: LifecycleState = Field(
        default=LifecycleState.IDLE,
        description="Current lifecycle state"
    )
    screen_index: int = Field(
        default=0,
        ge=0,
        description="1-based screen ordinal while IN_LESSON, 0 before the lesson"
    )
    assessment_index: int = Field(
        default=0,
        ge=0,
        description="Number of placement items already answered"
    )
    turn_count: int = Field(
        default=0,
        description="Number of validated turns"
    )

    # ===========================================
    # Memory
    # ===========================================
    transcript: list[Message] = Field(
        default_factory=list,
        description="Recent conversation messages"
    )

    @model_validator(mode="after")
    def _check_position(self) -> "Session":
        total = self.lesson.total_screens
        if self.state in (LifecycleState.IDLE, LifecycleState.ASSESSING_LEVEL):
            if self.screen_index != 0:
                raise ValueError(f"{self.state.value} session must have screen_index 0")
        elif self.state == LifecycleState.IN_LESSON:
            if not 1 <= self.screen_index <= total:
                raise ValueError(
                    f"IN_LESSON screen_index {self.screen_index} outside 1..{total}"
                )
        elif self.state == LifecycleState.COMPLETED:
            if self.screen_index != total:
                raise ValueError("COMPLETED session must sit on the terminal screen")
        if self.state == LifecycleState.ASSESSING_LEVEL:
            if self.assessment_index >= len(self.lesson.assessment_questions):
                raise ValueError("ASSESSING_LEVEL session has no assessment item left")
        return self

    # ===========================================
    # Properties
    # ===========================================

    @property
    def screen_id(self) -> Optional[str]:
        """Id of the active screen, None before the lesson starts."""
        if self.screen_index == 0:
            return None
        return format_screen_id(self.screen_index)

    @property
    def total_screens(self) -> int:
        return self.lesson.total_screens

    @property
    def is_complete(self) -> bool:
        return self.state == LifecycleState.COMPLETED

    @property
    def active_problem(self) -> Optional[Problem]:
        """The problem the learner is currently working on, if any."""
        if self.state == LifecycleState.ASSESSING_LEVEL:
            return self.lesson.assessment_questions[self.assessment_index]
        if self.state == LifecycleState.IN_LESSON:
            return self.lesson.get_screen(self.screen_index)
        return None

    @property
    def progress_percentage(self) -> float:
        if self.state == LifecycleState.COMPLETED:
            return 100.0
        if self.screen_index == 0:
            return 0.0
        return (self.screen_index - 1) / self.total_screens * 100

    # ===========================================
    # Methods
    # ===========================================

    def get_current_turn_id(self) -> str:
        """Get current turn ID for logging."""
        return f"turn_{self.turn_count + 1}"

    def moved_to(self, state: LifecycleState, screen_index: int, **updates: Any) -> "Session":
        """
        Return a validated copy at a new lifecycle position.

        Raises:
            pydantic.ValidationError: If the position breaks the invariant
        """
        data = self.model_dump()
        data.update(updates)
        data["state"] = state
        data["screen_index"] = screen_index
        data["updated_at"] = utc_now()
        return Session.model_validate(data)

    def with_exchange(
        self,
        learner_message: str,
        instructor_message: str,
        max_history: int,
    ) -> "Session":
        """Return a copy with one more validated turn in the transcript."""
        transcript = [
            *self.transcript,
            Message(role="learner", content=learner_message, screen_id=self.screen_id),
            Message(role="instructor", content=instructor_message, screen_id=self.screen_id),
        ]
        if max_history <= 0:
            transcript = []
        elif len(transcript) > max_history:
            transcript = transcript[-max_history:]
        return self.model_copy(
            update={
                "transcript": transcript,
                "turn_count": self.turn_count + 1,
                "updated_at": utc_now(),
            }
        )
