"""
Data Models for the Guided Tutor engine

This package contains all Pydantic models for the application.

Modules:
    - lesson: Lessons, screens and problems
    - session: Session lifecycle state and transcript
    - learner: Learner context and evaluator deltas
    - instructor: Instructor profiles
    - generation: Prompt layers, generation requests and responses
    - validation: Violations and verdicts
    - turn: Turn input, results and stream events
    - turn_logs: Per-session orchestration event log
"""

from guided_tutor.models.lesson import (
    Problem,
    Screen,
    Lesson,
    format_screen_id,
    parse_screen_id,
)
from guided_tutor.models.session import (
    LifecycleState,
    Message,
    Session,
)
from guided_tutor.models.learner import (
    MasteryStatus,
    Misconception,
    SessionSummary,
    ProgressMarker,
    LearnerContextDelta,
    LearnerContext,
)
from guided_tutor.models.instructor import InstructorProfile
from guided_tutor.models.generation import (
    LayerKind,
    PromptLayer,
    GenerationParams,
    GenerationRequest,
    GenerationResponse,
    StreamChunk,
)
from guided_tutor.models.validation import (
    ViolationKind,
    Action,
    Violation,
    ValidationResult,
)
from guided_tutor.models.turn import (
    TurnInput,
    TurnOutcome,
    FallbackReason,
    OrchestrationResult,
    TurnStreamEvent,
)
from guided_tutor.models.turn_logs import TurnLogEntry, TurnLogStore

__all__ = [
    # lesson
    "Problem",
    "Screen",
    "Lesson",
    "format_screen_id",
    "parse_screen_id",
    # session
    "LifecycleState",
    "Message",
    "Session",
    # learner
    "MasteryStatus",
    "Misconception",
    "SessionSummary",
    "ProgressMarker",
    "LearnerContextDelta",
    "LearnerContext",
    # instructor
    "InstructorProfile",
    # generation
    "LayerKind",
    "PromptLayer",
    "GenerationParams",
    "GenerationRequest",
    "GenerationResponse",
    "StreamChunk",
    # validation
    "ViolationKind",
    "Action",
    "Violation",
    "ValidationResult",
    # turn
    "TurnInput",
    "TurnOutcome",
    "FallbackReason",
    "OrchestrationResult",
    "TurnStreamEvent",
    # turn_logs
    "TurnLogEntry",
    "TurnLogStore",
]
