"""
Core turn processing for the Guided Tutor engine

Modules:
    - state_machine: Session lifecycle transitions
    - prompt_assembler: Layered prompt construction under a token budget
    - response_validator: Verdicts on generated candidates
    - evaluator: Learner context deltas from validated turns
    - session_guard: Per-session exclusion
    - orchestrator: The turn coordinator
"""

from guided_tutor.core.state_machine import (
    TurnEvent,
    SideEffect,
    SessionPosition,
    TransitionResult,
    SessionStateMachine,
)
from guided_tutor.core.prompt_assembler import PromptAssembler
from guided_tutor.core.response_validator import ValidationPolicy, ResponseValidator
from guided_tutor.core.evaluator import LearnerEvaluator, AnswerMatchEvaluator
from guided_tutor.core.session_guard import SessionGuard
from guided_tutor.core.orchestrator import SessionOrchestrator

__all__ = [
    "TurnEvent",
    "SideEffect",
    "SessionPosition",
    "TransitionResult",
    "SessionStateMachine",
    "PromptAssembler",
    "ValidationPolicy",
    "ResponseValidator",
    "LearnerEvaluator",
    "AnswerMatchEvaluator",
    "SessionGuard",
    "SessionOrchestrator",
]
