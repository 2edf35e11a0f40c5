"""
Session State Machine for the Guided Tutor engine

Pure transition logic for the session lifecycle:

    IDLE -> ASSESSING_LEVEL -> IN_LESSON -> COMPLETED

The machine only answers two questions: is an event legal at a position,
and where does applying it lead. It never touches storage and never
advances a screen on its own; the orchestrator calls `apply` once a
validated turn has satisfied the active screen.

Usage:
    from guided_tutor.core.state_machine import SessionStateMachine, TurnEvent

    machine = SessionStateMachine()
    position = SessionPosition.of(session)
    if machine.can_transition(position, TurnEvent.ADVANCE_SCREEN):
        result = machine.apply(position, TurnEvent.ADVANCE_SCREEN)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

from guided_tutor.exceptions import InvalidTransitionError
from guided_tutor.models.session import LifecycleState

if TYPE_CHECKING:
    from guided_tutor.models.session import Session


class TurnEvent(str, Enum):
    """Events the orchestrator feeds into the machine."""

    BEGIN_ASSESSMENT = "BEGIN_ASSESSMENT"
    BEGIN_LESSON = "BEGIN_LESSON"
    ANSWER_ASSESSMENT = "ANSWER_ASSESSMENT"
    COMPLETE_ASSESSMENT = "COMPLETE_ASSESSMENT"
    ANSWER_SCREEN = "ANSWER_SCREEN"
    ADVANCE_SCREEN = "ADVANCE_SCREEN"
    FINISH_LESSON = "FINISH_LESSON"


class SideEffect(str, Enum):
    """What the orchestrator must do after a transition is applied."""

    ASSESSMENT_STARTED = "ASSESSMENT_STARTED"
    SCREEN_ENTERED = "SCREEN_ENTERED"
    SESSION_COMPLETED = "SESSION_COMPLETED"


@dataclass(frozen=True)
class SessionPosition:
    """Where a session sits in its lifecycle."""

    state: LifecycleState
    screen_index: int
    total_screens: int

    @classmethod
    def of(cls, session: "Session") -> "SessionPosition":
        return cls(
            state=session.state,
            screen_index=session.screen_index,
            total_screens=session.total_screens,
        )


@dataclass(frozen=True)
class TransitionResult:
    position: SessionPosition
    side_effects: tuple[SideEffect, ...] = ()


class SessionStateMachine:
    """
    Lifecycle transitions.

    Transitions:
        IDLE + BEGIN_ASSESSMENT           -> ASSESSING_LEVEL (screen 0)
        IDLE + BEGIN_LESSON               -> IN_LESSON (screen 1)
        ASSESSING_LEVEL + ANSWER_ASSESSMENT -> ASSESSING_LEVEL
        ASSESSING_LEVEL + COMPLETE_ASSESSMENT -> IN_LESSON (screen 1)
        IN_LESSON + ANSWER_SCREEN         -> IN_LESSON (same screen)
        IN_LESSON + ADVANCE_SCREEN        -> IN_LESSON (screen + 1), not on the last screen
        IN_LESSON + FINISH_LESSON         -> COMPLETED, only on the last screen

    COMPLETED accepts nothing. Starting over means creating a new session.
    """

    def can_transition(self, position: SessionPosition, event: TurnEvent) -> bool:
        """Whether `event` is legal at `position`. Never raises."""
        try:
            return self._target(position, event) is not None
        except (AttributeError, TypeError, ValueError):
            return False

    def apply(self, position: SessionPosition, event: TurnEvent) -> TransitionResult:
        """
        Apply an event.

        Raises:
            InvalidTransitionError: If the event is illegal at this position
        """
        result = self._target(position, event)
        if result is None:
            raise InvalidTransitionError(
                state=position.state.value,
                event=getattr(event, "value", str(event)),
                reason=self._explain(position, event),
            )
        return result

    def _target(self, position: SessionPosition, event: TurnEvent) -> Optional[TransitionResult]:
        state = position.state
        index = position.screen_index
        total = position.total_screens

        if total < 1:
            return None

        if state == LifecycleState.IDLE:
            if event == TurnEvent.BEGIN_ASSESSMENT:
                return TransitionResult(
                    SessionPosition(LifecycleState.ASSESSING_LEVEL, 0, total),
                    (SideEffect.ASSESSMENT_STARTED,),
                )
            if event == TurnEvent.BEGIN_LESSON:
                return TransitionResult(
                    SessionPosition(LifecycleState.IN_LESSON, 1, total),
                    (SideEffect.SCREEN_ENTERED,),
                )
            return None

        if state == LifecycleState.ASSESSING_LEVEL:
            if event == TurnEvent.ANSWER_ASSESSMENT:
                return TransitionResult(position)
            if event == TurnEvent.COMPLETE_ASSESSMENT:
                return TransitionResult(
                    SessionPosition(LifecycleState.IN_LESSON, 1, total),
                    (SideEffect.SCREEN_ENTERED,),
                )
            return None

        if state == LifecycleState.IN_LESSON:
            if not 1 <= index <= total:
                return None
            if event == TurnEvent.ANSWER_SCREEN:
                return TransitionResult(position)
            if event == TurnEvent.ADVANCE_SCREEN and index < total:
                return TransitionResult(
                    SessionPosition(LifecycleState.IN_LESSON, index + 1, total),
                    (SideEffect.SCREEN_ENTERED,),
                )
            if event == TurnEvent.FINISH_LESSON and index == total:
                return TransitionResult(
                    SessionPosition(LifecycleState.COMPLETED, index, total),
                    (SideEffect.SESSION_COMPLETED,),
                )
            return None

        return None

    def _explain(self, position: SessionPosition, event: TurnEvent) -> str:
        if position.state == LifecycleState.COMPLETED:
            return "session is completed; start a new session"
        if event == TurnEvent.ADVANCE_SCREEN and position.screen_index >= position.total_screens:
            return "already on the last screen"
        if event == TurnEvent.FINISH_LESSON and position.screen_index < position.total_screens:
            return f"screen {position.screen_index} of {position.total_screens} is not the last"
        return "event not accepted in this state"


def turn_event_for(session: "Session") -> TurnEvent:
    """The event a learner message represents in the session's current state."""
    if session.state == LifecycleState.ASSESSING_LEVEL:
        return TurnEvent.ANSWER_ASSESSMENT
    return TurnEvent.ANSWER_SCREEN


def completion_event_for(session: "Session") -> TurnEvent:
    """The event that follows once the active item is satisfied."""
    if session.state == LifecycleState.ASSESSING_LEVEL:
        remaining = len(session.lesson.assessment_questions) - session.assessment_index - 1
        return TurnEvent.ANSWER_ASSESSMENT if remaining > 0 else TurnEvent.COMPLETE_ASSESSMENT
    if session.screen_index < session.total_screens:
        return TurnEvent.ADVANCE_SCREEN
    return TurnEvent.FINISH_LESSON
