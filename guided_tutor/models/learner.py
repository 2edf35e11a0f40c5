"""
Learner Context Models for the Guided Tutor engine

This module defines the knowledge-state record kept for a learner across
sessions, and the delta the evaluator produces after each validated turn.

Models:
    - MasteryStatus: Mastery of a single concept
    - Misconception: Detected learner misconception
    - SessionSummary: Summary of a finished session
    - ProgressMarker: Milestone reached by the learner
    - LearnerContextDelta: Changes derived from one turn
    - LearnerContext: Accumulated learner state
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from guided_tutor.models.session import utc_now


class MasteryStatus(str, Enum):
    """Mastery of a concept. Ordered from least to most progressed."""

    UNMASTERED = "unmastered"
    IN_PROGRESS = "in_progress"
    MASTERED = "mastered"


class Misconception(BaseModel):
    """
    A detected learner misconception.

    Resolution is always recorded explicitly, never inferred from mastery.
    """

    concept: str = Field(
        description="Related concept"
    )
    description: str = Field(
        description="Description of the misconception"
    )
    first_observed_at: datetime = Field(
        default_factory=utc_now,
        description="When misconception was first seen"
    )
    correction_attempts: int = Field(
        default=0,
        description="Turns spent addressing it"
    )
    resolved: bool = Field(
        default=False,
        description="Whether misconception has been addressed"
    )


class SessionSummary(BaseModel):
    """Summary of a completed session, oldest first in LearnerContext."""

    session_id: str
    lesson_id: str
    summary: str
    key_concepts: list[str] = Field(default_factory=list)
    misconceptions_addressed: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class ProgressMarker(BaseModel):
    """A milestone such as finishing a lesson."""

    marker: str
    session_id: str
    achieved_at: datetime = Field(default_factory=utc_now)


# ===========================================
# Delta
# ===========================================


class LearnerContextDelta(BaseModel):
    """
    Structured changes derived from one validated turn.

    Produced by a LearnerEvaluator and applied by the orchestrator.
    """

    concept: Optional[str] = Field(
        default=None,
        description="Concept the turn exercised"
    )
    is_attempt: bool = Field(
        default=False,
        description="Whether the learner attempted an answer"
    )
    is_correct: bool = Field(
        default=False,
        description="Whether the attempt matched the expected answer"
    )
    completes_item: bool = Field(
        default=False,
        description="Whether the active screen/assessment item is satisfied"
    )
    mastery_updates: dict[str, MasteryStatus] = Field(default_factory=dict)
    misconceptions_observed: dict[str, str] = Field(default_factory=dict)
    misconceptions_resolved: list[str] = Field(default_factory=list)
    strengths_added: list[str] = Field(default_factory=list)
    weaknesses_added: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.mastery_updates
            or self.misconceptions_observed
            or self.misconceptions_resolved
            or self.strengths_added
            or self.weaknesses_added
            or self.completes_item
        )


# ===========================================
# Learner Context
# ===========================================


class LearnerContext(BaseModel):
    """
    Accumulated knowledge state for a learner.

    A concept may be mastered and still carry an unresolved misconception;
    both are tracked independently.
    """

    learner_id: str
    concepts: dict[str, MasteryStatus] = Field(
        default_factory=dict,
        description="Concept -> mastery status"
    )
    misconceptions: dict[str, Misconception] = Field(
        default_factory=dict,
        description="Concept -> misconception record"
    )
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    session_summaries: list[SessionSummary] = Field(
        default_factory=list,
        description="Prior session summaries, oldest first"
    )
    progress_markers: list[ProgressMarker] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)

    def status_of(self, concept: str) -> MasteryStatus:
        return self.concepts.get(concept, MasteryStatus.UNMASTERED)

    @property
    def open_misconceptions(self) -> list[Misconception]:
        return [m for m in self.misconceptions.values() if not m.resolved]

    def apply(self, delta: LearnerContextDelta) -> "LearnerContext":
        """
        Return a new context with the delta applied.

        The receiver is left untouched.
        """
        updated = self.model_copy(deep=True)

        for concept, status in delta.mastery_updates.items():
            updated.concepts[concept] = status

        for concept, description in delta.misconceptions_observed.items():
            existing = updated.misconceptions.get(concept)
            if existing is not None and not existing.resolved:
                existing.correction_attempts += 1
                existing.description = description
            else:
                updated.misconceptions[concept] = Misconception(
                    concept=concept,
                    description=description,
                )

        for concept in delta.misconceptions_resolved:
            record = updated.misconceptions.get(concept)
            if record is not None:
                record.resolved = True

        for tag in delta.strengths_added:
            if tag not in updated.strengths:
                updated.strengths.append(tag)
        for tag in delta.weaknesses_added:
            if tag not in updated.weaknesses:
                updated.weaknesses.append(tag)

        updated.updated_at = utc_now()
        return updated

    def with_summary(self, summary: SessionSummary, marker: ProgressMarker) -> "LearnerContext":
        """Return a copy with a finished session recorded."""
        updated = self.model_copy(deep=True)
        updated.session_summaries.append(summary)
        updated.progress_markers.append(marker)
        updated.updated_at = utc_now()
        return updated
