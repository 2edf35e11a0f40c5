"""
Lesson Models for the Guided Tutor engine

This module defines the lesson content a session walks through: an optional
placement assessment followed by ordered screens.

Models:
    - Problem: A single item the learner works on
    - Screen: A lesson screen (a problem with an ordinal screen id)
    - Lesson: Full lesson with assessment items and screens
"""

import re

from pydantic import BaseModel, Field, model_validator


SCREEN_ID_PATTERN = re.compile(r"^screen_(\d{3})$")


def format_screen_id(index: int) -> str:
    """Format a 1-based screen ordinal as its id (3 -> "screen_003")."""
    return f"screen_{index:03d}"


def parse_screen_id(screen_id: str) -> int:
    """
    Parse a screen id into its 1-based ordinal.

    Raises:
        ValueError: If the id does not follow the screen_NNN scheme
    """
    match = SCREEN_ID_PATTERN.match(screen_id)
    if match is None or int(match.group(1)) == 0:
        raise ValueError(f"Invalid screen id: {screen_id!r}")
    return int(match.group(1))


# ===========================================
# Problems and Screens
# ===========================================


class Problem(BaseModel):
    """
    A single item the learner works on.

    The expected answer is what the learner should arrive at. The
    instructor must never state it for them.
    """

    concept: str = Field(description="Concept the problem exercises")
    prompt: str = Field(description="Problem text shown to the learner")
    expected_answer: str = Field(description="Answer the learner should reach")
    hints: list[str] = Field(
        default_factory=list,
        description="Guiding hints, in the order they should be offered"
    )
    common_mistakes: dict[str, str] = Field(
        default_factory=dict,
        description="Known wrong answer -> misconception it reveals"
    )


class Screen(Problem):
    """One ordered unit of guided practice."""

    screen_id: str = Field(description="Ordinal screen id (screen_001, ...)")
    title: str = Field(default="", description="Short screen heading")


# ===========================================
# Lesson
# ===========================================


class Lesson(BaseModel):
    """
    Full lesson definition.

    Screen ids must run screen_001, screen_002, ... without gaps.
    """

    lesson_id: str = Field(description="Unique lesson identifier")
    subject: str = Field(description="Subject area (e.g., Mathematics)")
    topic: str = Field(description="Lesson topic")
    learning_objective: str = Field(description="What the learner should be able to do")
    keywords: list[str] = Field(
        default_factory=list,
        description="Vocabulary that keeps a response in scope"
    )
    assessment_questions: list[Problem] = Field(
        default_factory=list,
        description="Placement items asked before the first screen"
    )
    screens: list[Screen] = Field(
        min_length=1,
        description="Ordered lesson screens"
    )

    @model_validator(mode="after")
    def _check_screen_order(self) -> "Lesson":
        for position, screen in enumerate(self.screens, start=1):
            expected = format_screen_id(position)
            if screen.screen_id != expected:
                raise ValueError(
                    f"Lesson {self.lesson_id}: screen {position} has id "
                    f"{screen.screen_id!r}, expected {expected!r}"
                )
        return self

    @property
    def total_screens(self) -> int:
        return len(self.screens)

    @property
    def has_assessment(self) -> bool:
        return bool(self.assessment_questions)

    def get_screen(self, index: int) -> Screen:
        """Get a screen by its 1-based ordinal."""
        return self.screens[index - 1]

    def get_concepts(self) -> list[str]:
        """Unique concepts in lesson order."""
        seen: dict[str, None] = {}
        for problem in [*self.assessment_questions, *self.screens]:
            seen.setdefault(problem.concept, None)
        return list(seen)
