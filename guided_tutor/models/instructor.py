"""
Instructor Profile Model for the Guided Tutor engine

An instructor profile describes teaching style. It is selected outside the
engine and never changes for the lifetime of a session.
"""

from typing import Literal
from pydantic import BaseModel, ConfigDict, Field


GuidanceLevel = Literal["minimal", "moderate", "scaffolded"]


class InstructorProfile(BaseModel):
    """Teaching-style parameters consumed by the prompt assembler."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Profile identifier")
    name: str = Field(description="Name the instructor uses with learners")
    teaching_patterns: tuple[str, ...] = Field(
        default=(),
        description="Standing habits (e.g., 'start from what the learner knows')"
    )
    question_patterns: tuple[str, ...] = Field(
        default=(),
        description="Question stems the instructor prefers"
    )
    correction_style: str = Field(
        default="Point to the step that went wrong and ask the learner to re-check it.",
        description="How mistakes are corrected"
    )
    guidance_level: GuidanceLevel = Field(
        default="moderate",
        description="How much scaffolding to offer"
    )
    response_structure: str = Field(
        default="acknowledge, guide, verify",
        description="Shape of each response"
    )
    forbidden_topics: tuple[str, ...] = Field(
        default=(),
        description="Topics the instructor must never discuss"
    )
