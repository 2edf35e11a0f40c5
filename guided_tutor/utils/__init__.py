"""
Shared Utilities for the Guided Tutor engine

Modules:
    - prompt_utils: Transcript and learner context formatting, token estimates
    - state_utils: Answer matching, mastery progression
"""

from guided_tutor.utils.prompt_utils import (
    estimate_tokens,
    format_transcript,
    format_learner_context,
    truncate_text,
)
from guided_tutor.utils.state_utils import (
    answer_in_text,
    contains_phrase,
    is_sole_answer,
    progress_mastery,
)

__all__ = [
    "estimate_tokens",
    "format_transcript",
    "format_learner_context",
    "truncate_text",
    "answer_in_text",
    "contains_phrase",
    "is_sole_answer",
    "progress_mastery",
]
