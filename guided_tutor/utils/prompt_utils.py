"""
Prompt Utilities for the Guided Tutor engine

This module provides reusable functions for prompt construction,
conversation formatting, and learner context rendering. Every function is
deterministic: identical inputs render identical text.

Usage:
    from guided_tutor.utils.prompt_utils import format_transcript, estimate_tokens

    history = format_transcript(session.transcript)
    tokens = estimate_tokens(prompt)
"""

import math
from typing import Iterable, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from guided_tutor.models.learner import LearnerContext, SessionSummary
    from guided_tutor.models.session import Message


CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Approximate token count for text.

    Uses the common ~4 characters per token heuristic.
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def format_bullets(items: Iterable[str], empty: str = "- (none)") -> str:
    """Render items as a markdown bullet list."""
    lines = [f"- {item}" for item in items]
    return "\n".join(lines) if lines else empty


def format_transcript(messages: Sequence["Message"], instructor_name: str = "Instructor") -> str:
    """
    Format transcript messages for inclusion in prompts.

    Example:
        >>> print(format_transcript(messages, "Ms. Rivera"))
        Learner: Is it 4?
        Ms. Rivera: What did you multiply the denominator by?
    """
    if not messages:
        return "No conversation yet."

    lines = []
    for msg in messages:
        speaker = "Learner" if msg.role == "learner" else instructor_name
        lines.append(f"{speaker}: {msg.content}")
    return "\n".join(lines)


def format_session_summaries(summaries: Sequence["SessionSummary"]) -> str:
    """Render prior session summaries, oldest first."""
    if not summaries:
        return "No previous sessions."

    lines = []
    for summary in summaries:
        line = f"- [{summary.lesson_id}] {summary.summary}"
        if summary.misconceptions_addressed:
            line += f" Addressed: {', '.join(summary.misconceptions_addressed)}."
        lines.append(line)
    return "\n".join(lines)


def format_learner_context(
    context: "LearnerContext",
    summaries: Sequence["SessionSummary"],
) -> str:
    """
    Build the learner section of the context layer.

    `summaries` is passed separately so the assembler can render a truncated
    history without copying the context.
    """
    mastery_lines = [
        f"- {concept}: {status.value}"
        for concept, status in sorted(context.concepts.items())
    ]
    open_misconceptions = sorted(
        (m for m in context.misconceptions.values() if not m.resolved),
        key=lambda m: m.concept,
    )
    resolved = sorted(
        m.concept for m in context.misconceptions.values() if m.resolved
    )

    misconception_lines = [
        f"- {m.concept}: {m.description} (corrections so far: {m.correction_attempts})"
        for m in open_misconceptions
    ]

    sections = [
        "Concept mastery:",
        "\n".join(mastery_lines) if mastery_lines else "- No concepts practised yet",
        "",
        "Open misconceptions:",
        "\n".join(misconception_lines) if misconception_lines else "- None",
        "",
        f"Resolved misconceptions: {', '.join(resolved) if resolved else 'none'}",
        f"Strengths: {', '.join(context.strengths) if context.strengths else 'none recorded'}",
        f"Weaknesses: {', '.join(context.weaknesses) if context.weaknesses else 'none recorded'}",
        "",
        "Previous sessions:",
        format_session_summaries(summaries),
    ]
    return "\n".join(sections)


def truncate_text(text: str, max_length: int = 500, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length (including suffix)
        suffix: Suffix to append if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix
