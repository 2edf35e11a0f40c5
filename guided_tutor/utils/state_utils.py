"""
State Management Utilities for the Guided Tutor engine

This module provides helper functions for answer matching and mastery
progression used by the learner evaluator and the response validator.

Usage:
    from guided_tutor.utils.state_utils import answer_in_text, progress_mastery

    if answer_in_text("3/4", "I think it's 0.75"):
        status = progress_mastery(status)
"""

import re
from fractions import Fraction
from typing import Optional

from guided_tutor.models.learner import MasteryStatus


NUMBER_PATTERN = re.compile(r"(?<![\w.])-?\d+(?:\.\d+)?(?:\s*/\s*\d+(?:\.\d+)?)?")
WORD_PATTERN = re.compile(r"[a-z0-9']+")


def parse_number(token: str) -> Optional[Fraction]:
    """
    Parse an integer, decimal or fraction token into an exact Fraction.

    Returns None for anything that is not a number (or divides by zero).
    """
    token = token.replace(" ", "")
    try:
        if "/" in token:
            numerator, denominator = token.split("/", 1)
            return Fraction(numerator) / Fraction(denominator)
        return Fraction(token)
    except (ValueError, ZeroDivisionError):
        return None


def find_numbers(text: str) -> list[tuple[str, Fraction]]:
    """All numeric tokens in text as (raw token, value), in order of appearance."""
    found = []
    for match in NUMBER_PATTERN.finditer(text):
        raw = match.group(0).replace(" ", "")
        value = parse_number(raw)
        if value is not None:
            found.append((raw, value))
    return found


def normalize_words(text: str) -> list[str]:
    return WORD_PATTERN.findall(text.lower())


def numbers_outside(text: str, exclude_text: str = "") -> list[tuple[str, Fraction]]:
    """Numeric tokens in text, minus tokens written exactly as in exclude_text."""
    excluded = {raw for raw, _ in find_numbers(exclude_text)}
    return [(raw, value) for raw, value in find_numbers(text) if raw not in excluded]


def answer_in_text(
    answer: str,
    text: str,
    exclude_text: str = "",
    fraction_parts: bool = False,
) -> bool:
    """
    Check whether text contains the given answer.

    Numeric answers compare by value (3/4, 6/8 and 0.75 are the same answer),
    except tokens written exactly as they appear in `exclude_text` (usually
    the problem statement, so restating the problem is not answering it).
    With `fraction_parts`, an integer answer also matches the numerator or
    denominator of a fraction token, so "3/4 = 9/12" contains 9.
    Other answers match as a whole-word phrase, case-insensitively.
    """
    expected_value = parse_number(answer.strip())
    if expected_value is None:
        return contains_phrase(answer, text)

    split = fraction_parts and expected_value.denominator == 1
    for raw, value in numbers_outside(text, exclude_text):
        if value == expected_value:
            return True
        if split and "/" in raw and expected_value in {parse_number(part) for part in raw.split("/")}:
            return True
    return False


def is_sole_answer(answer: str, text: str, exclude_text: str = "") -> bool:
    """
    Check whether text commits to the answer and to nothing else.

    For numeric answers every number outside `exclude_text` must share the
    answer's value; "6 7 8 9" lists guesses rather than answering 9.
    Other answers fall back to the phrase match of `answer_in_text`.
    """
    expected_value = parse_number(answer.strip())
    if expected_value is None:
        return contains_phrase(answer, text)
    values = {value for _, value in numbers_outside(text, exclude_text)}
    return values == {expected_value}


def contains_phrase(phrase: str, text: str) -> bool:
    """Whole-word, case-insensitive phrase match."""
    expected_words = normalize_words(phrase)
    if not expected_words:
        return False
    words = normalize_words(text)
    width = len(expected_words)
    return any(words[i:i + width] == expected_words for i in range(len(words) - width + 1))


def progress_mastery(status: MasteryStatus) -> MasteryStatus:
    """
    Advance mastery one level after a correct answer.

    unmastered -> in_progress -> mastered; mastered stays mastered.
    """
    if status == MasteryStatus.UNMASTERED:
        return MasteryStatus.IN_PROGRESS
    return MasteryStatus.MASTERED


def is_question(text: str) -> bool:
    """Whether the text asks something (contains a question mark)."""
    return "?" in text
