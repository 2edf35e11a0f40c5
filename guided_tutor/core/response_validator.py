"""
Response Validator for the Guided Tutor engine

Classifies a candidate response before it reaches a learner. Checks run in
priority order and every violation is recorded; the first one decides the
action:

    1. DIRECT_ANSWER         -> REGENERATE
    2. CHARACTER_BREAK       -> REGENERATE
    3. SAFETY                -> REJECT
    4. SCOPE                 -> RETRY
    5. MISSING_VERIFICATION  -> RETRY

The validator is read-only: it never mutates the session or learner context.

Usage:
    from guided_tutor.core.response_validator import ResponseValidator

    validator = ResponseValidator()
    result = validator.validate(candidate, session, profile, learner_message)
    if result.action == Action.PASS:
        ...
"""

import re
from dataclasses import dataclass
from typing import Optional

from guided_tutor.models.instructor import InstructorProfile
from guided_tutor.models.session import Session
from guided_tutor.models.validation import ValidationResult, Violation, ViolationKind
from guided_tutor.utils.prompt_utils import truncate_text
from guided_tutor.utils.state_utils import (
    answer_in_text,
    contains_phrase,
    find_numbers,
    is_question,
    is_sole_answer,
    normalize_words,
)


# ===========================================
# Policy
# ===========================================


REVEAL_PATTERNS = (
    r"\b(?:the|your) (?:final |correct |right )?answer (?:is|would be|will be)\b",
    r"\bthe (?:solution|result) is\b",
    r"\bthe missing number is\b",
    r"\bit simplifies to\b",
    # worked equation ending in a number
    r"=\s*-?\d",
    r"\bequals\s+-?\d",
)

CHARACTER_BREAK_PATTERNS = (
    r"\bas an ai\b",
    r"\b(?:ai|artificial intelligence)\b",
    r"\blanguage model\b",
    r"\bI(?:'m| am) (?:just |only )?(?:a|an) (?:bot|chatbot|program|assistant|machine)\b",
    r"\bmy (?:training data|training|programming|instructions|system prompt)\b",
    r"\bsystem prompt\b",
    r"\bI (?:don't|do not|cannot|can't) (?:have|access) (?:access to |real[- ]time |personal )",
    r"\bI (?:was|am) (?:trained|programmed)\b",
    r"\bI (?:might|may|could) be (?:wrong|mistaken|hallucinating)\b",
)

SAFETY_PATTERNS = (
    r"\b(?:kill|hurt|harm) (?:yourself|myself|themselves)\b",
    r"\bself[- ]harm\b",
    r"\bsuicid\w*\b",
    r"\b(?:you(?:'re| are)) (?:stupid|dumb|an idiot|hopeless|worthless)\b",
    r"\b(?:shut up)\b",
    r"\b(?:porn\w*|sexual\w*|nude\w*)\b",
    r"\b(?:gun|guns|weapon|weapons|bomb|bombs)\b",
    r"\b(?:cocaine|heroin|meth|alcohol|vodka)\b",
    r"\b(?:damn|hell|crap)\b",
)

SCOPE_STOPWORDS = frozenset({
    "the", "and", "for", "are", "with", "that", "this", "what", "how", "can",
    "you", "your", "its", "it's", "into", "from", "same", "than", "then",
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "about", "does", "did", "will", "use", "using", "learn", "learner",
})


@dataclass(frozen=True)
class ValidationPolicy:
    """
    Tunable parts of validation.

    Attributes:
        reveal_patterns: Phrases that reveal an answer even inside a question
        character_break_patterns: Meta-references that exit the persona
        safety_patterns: Unsafe or inappropriate content
        scope_min_words: Responses shorter than this are never judged off-scope
        require_verification_question: Whether a reply must ask something
    """

    reveal_patterns: tuple[str, ...] = REVEAL_PATTERNS
    character_break_patterns: tuple[str, ...] = CHARACTER_BREAK_PATTERNS
    safety_patterns: tuple[str, ...] = SAFETY_PATTERNS
    scope_min_words: int = 12
    require_verification_question: bool = True


def _compile(patterns: tuple[str, ...]) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def _split_sentences(text: str) -> list[str]:
    return [s.strip() for s in re.split(r"(?<=[.!?])\s+|\n+", text) if s.strip()]


# ===========================================
# Validator
# ===========================================


class ResponseValidator:
    """Policy gate between generation and the learner."""

    def __init__(self, policy: Optional[ValidationPolicy] = None):
        self.policy = policy or ValidationPolicy()
        self._reveal = _compile(self.policy.reveal_patterns)
        self._character_break = _compile(self.policy.character_break_patterns)
        self._safety = _compile(self.policy.safety_patterns)

    def validate(
        self,
        candidate: str,
        session: Session,
        profile: InstructorProfile,
        learner_message: str,
    ) -> ValidationResult:
        """
        Classify a complete candidate response.

        All checks run; violations are recorded in priority order and the
        first one decides the action.
        """
        if not candidate.strip():
            return ValidationResult.from_violations([
                Violation(
                    kind=ViolationKind.SCOPE,
                    evidence="",
                    message="Empty response",
                )
            ])

        violations: list[Violation] = []
        violations.extend(self._check_direct_answer(candidate, session, learner_message))
        violations.extend(self._check_character_break(candidate))
        violations.extend(self._check_safety(candidate))
        violations.extend(self._check_scope(candidate, session, profile))
        violations.extend(self._check_verification(candidate))
        return ValidationResult.from_violations(violations)

    # ===========================================
    # Checks
    # ===========================================

    def _check_direct_answer(
        self,
        candidate: str,
        session: Session,
        learner_message: str,
    ) -> list[Violation]:
        """
        An answer to the active problem given without guiding framing.

        Confirming an answer the learner already gave (and only that answer)
        is not a leak. Numbers written exactly as in the problem statement
        are ignored. An integer answer also leaks through either side of a
        fraction ("3/4 = 9/12" gives away 9).
        """
        problem = session.active_problem
        if problem is None:
            return []
        expected = problem.expected_answer
        if is_sole_answer(expected, learner_message, exclude_text=problem.prompt):
            return []

        for sentence in _split_sentences(candidate):
            if not answer_in_text(expected, sentence, exclude_text=problem.prompt, fraction_parts=True):
                continue
            revealed = any(p.search(sentence) for p in self._reveal)
            if revealed or not is_question(candidate):
                return [
                    Violation(
                        kind=ViolationKind.DIRECT_ANSWER,
                        evidence=truncate_text(sentence, 200),
                        message="Response states the answer to the active problem",
                    )
                ]
        return []

    def _check_character_break(self, candidate: str) -> list[Violation]:
        for pattern in self._character_break:
            match = pattern.search(candidate)
            if match:
                return [
                    Violation(
                        kind=ViolationKind.CHARACTER_BREAK,
                        evidence=match.group(0),
                        message="Response steps out of the instructor persona",
                    )
                ]
        return []

    def _check_safety(self, candidate: str) -> list[Violation]:
        for pattern in self._safety:
            match = pattern.search(candidate)
            if match:
                return [
                    Violation(
                        kind=ViolationKind.SAFETY,
                        evidence=match.group(0),
                        message="Response contains unsafe or inappropriate content",
                    )
                ]
        return []

    def _check_scope(
        self,
        candidate: str,
        session: Session,
        profile: InstructorProfile,
    ) -> list[Violation]:
        violations = []

        for topic in profile.forbidden_topics:
            if contains_phrase(topic, candidate):
                violations.append(
                    Violation(
                        kind=ViolationKind.SCOPE,
                        evidence=topic,
                        message=f"Response mentions forbidden topic '{topic}'",
                    )
                )
        if violations:
            return violations

        words = normalize_words(candidate)
        if len(words) < self.policy.scope_min_words or find_numbers(candidate):
            return []

        vocabulary = self._scope_vocabulary(session)
        if vocabulary.intersection(words):
            return []

        return [
            Violation(
                kind=ViolationKind.SCOPE,
                evidence=truncate_text(candidate, 200),
                message=f"Response is unrelated to '{session.lesson.topic}'",
            )
        ]

    def _check_verification(self, candidate: str) -> list[Violation]:
        if not self.policy.require_verification_question or is_question(candidate):
            return []
        sentences = _split_sentences(candidate)
        return [
            Violation(
                kind=ViolationKind.MISSING_VERIFICATION,
                evidence=truncate_text(sentences[-1] if sentences else candidate, 200),
                message="Response does not end with a question that checks understanding",
            )
        ]

    def _scope_vocabulary(self, session: Session) -> set[str]:
        lesson = session.lesson
        parts = [lesson.subject, lesson.topic, lesson.learning_objective, *lesson.keywords]
        problem = session.active_problem
        if problem is not None:
            parts.extend([problem.concept, problem.prompt, *problem.hints])

        vocabulary = set()
        for word in normalize_words(" ".join(parts)):
            if len(word) < 3 or word in SCOPE_STOPWORDS:
                continue
            vocabulary.add(word)
            # Crude plural folding ("fractions" vs "fraction")
            vocabulary.add(word.rstrip("s"))
            vocabulary.add(word + "s")
        return vocabulary
