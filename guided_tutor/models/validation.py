"""
Validation Models for the Guided Tutor engine

Models:
    - ViolationKind: Policy breaches, in check priority order
    - Action: Verdict for a candidate response
    - Violation: One detected breach
    - ValidationResult: Full verdict
"""

from enum import Enum
from pydantic import BaseModel, Field, model_validator


class ViolationKind(str, Enum):
    DIRECT_ANSWER = "DIRECT_ANSWER"
    CHARACTER_BREAK = "CHARACTER_BREAK"
    SAFETY = "SAFETY"
    SCOPE = "SCOPE"
    MISSING_VERIFICATION = "MISSING_VERIFICATION"


class Action(str, Enum):
    PASS = "PASS"
    RETRY = "RETRY"
    REGENERATE = "REGENERATE"
    REJECT = "REJECT"


VIOLATION_ACTIONS: dict[ViolationKind, Action] = {
    ViolationKind.DIRECT_ANSWER: Action.REGENERATE,
    ViolationKind.CHARACTER_BREAK: Action.REGENERATE,
    ViolationKind.SAFETY: Action.REJECT,
    ViolationKind.SCOPE: Action.RETRY,
    ViolationKind.MISSING_VERIFICATION: Action.RETRY,
}


class Violation(BaseModel):
    """A detected breach of policy."""

    kind: ViolationKind
    evidence: str = Field(description="Excerpt of the candidate that triggered the check")
    message: str = Field(default="", description="Why this is a breach")


class ValidationResult(BaseModel):
    """
    Verdict for a candidate response.

    is_valid is False exactly when violations are present, and the action is
    PASS exactly when the response is valid.
    """

    is_valid: bool
    violations: list[Violation] = Field(default_factory=list)
    action: Action

    @model_validator(mode="after")
    def _check_consistency(self) -> "ValidationResult":
        if self.is_valid == bool(self.violations):
            raise ValueError("is_valid must be False exactly when violations are recorded")
        if (self.action == Action.PASS) != self.is_valid:
            raise ValueError("action PASS must coincide with is_valid")
        return self

    @classmethod
    def passed(cls) -> "ValidationResult":
        return cls(is_valid=True, violations=[], action=Action.PASS)

    @classmethod
    def from_violations(cls, violations: list[Violation]) -> "ValidationResult":
        """Build a verdict; the first violation decides the action."""
        if not violations:
            return cls.passed()
        return cls(
            is_valid=False,
            violations=violations,
            action=VIOLATION_ACTIONS[violations[0].kind],
        )

    @property
    def kinds(self) -> list[ViolationKind]:
        return [v.kind for v in self.violations]
