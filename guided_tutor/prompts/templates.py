"""
Prompt Template System for the Guided Tutor engine

This module provides the reusable prompt template class, the immutable set
of instructional templates loaded once at startup, and the pre-authored
retry guidance appended when a candidate response is sent back.

Usage:
    from guided_tutor.prompts.templates import load_template_set

    templates = load_template_set("config/prompts")
    identity = templates.get("identity").render(instructor_name="Ms. Rivera", ...)
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional
from string import Formatter

from guided_tutor.exceptions import PromptTemplateError, TemplateMissingError
from guided_tutor.logging_config import get_logger
from guided_tutor.models.validation import ViolationKind


logger = get_logger("templates")


class PromptTemplate:
    """
    Reusable template for generating prompts.

    Supports variable interpolation with optional defaults and validation.

    Attributes:
        template: Raw template string with {variable} placeholders
        required_vars: Set of required variable names
        name: Optional template name for error reporting
    """

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize a prompt template.

        Args:
            template: Template string with {variable} placeholders
            name: Optional name for error reporting
            defaults: Optional default values for variables
        """
        self.template = template.strip()
        self.name = name or "unnamed"
        self.defaults = defaults or {}
        self.required_vars = self._extract_variables()

    def _extract_variables(self) -> set[str]:
        """Extract variable names from template string."""
        formatter = Formatter()
        variables = set()

        for _, field_name, _, _ in formatter.parse(self.template):
            if field_name is not None:
                # Handle nested access like {obj.attr}
                base_name = field_name.split(".")[0].split("[")[0]
                if base_name:
                    variables.add(base_name)

        return variables

    def render(self, **kwargs: Any) -> str:
        """
        Render the template with provided variables.

        Raises:
            PromptTemplateError: If required variables are missing
        """
        values = {**self.defaults, **kwargs}

        missing = self.required_vars - set(values.keys())
        if missing:
            raise PromptTemplateError(
                template_name=self.name,
                missing_vars=sorted(missing),
            )

        try:
            return self.template.format(**values)
        except KeyError as e:
            raise PromptTemplateError(
                template_name=self.name,
                missing_vars=[str(e)],
            ) from e

    def __repr__(self) -> str:
        return f"PromptTemplate(name='{self.name}', vars={sorted(self.required_vars)})"


# ===========================================
# Template Set
# ===========================================


REQUIRED_TEMPLATES = ("identity", "teaching_rules", "context_usage", "fallback")
FALLBACK_RESPONSE_TEMPLATE = "fallback_response"


DEFAULT_FALLBACK_RESPONSE = """I want to make sure I'm guiding you in the best way here.

Can you tell me what you're trying to figure out? Which part of this problem are you working on right now?

What have you tried so far?"""


@dataclass(frozen=True)
class TemplateSet:
    """
    Immutable collection of instructional templates.

    Built once at startup and shared read-only by every session.
    """

    templates: Mapping[str, PromptTemplate]
    fallback_response: str = DEFAULT_FALLBACK_RESPONSE
    source: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))

    def get(self, name: str) -> PromptTemplate:
        """
        Resolve a template by name.

        Raises:
            TemplateMissingError: If the template is not part of the set
        """
        template = self.templates.get(name)
        if template is None:
            raise TemplateMissingError(name, self.source)
        return template

    def validate(self, required: tuple[str, ...] = REQUIRED_TEMPLATES) -> "TemplateSet":
        """Fail fast if any required template is absent."""
        for name in required:
            self.get(name)
        return self

    @classmethod
    def from_strings(
        cls,
        texts: Mapping[str, str],
        fallback_response: Optional[str] = None,
    ) -> "TemplateSet":
        return cls(
            templates={name: PromptTemplate(text, name=name) for name, text in texts.items()},
            fallback_response=(fallback_response or DEFAULT_FALLBACK_RESPONSE).strip(),
        )


def load_template_set(directory: str | Path) -> TemplateSet:
    """
    Load instructional templates from a directory of markdown files.

    Each `<name>.md` becomes the template `<name>`. `fallback_response.md`, if
    present, replaces the built-in fallback message.

    Raises:
        TemplateMissingError: If the directory or a required template is missing
    """
    path = Path(directory)
    if not path.is_dir():
        raise TemplateMissingError(REQUIRED_TEMPLATES[0], str(path))

    texts: dict[str, str] = {}
    fallback_response: Optional[str] = None

    for template_file in sorted(path.glob("*.md")):
        content = template_file.read_text(encoding="utf-8")
        if template_file.stem == FALLBACK_RESPONSE_TEMPLATE:
            fallback_response = content
        else:
            texts[template_file.stem] = content

    template_set = TemplateSet(
        templates={name: PromptTemplate(text, name=name) for name, text in texts.items()},
        fallback_response=(fallback_response or DEFAULT_FALLBACK_RESPONSE).strip(),
        source=str(path),
    ).validate()

    logger.info(
        f"Loaded {len(texts)} templates from {path}",
        extra={
            "component": "templates",
            "event": "templates_loaded",
            "data": {"templates": sorted(texts)},
        },
    )
    return template_set


# ===========================================
# Learner Message Layer
# ===========================================


LEARNER_MESSAGE_TEMPLATE = PromptTemplate(
    """## Learner's Message
{message}

Respond now as {instructor_name}.""",
    name="learner_message",
)


# ===========================================
# Retry Guidance
# ===========================================


RETRY_GUIDANCE: dict[ViolationKind, PromptTemplate] = {
    ViolationKind.DIRECT_ANSWER: PromptTemplate(
        """Your previous reply gave away the answer. Do not state the answer or
the final result. Ask one question that moves the learner one step closer
and let them do the work.""",
        name="retry_direct_answer",
    ),
    ViolationKind.CHARACTER_BREAK: PromptTemplate(
        """Your previous reply stepped out of character. You are {instructor_name},
a teacher. Never mention being software, a model or a system, and never add
disclaimers about your own limitations.""",
        name="retry_character_break",
    ),
    ViolationKind.SCOPE: PromptTemplate(
        """Your previous reply drifted away from the lesson. Stay on
"{topic}" and the objective: {learning_objective}""",
        name="retry_scope",
    ),
    ViolationKind.MISSING_VERIFICATION: PromptTemplate(
        """Your previous reply did not check understanding. End with one
question the learner must answer.""",
        name="retry_missing_verification",
    ),
}
