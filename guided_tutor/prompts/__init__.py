"""Instructional template loading and rendering."""

from guided_tutor.prompts.templates import (
    PromptTemplate,
    TemplateSet,
    load_template_set,
)

__all__ = ["PromptTemplate", "TemplateSet", "load_template_set"]
