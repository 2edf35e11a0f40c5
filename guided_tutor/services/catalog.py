"""
Lesson and Instructor Catalog for the Guided Tutor engine

Lessons and instructor profiles are JSON files loaded once at startup into
an immutable catalog shared by every session.

Usage:
    from guided_tutor.services.catalog import load_catalog

    catalog = load_catalog("data/lessons", "data/instructors")
    lesson = catalog.get_lesson("equivalent_fractions")
"""

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import ValidationError

from guided_tutor.exceptions import ConfigurationError
from guided_tutor.logging_config import get_logger
from guided_tutor.models.instructor import InstructorProfile
from guided_tutor.models.lesson import Lesson


logger = get_logger("catalog")


@dataclass(frozen=True)
class Catalog:
    """Read-only lessons and instructor profiles, keyed by id."""

    lessons: Mapping[str, Lesson]
    instructors: Mapping[str, InstructorProfile]

    def __post_init__(self):
        object.__setattr__(self, "lessons", MappingProxyType(dict(self.lessons)))
        object.__setattr__(self, "instructors", MappingProxyType(dict(self.instructors)))

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        return self.lessons.get(lesson_id)

    def get_instructor(self, instructor_id: str) -> Optional[InstructorProfile]:
        return self.instructors.get(instructor_id)

    def list_lessons(self) -> list[Lesson]:
        return [self.lessons[key] for key in sorted(self.lessons)]


def _load_json_dir(directory: Path, model, key: str) -> dict:
    """Load every *.json file in a directory as `model`, keyed by `key`."""
    if not directory.is_dir():
        raise ConfigurationError(str(directory), "directory does not exist")

    records = {}
    for path in sorted(directory.glob("*.json")):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            record = model.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(str(path), str(e)) from e
        records[getattr(record, key)] = record
    return records


def load_catalog(lessons_dir: str | Path, instructors_dir: str | Path) -> Catalog:
    """
    Load lessons and instructor profiles.

    Raises:
        ConfigurationError: If a directory is missing or a file is invalid
    """
    catalog = Catalog(
        lessons=_load_json_dir(Path(lessons_dir), Lesson, "lesson_id"),
        instructors=_load_json_dir(Path(instructors_dir), InstructorProfile, "id"),
    )

    logger.info(
        f"Catalog loaded: {len(catalog.lessons)} lessons, {len(catalog.instructors)} instructors",
        extra={
            "component": "catalog",
            "event": "catalog_loaded",
            "data": {
                "lessons": sorted(catalog.lessons),
                "instructors": sorted(catalog.instructors),
            },
        },
    )
    return catalog
