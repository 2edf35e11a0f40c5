"""
Services for the Guided Tutor engine

This package contains service classes for external integrations
and infrastructure concerns.

Modules:
    - generation: Generation port, retrying base adapter and factory
    - openai_generation / anthropic_generation / ollama_generation: Backends
    - storage: Persistence port and in-memory storage
    - catalog: Lessons and instructor profiles
"""

from guided_tutor.services.generation import (
    GenerationPort,
    BaseGenerationService,
    create_generation_port,
)
from guided_tutor.services.storage import (
    PersistencePort,
    InMemoryStorage,
    create_storage,
)
from guided_tutor.services.catalog import Catalog, load_catalog

__all__ = [
    "GenerationPort",
    "BaseGenerationService",
    "create_generation_port",
    "PersistencePort",
    "InMemoryStorage",
    "create_storage",
    "Catalog",
    "load_catalog",
]
