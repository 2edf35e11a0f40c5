"""
Shared fixtures for the Guided Tutor test suite.

Provides a scripted in-process generation port, the in-memory storage and a
fully wired orchestrator over the bundled lesson and templates.
"""

import asyncio
import re
from pathlib import Path

import pytest

from guided_tutor.core.orchestrator import SessionOrchestrator
from guided_tutor.core.prompt_assembler import PromptAssembler
from guided_tutor.core.session_guard import SessionGuard
from guided_tutor.exceptions import StorageError
from guided_tutor.models.generation import GenerationResponse, StreamChunk
from guided_tutor.models.session import LifecycleState, Session
from guided_tutor.models.turn_logs import TurnLogStore
from guided_tutor.prompts.templates import load_template_set
from guided_tutor.services.catalog import load_catalog
from guided_tutor.services.storage import InMemoryStorage


PROJECT_ROOT = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = PROJECT_ROOT / "config" / "prompts"
LESSONS_DIR = PROJECT_ROOT / "data" / "lessons"
INSTRUCTORS_DIR = PROJECT_ROOT / "data" / "instructors"

LESSON_ID = "equivalent_fractions"
INSTRUCTOR_ID = "socratic_guide"


class ScriptedGeneration:
    """
    Generation port that replays scripted responses.

    Each call consumes the next response; the last one repeats once the
    script runs out. Streams split text into word-sized chunks.
    """

    provider = "scripted"

    def __init__(self, responses, delay: float = 0.0, error: Exception = None):
        self.responses = list(responses)
        self.delay = delay
        self.error = error
        self.requests = []
        self.streams_closed = 0

    @property
    def model_name(self) -> str:
        return "scripted-model"

    def _next_text(self) -> str:
        index = min(len(self.requests), len(self.responses)) - 1
        return self.responses[index]

    async def generate(self, request) -> GenerationResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResponse(text=self._next_text(), model=self.model_name)

    async def generate_stream(self, request):
        self.requests.append(request)
        text = self._next_text()
        try:
            if self.error is not None:
                raise self.error
            index = 0
            for piece in re.findall(r"\S+\s*", text):
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield StreamChunk(index=index, text=piece)
                index += 1
            yield StreamChunk(index=index, done=True)
        finally:
            self.streams_closed += 1


class FlakyStorage(InMemoryStorage):
    """In-memory storage whose writes can be made to fail and whose reads can be slowed down."""

    def __init__(self):
        super().__init__()
        self.fail_session_saves = False
        self.fail_context_saves = False
        self.fail_session_loads = False
        self.context_load_delay = 0.0

    async def load_session(self, session_id):
        if self.fail_session_loads:
            raise StorageError("load_session", "backend offline")
        return await super().load_session(session_id)

    async def load_learner_context(self, learner_id):
        if self.context_load_delay:
            await asyncio.sleep(self.context_load_delay)
        return await super().load_learner_context(learner_id)

    async def save_session(self, session):
        if self.fail_session_saves:
            raise StorageError("save_session", "disk full")
        await super().save_session(session)

    async def save_learner_context(self, context):
        if self.fail_context_saves:
            raise StorageError("save_learner_context", "disk full")
        await super().save_learner_context(context)


# ===========================================
# Content
# ===========================================


@pytest.fixture
def templates():
    return load_template_set(TEMPLATES_DIR)


@pytest.fixture
def catalog():
    return load_catalog(LESSONS_DIR, INSTRUCTORS_DIR)


@pytest.fixture
def lesson(catalog):
    return catalog.get_lesson(LESSON_ID)


@pytest.fixture
def profile(catalog):
    return catalog.get_instructor(INSTRUCTOR_ID)


@pytest.fixture
def assembler(templates):
    return PromptAssembler(templates)


@pytest.fixture
def make_session(lesson):
    """Build a session at a given lifecycle position."""

    def _make(state=LifecycleState.IN_LESSON, screen_index=1, **updates):
        return Session(
            learner_id="learner_1",
            instructor_profile_id=INSTRUCTOR_ID,
            lesson=lesson,
            state=state,
            screen_index=screen_index,
            **updates,
        )

    return _make


# ===========================================
# Orchestration
# ===========================================


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def make_orchestrator(storage, assembler, catalog):
    """Build an orchestrator around a scripted generation port."""

    def _make(responses, delay: float = 0.0, error: Exception = None, prompt_assembler=None, **kwargs):
        generation = ScriptedGeneration(responses, delay=delay, error=error)
        options = {
            "guard": SessionGuard(),
            "turn_logs": TurnLogStore(),
            "max_generation_retries": 2,
            "generation_timeout_seconds": 5.0,
            "turn_timeout_seconds": 10.0,
        }
        options.update(kwargs)
        return SessionOrchestrator(
            storage=storage,
            generation=generation,
            assembler=prompt_assembler or assembler,
            catalog=catalog,
            **options,
        )

    return _make
