"""
FastAPI Application for the Guided Tutor engine

This module provides the HTTP endpoints around the session orchestrator.

Endpoints:
    - GET /api/health - Health and backend status
    - GET /api/lessons - List available lessons
    - POST /api/sessions - Create a new tutoring session
    - GET /api/sessions/{session_id} - Get session state
    - POST /api/sessions/{session_id}/turns - Buffered turn
    - POST /api/sessions/{session_id}/turns/stream - Streamed turn (SSE)
    - GET /api/sessions/{session_id}/turn-logs - Orchestration event log

Usage:
    uvicorn guided_tutor.main:create_app --factory --reload
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from guided_tutor import __version__
from guided_tutor.config import Settings, get_settings
from guided_tutor.core.orchestrator import SessionOrchestrator
from guided_tutor.core.prompt_assembler import PromptAssembler
from guided_tutor.exceptions import (
    InvalidTransitionError,
    SessionBusyError,
    SessionNotFoundError,
    TutorEngineError,
)
from guided_tutor.logging_config import get_logger, setup_logging
from guided_tutor.models.generation import GenerationParams
from guided_tutor.models.session import LifecycleState, Session
from guided_tutor.models.turn import OrchestrationResult, TurnInput, TurnStreamEvent
from guided_tutor.models.turn_logs import TurnLogEntry
from guided_tutor.prompts.templates import load_template_set
from guided_tutor.services.catalog import Catalog, load_catalog
from guided_tutor.services.generation import create_generation_port
from guided_tutor.services.storage import create_storage


logger = get_logger("main")


# ===========================================
# Request/Response Models
# ===========================================


class CreateSessionRequest(BaseModel):
    """Request body for creating a session."""
    learner_id: str
    lesson_id: str
    instructor_id: Optional[str] = None
    assessment_enabled: Optional[bool] = None


class SessionStateDTO(BaseModel):
    """Externally visible session state."""
    session_id: str
    learner_id: str
    lesson_id: str
    instructor_id: str
    state: LifecycleState
    screen_id: Optional[str] = None
    total_screens: int
    assessment_index: int
    turn_count: int
    progress_percentage: float
    is_complete: bool


class CreateSessionResponse(SessionStateDTO):
    """Response for session creation."""
    instructor_name: str
    opening_prompt: Optional[str] = None


class LessonInfo(BaseModel):
    """Lesson information for listing."""
    lesson_id: str
    subject: str
    topic: str
    learning_objective: str
    total_screens: int
    has_assessment: bool


class TurnLogsResponse(BaseModel):
    """Response for turn logs."""
    session_id: str
    turn_id: Optional[str] = None
    logs: list[TurnLogEntry]
    total_count: int


def _session_state(session: Session) -> dict:
    return {
        "session_id": session.session_id,
        "learner_id": session.learner_id,
        "lesson_id": session.lesson.lesson_id,
        "instructor_id": session.instructor_profile_id,
        "state": session.state,
        "screen_id": session.screen_id,
        "total_screens": session.total_screens,
        "assessment_index": session.assessment_index,
        "turn_count": session.turn_count,
        "progress_percentage": session.progress_percentage,
        "is_complete": session.is_complete,
    }


def _sse(event: TurnStreamEvent) -> str:
    return f"event: {event.type}\ndata: {event.model_dump_json()}\n\n"


class TurnEventStream(StreamingResponse):
    """
    Server-Sent Events response for one turn.

    The turn's event generator holds the session's exclusion token. It is
    closed when the response finishes or fails, including when the client
    is gone before the body is ever iterated.
    """

    def __init__(self, first: TurnStreamEvent, events: AsyncIterator[TurnStreamEvent]):
        self.events = events
        super().__init__(
            self._render(first),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def _render(self, first: TurnStreamEvent) -> AsyncIterator[str]:
        yield _sse(first)
        async for event in self.events:
            yield _sse(event)

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()
            await self.events.aclose()


# ===========================================
# Wiring
# ===========================================


def build_orchestrator(settings: Settings, catalog: Catalog) -> SessionOrchestrator:
    """
    Wire the orchestrator from settings.

    Raises:
        TemplateMissingError: If a required template is absent
        ConfigurationError: If the generation provider is misconfigured
    """
    templates = load_template_set(settings.templates_dir)
    assembler = PromptAssembler(
        templates,
        token_budget=settings.prompt_token_budget,
        default_params=GenerationParams(
            max_tokens=settings.default_max_tokens,
            temperature=settings.default_temperature,
        ),
    )
    return SessionOrchestrator(
        storage=create_storage("memory"),
        generation=create_generation_port(settings),
        assembler=assembler,
        catalog=catalog,
        max_generation_retries=settings.max_generation_retries,
        generation_timeout_seconds=settings.generation_timeout_seconds,
        turn_timeout_seconds=settings.turn_timeout_seconds,
        max_conversation_history=settings.max_conversation_history,
        log_prompts=settings.log_prompts,
    )


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Dependency for the orchestrator."""
    return request.app.state.orchestrator


def get_catalog(request: Request) -> Catalog:
    """Dependency for the lesson catalog."""
    return request.app.state.catalog


def get_app_settings(request: Request) -> Settings:
    """Dependency for settings."""
    return request.app.state.settings


# ===========================================
# Application Factory
# ===========================================


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[SessionOrchestrator] = None,
    catalog: Optional[Catalog] = None,
    setup_logs: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators not passed in are built from settings, so
    `create_app()` alone gives a fully wired server.
    """
    settings = settings or get_settings()
    if setup_logs:
        setup_logging(settings)

    if catalog is None:
        catalog = orchestrator.catalog if orchestrator else load_catalog(
            settings.lessons_dir, settings.instructors_dir
        )
    if orchestrator is None:
        orchestrator = build_orchestrator(settings, catalog)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Guided Tutor starting",
            extra={
                "component": "main",
                "event": "startup",
                "data": {
                    "env": settings.env,
                    "provider": settings.generation_provider,
                    "model": orchestrator.generation.model_name,
                },
            },
        )
        yield
        stats = orchestrator.storage.get_stats() if hasattr(orchestrator.storage, "get_stats") else {}
        logger.info(
            "Guided Tutor shutting down",
            extra={"component": "main", "event": "shutdown", "data": stats},
        )
        aclose = getattr(orchestrator.generation, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(
        title="Guided Tutor",
        description="Session orchestration engine for guided tutoring",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.catalog = catalog

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    def _error_response(status_code: int, e: TutorEngineError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": type(e).__name__, "detail": e.message},
        )

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, e: SessionNotFoundError):
        return _error_response(404, e)

    @app.exception_handler(SessionBusyError)
    async def session_busy(request: Request, e: SessionBusyError):
        return _error_response(429, e)

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, e: InvalidTransitionError):
        return _error_response(409, e)

    @app.exception_handler(TutorEngineError)
    async def engine_error(request: Request, e: TutorEngineError):
        logger.error(
            f"Unhandled engine error: {e}",
            extra={"component": "main", "event": "engine_error", "data": e.details},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "detail": "The tutor could not process this request"},
        )


# ===========================================
# REST Endpoints
# ===========================================


def _register_routes(app: FastAPI) -> None:

    @app.get("/api/health")
    async def health_check(
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ):
        """Health check endpoint."""
        generation = orchestrator.generation
        body = {
            "status": "healthy",
            "version": __version__,
            "provider": getattr(generation, "provider", "unknown"),
            "model": generation.model_name,
        }
        if hasattr(orchestrator.storage, "get_stats"):
            body["storage"] = orchestrator.storage.get_stats()
        body["turn_logs"] = orchestrator.turn_logs.get_stats()
        body["turns_in_flight"] = orchestrator.guard.in_flight_count
        list_models = getattr(generation, "list_models", None)
        if list_models is not None:
            models = await list_models()
            body["backend_models"] = models
            body["backend_reachable"] = bool(models)
        return body

    @app.get("/api/lessons")
    async def get_lessons(catalog: Catalog = Depends(get_catalog)) -> list[LessonInfo]:
        """List available lessons."""
        return [
            LessonInfo(
                lesson_id=lesson.lesson_id,
                subject=lesson.subject,
                topic=lesson.topic,
                learning_objective=lesson.learning_objective,
                total_screens=lesson.total_screens,
                has_assessment=lesson.has_assessment,
            )
            for lesson in catalog.list_lessons()
        ]

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    async def create_session(
        request: CreateSessionRequest,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
        catalog: Catalog = Depends(get_catalog),
        settings: Settings = Depends(get_app_settings),
    ):
        """
        Create a new tutoring session.

        Raises:
            404: Lesson or instructor not found
        """
        lesson = catalog.get_lesson(request.lesson_id)
        if not lesson:
            raise HTTPException(status_code=404, detail=f"Lesson not found: {request.lesson_id}")

        instructor_id = request.instructor_id or settings.default_instructor_id
        profile = catalog.get_instructor(instructor_id)
        if not profile:
            raise HTTPException(status_code=404, detail=f"Instructor not found: {instructor_id}")

        assessment_enabled = (
            settings.assessment_enabled
            if request.assessment_enabled is None
            else request.assessment_enabled
        )
        session = await orchestrator.start_session(
            learner_id=request.learner_id,
            lesson=lesson,
            profile=profile,
            assessment_enabled=assessment_enabled,
        )

        problem = session.active_problem
        return CreateSessionResponse(
            **_session_state(session),
            instructor_name=profile.name,
            opening_prompt=problem.prompt if problem else None,
        )

    @app.get("/api/sessions/{session_id}")
    async def get_session(
        session_id: str,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> SessionStateDTO:
        """
        Get session state.

        Raises:
            404: Session not found
        """
        session = await orchestrator.get_session(session_id)
        return SessionStateDTO(**_session_state(session))

    @app.post("/api/sessions/{session_id}/turns")
    async def post_turn(
        session_id: str,
        turn_input: TurnInput,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> OrchestrationResult:
        """
        Process one learner turn and return the released response.

        Raises:
            404: Session not found
            409: Turn not legal in the current state
            429: A turn is already in flight for the session
        """
        return await orchestrator.handle_turn(session_id, turn_input)

    @app.post("/api/sessions/{session_id}/turns/stream")
    async def post_turn_stream(
        session_id: str,
        turn_input: TurnInput,
        speculative: bool = False,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ):
        """
        Process one learner turn as a Server-Sent Events stream.

        Preflight errors (404/409/429) are returned before the stream opens.
        Closing the connection cancels the turn and persists nothing.
        """
        events = orchestrator.handle_turn_stream(session_id, turn_input, speculative=speculative)
        # Preflight runs up to the "accepted" event
        first = await anext(events)
        return TurnEventStream(first, events)

    @app.get("/api/sessions/{session_id}/turn-logs")
    async def get_turn_logs(
        session_id: str,
        turn_id: Optional[str] = None,
        event_type: Optional[str] = None,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> TurnLogsResponse:
        """
        Get orchestration events for a session.

        Raises:
            404: Session not found
        """
        await orchestrator.get_session(session_id)
        logs = orchestrator.turn_logs.get_logs(session_id, turn_id=turn_id, event_type=event_type)
        return TurnLogsResponse(
            session_id=session_id,
            turn_id=turn_id,
            logs=logs,
            total_count=len(logs),
        )
