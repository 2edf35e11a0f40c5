"""
Session Orchestrator for the Guided Tutor engine

The single coordinating entry point for a learner turn. It owns session
mutation and guarantees the learner always receives either a validated
response or the designed fallback message.

Flow per turn:
1. Take the per-session exclusion token (SessionBusy if already held)
2. Load the session (SessionNotFound if absent)
3. Confirm the turn is legal in the current state (InvalidTransition)
4. Assemble the prompt
5. Generate (buffered or streamed)
6. Validate the complete candidate
7. PASS: evaluate, advance, commit session + learner context together
   RETRY / REGENERATE: go back to 4 with retry guidance, bounded
   REJECT or exhausted retries: fallback, nothing persisted

The turn deadline covers generation, the learner context read and the wait
for the learner's commit lock. Storage writes, once started, run to the end
so a commit is never cut between its two saves.

Streaming is exposed as an async generator of TurnStreamEvents. Closing it
early (client disconnect) aborts the generation call, discards the buffer
and persists nothing.
"""

import asyncio
import weakref
from contextlib import aclosing
from typing import AsyncIterator, Optional

from guided_tutor.core.evaluator import AnswerMatchEvaluator, LearnerEvaluator
from guided_tutor.core.prompt_assembler import PromptAssembler
from guided_tutor.core.response_validator import ResponseValidator
from guided_tutor.core.session_guard import SessionGuard
from guided_tutor.core.state_machine import (
    SessionPosition,
    SessionStateMachine,
    SideEffect,
    TurnEvent,
    completion_event_for,
    turn_event_for,
)
from guided_tutor.exceptions import (
    ConfigurationError,
    ContextTooLargeError,
    GenerationTimeoutError,
    GenerationUnavailableError,
    InvalidTransitionError,
    SessionNotFoundError,
    StorageError,
    TutorEngineError,
)
from guided_tutor.logging_config import create_turn_logger, get_logger, log_state_change
from guided_tutor.models.instructor import InstructorProfile
from guided_tutor.models.learner import LearnerContext, ProgressMarker, SessionSummary
from guided_tutor.models.lesson import Lesson
from guided_tutor.models.session import LifecycleState, Session, utc_now
from guided_tutor.models.turn import (
    FallbackReason,
    OrchestrationResult,
    TurnInput,
    TurnOutcome,
    TurnStreamEvent,
)
from guided_tutor.models.turn_logs import TurnLogEntry, TurnLogStore
from guided_tutor.models.validation import Action, ValidationResult
from guided_tutor.prompts.templates import DEFAULT_FALLBACK_RESPONSE, RETRY_GUIDANCE
from guided_tutor.services.catalog import Catalog
from guided_tutor.services.generation import GenerationPort
from guided_tutor.services.storage import PersistencePort
from guided_tutor.utils.prompt_utils import truncate_text


logger = get_logger("orchestrator")


class _Fallback(Exception):
    """Internal signal: end the turn with the designed fallback message."""

    def __init__(self, reason: FallbackReason, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


class SessionOrchestrator:
    """
    Coordinates state machine, prompt assembly, generation, validation and
    persistence for each learner turn.

    All collaborators are passed in at construction; nothing is looked up
    from module globals.
    """

    def __init__(
        self,
        storage: PersistencePort,
        generation: GenerationPort,
        assembler: PromptAssembler,
        catalog: Catalog,
        validator: Optional[ResponseValidator] = None,
        evaluator: Optional[LearnerEvaluator] = None,
        *,
        state_machine: Optional[SessionStateMachine] = None,
        guard: Optional[SessionGuard] = None,
        turn_logs: Optional[TurnLogStore] = None,
        fallback_response: Optional[str] = None,
        max_generation_retries: int = 2,
        generation_timeout_seconds: float = 30.0,
        turn_timeout_seconds: float = 90.0,
        max_conversation_history: int = 10,
        log_prompts: bool = False,
    ):
        """
        Args:
            storage: Persistence port
            generation: Generation port
            assembler: Prompt assembler bound to the template set
            catalog: Lessons and instructor profiles
            validator: Response validator (default policy if omitted)
            evaluator: Learner evaluator (AnswerMatchEvaluator if omitted)
            max_generation_retries: Regenerations after a failed verdict
            generation_timeout_seconds: Ceiling for one generation attempt
            turn_timeout_seconds: Ceiling for the whole turn
            max_conversation_history: Transcript messages kept on a session
            log_prompts: Attach full prompts to turn log entries
        """
        self.storage = storage
        self.generation = generation
        self.assembler = assembler
        self.catalog = catalog
        self.validator = validator or ResponseValidator()
        self.evaluator = evaluator or AnswerMatchEvaluator()
        self.state_machine = state_machine or SessionStateMachine()
        self.guard = guard or SessionGuard()
        self.turn_logs = turn_logs or TurnLogStore()
        self.fallback_response = (
            fallback_response or assembler.templates.fallback_response or DEFAULT_FALLBACK_RESPONSE
        )
        self.max_generation_retries = max(0, max_generation_retries)
        self.generation_timeout_seconds = generation_timeout_seconds
        self.turn_timeout_seconds = turn_timeout_seconds
        self.max_conversation_history = max_conversation_history
        self.log_prompts = log_prompts
        # one commit at a time per learner, across all of their sessions
        self._learner_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

        logger.info(
            "Orchestrator initialized",
            extra={
                "component": "orchestrator",
                "event": "initialized",
                "data": {
                    "model": generation.model_name,
                    "max_generation_retries": self.max_generation_retries,
                    "turn_timeout_seconds": turn_timeout_seconds,
                },
            },
        )

    # ===========================================
    # Sessions
    # ===========================================

    async def start_session(
        self,
        learner_id: str,
        lesson: Lesson,
        profile: InstructorProfile,
        assessment_enabled: bool = True,
    ) -> Session:
        """
        Create and persist a new session.

        The session leaves IDLE immediately: into ASSESSING_LEVEL when
        assessment is enabled and the lesson has placement items, otherwise
        onto screen_001.

        Raises:
            StorageError: If the session cannot be saved
        """
        session = Session(
            learner_id=learner_id,
            instructor_profile_id=profile.id,
            lesson=lesson,
        )
        event = (
            TurnEvent.BEGIN_ASSESSMENT
            if assessment_enabled and lesson.has_assessment
            else TurnEvent.BEGIN_LESSON
        )
        transition = self.state_machine.apply(SessionPosition.of(session), event)
        started = session.moved_to(transition.position.state, transition.position.screen_index)

        await self.storage.save_session(started)

        logger.info(
            f"Session started: {started.session_id}",
            extra={
                "component": "orchestrator",
                "event": "session_started",
                "session_id": started.session_id,
                "data": {
                    "learner_id": learner_id,
                    "lesson_id": lesson.lesson_id,
                    "instructor": profile.id,
                    "state": started.state.value,
                },
            },
        )
        log_state_change(
            logger,
            started.session_id,
            "turn_0",
            {"state": {"from": session.state.value, "to": started.state.value}},
        )
        return started

    async def get_session(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.storage.load_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # ===========================================
    # Turns
    # ===========================================

    async def handle_turn(self, session_id: str, turn_input: TurnInput) -> OrchestrationResult:
        """
        Process one learner turn with a buffered response.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionBusyError: If a turn is already in flight for the session
            InvalidTransitionError: If the turn is not legal in the current state
        """
        result = None
        async with aclosing(self.handle_turn_stream(session_id, turn_input, stream=False)) as events:
            async for event in events:
                if event.type == "result":
                    result = event.result
        return result

    async def handle_turn_stream(
        self,
        session_id: str,
        turn_input: TurnInput,
        *,
        stream: bool = True,
        speculative: bool = False,
    ) -> AsyncIterator[TurnStreamEvent]:
        """
        Process one learner turn as a sequence of events.

        Yields "accepted" once the turn passes preflight, then "chunk" /
        "discard" events, and finally exactly one "result".

        With `speculative=False` (default) chunks are released only after
        the candidate passes validation. With `speculative=True` chunks are
        forwarded as they arrive and a "discard" event retracts them when
        the attempt fails.

        Raises (before the first event):
            SessionNotFoundError, SessionBusyError, InvalidTransitionError
        """
        with self.guard.hold(session_id):
            loop = asyncio.get_running_loop()
            started = loop.time()
            deadline = started + self.turn_timeout_seconds

            try:
                session = await self.storage.load_session(session_id)
            except StorageError as e:
                logger.error(
                    f"Session load failed: {e}",
                    extra={"component": "orchestrator", "event": "load_failed", "session_id": session_id},
                )
                yield TurnStreamEvent(type="accepted")
                result = self._fallback_result(
                    session_id, "turn_unknown", None, FallbackReason.STORAGE_ERROR, 0
                )
                yield TurnStreamEvent(type="result", result=result)
                return

            if session is None:
                raise SessionNotFoundError(session_id)

            turn_id = session.get_current_turn_id()
            turn_log = create_turn_logger(logger, session_id, turn_id)
            self._check_turn_allowed(session, turn_input)

            turn_log.info(
                f"Turn started: {turn_id}",
                extra={
                    "component": "orchestrator",
                    "event": "turn_started",
                    "data": {
                        "state": session.state.value,
                        "screen_id": session.screen_id,
                        "message_length": len(turn_input.message),
                        "stream": stream,
                        "speculative": speculative,
                    },
                },
            )
            self._record(
                session_id, turn_id, "turn_started",
                summary=f"Learner: {truncate_text(turn_input.message, 100)}",
                data={"state": session.state.value, "screen_id": session.screen_id},
            )

            yield TurnStreamEvent(type="accepted", state=session.state, screen_id=session.screen_id)

            attempts = 0
            validation: Optional[ValidationResult] = None
            fallback: Optional[tuple[FallbackReason, str]] = None
            released: list[str] = []
            try:
                learner_context = await self._before_deadline(
                    self._load_learner_context(session), deadline, "learner context load"
                )
                profile = self._profile_for(session)

                reminders: list[str] = []
                timeout_retried = False
                max_attempts = self.max_generation_retries + 1
                candidate = None

                while attempts < max_attempts:
                    attempts += 1
                    request = self.assembler.assemble(
                        session, learner_context, profile, turn_input,
                        reminders=reminders, stream=stream,
                    )
                    self._record(
                        session_id, turn_id, "attempt_started", attempt=attempts,
                        data={
                            "estimated_tokens": request.estimated_tokens,
                            "truncated_entries": request.truncated_entries,
                            "reminders": len(reminders),
                        },
                        prompt=request.prompt if self.log_prompts else None,
                    )

                    attempt_started = loop.time()
                    attempt_deadline = min(deadline, attempt_started + self.generation_timeout_seconds)
                    pieces: list[str] = []
                    forwarded = False

                    try:
                        if stream:
                            async with aclosing(self.generation.generate_stream(request)) as chunks:
                                while True:
                                    try:
                                        async with asyncio.timeout_at(attempt_deadline):
                                            chunk = await anext(chunks)
                                    except StopAsyncIteration:
                                        break
                                    if chunk.text:
                                        pieces.append(chunk.text)
                                        if speculative:
                                            forwarded = True
                                            yield TurnStreamEvent(
                                                type="chunk", text=chunk.text, speculative=True
                                            )
                                    if chunk.done:
                                        break
                            text = "".join(pieces)
                        else:
                            remaining = attempt_deadline - loop.time()
                            if remaining <= 0:
                                raise asyncio.TimeoutError()
                            response = await asyncio.wait_for(
                                self.generation.generate(request), timeout=remaining
                            )
                            text = response.text
                            pieces = [text]

                    except asyncio.TimeoutError:
                        if forwarded:
                            yield TurnStreamEvent(type="discard")
                        turn_expired = attempt_deadline >= deadline
                        scope = "turn" if turn_expired else "attempt"
                        timeout = self.turn_timeout_seconds if turn_expired else self.generation_timeout_seconds
                        error = GenerationTimeoutError(timeout, scope=scope)
                        turn_log.warning(
                            str(error),
                            extra={
                                "component": "orchestrator",
                                "event": "generation_timeout",
                                "data": {"attempt": attempts, "scope": scope},
                            },
                        )
                        self._record(
                            session_id, turn_id, "generation_timeout", attempt=attempts,
                            summary=str(error),
                            duration_ms=int((loop.time() - attempt_started) * 1000),
                        )
                        if turn_expired or timeout_retried or attempts >= max_attempts:
                            raise _Fallback(FallbackReason.GENERATION_TIMEOUT, str(error)) from error
                        timeout_retried = True
                        continue

                    except GenerationUnavailableError as e:
                        if forwarded:
                            yield TurnStreamEvent(type="discard")
                        raise _Fallback(FallbackReason.GENERATION_UNAVAILABLE, str(e)) from e

                    validation = self.validator.validate(text, session, profile, turn_input.message)
                    self._log_verdict(turn_log, session_id, turn_id, attempts, validation, attempt_started)

                    if validation.action == Action.PASS:
                        candidate = text
                        released = pieces
                        break

                    if forwarded:
                        yield TurnStreamEvent(type="discard")

                    if validation.action == Action.REJECT:
                        raise _Fallback(FallbackReason.SAFETY, "candidate rejected")

                    reminders = self._retry_guidance(validation, session, profile)

                if candidate is None:
                    raise _Fallback(FallbackReason.RETRIES_EXHAUSTED, f"{attempts} attempts failed validation")

                result = await self._commit_turn(
                    session, turn_input, candidate,
                    turn_id, attempts, validation, turn_log, deadline,
                )

            except _Fallback as e:
                fallback = (e.reason, e.detail)
            except ContextTooLargeError as e:
                fallback = (FallbackReason.CONTEXT_TOO_LARGE, str(e))
            except TutorEngineError as e:
                fallback = (FallbackReason.INTERNAL_ERROR, str(e))
            except Exception as e:
                turn_log.exception(
                    f"Unexpected error during turn: {e}",
                    extra={"component": "orchestrator", "event": "turn_error"},
                )
                fallback = (FallbackReason.INTERNAL_ERROR, str(e))

            if fallback is not None:
                reason, detail = fallback
                result = self._fallback_result(session_id, turn_id, session, reason, attempts)
                self._log_fallback(turn_log, session_id, turn_id, reason, detail, attempts)
                if stream:
                    yield TurnStreamEvent(type="chunk", text=result.response)
            elif stream and not speculative:
                for piece in released:
                    yield TurnStreamEvent(type="chunk", text=piece)

            duration_ms = int((loop.time() - started) * 1000)
            turn_log.info(
                f"Turn completed: {turn_id}",
                extra={
                    "component": "orchestrator",
                    "event": "turn_completed",
                    "duration_ms": duration_ms,
                    "data": {
                        "outcome": result.outcome.value,
                        "fallback_reason": result.fallback_reason.value if result.fallback_reason else None,
                        "attempts": attempts,
                        "screen_id": result.screen_id,
                    },
                },
            )
            self._record(
                session_id, turn_id, "turn_completed",
                data={"outcome": result.outcome.value, "attempts": attempts},
                duration_ms=duration_ms,
            )
            yield TurnStreamEvent(
                type="result",
                state=result.state,
                screen_id=result.screen_id,
                result=result,
            )

    # ===========================================
    # Preflight
    # ===========================================

    def _check_turn_allowed(self, session: Session, turn_input: TurnInput) -> None:
        """
        Raises:
            InvalidTransitionError: If the turn is illegal or targets another screen
        """
        event = turn_event_for(session)
        self.state_machine.apply(SessionPosition.of(session), event)

        if turn_input.screen_id is not None and turn_input.screen_id != session.screen_id:
            raise InvalidTransitionError(
                state=session.state.value,
                event=event.value,
                reason=f"turn targets {turn_input.screen_id}, active screen is {session.screen_id}",
            )

    async def _load_learner_context(self, session: Session) -> LearnerContext:
        try:
            context = await self.storage.load_learner_context(session.learner_id)
        except StorageError as e:
            raise _Fallback(FallbackReason.STORAGE_ERROR, str(e)) from e
        return context or LearnerContext(learner_id=session.learner_id)

    async def _before_deadline(self, awaitable, deadline: float, stage: str):
        """Await under the turn deadline; running out ends the turn as a timeout."""
        try:
            async with asyncio.timeout_at(deadline):
                return await awaitable
        except asyncio.TimeoutError as e:
            error = GenerationTimeoutError(self.turn_timeout_seconds, scope="turn")
            raise _Fallback(FallbackReason.GENERATION_TIMEOUT, f"{error} during {stage}") from e

    def _learner_lock(self, learner_id: str) -> asyncio.Lock:
        lock = self._learner_locks.get(learner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._learner_locks[learner_id] = lock
        return lock

    def _profile_for(self, session: Session) -> InstructorProfile:
        profile = self.catalog.get_instructor(session.instructor_profile_id)
        if profile is None:
            error = ConfigurationError(
                "instructor_profile_id",
                f"unknown instructor profile '{session.instructor_profile_id}'",
            )
            raise _Fallback(FallbackReason.INTERNAL_ERROR, str(error)) from error
        return profile

    def _retry_guidance(
        self,
        validation: ValidationResult,
        session: Session,
        profile: InstructorProfile,
    ) -> list[str]:
        reminders = []
        for kind in dict.fromkeys(validation.kinds):
            template = RETRY_GUIDANCE.get(kind)
            if template is None:
                continue
            reminders.append(template.render(
                instructor_name=profile.name,
                topic=session.lesson.topic,
                learning_objective=session.lesson.learning_objective,
            ))
        return reminders

    # ===========================================
    # Commit
    # ===========================================

    async def _commit_turn(
        self,
        session: Session,
        turn_input: TurnInput,
        candidate: str,
        turn_id: str,
        attempts: int,
        validation: ValidationResult,
        turn_log,
        deadline: float,
    ) -> OrchestrationResult:
        """
        Apply a validated turn and persist session + learner context together.

        Commits for one learner run one at a time. The learner context is
        read again under the learner's lock, so a commit from another of the
        learner's sessions is built on rather than overwritten.
        """
        lock = self._learner_lock(session.learner_id)
        await self._before_deadline(lock.acquire(), deadline, "learner commit lock")
        try:
            learner_context = await self._before_deadline(
                self._load_learner_context(session), deadline, "learner context reload"
            )
            delta = self.evaluator.evaluate(session, learner_context, turn_input, candidate)
            new_context = learner_context.apply(delta)
            updated = session.with_exchange(turn_input.message, candidate, self.max_conversation_history)

            screen_advanced = False
            completed = False
            if delta.completes_item:
                event = completion_event_for(session)
                transition = self.state_machine.apply(SessionPosition.of(updated), event)
                updates = {}
                if session.state == LifecycleState.ASSESSING_LEVEL:
                    updates["assessment_index"] = session.assessment_index + 1
                if SideEffect.SESSION_COMPLETED in transition.side_effects:
                    updates["completed_at"] = utc_now()
                    completed = True
                screen_advanced = SideEffect.SCREEN_ENTERED in transition.side_effects
                updated = updated.moved_to(
                    transition.position.state,
                    transition.position.screen_index,
                    **updates,
                )

            if completed:
                new_context = new_context.with_summary(
                    self._summarize(updated, new_context),
                    ProgressMarker(marker=f"completed:{updated.lesson.lesson_id}", session_id=updated.session_id),
                )

            await self._persist(session.session_id, turn_id, learner_context, new_context, updated)
        finally:
            lock.release()

        log_state_change(
            logger,
            session.session_id,
            turn_id,
            {
                field: {"from": before, "to": after}
                for field, before, after in (
                    ("state", session.state.value, updated.state.value),
                    ("screen_index", session.screen_index, updated.screen_index),
                    ("assessment_index", session.assessment_index, updated.assessment_index),
                )
                if before != after
            },
        )
        turn_log.info(
            "Turn committed",
            extra={
                "component": "orchestrator",
                "event": "turn_committed",
                "data": {
                    "concept": delta.concept,
                    "is_attempt": delta.is_attempt,
                    "is_correct": delta.is_correct,
                    "screen_id": updated.screen_id,
                    "screen_advanced": screen_advanced,
                    "completed": completed,
                },
            },
        )
        self._record(
            session.session_id, turn_id, "committed",
            data={
                "concept": delta.concept,
                "is_correct": delta.is_correct,
                "mastery_updates": {k: v.value for k, v in delta.mastery_updates.items()},
                "screen_id": updated.screen_id,
                "completed": completed,
            },
        )

        return OrchestrationResult(
            session_id=session.session_id,
            turn_id=turn_id,
            response=candidate,
            outcome=TurnOutcome.VALIDATED,
            attempts=attempts,
            validation=validation,
            state=updated.state,
            screen_id=updated.screen_id,
            screen_advanced=screen_advanced,
            session_completed=completed,
        )

    async def _persist(
        self,
        session_id: str,
        turn_id: str,
        previous_context: LearnerContext,
        new_context: LearnerContext,
        updated: Session,
    ) -> None:
        """
        Save learner context, then session. If the session save fails the
        previous learner context is restored, so neither record changes.
        """
        try:
            await self.storage.save_learner_context(new_context)
        except StorageError as e:
            raise _Fallback(FallbackReason.STORAGE_ERROR, str(e)) from e

        try:
            await self.storage.save_session(updated)
        except StorageError as e:
            try:
                await self.storage.save_learner_context(previous_context)
            except StorageError as restore_error:
                logger.error(
                    f"Learner context restore failed: {restore_error}",
                    extra={
                        "component": "orchestrator",
                        "event": "compensation_failed",
                        "session_id": session_id,
                        "turn_id": turn_id,
                    },
                )
            raise _Fallback(FallbackReason.STORAGE_ERROR, str(e)) from e

    def _summarize(self, session: Session, context: LearnerContext) -> SessionSummary:
        """Deterministic summary of a finished session."""
        concepts = session.lesson.get_concepts()
        mastery = ", ".join(f"{c}: {context.status_of(c).value}" for c in concepts)
        addressed = sorted(
            concept
            for concept, record in context.misconceptions.items()
            if record.resolved and concept in concepts
        )
        return SessionSummary(
            session_id=session.session_id,
            lesson_id=session.lesson.lesson_id,
            summary=(
                f"Completed '{session.lesson.topic}' in {session.turn_count} turns. "
                f"Mastery: {mastery}."
            ),
            key_concepts=concepts,
            misconceptions_addressed=addressed,
        )

    # ===========================================
    # Fallback & Logging
    # ===========================================

    def _fallback_result(
        self,
        session_id: str,
        turn_id: str,
        session: Optional[Session],
        reason: FallbackReason,
        attempts: int,
    ) -> OrchestrationResult:
        """The designed fallback. Violation evidence quotes rejected drafts, so it stays in the turn logs."""
        return OrchestrationResult(
            session_id=session_id,
            turn_id=turn_id,
            response=self.fallback_response,
            outcome=TurnOutcome.FALLBACK,
            fallback_reason=reason,
            attempts=attempts,
            state=session.state if session else None,
            screen_id=session.screen_id if session else None,
        )

    def _log_verdict(
        self,
        turn_log,
        session_id: str,
        turn_id: str,
        attempt: int,
        validation: ValidationResult,
        attempt_started: float,
    ) -> None:
        duration_ms = int((asyncio.get_running_loop().time() - attempt_started) * 1000)
        data = {
            "attempt": attempt,
            "action": validation.action.value,
            "violations": [v.kind.value for v in validation.violations],
        }
        turn_log.info(
            f"Verdict {validation.action.value} (attempt {attempt})",
            extra={
                "component": "orchestrator",
                "event": "verdict",
                "duration_ms": duration_ms,
                "data": data,
            },
        )
        self._record(
            session_id, turn_id, "verdict", attempt=attempt,
            summary=validation.action.value,
            data={
                **data,
                "evidence": [truncate_text(v.evidence, 120) for v in validation.violations],
            },
            duration_ms=duration_ms,
        )

    def _log_fallback(
        self,
        turn_log,
        session_id: str,
        turn_id: str,
        reason: FallbackReason,
        detail: str,
        attempts: int,
    ) -> None:
        turn_log.warning(
            f"Fallback used: {reason.value}",
            extra={
                "component": "orchestrator",
                "event": "fallback",
                "error": detail,
                "data": {"reason": reason.value, "attempts": attempts},
            },
        )
        self._record(
            session_id, turn_id, "fallback",
            summary=reason.value,
            data={"reason": reason.value, "detail": detail, "attempts": attempts},
        )

    def _record(
        self,
        session_id: str,
        turn_id: str,
        event_type: str,
        attempt: Optional[int] = None,
        summary: Optional[str] = None,
        data: Optional[dict] = None,
        duration_ms: Optional[int] = None,
        prompt: Optional[str] = None,
    ) -> None:
        self.turn_logs.add_log(TurnLogEntry(
            session_id=session_id,
            turn_id=turn_id,
            event_type=event_type,
            attempt=attempt,
            summary=summary,
            data=data or {},
            duration_ms=duration_ms,
            prompt=prompt,
        ))
