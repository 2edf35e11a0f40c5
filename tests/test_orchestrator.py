"""
Unit Tests for the Session Orchestrator

Tests the full turn lifecycle against a scripted generation port: validated
turns, bounded regeneration, fallbacks, streaming and cancellation, and the
all-or-nothing commit of session and learner context.
"""

import asyncio

import pytest

from guided_tutor.core.prompt_assembler import PromptAssembler
from guided_tutor.exceptions import (
    GenerationUnavailableError,
    InvalidTransitionError,
    SessionBusyError,
    SessionNotFoundError,
)
from guided_tutor.models.learner import LearnerContext, MasteryStatus
from guided_tutor.models.session import LifecycleState
from guided_tutor.models.turn import FallbackReason, TurnInput, TurnOutcome
from guided_tutor.models.validation import ViolationKind


BUILDING = "building equivalent fractions"
SIMPLIFYING = "simplifying fractions"

GUIDING_REPLY = "Great thinking! How did you know to multiply 3 by 3?"
NUDGE_REPLY = "What do you multiply 4 by to get 12?"
LEAKED_REPLY = "The answer is 9."


async def _collect(events):
    return [event async for event in events]


class TestValidatedTurns:
    """Turns whose candidate passes validation."""

    @pytest.mark.asyncio
    async def test_correct_answer_advances_screen(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.outcome == TurnOutcome.VALIDATED
        assert result.response == GUIDING_REPLY
        assert result.attempts == 1
        assert result.turn_id == "turn_1"
        assert result.screen_id == "screen_004"
        assert result.screen_advanced
        assert not result.session_completed

        stored = await storage.load_session(session.session_id)
        assert stored.screen_index == 4
        assert stored.turn_count == 1
        assert [m.content for m in stored.transcript] == ["Is it 9?", GUIDING_REPLY]

        context = await storage.load_learner_context("learner_1")
        assert context.status_of(BUILDING) == MasteryStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_wrong_answer_stays_on_screen(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([NUDGE_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 11?"))

        assert result.outcome == TurnOutcome.VALIDATED
        assert result.screen_id == "screen_003"
        assert not result.screen_advanced

        context = await storage.load_learner_context("learner_1")
        assert BUILDING in context.misconceptions
        assert context.weaknesses == [BUILDING]

    @pytest.mark.asyncio
    async def test_regeneration_recovers(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY, NUDGE_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        assert result.outcome == TurnOutcome.VALIDATED
        assert result.response == NUDGE_REPLY
        assert result.attempts == 2
        assert result.screen_id == "screen_003"

        first, second = orchestrator.generation.requests
        assert "gave away the answer" not in first.prompt
        assert "gave away the answer" in second.prompt

    @pytest.mark.asyncio
    async def test_placement_moves_to_first_screen(self, make_orchestrator, lesson, profile, storage):
        orchestrator = make_orchestrator(["Nice! Which number did you put on the bottom?"])
        session = await orchestrator.start_session("learner_1", lesson, profile)
        assert session.state == LifecycleState.ASSESSING_LEVEL

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="3/8"))

        assert result.state == LifecycleState.IN_LESSON
        assert result.screen_id == "screen_001"
        assert result.screen_advanced

        stored = await storage.load_session(session.session_id)
        assert stored.assessment_index == 1

    @pytest.mark.asyncio
    async def test_start_without_assessment(self, make_orchestrator, lesson, profile, storage):
        orchestrator = make_orchestrator([GUIDING_REPLY])

        session = await orchestrator.start_session("learner_1", lesson, profile, assessment_enabled=False)

        assert session.state == LifecycleState.IN_LESSON
        assert session.screen_id == "screen_001"
        assert await orchestrator.get_session(session.session_id) == session

    @pytest.mark.asyncio
    async def test_last_screen_completes_lesson(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=4, turn_count=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator(
            ["Well done! Why does dividing both numbers by 2 keep the fraction the same?"]
        )

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="3/4"))

        assert result.session_completed
        assert result.state == LifecycleState.COMPLETED

        stored = await storage.load_session(session.session_id)
        assert stored.completed_at is not None
        assert stored.progress_percentage == 100.0

        context = await storage.load_learner_context("learner_1")
        assert len(context.session_summaries) == 1
        assert context.session_summaries[0].lesson_id == "equivalent_fractions"
        assert [m.marker for m in context.progress_markers] == ["completed:equivalent_fractions"]

        with pytest.raises(InvalidTransitionError):
            await orchestrator.handle_turn(session.session_id, TurnInput(message="thanks"))

    @pytest.mark.asyncio
    async def test_concurrent_sessions_of_one_learner_both_commit(
        self, make_orchestrator, make_session, storage
    ):
        fractions = make_session(screen_index=3)
        simplifying = make_session(screen_index=4)
        await storage.save_session(fractions)
        await storage.save_session(simplifying)
        orchestrator = make_orchestrator(["Well done! Why does that work for both numbers?"], delay=0.05)

        first, second = await asyncio.gather(
            orchestrator.handle_turn(fractions.session_id, TurnInput(message="Is it 9?")),
            orchestrator.handle_turn(simplifying.session_id, TurnInput(message="3/4")),
        )

        assert first.outcome == second.outcome == TurnOutcome.VALIDATED
        context = await storage.load_learner_context("learner_1")
        assert context.status_of(BUILDING) == MasteryStatus.IN_PROGRESS
        assert context.status_of(SIMPLIFYING) == MasteryStatus.IN_PROGRESS


class TestFallbackTurns:
    """Turns that end with the designed fallback message."""

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        assert result.is_fallback
        assert result.fallback_reason == FallbackReason.RETRIES_EXHAUSTED
        assert result.attempts == 3
        assert result.response == orchestrator.fallback_response
        assert result.validation is None
        assert result.screen_id == "screen_003"

        verdicts = orchestrator.turn_logs.get_logs(session.session_id, event_type="verdict")
        assert len(verdicts) == 3
        assert verdicts[-1].data["violations"][0] == ViolationKind.DIRECT_ANSWER.value

        # Nothing persisted
        assert await storage.load_session(session.session_id) == session
        assert await storage.load_learner_context("learner_1") is None

    @pytest.mark.asyncio
    async def test_fallback_turn_id_is_reused(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY, LEAKED_REPLY, LEAKED_REPLY, NUDGE_REPLY])

        first = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))
        second = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        assert first.is_fallback
        assert not second.is_fallback
        assert first.turn_id == second.turn_id == "turn_1"

    @pytest.mark.asyncio
    async def test_unsafe_candidate_is_rejected_without_retry(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator(["You are hopeless. Try again?"])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        assert result.fallback_reason == FallbackReason.SAFETY
        assert result.attempts == 1
        assert len(orchestrator.generation.requests) == 1

    @pytest.mark.parametrize(
        "reply, reason, fragment",
        [
            (LEAKED_REPLY, FallbackReason.RETRIES_EXHAUSTED, "answer is 9"),
            ("You are stupid, shut up. Try again?", FallbackReason.SAFETY, "stupid"),
        ],
    )
    @pytest.mark.asyncio
    async def test_fallback_result_never_quotes_the_rejected_draft(
        self, make_orchestrator, make_session, storage, reply, reason, fragment
    ):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([reply])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        assert result.fallback_reason == reason
        assert result.validation is None
        assert fragment not in result.model_dump_json().lower()

        # The rejected draft is still visible to operators in the turn logs
        verdicts = orchestrator.turn_logs.get_logs(session.session_id, event_type="verdict")
        assert any(fragment in e.lower() for v in verdicts for e in v.data["evidence"])

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_retried_once(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY], delay=1.0, generation_timeout_seconds=0.05)

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.GENERATION_TIMEOUT
        assert result.attempts == 2
        assert len(orchestrator.turn_logs.get_logs(session.session_id, event_type="generation_timeout")) == 2

    @pytest.mark.asyncio
    async def test_turn_deadline_is_not_retried(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY], delay=1.0, turn_timeout_seconds=0.05)

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.GENERATION_TIMEOUT
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_generation_unavailable(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator(
            [GUIDING_REPLY],
            error=GenerationUnavailableError("connection refused", "scripted-model", 3),
        )

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.GENERATION_UNAVAILABLE
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_context_too_large(self, make_orchestrator, make_session, storage, templates):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator(
            [GUIDING_REPLY],
            prompt_assembler=PromptAssembler(templates, token_budget=10),
        )

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.CONTEXT_TOO_LARGE
        assert orchestrator.generation.requests == []

    @pytest.mark.asyncio
    async def test_unknown_instructor_profile(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3).model_copy(update={"instructor_profile_id": "ghost"})
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_session_save_failure_restores_learner_context(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        before = LearnerContext(learner_id="learner_1", concepts={BUILDING: MasteryStatus.IN_PROGRESS})
        await storage.save_learner_context(before)
        storage.fail_session_saves = True
        orchestrator = make_orchestrator([GUIDING_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.STORAGE_ERROR
        assert await storage.load_learner_context("learner_1") == before
        assert await storage.load_session(session.session_id) == session

    @pytest.mark.asyncio
    async def test_session_load_failure(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        storage.fail_session_loads = True
        orchestrator = make_orchestrator([GUIDING_REPLY])

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.STORAGE_ERROR
        assert result.state is None
        assert not orchestrator.guard.is_busy(session.session_id)

    @pytest.mark.asyncio
    async def test_slow_learner_context_read_hits_turn_deadline(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        storage.context_load_delay = 1.0
        orchestrator = make_orchestrator([GUIDING_REPLY], turn_timeout_seconds=0.05)

        result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.GENERATION_TIMEOUT
        assert result.attempts == 0
        assert orchestrator.generation.requests == []
        assert await storage.load_session(session.session_id) == session
        assert not orchestrator.guard.is_busy(session.session_id)

    @pytest.mark.asyncio
    async def test_blocked_commit_hits_turn_deadline(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY], turn_timeout_seconds=0.1)

        # another of the learner's sessions is mid-commit
        async with orchestrator._learner_lock("learner_1"):
            result = await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        assert result.fallback_reason == FallbackReason.GENERATION_TIMEOUT
        assert result.attempts == 1
        assert await storage.load_session(session.session_id) == session
        assert await storage.load_learner_context("learner_1") is None


class TestPreflight:
    """Errors raised before a turn is accepted."""

    @pytest.mark.asyncio
    async def test_unknown_session(self, make_orchestrator):
        orchestrator = make_orchestrator([GUIDING_REPLY])

        with pytest.raises(SessionNotFoundError):
            await orchestrator.handle_turn("sess_missing", TurnInput(message="hello"))

        assert not orchestrator.guard.is_busy("sess_missing")
        assert orchestrator.turn_logs.get_logs("sess_missing") == []
        assert orchestrator.generation.requests == []

    @pytest.mark.asyncio
    async def test_completed_session(self, make_orchestrator, make_session, storage):
        session = make_session(state=LifecycleState.COMPLETED, screen_index=4)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        with pytest.raises(InvalidTransitionError):
            await orchestrator.handle_turn(session.session_id, TurnInput(message="one more?"))

        assert orchestrator.generation.requests == []

    @pytest.mark.asyncio
    async def test_stale_screen_id(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        with pytest.raises(InvalidTransitionError):
            await orchestrator.handle_turn(
                session.session_id, TurnInput(message="9", screen_id="screen_001")
            )

    @pytest.mark.asyncio
    async def test_concurrent_turns_are_refused(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY], delay=0.05)

        results = await asyncio.gather(
            orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?")),
            orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?")),
            return_exceptions=True,
        )

        assert results[0].outcome == TurnOutcome.VALIDATED
        assert isinstance(results[1], SessionBusyError)
        assert (await storage.load_session(session.session_id)).turn_count == 1

    @pytest.mark.asyncio
    async def test_open_stream_holds_the_session(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        events = orchestrator.handle_turn_stream(session.session_id, TurnInput(message="Is it 9?"))
        first = await anext(events)
        assert first.type == "accepted"

        with pytest.raises(SessionBusyError):
            await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        await events.aclose()
        assert not orchestrator.guard.is_busy(session.session_id)


class TestStreaming:
    """Streamed turns and cancellation."""

    @pytest.mark.asyncio
    async def test_chunks_released_after_validation(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        events = await _collect(
            orchestrator.handle_turn_stream(session.session_id, TurnInput(message="Is it 9?"))
        )

        assert events[0].type == "accepted"
        assert events[0].screen_id == "screen_003"
        assert events[-1].type == "result"
        chunks = [e for e in events if e.type == "chunk"]
        assert "".join(c.text for c in chunks) == GUIDING_REPLY
        assert not any(c.speculative for c in chunks)
        assert events[-1].result.outcome == TurnOutcome.VALIDATED
        assert events[-1].screen_id == "screen_004"

    @pytest.mark.asyncio
    async def test_speculative_chunks_are_discarded_on_failure(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY, NUDGE_REPLY])

        events = await _collect(orchestrator.handle_turn_stream(
            session.session_id, TurnInput(message="I don't get it"), speculative=True,
        ))

        types = [e.type for e in events]
        assert types.count("discard") == 1
        discard_at = types.index("discard")
        before = "".join(e.text for e in events[:discard_at] if e.type == "chunk")
        after = "".join(e.text for e in events[discard_at:] if e.type == "chunk")
        assert before == LEAKED_REPLY
        assert after == NUDGE_REPLY
        assert all(e.speculative for e in events if e.type == "chunk")
        assert events[-1].result.attempts == 2

    @pytest.mark.asyncio
    async def test_stream_fallback_sends_fallback_text(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY])

        events = await _collect(
            orchestrator.handle_turn_stream(session.session_id, TurnInput(message="I don't get it"))
        )

        chunks = [e for e in events if e.type == "chunk"]
        assert [c.text for c in chunks] == [orchestrator.fallback_response]
        assert events[-1].result.fallback_reason == FallbackReason.RETRIES_EXHAUSTED

    @pytest.mark.asyncio
    async def test_cancelled_stream_persists_nothing(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY], delay=0.01)

        events = orchestrator.handle_turn_stream(
            session.session_id, TurnInput(message="Is it 9?"), speculative=True,
        )
        assert (await anext(events)).type == "accepted"
        chunk = await anext(events)
        assert chunk.type == "chunk" and chunk.speculative
        await events.aclose()

        assert orchestrator.generation.streams_closed == 1
        assert not orchestrator.guard.is_busy(session.session_id)
        assert await storage.load_session(session.session_id) == session
        assert await storage.load_learner_context("learner_1") is None


class TestTurnLogs:

    @pytest.mark.asyncio
    async def test_turn_events_are_recorded(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([GUIDING_REPLY])

        await orchestrator.handle_turn(session.session_id, TurnInput(message="Is it 9?"))

        logs = orchestrator.turn_logs.get_logs(session.session_id, turn_id="turn_1")
        assert [log.event_type for log in logs] == [
            "turn_started", "attempt_started", "verdict", "committed", "turn_completed",
        ]
        assert logs[0].summary == "Learner: Is it 9?"
        assert logs[2].data["action"] == "PASS"
        assert logs[1].prompt is None

    @pytest.mark.asyncio
    async def test_fallback_is_recorded(self, make_orchestrator, make_session, storage):
        session = make_session(screen_index=3)
        await storage.save_session(session)
        orchestrator = make_orchestrator([LEAKED_REPLY], log_prompts=True)

        await orchestrator.handle_turn(session.session_id, TurnInput(message="I don't get it"))

        verdicts = orchestrator.turn_logs.get_logs(session.session_id, event_type="verdict")
        fallbacks = orchestrator.turn_logs.get_logs(session.session_id, event_type="fallback")
        attempts = orchestrator.turn_logs.get_logs(session.session_id, event_type="attempt_started")
        assert [v.data["action"] for v in verdicts] == ["REGENERATE"] * 3
        assert fallbacks[0].data["reason"] == "RETRIES_EXHAUSTED"
        assert all(a.prompt for a in attempts)
