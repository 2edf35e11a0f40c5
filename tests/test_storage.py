"""
Unit Tests for storage, the session guard and the turn log store
"""

import pytest

from guided_tutor.core.session_guard import SessionGuard
from guided_tutor.exceptions import SessionBusyError
from guided_tutor.models.learner import LearnerContext, MasteryStatus
from guided_tutor.models.session import LifecycleState
from guided_tutor.models.turn_logs import TurnLogEntry, TurnLogStore
from guided_tutor.services.storage import InMemoryStorage, create_storage


class TestInMemoryStorage:
    """Test suite for InMemoryStorage."""

    @pytest.fixture
    def store(self):
        return InMemoryStorage()

    @pytest.mark.asyncio
    async def test_session_round_trip(self, store, make_session):
        session = make_session(screen_index=2)

        await store.save_session(session)
        loaded = await store.load_session(session.session_id)

        assert loaded == session
        assert loaded is not session

    @pytest.mark.asyncio
    async def test_missing_records_load_as_none(self, store):
        assert await store.load_session("sess_missing") is None
        assert await store.load_learner_context("nobody") is None

    @pytest.mark.asyncio
    async def test_stored_records_cannot_be_mutated_by_callers(self, store):
        context = LearnerContext(learner_id="learner_1")
        await store.save_learner_context(context)

        context.concepts["fractions"] = MasteryStatus.MASTERED
        loaded = await store.load_learner_context("learner_1")
        loaded.strengths.append("fractions")

        again = await store.load_learner_context("learner_1")
        assert again.concepts == {}
        assert again.strengths == []

    @pytest.mark.asyncio
    async def test_stats(self, store, make_session):
        await store.save_session(make_session(screen_index=1, turn_count=2))
        await store.save_session(make_session(state=LifecycleState.COMPLETED, screen_index=4, turn_count=4))
        await store.save_learner_context(LearnerContext(learner_id="learner_1"))

        stats = store.get_stats()

        assert stats["sessions"] == 2
        assert stats["completed_sessions"] == 1
        assert stats["learners"] == 1
        assert stats["total_turns"] == 6
        assert stats["average_turns_per_session"] == 3.0
        assert len(store.list_sessions()) == 2

    def test_factory(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)
        with pytest.raises(ValueError):
            create_storage("postgres")


class TestSessionGuard:
    """Test suite for SessionGuard."""

    def test_second_holder_is_refused(self):
        guard = SessionGuard()

        with guard.hold("sess_a"):
            assert guard.is_busy("sess_a")
            with pytest.raises(SessionBusyError):
                with guard.hold("sess_a"):
                    pass
            # Other sessions are independent
            with guard.hold("sess_b"):
                assert guard.in_flight_count == 2

        assert not guard.is_busy("sess_a")
        assert guard.in_flight_count == 0

    def test_released_on_error(self):
        guard = SessionGuard()

        with pytest.raises(RuntimeError):
            with guard.hold("sess_a"):
                raise RuntimeError("boom")

        assert not guard.is_busy("sess_a")


class TestTurnLogStore:
    """Test suite for TurnLogStore."""

    def _entry(self, turn_id="turn_1", event_type="verdict", session_id="sess_a"):
        return TurnLogEntry(session_id=session_id, turn_id=turn_id, event_type=event_type)

    def test_filters(self):
        store = TurnLogStore()
        store.add_log(self._entry("turn_1", "turn_started"))
        store.add_log(self._entry("turn_1", "verdict"))
        store.add_log(self._entry("turn_2", "verdict"))

        assert len(store.get_logs("sess_a")) == 3
        assert len(store.get_logs("sess_a", turn_id="turn_1")) == 2
        assert len(store.get_logs("sess_a", event_type="verdict")) == 2
        assert store.get_logs("sess_other") == []

    def test_keeps_most_recent_entries(self):
        store = TurnLogStore(max_logs_per_session=3)
        for i in range(5):
            store.add_log(self._entry(f"turn_{i}"))

        logs = store.get_logs("sess_a")
        assert [log.turn_id for log in logs] == ["turn_2", "turn_3", "turn_4"]
        assert store.get_stats() == {"sessions": 1, "entries": 3, "max_entries_per_session": 3}

    def test_clear_session(self):
        store = TurnLogStore()
        store.add_log(self._entry())

        store.clear_session("sess_a")

        assert store.get_logs("sess_a") == []
        assert store.get_stats()["sessions"] == 0
