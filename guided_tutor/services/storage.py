"""
Persistence for the Guided Tutor engine

This module provides session and learner-context storage using the Protocol
pattern, so the orchestrator never depends on a concrete backend.

Design:
- Protocol-based interface (PersistencePort)
- In-memory implementation that stores private copies
- Every call is atomic for a single record; failures surface as StorageError

Usage:
    from guided_tutor.services.storage import create_storage

    storage = create_storage("memory")
    await storage.save_session(session)
    loaded = await storage.load_session(session.session_id)
"""

import threading
from typing import Dict, Optional, Protocol

from guided_tutor.logging_config import get_logger
from guided_tutor.models.learner import LearnerContext
from guided_tutor.models.session import Session


logger = get_logger("storage")


# ===========================================
# Protocol (Interface)
# ===========================================


class PersistencePort(Protocol):
    """
    Protocol for session and learner-context storage.

    Implementations raise StorageError when the backend fails.
    """

    async def load_session(self, session_id: str) -> Optional[Session]:
        """Get a session by ID, None if not found."""
        ...

    async def save_session(self, session: Session) -> None:
        """Save or replace a session."""
        ...

    async def load_learner_context(self, learner_id: str) -> Optional[LearnerContext]:
        """Get a learner's context, None if the learner is new."""
        ...

    async def save_learner_context(self, context: LearnerContext) -> None:
        """Save or replace a learner context."""
        ...


# ===========================================
# In-Memory Implementation
# ===========================================


class InMemoryStorage:
    """
    In-memory storage.

    Thread-safe. Records are deep-copied on the way in and out, so callers
    can never mutate what is stored.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._contexts: Dict[str, LearnerContext] = {}
        self._lock = threading.Lock()

        logger.info(
            "In-memory storage initialized",
            extra={"component": "storage", "event": "initialized"},
        )

    async def load_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session is not None else None

    async def save_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = session.model_copy(deep=True)

        logger.debug(
            f"Session saved: {session.session_id}",
            extra={
                "component": "storage",
                "event": "session_saved",
                "session_id": session.session_id,
                "data": {"state": session.state.value, "screen_index": session.screen_index},
            },
        )

    async def load_learner_context(self, learner_id: str) -> Optional[LearnerContext]:
        with self._lock:
            context = self._contexts.get(learner_id)
        return context.model_copy(deep=True) if context is not None else None

    async def save_learner_context(self, context: LearnerContext) -> None:
        with self._lock:
            self._contexts[context.learner_id] = context.model_copy(deep=True)

        logger.debug(
            f"Learner context saved: {context.learner_id}",
            extra={
                "component": "storage",
                "event": "learner_context_saved",
                "data": {"learner_id": context.learner_id, "concepts": len(context.concepts)},
            },
        )

    def list_sessions(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def get_stats(self) -> dict:
        """
        Get storage statistics.

        Returns:
            Dict with stats (sessions, learners, total_turns, ...)
        """
        with self._lock:
            sessions = len(self._sessions)
            total_turns = sum(s.turn_count for s in self._sessions.values())
            completed = sum(1 for s in self._sessions.values() if s.is_complete)
            avg_turns = total_turns / sessions if sessions > 0 else 0

            return {
                "sessions": sessions,
                "completed_sessions": completed,
                "learners": len(self._contexts),
                "total_turns": total_turns,
                "average_turns_per_session": round(avg_turns, 2),
            }


# ===========================================
# Factory Function
# ===========================================


def create_storage(storage_type: str = "memory", **kwargs) -> PersistencePort:
    """
    Factory function to create a persistence backend.

    Args:
        storage_type: Type of storage (only "memory" is available)
        **kwargs: Additional arguments for the implementation

    Raises:
        ValueError: If the storage type is unknown
    """
    if storage_type == "memory":
        return InMemoryStorage(**kwargs)
    raise ValueError(f"Unknown storage type: {storage_type}")
