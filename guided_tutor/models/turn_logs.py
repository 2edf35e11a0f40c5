"""
Turn Logging Models for the Guided Tutor engine

This module provides models and storage for capturing orchestration events
per session, for debugging and observability.

Models:
    - TurnLogEntry: Single orchestration event
    - TurnLogStore: In-memory storage for turn logs per session
"""

from collections import deque
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field
import threading

from guided_tutor.models.session import utc_now


class TurnLogEntry(BaseModel):
    """
    Single orchestration event.

    Captures what happened during a turn: attempts, verdicts, fallbacks
    and commits.
    """

    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When this log entry was created"
    )
    session_id: str = Field(
        description="Session identifier"
    )
    turn_id: str = Field(
        description="Turn identifier"
    )
    event_type: str = Field(
        description="Type of event (turn_started, verdict, fallback, committed, ...)"
    )
    attempt: Optional[int] = Field(
        default=None,
        description="Generation attempt number, when relevant"
    )
    summary: Optional[str] = Field(
        default=None,
        description="Short human-readable description"
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured event payload"
    )
    duration_ms: Optional[int] = Field(
        default=None,
        description="Duration in milliseconds"
    )
    prompt: Optional[str] = Field(
        default=None,
        description="Full prompt sent to the backend (only when prompt logging is on)"
    )


class TurnLogStore:
    """
    Bounded in-memory log of orchestration events, per session.

    Each session keeps its most recent `max_logs_per_session` entries;
    older entries fall off the front. Safe to share between threads.
    """

    def __init__(self, max_logs_per_session: int = 200):
        self._logs: dict[str, deque[TurnLogEntry]] = {}
        self._lock = threading.Lock()
        self._max_logs = max_logs_per_session

    def add_log(self, entry: TurnLogEntry) -> None:
        with self._lock:
            if entry.session_id not in self._logs:
                self._logs[entry.session_id] = deque(maxlen=self._max_logs)
            self._logs[entry.session_id].append(entry)

    def get_logs(
        self,
        session_id: str,
        turn_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> list[TurnLogEntry]:
        """
        Entries for a session in recording order.

        Args:
            session_id: Session to read
            turn_id: Only entries for this turn
            event_type: Only entries of this type (e.g. "verdict")
        """
        with self._lock:
            logs = list(self._logs.get(session_id, ()))
        return [
            log for log in logs
            if (turn_id is None or log.turn_id == turn_id)
            and (event_type is None or log.event_type == event_type)
        ]

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            self._logs.pop(session_id, None)

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "sessions": len(self._logs),
                "entries": sum(len(logs) for logs in self._logs.values()),
                "max_entries_per_session": self._max_logs,
            }
