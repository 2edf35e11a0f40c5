"""
Per-session exclusion for the Guided Tutor engine

At most one turn may be in flight per session. A second caller fails fast
with SessionBusyError instead of waiting.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from guided_tutor.exceptions import SessionBusyError


class SessionGuard:
    """Tracks sessions with a turn in flight."""

    def __init__(self):
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        """
        Hold the exclusion token for the duration of a turn.

        Raises:
            SessionBusyError: If another turn holds the token
        """
        with self._lock:
            if session_id in self._in_flight:
                raise SessionBusyError(session_id)
            self._in_flight.add(session_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(session_id)

    def is_busy(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)
