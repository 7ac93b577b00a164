"""
Process-local practice-test session store.

Sessions are kept in memory only; nothing survives a restart. Every session
id has its own lock and all reads/mutations go through ``locked()``, so two
requests against the same session are serialized while different sessions
proceed independently.

Eviction: each ``locked()`` exit records a last-touched time. Completed
sessions are kept for ``completed_ttl_seconds`` after their last touch so the
final summary can still be fetched; unfinished sessions are dropped after
``idle_ttl_seconds`` without activity. Expired sessions are swept whenever a
new session is added, and a session whose lock is held is never evicted.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from satcraft.core.config import get_settings
from satcraft.core.errors import SessionNotFound
from satcraft.models.session import TestSession

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(
        self,
        idle_ttl_seconds: float = 3 * 60 * 60,
        completed_ttl_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.idle_ttl_seconds = idle_ttl_seconds
        self.completed_ttl_seconds = completed_ttl_seconds
        self.clock = clock
        self._sessions: dict[str, TestSession] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._touched: dict[str, float] = {}
        self._guard = threading.Lock()

    def add(self, session: TestSession) -> None:
        self.evict_expired()
        with self._guard:
            self._sessions[session.id] = session
            self._locks.setdefault(session.id, threading.Lock())
            self._touched[session.id] = self.clock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            if session_id not in self._sessions:
                raise SessionNotFound(f"Session not found: {session_id}")
            return self._locks[session_id]

    @contextmanager
    def locked(self, session_id: str) -> Iterator[TestSession]:
        lock = self._lock_for(session_id)
        with lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(f"Session not found: {session_id}")
            try:
                yield session
            finally:
                with self._guard:
                    if session_id in self._sessions:
                        self._touched[session_id] = self.clock()

    def _ttl(self, session: TestSession) -> float:
        state = session.state
        if state.questions_answered >= state.total_questions:
            return self.completed_ttl_seconds
        return self.idle_ttl_seconds

    def evict_expired(self) -> int:
        """Drop expired sessions that nobody currently holds; return how many."""
        now = self.clock()
        with self._guard:
            expired = [
                sid for sid, session in self._sessions.items()
                if now - self._touched.get(sid, now) > self._ttl(session)
                and not self._locks[sid].locked()
            ]
            for sid in expired:
                del self._sessions[sid]
                del self._locks[sid]
                self._touched.pop(sid, None)
        if expired:
            logger.info("[session_store] evicted %d expired session(s)", len(expired))
        return len(expired)

    def __contains__(self, session_id: str) -> bool:
        with self._guard:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)


_STORE: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    global _STORE
    if _STORE is None:
        settings = get_settings()
        _STORE = SessionStore(
            idle_ttl_seconds=settings.session_idle_minutes * 60,
            completed_ttl_seconds=settings.completed_session_minutes * 60,
        )
    return _STORE
