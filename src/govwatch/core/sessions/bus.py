"""
Session log bus.

Holds the live log of each scraping session, fans new entries out to
listeners (SSE streams, the CLI follower) and keeps a bounded history of
recent entries across sessions. Every entry is also forwarded to the
``govwatch.sessions`` stdlib logger so console and file sinks see it.

The bus is a plain service object: build one per process (the API
lifespan and the CLI each do) and call ``close()`` on shutdown.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Callable

from ..logging import get_logger

DEFAULT_SESSION_TTL_SECONDS = 300.0
MAX_RECENT_LOGS = 1000

SYSTEM_SOURCE = "SYSTEM"
SESSION_END_PREFIX = "__SESSION_END__"


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    DEBUG = "debug"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_STDLIB_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.DEBUG: logging.DEBUG,
}


@dataclass(frozen=True)
class LogEntry:
    """One immutable log line. Ids increase in append order."""

    id: int
    timestamp: datetime
    level: LogLevel
    source: str
    message: str
    metadata: dict[str, Any] | None = None

    @property
    def is_session_end(self) -> bool:
        return self.source == SYSTEM_SOURCE and self.message.startswith(SESSION_END_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "source": self.source,
            "message": self.message,
            "metadata": self.metadata,
        }


Listener = Callable[[LogEntry], None]


@dataclass
class Session:
    """A running or recently finished scraping session."""

    id: str
    source: str
    started_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: datetime | None = None
    status: SessionStatus = SessionStatus.RUNNING
    logs: list[LogEntry] = field(default_factory=list)
    listeners: list[Listener] = field(default_factory=list, repr=False)

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def to_dict(self, include_logs: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "status": self.status.value,
            "log_count": len(self.logs),
        }
        if include_logs:
            data["logs"] = [entry.to_dict() for entry in self.logs]
        return data


# =============================================================================
# Bus
# =============================================================================


class SessionLogBus:
    """In-memory session store with live listener fan-out.

    Finished sessions stay readable for ``ttl_seconds`` so late polls
    still find them, then they are dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        max_recent: int = MAX_RECENT_LOGS,
        logger: logging.Logger | None = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._sessions: dict[str, Session] = {}
        self._recent: deque[LogEntry] = deque(maxlen=max_recent)
        self._ids = itertools.count(1)
        self._expires_at: dict[str, float] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._logger = logger or get_logger("sessions")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_session(self, source: str) -> str:
        """Open a session and emit its opening entry."""
        session_id = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
        self._sessions[session_id] = Session(id=session_id, source=source)
        self.log(
            session_id,
            LogLevel.INFO,
            source,
            f"Iniciando sesión de scraping para {source.upper()}",
        )
        return session_id

    def end_session(self, session_id: str, success: bool) -> None:
        """Set the terminal status (once), notify listeners and schedule expiry."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_running:
            return

        session.ended_at = datetime.utcnow()
        session.status = SessionStatus.COMPLETED if success else SessionStatus.FAILED

        self.log(
            session_id,
            LogLevel.SUCCESS if success else LogLevel.ERROR,
            session.source,
            f"Sesión {'completada' if success else 'fallida'} en {session.duration_seconds:.1f}s",
        )

        end_entry = LogEntry(
            id=next(self._ids),
            timestamp=datetime.utcnow(),
            level=LogLevel.INFO,
            source=SYSTEM_SOURCE,
            message=f"{SESSION_END_PREFIX}:{session.status.value}",
        )
        self._notify(session, end_entry)
        session.listeners.clear()

        self._schedule_expiry(session_id)

    def close(self) -> None:
        """Cancel pending expiries and drop every session."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._expires_at.clear()
        for session in self._sessions.values():
            session.listeners.clear()
        self._sessions.clear()

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    def log(
        self,
        session_id: str | None,
        level: LogLevel | str,
        source: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry:
        """Append an entry.

        The entry always lands in the recent history. It is added to the
        session (and pushed to its listeners) only when the session is
        known; entries logged after termination are kept but do not change
        the status.
        """
        level = LogLevel(level)
        entry = LogEntry(
            id=next(self._ids),
            timestamp=datetime.utcnow(),
            level=level,
            source=source,
            message=message,
            metadata=metadata,
        )

        self._recent.append(entry)

        session = self._sessions.get(session_id) if session_id else None
        if session is not None:
            session.logs.append(entry)
            self._notify(session, entry)

        self._forward(entry, session_id)
        return entry

    def logger(self, session_id: str, source: str) -> "SessionLogger":
        return SessionLogger(self, session_id, source)

    def subscribe(self, session_id: str, listener: Listener) -> Callable[[], None]:
        """Register a listener for new entries of a session.

        Earlier entries are not replayed. Unknown sessions get a no-op
        unsubscribe.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return lambda: None

        session.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in session.listeners:
                session.listeners.remove(listener)

        return unsubscribe

    async def follow(self, session_id: str) -> AsyncIterator[LogEntry]:
        """Yield new entries of a session until its end signal.

        Yields nothing for unknown sessions; an already finished session
        yields only its end signal.
        """
        session = self.get_session(session_id)
        if session is None:
            return

        if not session.is_running:
            yield LogEntry(
                id=next(self._ids),
                timestamp=datetime.utcnow(),
                level=LogLevel.INFO,
                source=SYSTEM_SOURCE,
                message=f"{SESSION_END_PREFIX}:{session.status.value}",
            )
            return

        queue: asyncio.Queue[LogEntry] = asyncio.Queue()
        unsubscribe = self.subscribe(session_id, queue.put_nowait)
        try:
            while True:
                entry = await queue.get()
                yield entry
                if entry.is_session_end:
                    break
        finally:
            unsubscribe()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        self._purge_expired()
        return self._sessions.get(session_id)

    def get_active_session(self, source: str | None = None) -> Session | None:
        """Latest running session, optionally restricted to one source."""
        self._purge_expired()
        running = [s for s in self._sessions.values() if s.is_running]
        if source:
            running = [s for s in running if s.source.lower() == source.lower()]
        if not running:
            return None
        return max(running, key=lambda s: s.started_at)

    def get_recent_logs(self, limit: int = 100) -> list[LogEntry]:
        if limit <= 0:
            return []
        return list(self._recent)[-limit:]

    def get_all_sessions(self) -> list[Session]:
        self._purge_expired()
        return list(self._sessions.values())

    def logs_since(self, session_id: str, after_id: int = 0) -> list[LogEntry]:
        """Entries of a session with an id greater than ``after_id``."""
        session = self.get_session(session_id)
        if session is None:
            return []
        return [entry for entry in session.logs if entry.id > after_id]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _notify(self, session: Session, entry: LogEntry) -> None:
        # Copy: a listener may unsubscribe while being notified
        for listener in list(session.listeners):
            try:
                listener(entry)
            except Exception:
                self._logger.exception("Session listener failed for %s", session.id)

    def _forward(self, entry: LogEntry, session_id: str | None) -> None:
        levelno = _STDLIB_LEVELS[entry.level]
        if not self._logger.isEnabledFor(levelno):
            return

        extra: dict[str, Any] = {"source": entry.source, "session_id": session_id}
        if entry.level == LogLevel.SUCCESS:
            extra["success"] = True
        if entry.metadata:
            extra["metadata"] = entry.metadata
        self._logger.log(levelno, entry.message, extra=extra)

    def _schedule_expiry(self, session_id: str) -> None:
        self._expires_at[session_id] = time.monotonic() + self.ttl_seconds
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (CLI, sync callers): expiry happens lazily on read
            return
        self._timers[session_id] = loop.call_later(self.ttl_seconds, self._expire, session_id)

    def _expire(self, session_id: str) -> None:
        self._timers.pop(session_id, None)
        self._expires_at.pop(session_id, None)
        self._sessions.pop(session_id, None)

    def _purge_expired(self) -> None:
        if not self._expires_at:
            return
        now = time.monotonic()
        for session_id, deadline in list(self._expires_at.items()):
            if deadline <= now:
                handle = self._timers.pop(session_id, None)
                if handle:
                    handle.cancel()
                self._expire(session_id)


# =============================================================================
# Bound logger
# =============================================================================


class SessionLogger:
    """Logger bound to one session and source."""

    def __init__(self, bus: SessionLogBus, session_id: str, source: str):
        self.bus = bus
        self.session_id = session_id
        self.source = source

    def info(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.bus.log(self.session_id, LogLevel.INFO, self.source, message, metadata)

    def success(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.bus.log(self.session_id, LogLevel.SUCCESS, self.source, message, metadata)

    def warning(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.bus.log(self.session_id, LogLevel.WARNING, self.source, message, metadata)

    def error(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.bus.log(self.session_id, LogLevel.ERROR, self.source, message, metadata)

    def debug(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.bus.log(self.session_id, LogLevel.DEBUG, self.source, message, metadata)

    def bind(self, source: str) -> "SessionLogger":
        """Same session, different source label."""
        return SessionLogger(self.bus, self.session_id, source)
