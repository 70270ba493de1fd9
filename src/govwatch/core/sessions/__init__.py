"""Live session logging."""

from .bus import (
    LogEntry,
    LogLevel,
    Session,
    SessionLogBus,
    SessionLogger,
    SessionStatus,
    SESSION_END_PREFIX,
    SYSTEM_SOURCE,
)

__all__ = [
    "LogEntry",
    "LogLevel",
    "Session",
    "SessionLogBus",
    "SessionLogger",
    "SessionStatus",
    "SESSION_END_PREFIX",
    "SYSTEM_SOURCE",
]
