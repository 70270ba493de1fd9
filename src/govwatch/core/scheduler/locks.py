"""
Run lock management for scheduled execution.
"""

from __future__ import annotations

from ...persistence.db import SessionScope
from ...persistence.repo import LockRepository


class LockManager:
    """Manages RunLock rows in database for overlap protection.

    Each operation runs in its own transaction so a held lock is visible
    to other processes as soon as ``acquire`` returns.
    """

    def __init__(self, sessions: SessionScope) -> None:
        self._sessions = sessions

    def acquire(self, lock_name: str, holder_id: str, ttl_minutes: int = 60) -> bool:
        """Acquire lock. Returns True if acquired, False if held by another."""
        with self._sessions() as session:
            return LockRepository(session).acquire(lock_name, holder_id, ttl_seconds=ttl_minutes * 60)

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Release lock. Returns True if released, False if not held by us."""
        with self._sessions() as session:
            return LockRepository(session).release(lock_name, holder_id)

    def is_locked(self, lock_name: str) -> bool:
        """Check if lock is currently held (not expired)."""
        with self._sessions() as session:
            return LockRepository(session).is_locked(lock_name)

    def cleanup_expired(self) -> int:
        """Remove all expired locks. Returns count removed."""
        with self._sessions() as session:
            return LockRepository(session).cleanup_expired()
