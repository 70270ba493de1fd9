"""Database persistence layer."""

from .db import get_engine, get_session, init_db, make_session_factory, scoped_sessions
from .models import (
    AlertHistory,
    AlertSubscription,
    Base,
    RunLock,
    Setting,
    Tender,
    TenderStage,
)
from .repo import (
    AlertRepository,
    LockRepository,
    PurgeError,
    SettingsRepository,
    SubscriptionRepository,
    TenderRepository,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "make_session_factory",
    "scoped_sessions",
    "AlertHistory",
    "AlertSubscription",
    "Base",
    "RunLock",
    "Setting",
    "Tender",
    "TenderStage",
    "AlertRepository",
    "LockRepository",
    "PurgeError",
    "SettingsRepository",
    "SubscriptionRepository",
    "TenderRepository",
]
