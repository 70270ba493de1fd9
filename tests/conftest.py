"""Pytest fixtures for govwatch tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from govwatch.core.normalize.records import NormalizedAlert
from govwatch.core.sessions.bus import SessionLogBus
from govwatch.persistence.db import create_db_engine, make_session_factory, scoped_sessions
from govwatch.persistence.models import Base


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    """Session scope committing on exit, backed by the in-memory engine."""
    return scoped_sessions(make_session_factory(engine))


@pytest.fixture
def bus() -> SessionLogBus:
    bus = SessionLogBus(ttl_seconds=60)
    yield bus
    bus.close()


class RecordingLogger:
    """Stand-in for a SessionLogger that keeps every line."""

    def __init__(self, source: str = "test"):
        self.source = source
        self.lines: list[tuple[str, str, dict[str, Any] | None]] = []

    def _add(self, level: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.lines.append((level, message, metadata))

    def info(self, message, metadata=None):
        self._add("info", message, metadata)

    def success(self, message, metadata=None):
        self._add("success", message, metadata)

    def warning(self, message, metadata=None):
        self._add("warning", message, metadata)

    def error(self, message, metadata=None):
        self._add("error", message, metadata)

    def debug(self, message, metadata=None):
        self._add("debug", message, metadata)

    def bind(self, source: str) -> "RecordingLogger":
        return self

    def messages(self, level: str | None = None) -> list[str]:
        return [m for lvl, m, _ in self.lines if level is None or lvl == level]


@pytest.fixture
def log() -> RecordingLogger:
    return RecordingLogger()


def make_alert(**overrides: Any) -> NormalizedAlert:
    data: dict[str, Any] = {
        "titulo": "Licitación pública para adquisición de equipos de cómputo",
        "contenido": "Adquisición de laptops para sede central",
        "fuente": "SEACE",
        "fecha_publicacion": datetime(2024, 3, 1, 10, 0),
        "tipo": "LICITACION",
        "url_origen": "https://prod2.seace.gob.pe/detalle/1",
        "region": None,
        "entidad": None,
        "monto": None,
    }
    data.update(overrides)
    return NormalizedAlert(**data)


@pytest.fixture
def alert_factory():
    return make_alert
