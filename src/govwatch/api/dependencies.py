"""
Dependency injection for FastAPI endpoints.

The bus and orchestrator are created by the application lifespan and
kept on ``app.state``.
"""

from __future__ import annotations

from fastapi import Request

from ..core.orchestrator import Orchestrator
from ..core.sessions import SessionLogBus


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_bus(request: Request) -> SessionLogBus:
    return request.app.state.orchestrator.bus
