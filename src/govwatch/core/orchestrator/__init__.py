"""Orchestrator - run coordination, distribution and purge."""

from .runner import (
    Orchestrator,
    OrchestratorResult,
    RunOptions,
    SourceRunResult,
    build_jobs,
    create_orchestrator,
    run_sources,
)

__all__ = [
    "Orchestrator",
    "OrchestratorResult",
    "RunOptions",
    "SourceRunResult",
    "build_jobs",
    "create_orchestrator",
    "run_sources",
]
