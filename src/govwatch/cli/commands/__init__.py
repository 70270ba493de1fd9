"""CLI command modules."""

from . import config, db, run, schedule

__all__ = [
    "config",
    "db",
    "run",
    "schedule",
]
