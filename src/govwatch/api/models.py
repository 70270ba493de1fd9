"""
Request and response models for the admin API.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    detail: str


class RunRequest(BaseModel):
    """Manual run trigger. Manual runs force by default and skip the purge."""

    sources: list[str] | None = None
    force: bool = True
    run_purge: bool = False
    background: bool = False


class RunStartedResponse(BaseModel):
    session_id: str
    status: str = "started"


class SourceUpdateResponse(BaseModel):
    success: bool = True
    source: str
    config: dict[str, Any] = Field(default_factory=dict)
