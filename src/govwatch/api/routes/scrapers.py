"""Source status, configuration and manual run endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from ...core.config.models import SourceConfigUpdate, SourceName
from ...core.orchestrator import Orchestrator, RunOptions
from ..dependencies import get_orchestrator
from ..models import ErrorResponse, RunRequest, RunStartedResponse, SourceUpdateResponse

logger = logging.getLogger(__name__)
router = APIRouter()

VALID_SOURCES = {s.value for s in SourceName}


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg', 'valor inválido')}" if field else first.get("msg", "")


@router.get("/scrapers", summary="Source configuration and alert statistics")
async def get_status(orchestrator: Orchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.status()


@router.post(
    "/scrapers/run",
    responses={400: {"model": ErrorResponse}},
    summary="Run sources now",
)
async def run_scrapers(
    body: RunRequest | None = Body(default=None),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Any:
    body = body or RunRequest()

    if body.sources:
        for name in body.sources:
            if name.lower() not in VALID_SOURCES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Fuente inválida: {name}",
                )

    options = RunOptions(
        force=body.force,
        run_purge=body.run_purge,
        sources=[s.lower() for s in body.sources] if body.sources else None,
    )

    if body.background:
        session_id = orchestrator.run_in_background(options)
        return RunStartedResponse(session_id=session_id)

    result = await orchestrator.run(options)
    return result.to_dict()


@router.put(
    "/scrapers/{source}",
    response_model=SourceUpdateResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Update a source configuration",
)
async def update_source(
    source: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SourceUpdateResponse:
    name = source.lower()
    if name not in VALID_SOURCES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Fuente inválida")

    allowed = {k: v for k, v in payload.items() if k in ("enabled", "frequency", "retention_days")}
    try:
        update = SourceConfigUpdate.model_validate(allowed)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_validation_message(e),
        ) from e

    orchestrator.store.update(name, update)
    logger.info("Updated %s configuration: %s", name, update.model_dump(exclude_unset=True))

    return SourceUpdateResponse(
        source=name,
        config=orchestrator.store.get(name).model_dump(mode="json"),
    )
