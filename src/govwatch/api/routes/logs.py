"""Session log endpoints: listings, polling history and a live SSE stream.

The session id acts as the access token for a session's logs, which only
live in memory until the session expires.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import orjson
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from ...core.sessions import SESSION_END_PREFIX, SYSTEM_SOURCE, LogEntry, Session, SessionLogBus
from ..dependencies import get_bus

router = APIRouter()


def _sse(data: dict[str, Any]) -> bytes:
    return b"data: " + orjson.dumps(data) + b"\n\n"


async def stream_session(bus: SessionLogBus, session: Session) -> AsyncIterator[bytes]:
    """Replay a session's entries, then push new ones until its end signal."""
    queue: asyncio.Queue[LogEntry] = asyncio.Queue()
    unsubscribe = bus.subscribe(session.id, queue.put_nowait)
    try:
        backlog = list(session.logs)
        for entry in backlog:
            yield _sse(entry.to_dict())

        if not session.is_running:
            yield _sse({
                "source": SYSTEM_SOURCE,
                "level": "info",
                "message": f"{SESSION_END_PREFIX}:{session.status.value}",
            })
            return

        last_id = backlog[-1].id if backlog else 0
        while True:
            entry = await queue.get()
            if entry.id <= last_id:
                continue
            yield _sse(entry.to_dict())
            if entry.is_session_end:
                break
    finally:
        unsubscribe()


@router.get("/scrapers/logs", summary="Session logs")
async def get_logs(
    action: str | None = Query(default=None, description="sessions, recent, history or stream"),
    session_id: str | None = Query(default=None),
    after_id: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    bus: SessionLogBus = Depends(get_bus),
) -> Any:
    if action == "sessions":
        return {"sessions": [s.to_dict() for s in bus.get_all_sessions()]}

    if action == "recent":
        return {"logs": [entry.to_dict() for entry in bus.get_recent_logs(limit)]}

    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Se requiere session_id",
        )

    session = bus.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sesión no encontrada")

    if action == "history":
        return {
            "session": session.to_dict(),
            "logs": [entry.to_dict() for entry in bus.logs_since(session_id, after_id)],
        }

    return StreamingResponse(
        stream_session(bus, session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
