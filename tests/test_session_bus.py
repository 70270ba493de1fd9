"""Tests for the session log bus."""

from __future__ import annotations

import asyncio
import logging

from govwatch.core.sessions.bus import (
    SESSION_END_PREFIX,
    LogLevel,
    SessionLogBus,
    SessionStatus,
)


def test_start_session_logs_opening_entry(bus):
    session_id = bus.start_session("osce")

    session = bus.get_session(session_id)
    assert session is not None
    assert session.status == SessionStatus.RUNNING
    assert session.logs[0].message == "Iniciando sesión de scraping para OSCE"


def test_session_ids_are_unique(bus):
    ids = {bus.start_session("osce") for _ in range(20)}
    assert len(ids) == 20


def test_entries_keep_append_order(bus):
    session_id = bus.start_session("sunat")
    log = bus.logger(session_id, "sunat")
    for i in range(5):
        log.info(f"paso {i}")

    entries = bus.get_session(session_id).logs
    ids = [e.id for e in entries]
    assert ids == sorted(ids)
    assert [e.message for e in entries[1:]] == [f"paso {i}" for i in range(5)]


def test_end_session_sets_status_once(bus):
    session_id = bus.start_session("seace")
    bus.end_session(session_id, success=False)
    bus.end_session(session_id, success=True)

    session = bus.get_session(session_id)
    assert session.status == SessionStatus.FAILED
    assert session.ended_at is not None


def test_listeners_receive_end_signal(bus):
    session_id = bus.start_session("osce")
    received = []
    bus.subscribe(session_id, received.append)

    bus.log(session_id, LogLevel.WARNING, "osce", "lento")
    bus.end_session(session_id, success=True)

    assert received[0].message == "lento"
    assert received[-1].is_session_end
    assert received[-1].message == f"{SESSION_END_PREFIX}:completed"


def test_unsubscribe_stops_delivery(bus):
    session_id = bus.start_session("osce")
    received = []
    unsubscribe = bus.subscribe(session_id, received.append)
    unsubscribe()

    bus.log(session_id, "info", "osce", "nadie escucha")
    assert received == []


def test_unknown_session_still_recorded_in_recent(bus):
    bus.log("missing", LogLevel.INFO, "osce", "huérfano")

    assert bus.get_recent_logs(1)[0].message == "huérfano"
    assert bus.get_session("missing") is None


def test_recent_logs_bounded():
    bus = SessionLogBus(max_recent=10)
    session_id = bus.start_session("osce")
    for i in range(30):
        bus.log(session_id, "info", "osce", str(i))

    recent = bus.get_recent_logs(100)
    assert len(recent) == 10
    assert recent[-1].message == "29"
    assert bus.get_recent_logs(0) == []
    bus.close()


def test_logs_since_returns_only_newer_entries(bus):
    session_id = bus.start_session("osce")
    log = bus.logger(session_id, "osce")
    log.info("uno")
    marker = bus.get_session(session_id).logs[-1].id
    log.info("dos")
    log.error("tres")

    newer = bus.logs_since(session_id, marker)
    assert [e.message for e in newer] == ["dos", "tres"]
    assert bus.logs_since("missing", 0) == []


def test_get_active_session_filters_by_source(bus):
    first = bus.start_session("osce")
    second = bus.start_session("sunat")
    bus.end_session(second, success=True)

    assert bus.get_active_session().id == first
    assert bus.get_active_session("sunat") is None


def test_finished_session_expires_after_ttl():
    bus = SessionLogBus(ttl_seconds=0)
    session_id = bus.start_session("osce")
    bus.end_session(session_id, success=True)

    assert bus.get_session(session_id) is None
    bus.close()


def test_success_forwarded_as_info_with_flag(caplog):
    bus = SessionLogBus()
    session_id = bus.start_session("osce")
    with caplog.at_level(logging.INFO, logger="govwatch.sessions"):
        bus.logger(session_id, "osce").success("listo")

    record = [r for r in caplog.records if r.getMessage() == "listo"][0]
    assert record.levelno == logging.INFO
    assert record.success is True
    assert record.source == "osce"
    bus.close()


async def test_follow_yields_until_end():
    bus = SessionLogBus(ttl_seconds=60)
    session_id = bus.start_session("osce")
    seen = []

    async def consume():
        async for entry in bus.follow(session_id):
            seen.append(entry.message)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    bus.logger(session_id, "osce").info("uno")
    bus.end_session(session_id, success=True)
    await asyncio.wait_for(task, timeout=1)

    assert seen[0] == "uno"
    assert seen[-1].startswith(SESSION_END_PREFIX)
    bus.close()


async def test_follow_finished_session_yields_only_end():
    bus = SessionLogBus(ttl_seconds=60)
    session_id = bus.start_session("osce")
    bus.end_session(session_id, success=False)

    entries = [entry async for entry in bus.follow(session_id)]
    assert len(entries) == 1
    assert entries[0].message == f"{SESSION_END_PREFIX}:failed"
    bus.close()
