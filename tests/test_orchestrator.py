"""Tests for the run orchestrator."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from govwatch.core.config.models import SourceName
from govwatch.core.orchestrator import Orchestrator, RunOptions
from govwatch.core.portals.base import SourceJob, SourceOutput
from govwatch.core.sessions.bus import SessionStatus
from govwatch.persistence.repo import AlertRepository, SubscriptionRepository

from tests.conftest import make_alert


class FakeJob(SourceJob):
    """Job returning canned alerts, or raising."""

    def __init__(self, source: SourceName, alerts=None, error: Exception | None = None):
        self.source = source
        self.alerts = alerts or []
        self.error = error
        self.calls = 0

    async def collect(self, log):
        self.calls += 1
        log.info("recolectando")
        if self.error is not None:
            raise self.error
        return SourceOutput(alerts=list(self.alerts), metadata={"pages": 1})


def fake_jobs(**overrides):
    jobs = {
        SourceName.SEACE.value: FakeJob(SourceName.SEACE),
        SourceName.OSCE.value: FakeJob(
            SourceName.OSCE, [make_alert(fuente="OSCE", tipo="NOTICIA", titulo="Comunicado OSCE")]
        ),
        SourceName.SUNAT.value: FakeJob(SourceName.SUNAT),
    }
    jobs.update(overrides)
    return jobs


@pytest.fixture
def subscribed(sessions):
    with sessions() as session:
        SubscriptionRepository(session).create("todo")
    return sessions


@pytest.fixture
def orchestrator(subscribed, bus):
    return Orchestrator(subscribed, bus, jobs=fake_jobs())


class TestRun:
    async def test_forced_run_collects_and_distributes(self, orchestrator):
        result = await orchestrator.run(RunOptions(force=True, run_purge=False))

        assert result.success
        assert result.errors == []
        assert result.results["osce"].alerts_found == 1
        assert result.results["osce"].alerts_distributed == 1
        assert result.total_alerts_found == 1
        assert result.total_alerts_distributed == 1
        assert result.purge is None

    async def test_disabled_sources_skipped_without_bookkeeping(self, orchestrator):
        result = await orchestrator.run(RunOptions(force=False, run_purge=False))

        assert result.success
        for name, outcome in result.results.items():
            assert outcome.skipped, name
            assert outcome.alerts_found == 0
            assert orchestrator.jobs[name].calls == 0
        assert orchestrator.store.get("osce").last_run is None

    async def test_enabled_source_not_due_is_skipped(self, orchestrator):
        orchestrator.store.update(
            "osce", {"enabled": True, "frequency": "daily", "last_run": datetime.utcnow() - timedelta(hours=2)}
        )

        result = await orchestrator.run(RunOptions(sources=["osce"], run_purge=False))

        assert result.results["osce"].skipped
        assert orchestrator.jobs["osce"].calls == 0

    async def test_enabled_due_source_runs(self, orchestrator):
        orchestrator.store.update("osce", {"enabled": True})

        result = await orchestrator.run(RunOptions(sources=["osce"], run_purge=False))

        assert not result.results["osce"].skipped
        assert orchestrator.jobs["osce"].calls == 1
        config = orchestrator.store.get("osce")
        assert config.last_run is not None
        assert config.last_success == config.last_run
        assert config.last_error is None

    async def test_failing_source_is_isolated(self, subscribed, bus):
        jobs = fake_jobs(seace=FakeJob(SourceName.SEACE, error=RuntimeError("portal caído")))
        orchestrator = Orchestrator(subscribed, bus, jobs=jobs)

        result = await orchestrator.run(RunOptions(force=True, run_purge=False))

        assert not result.success
        assert result.errors == ["SEACE: portal caído"]
        assert result.results["seace"].success is False
        assert result.results["seace"].alerts_found == 0
        assert result.results["osce"].success
        assert result.results["osce"].alerts_distributed == 1

        seace = orchestrator.store.get("seace")
        assert seace.last_error == "portal caído"
        assert seace.last_success is None

    async def test_only_requested_sources_run(self, orchestrator):
        result = await orchestrator.run(RunOptions(force=True, run_purge=False, sources=["SUNAT"]))

        assert list(result.results) == ["sunat"]
        assert orchestrator.jobs["osce"].calls == 0

    async def test_invalid_source_reported(self, orchestrator):
        result = await orchestrator.run(RunOptions(force=True, run_purge=False, sources=["sbs"]))

        assert not result.success
        assert result.errors[0].startswith("Fuente inválida")
        assert result.results == {}

    async def test_session_ends_with_run_status(self, subscribed, bus):
        jobs = fake_jobs(sunat=FakeJob(SourceName.SUNAT, error=ValueError("x")))
        orchestrator = Orchestrator(subscribed, bus, jobs=jobs)

        result = await orchestrator.run(RunOptions(force=True, run_purge=False))

        session = bus.get_session(result.session_id)
        assert session.source == "all"
        assert session.status == SessionStatus.FAILED
        assert any("Error en SUNAT" in e.message for e in session.logs)

    async def test_single_source_session_named_after_source(self, orchestrator, bus):
        result = await orchestrator.run(RunOptions(force=True, run_purge=False, sources=["osce"]))

        assert bus.get_session(result.session_id).source == "osce"

    async def test_result_serializes_per_source(self, orchestrator):
        result = await orchestrator.run(RunOptions(force=True, run_purge=False))
        data = result.to_dict()

        assert set(data["scrapers"]) == {"seace", "osce", "sunat"}
        assert data["scrapers"]["osce"]["source"] == "OSCE"
        assert data["total_alerts_found"] == 1

    async def test_background_run_tracked_until_done(self, orchestrator, bus):
        session_id = orchestrator.run_in_background(RunOptions(force=True, run_purge=False))

        task = orchestrator.background_run(session_id)
        assert task is not None
        result = await task
        await orchestrator.wait_background()

        assert result.session_id == session_id
        assert orchestrator.background_run(session_id) is None
        assert bus.get_session(session_id).status == SessionStatus.COMPLETED


class TestPurge:
    def _alert(self, sessions, *, fuente="SEACE", age_days=0, read=False):
        with sessions() as session:
            repo = AlertRepository(session)
            row = repo.create(make_alert(fuente=fuente, titulo=f"{fuente} {age_days} {read}"))
            row.created_at = datetime.utcnow() - timedelta(days=age_days)
            row.is_read = read
            return row.id

    def _ids(self, sessions):
        with sessions() as session:
            return {row.id for row in AlertRepository(session).list_recent(limit=100)}

    def test_old_read_alert_deleted_unread_kept(self, sessions, bus):
        old_read = self._alert(sessions, age_days=45, read=True)
        old_unread = self._alert(sessions, age_days=45, read=False)
        recent_read = self._alert(sessions, age_days=5, read=True)

        orchestrator = Orchestrator(sessions, bus, jobs={})
        deleted = orchestrator.purge()

        assert deleted["seace"] == 1
        assert self._ids(sessions) == {old_unread, recent_read}
        assert old_read not in self._ids(sessions)

    def test_retention_is_per_source(self, sessions, bus):
        osce = self._alert(sessions, fuente="OSCE", age_days=10, read=True)
        sunat = self._alert(sessions, fuente="SUNAT", age_days=10, read=True)

        orchestrator = Orchestrator(sessions, bus, jobs={})
        orchestrator.store.update("osce", {"retention_days": 7})

        deleted = orchestrator.purge()

        assert deleted == {"seace": 0, "osce": 1, "sunat": 0}
        assert self._ids(sessions) == {sunat}
        assert osce not in self._ids(sessions)

    async def test_run_purges_after_jobs(self, sessions, bus):
        self._alert(sessions, age_days=45, read=True)

        orchestrator = Orchestrator(sessions, bus, jobs=fake_jobs())
        result = await orchestrator.run(RunOptions(force=True, run_purge=True))

        assert result.purge["seace"] == 1

    async def test_purge_failure_reported_not_raised(self, sessions, bus, monkeypatch):
        def broken(self, fuente, cutoff):
            raise OperationalError("DELETE", {}, Exception("database is locked"))

        monkeypatch.setattr(AlertRepository, "purge_read_older_than", broken)
        orchestrator = Orchestrator(sessions, bus, jobs=fake_jobs())

        result = await orchestrator.run(RunOptions(force=True, run_purge=True))

        assert not result.success
        assert len(result.errors) == 3
        assert all(e.startswith("Purge: ") for e in result.errors)
        assert result.purge == {}

    async def test_unreadable_retention_config_reported_not_raised(self, sessions, bus, monkeypatch):
        orchestrator = Orchestrator(sessions, bus, jobs=fake_jobs())
        read_config = orchestrator.store.get
        reads = []

        def flaky_get(source):
            reads.append(source)
            if len(reads) > len(SourceName):
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return read_config(source)

        monkeypatch.setattr(orchestrator.store, "get", flaky_get)

        result = await orchestrator.run(RunOptions(force=True, run_purge=True))

        assert not result.success
        assert result.results["seace"].success
        assert len(result.errors) == 3
        assert all(e.startswith("Purge: ") for e in result.errors)
        assert bus.get_session(result.session_id).status == SessionStatus.FAILED


class TestStatus:
    def test_status_reports_config_and_counts(self, sessions, bus):
        with sessions() as session:
            repo = AlertRepository(session)
            repo.create(make_alert(fuente="OSCE"))
            old = repo.create(make_alert(fuente="OSCE", titulo="antigua"))
            old.created_at = datetime.utcnow() - timedelta(days=3)

        orchestrator = Orchestrator(sessions, bus, jobs={})
        orchestrator.store.update("sunat", {"enabled": True, "frequency": "hourly"})

        report = orchestrator.status()

        assert report["scrapers"]["sunat"]["enabled"] is True
        assert report["scrapers"]["sunat"]["frequency"] == "hourly"
        assert report["scrapers"]["seace"]["last_run"] is None
        assert report["stats"]["osce"] == {"total": 2, "today": 1}
        assert report["stats"]["seace"] == {"total": 0, "today": 0}
