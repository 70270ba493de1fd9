"""Tests for the admin API."""

from __future__ import annotations

import time

import orjson
import pytest
from fastapi.testclient import TestClient

from govwatch.api.app import create_app
from govwatch.core.config.models import SourceName
from govwatch.core.orchestrator import Orchestrator
from govwatch.core.portals.base import SourceJob, SourceOutput
from govwatch.persistence.repo import SubscriptionRepository

from tests.conftest import make_alert


class CannedJob(SourceJob):
    def __init__(self, source: SourceName, alerts=None, error: Exception | None = None):
        self.source = source
        self.alerts = alerts or []
        self.error = error

    async def collect(self, log):
        log.info("recolectando")
        if self.error is not None:
            raise self.error
        return SourceOutput(alerts=list(self.alerts))


@pytest.fixture
def orchestrator(sessions, bus):
    with sessions() as session:
        SubscriptionRepository(session).create("todo")
    jobs = {
        "seace": CannedJob(SourceName.SEACE, error=RuntimeError("portal caído")),
        "osce": CannedJob(SourceName.OSCE, [make_alert(fuente="OSCE", tipo="NOTICIA")]),
        "sunat": CannedJob(SourceName.SUNAT),
    }
    return Orchestrator(sessions, bus, jobs=jobs)


@pytest.fixture
def client(orchestrator):
    with TestClient(create_app(orchestrator=orchestrator)) as client:
        yield client


def sse_events(text: str) -> list[dict]:
    return [orjson.loads(line[len("data: "):]) for line in text.splitlines() if line.startswith("data: ")]


class TestScrapers:
    def test_status(self, client):
        response = client.get("/api/scrapers")

        assert response.status_code == 200
        data = response.json()
        assert set(data["scrapers"]) == {"seace", "osce", "sunat"}
        assert data["scrapers"]["osce"]["frequency"] == "daily"
        assert data["stats"]["osce"] == {"total": 0, "today": 0}

    def test_manual_run_forces_selected_source(self, client):
        response = client.post("/api/scrapers/run", json={"sources": ["OSCE"]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"]
        assert list(data["scrapers"]) == ["osce"]
        assert data["scrapers"]["osce"]["alerts_distributed"] == 1
        assert data["purge"] is None

    def test_run_all_reports_failures(self, client):
        data = client.post("/api/scrapers/run").json()

        assert not data["success"]
        assert data["errors"] == ["SEACE: portal caído"]
        assert data["total_alerts_found"] == 1

    def test_unknown_source_rejected(self, client):
        response = client.post("/api/scrapers/run", json={"sources": ["minsa"]})

        assert response.status_code == 400
        assert response.json()["detail"] == "Fuente inválida: minsa"

    def test_background_run(self, client):
        response = client.post("/api/scrapers/run", json={"sources": ["osce"], "background": True})

        assert response.status_code == 200
        session_id = response.json()["session_id"]
        for _ in range(100):
            history = client.get(
                "/api/scrapers/logs", params={"action": "history", "session_id": session_id}
            ).json()
            if history["session"]["status"] != "running":
                break
            time.sleep(0.01)
        assert history["session"]["status"] == "completed"
        assert history["session"]["source"] == "osce"

    def test_update_source(self, client):
        response = client.put("/api/scrapers/SUNAT", json={"enabled": True, "frequency": "hourly", "foo": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "sunat"
        assert body["config"]["enabled"] is True
        assert body["config"]["frequency"] == "hourly"

        status = client.get("/api/scrapers").json()
        assert status["scrapers"]["sunat"]["enabled"] is True

    @pytest.mark.parametrize(
        "payload",
        [{"frequency": "monthly"}, {"retention_days": 0}, {"retention_days": 400}],
    )
    def test_update_validation(self, client, payload):
        assert client.put("/api/scrapers/osce", json=payload).status_code == 400

    def test_update_unknown_source(self, client):
        response = client.put("/api/scrapers/minsa", json={"enabled": True})

        assert response.status_code == 400
        assert response.json()["detail"] == "Fuente inválida"


class TestLogs:
    def test_sessions_and_recent(self, client):
        session_id = client.post("/api/scrapers/run", json={"sources": ["osce"]}).json()["session_id"]

        sessions = client.get("/api/scrapers/logs", params={"action": "sessions"}).json()["sessions"]
        assert [s["id"] for s in sessions] == [session_id]

        recent = client.get("/api/scrapers/logs", params={"action": "recent", "limit": 5}).json()["logs"]
        assert 0 < len(recent) <= 5

    def test_history_after_id(self, client):
        session_id = client.post("/api/scrapers/run", json={"sources": ["osce"]}).json()["session_id"]
        params = {"action": "history", "session_id": session_id}

        full = client.get("/api/scrapers/logs", params=params).json()
        assert full["session"]["status"] == "completed"
        first_id = full["logs"][0]["id"]

        rest = client.get("/api/scrapers/logs", params={**params, "after_id": first_id}).json()
        assert len(rest["logs"]) == len(full["logs"]) - 1
        assert all(entry["id"] > first_id for entry in rest["logs"])

    def test_session_id_required(self, client):
        response = client.get("/api/scrapers/logs", params={"action": "history"})
        assert response.status_code == 400

    def test_unknown_session(self, client):
        response = client.get("/api/scrapers/logs", params={"action": "history", "session_id": "nope"})
        assert response.status_code == 404

    def test_stream_of_finished_session(self, client):
        session_id = client.post("/api/scrapers/run", json={"sources": ["seace"]}).json()["session_id"]

        response = client.get("/api/scrapers/logs", params={"session_id": session_id})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert events[0]["message"].startswith("Iniciando sesión de scraping")
        assert events[-1]["message"] == "__SESSION_END__:failed"
