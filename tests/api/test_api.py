"""Tests for the REST API: envelopes, problem responses, runs and alerts."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from dbqa.api.app import create_app
from dbqa.container import DbqaContainer
from dbqa.core.enums import ChannelType

from tests._support.fakes import RecordingChannel


@pytest.fixture
def container(settings):
    container = DbqaContainer(settings)
    for channel_type in ChannelType:
        container.dispatcher.register(RecordingChannel(channel_type))
    yield container
    container.close()


@pytest.fixture
def client(container):
    with TestClient(create_app(container=container)) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["store"]["healthy"] is True
        assert data["scheduler"]["healthy"] is False
        assert data["scheduler"]["backend"]["backend"] == "thread"


class TestQueries:
    def test_list_and_filter(self, client, make_query):
        make_query(name="a")
        make_query(name="b", execution_frequency="daily")

        body = client.get("/api/v1/queries").json()
        assert sorted(q["name"] for q in body["data"]) == ["a", "b"]
        assert body["page"] == {"limit": 50, "offset": 0, "has_more": False}

        daily = client.get("/api/v1/queries", params={"frequency": "daily"}).json()["data"]
        assert [q["name"] for q in daily] == ["b"]

        never = client.get("/api/v1/queries", params={"run_status": "never"}).json()["data"]
        assert len(never) == 2

    def test_pagination(self, client, make_query):
        for i in range(3):
            make_query(name=f"q{i}")
        body = client.get("/api/v1/queries", params={"limit": 2}).json()
        assert len(body["data"]) == 2
        assert body["page"]["has_more"] is True

    def test_get(self, client, make_query):
        query = make_query()
        data = client.get(f"/api/v1/queries/{query.id}").json()["data"]
        assert data["id"] == query.id
        assert data["execution_frequency"] == "manual"

    def test_not_found_is_problem_json(self, client):
        response = client.get("/api/v1/queries/missing")
        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        body = response.json()
        assert body["title"] == "Not Found"
        assert body["error_type"] == "NotFoundError"
        assert "missing" in body["detail"]

    def test_bad_run_status(self, client):
        assert client.get("/api/v1/queries", params={"run_status": "bogus"}).status_code == 422


class TestRun:
    def test_failing_run_raises_alert(self, client, container, make_query, make_rule):
        query = make_query()
        make_rule(query.id)

        response = client.post(f"/api/v1/queries/{query.id}/run")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is False
        assert data["result"]["status"] == "failure"
        assert data["result"]["metrics"]["value"] == 3.0
        assert [a["action"] for a in data["alerts"]] == ["created"]
        assert sorted(n["channel"] for n in data["notifications"]) == ["email", "webhook"]

        results = client.get(f"/api/v1/queries/{query.id}/results").json()["data"]
        assert [r["id"] for r in results] == [data["result"]["id"]]
        run_status = client.get("/api/v1/queries", params={"run_status": "failure"}).json()["data"]
        assert [q["id"] for q in run_status] == [query.id]

    def test_error_run_is_still_200(self, client, make_query):
        query = make_query(query="SELECT * FROM nowhere")
        data = client.post(f"/api/v1/queries/{query.id}/run").json()["data"]
        assert data["success"] is False
        assert data["result"]["status"] == "error"
        assert data["result"]["error_message"]

    def test_busy_without_wait_is_409(self, client, container, make_query):
        query = make_query()
        container.registry.try_acquire(query.id)
        response = client.post(f"/api/v1/queries/{query.id}/run", params={"wait": False})
        assert response.status_code == 409
        assert response.json()["error_type"] == "QueryBusyError"

    def test_run_unknown_query(self, client):
        assert client.post("/api/v1/queries/missing/run").status_code == 404

    def test_cancel(self, client, container, make_query):
        query = make_query()
        idle = client.post(f"/api/v1/queries/{query.id}/cancel").json()["data"]
        assert idle == {"query_id": query.id, "cancelled": False}

        handle = container.registry.try_acquire(query.id)
        busy = client.post(f"/api/v1/queries/{query.id}/cancel").json()["data"]
        assert busy["cancelled"] is True
        assert handle.cancelled is True

    def test_results_filter(self, client, make_query):
        query = make_query()
        client.post(f"/api/v1/queries/{query.id}/run")
        ok = client.get(f"/api/v1/queries/{query.id}/results", params={"status": "success"})
        assert ok.json()["data"] == []


class TestAlerts:
    @pytest.fixture
    def alert(self, container, make_query):
        query = make_query()
        return container.alert_engine.create_manual_alert(query.id, "manual check", severity="low")

    def test_list_and_get(self, client, alert):
        listed = client.get("/api/v1/alerts", params={"status": "active"}).json()["data"]
        assert [a["id"] for a in listed] == [alert.id]
        data = client.get(f"/api/v1/alerts/{alert.id}").json()["data"]
        assert data["severity"] == "low"

    def test_snooze_for_minutes(self, client, alert):
        data = client.post(f"/api/v1/alerts/{alert.id}/snooze", json={"minutes": 30}).json()["data"]
        assert data["status"] == "snoozed"
        assert data["snoozed_until"]

    def test_snooze_until(self, client, alert):
        response = client.post(
            f"/api/v1/alerts/{alert.id}/snooze", json={"until": "2099-01-01T00:00:00Z"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["snoozed_until"].startswith("2099-01-01T00:00:00")

    @pytest.mark.parametrize(
        "body", [{}, {"minutes": 5, "until": "2099-01-01T00:00:00Z"}, {"minutes": 0}]
    )
    def test_snooze_validation(self, client, alert, body):
        assert client.post(f"/api/v1/alerts/{alert.id}/snooze", json=body).status_code == 422

    def test_resolve(self, client, alert):
        data = client.post(f"/api/v1/alerts/{alert.id}/resolve").json()["data"]
        assert data["status"] == "resolved"
        assert data["resolved_at"]
        resolved = client.get("/api/v1/alerts", params={"status": "resolved"}).json()["data"]
        assert len(resolved) == 1

    def test_notifications(self, client, make_query, make_rule):
        query = make_query()
        make_rule(query.id)
        alert_id = client.post(f"/api/v1/queries/{query.id}/run").json()["data"]["alerts"][0]["alert_id"]

        sent = client.get(f"/api/v1/alerts/{alert_id}/notifications").json()["data"]
        assert sorted(n["channel"] for n in sent) == ["email", "webhook"]
        failed = client.get(
            f"/api/v1/alerts/{alert_id}/notifications", params={"status": "failed"}
        ).json()["data"]
        assert failed == []

    def test_unknown_alert(self, client):
        assert client.post("/api/v1/alerts/missing/resolve").status_code == 404
        assert client.get("/api/v1/alerts/missing/notifications").status_code == 404
