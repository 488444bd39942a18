"""
HTTP surface: ingestion endpoint, parse-test and health.
"""

import pytest
from fastapi.testclient import TestClient

from fraglog import app as app_module
from fraglog.access import SourceAccess

from conftest import GG_LINE, HEADER


@pytest.fixture
def client(monkeypatch, coordinator):
    monkeypatch.setattr(app_module, "COORDINATOR", coordinator)
    monkeypatch.setattr(app_module, "ACCESS", SourceAccess.from_config("srv-a=s3cret,srv-open"))
    with TestClient(app_module.app) as c:
        yield c


class TestIngestEndpoint:

    def test_accepts_batch(self, client, coordinator, store):
        resp = client.post("/logs/srv-open", content=f"{GG_LINE}\n\n{GG_LINE}\n")
        assert resp.status_code == 200
        data = resp.json()
        assert data["received"] is True
        assert data["line_count"] == 2
        assert data["source_id"] == "srv-open"
        assert isinstance(data["timestamp"], int)

        coordinator.pool.drain()
        assert [e.event_kind for e in store.parsed_events] == ["chat-gg", "chat-gg"]
        assert store.sources["srv-open"]["client_address"]

    def test_key_checked(self, client):
        assert client.post("/logs/srv-a", content=GG_LINE).status_code == 401
        assert client.post("/logs/srv-a", params={"key": "nope"}, content=GG_LINE).status_code == 401
        assert client.post("/logs/srv-a", params={"key": "s3cret"}, content=GG_LINE).status_code == 200

    def test_unknown_source(self, client):
        assert client.post("/logs/srv-x", content=GG_LINE).status_code == 401

    def test_blank_source_id(self, client):
        assert client.post("/logs/%20", content=GG_LINE).status_code == 400

    @pytest.mark.parametrize("content", ["", "  \n \n"])
    def test_empty_body(self, client, content):
        assert client.post("/logs/srv-open", content=content).status_code == 400

    def test_request_id_header(self, client):
        resp = client.post("/logs/srv-open", content=GG_LINE, headers={"x-request-id": "abc"})
        assert resp.headers["x-fraglog-request-id"] == "abc"
        assert client.get("/health").headers["x-fraglog-request-id"]


class TestParseTest:

    def test_counts(self, client):
        logs = "\n".join([GG_LINE, "", "complete nonsense", HEADER + "something odd"])
        data = client.post("/parse-test", json={"logs": logs}).json()

        assert data["total_lines"] == 3
        assert data["parsed_count"] == 2
        assert data["failed_count"] == 1

        first, second, third = data["results"]
        assert first["line_number"] == 1
        assert first["event_kind"] == "chat-gg"
        assert second["line_number"] == 3
        assert second["success"] is False
        assert "no log header" in second["error"]
        assert third["event_kind"] == "unclassified"

    def test_envelope_stripped(self, client):
        data = client.post("/parse-test", json={"logs": "[2025-08-19T15:12:44Z] " + GG_LINE}).json()
        assert data["results"][0]["event_kind"] == "chat-gg"

    def test_does_not_store(self, client, store):
        client.post("/parse-test", json={"logs": GG_LINE})
        assert len(store.raw_lines) == 0


class TestHealth:

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["ok"] is True
        assert data["workers"] == 2
        assert data["queued"] >= 0
