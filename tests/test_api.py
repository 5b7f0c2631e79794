"""Tests for the FastAPI server."""

import pytest
from fastapi.testclient import TestClient

from iwu.api.server import create_app
from iwu.config.settings import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "data", request_delay_seconds=0)


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


def new_case(client, **fields):
    payload = {"title": "Deeming practices", "category": "wsib", "severity": "high", **fields}
    response = client.post("/api/cases", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def run_workflow(client, case_id, *actions):
    for action in actions:
        response = client.post(f"/api/cases/{case_id}/workflow", json={"action": action, "actor": "reviewer"})
        assert response.status_code == 200, response.json()
    return response.json()


class TestEnvelope:
    """Uniform response shape and error mapping."""

    def test_unknown_route(self, client):
        response = client.get("/api/nothing")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_method_not_allowed(self, client):
        response = client.delete("/api/stats")

        assert response.status_code == 405
        assert response.json()["success"] is False

    def test_production_disables_api(self, tmp_path):
        client = TestClient(create_app(Settings(data_dir=tmp_path, environment="production")))
        response = client.get("/api/alerts")

        assert response.status_code == 403
        assert "production" in response.json()["error"]

    def test_bad_query_parameter(self, client):
        response = client.get("/api/cases", params={"page": 0})

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestAlertsApi:
    """List, create, fetch, acknowledge."""

    def test_create_and_list(self, client):
        client.post("/api/alerts", json={"title": "Bill 124 passed", "severity": "critical"})
        client.post("/api/alerts", json={"title": "Policy page edited", "severity": "high"})

        body = client.get("/api/alerts").json()

        assert body["success"] is True
        assert len(body["data"]) == 2
        assert body["stats"] == {"total": 2, "critical": 1, "high": 1, "unacknowledged": 2}
        assert body["pagination"]["totalItems"] == 2
        assert "items" not in body["pagination"]

    def test_filter_and_search(self, client):
        client.post("/api/alerts", json={"title": "Bill 124 passed", "severity": "critical"})
        client.post("/api/alerts", json={"title": "Policy page edited", "severity": "high"})

        assert len(client.get("/api/alerts", params={"severity": "high"}).json()["data"]) == 1
        found = client.get("/api/alerts", params={"q": "bill 124"}).json()["data"]
        assert [a["title"] for a in found] == ["Bill 124 passed"]

    def test_invalid_alert(self, client):
        response = client.post("/api/alerts", json={"severity": "critical"})

        assert response.status_code == 400
        assert "title" in response.json()["error"]

    def test_acknowledge(self, client):
        alert = client.post("/api/alerts", json={"title": "x"}).json()["data"]

        response = client.put(f"/api/alerts/{alert['id']}", json={"action": "acknowledge"})

        assert response.status_code == 200
        assert response.json()["data"]["acknowledged"] is True
        assert client.get(f"/api/alerts/{alert['id']}").json()["data"]["acknowledged"] is True

    def test_unknown_alert_action(self, client):
        alert = client.post("/api/alerts", json={"title": "x"}).json()["data"]
        assert client.put(f"/api/alerts/{alert['id']}", json={"action": "delete"}).status_code == 400

    def test_missing_alert(self, client):
        assert client.get("/api/alerts/nope").status_code == 404
        assert client.put("/api/alerts/nope", json={"action": "acknowledge"}).status_code == 404


class TestCasesApi:
    """CRUD, workflow and bundles."""

    def test_create_requires_fields(self, client):
        response = client.post("/api/cases", json={"title": "No category"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_get_includes_provenance(self, client):
        case = new_case(client)
        data = client.get(f"/api/cases/{case['id']}").json()["data"]

        assert data["status"] == "DRAFT"
        assert data["evidence"] == []
        assert [e["action"] for e in data["provenance"]] == ["CREATED"]

    def test_list_filter_and_sort(self, client):
        new_case(client, title="B case", category="odsp")
        new_case(client, title="A case", category="wsib")

        data = client.get("/api/cases", params={"sort": "title", "direction": "asc"}).json()["data"]
        assert [c["title"] for c in data] == ["A case", "B case"]
        assert len(client.get("/api/cases", params={"category": "odsp"}).json()["data"]) == 1

    def test_update_cannot_change_status(self, client):
        case = new_case(client)

        response = client.put(f"/api/cases/{case['id']}", json={"status": "PUBLISHED"})
        assert response.status_code == 400

        response = client.put(f"/api/cases/{case['id']}", json={"summary": "Updated"})
        assert response.json()["data"]["summary"] == "Updated"

    def test_workflow(self, client):
        case = new_case(client)
        body = run_workflow(client, case["id"], "submit", "approve", "publish")

        assert body["data"]["status"] == "PUBLISHED"
        assert body["data"]["approved_by"] == "reviewer"
        assert body["message"] == "Case publish succeeded"

    def test_invalid_transition(self, client):
        case = new_case(client)
        response = client.post(f"/api/cases/{case['id']}/workflow", json={"action": "publish"})

        assert response.status_code == 400
        assert "APPROVED" in response.json()["error"]

    def test_workflow_requires_action(self, client):
        case = new_case(client)
        assert client.post(f"/api/cases/{case['id']}/workflow", json={}).status_code == 400

    def test_delete_retracts(self, client):
        case = new_case(client)

        response = client.delete(f"/api/cases/{case['id']}")

        assert response.json()["data"]["status"] == "RETRACTED"
        assert client.get(f"/api/cases/{case['id']}").status_code == 200

    def test_missing_case(self, client):
        assert client.get("/api/cases/nope").status_code == 404
        assert client.delete("/api/cases/nope").status_code == 404
        assert client.post("/api/cases/nope/workflow", json={"action": "submit"}).status_code == 404

    def test_bundle_requires_published(self, client):
        case = new_case(client)
        assert client.get(f"/api/evidence/bundle/{case['id']}").status_code == 403
        assert client.get("/api/evidence/bundle/nope").status_code == 404

    def test_bundle_download(self, client):
        case = new_case(client, source_urls=["https://www.wsib.ca/en/policy"])
        run_workflow(client, case["id"], "submit", "approve", "publish")

        response = client.get(f"/api/evidence/bundle/{case['id']}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert "IWU-Evidence-Bundle-" in response.headers["content-disposition"]
        assert len(response.headers["x-bundle-hash"]) == 64
        assert response.content[:2] == b"PK"


class TestTargetsAndStats:
    """Targets, scan history and stats."""

    def test_targets(self, client):
        response = client.post("/api/targets", json={"name": "WSIB", "type": "agency", "threat_level": "critical"})
        assert response.status_code == 201

        data = client.get("/api/targets", params={"threat_level": "critical"}).json()["data"]
        assert [t["name"] for t in data] == ["WSIB"]

    def test_invalid_target(self, client):
        assert client.post("/api/targets", json={"name": "WSIB"}).status_code == 400

    def test_scan_history_empty(self, client):
        assert client.get("/api/scan").json()["data"] == []

    def test_run_scan_unknown_source(self, client, settings, tmp_path):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "sources.yaml").write_text(
            "sources:\n  - id: lobbyists\n    name: Lobbyists\n    scraper: watchlist\n    entities: [Fraser Institute]\n"
        )
        client = TestClient(create_app(settings.with_overrides(config_dir=config_dir)))

        assert client.post("/api/scan", json={"sources": ["nope"]}).status_code == 400

        body = client.post("/api/scan", json={"sources": ["lobbyists"]}).json()
        assert body["data"]["sources_succeeded"] == 1
        assert client.get("/api/scan").json()["data"][0]["source"] == "Lobbyists"

    def test_stats(self, client):
        new_case(client)
        data = client.get("/api/stats").json()["data"]

        assert data["cases"]["total"] == 1
        assert data["alerts"]["total"] == 0
