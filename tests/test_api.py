"""Tests for the /api/v1 REST endpoints."""

import pytest
from fastapi.testclient import TestClient

from interfaces.api.app import create_app
from mindvault.config import VaultConfig
from mindvault.file_system import FileSystemManager
from mindvault.mobile import MobileFacade


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.delenv("MINDVAULT_API_KEY", raising=False)
    return VaultConfig(tmp_path / "missing.toml")


@pytest.fixture
def client(make_monitor, settings):
    app = create_app(
        make_monitor(),
        file_system=FileSystemManager(),
        mobile=MobileFacade(),
        config=settings,
        start_monitoring=False,
    )
    return TestClient(app)


# ── Auth ────────────────────────────────────────────────────────────

def test_api_key_required_when_configured(make_monitor, tmp_path, monkeypatch):
    monkeypatch.delenv("MINDVAULT_API_KEY", raising=False)
    path = tmp_path / "settings.toml"
    path.write_text('[api]\napi_key = "s3cret"\n')
    app = create_app(make_monitor(), config=VaultConfig(path), start_monitoring=False)
    client = TestClient(app)

    assert client.get("/api/v1/performance/status").status_code == 403
    ok = client.get("/api/v1/performance/status", headers={"X-API-Key": "s3cret"})
    assert ok.status_code == 200


# ── Performance ─────────────────────────────────────────────────────

def test_status(client):
    body = client.get("/api/v1/performance/status").json()
    assert body["status"]["monitoring"] is False
    assert body["status"]["platform"] == "desktop"


def test_record_and_list_metrics(client):
    resp = client.post("/api/v1/performance/metrics", json={"type": "search", "duration": 12.5})
    assert resp.status_code == 200
    metric_id = resp.json()["metric_id"]

    metrics = client.get("/api/v1/performance/metrics", params={"type": "search"}).json()["metrics"]
    assert [m["metric_id"] for m in metrics] == [metric_id]
    assert metrics[0]["context"]["action"] == "search"


def test_unknown_metric_type_is_400(client):
    assert client.post(
        "/api/v1/performance/metrics", json={"type": "teleport", "duration": 1},
    ).status_code == 400
    assert client.get("/api/v1/performance/metrics", params={"type": "teleport"}).status_code == 400
    assert client.get("/api/v1/performance/stats", params={"type": "teleport"}).status_code == 400


def test_clear_metrics(client):
    client.post("/api/v1/performance/metrics", json={"type": "rendering", "duration": 1})
    resp = client.delete("/api/v1/performance/metrics", params={"older_than_hours": 0})
    assert resp.json()["removed"] == 1
    assert client.get("/api/v1/performance/stats").json()["stats"]["count"] == 0


def test_update_config(client):
    resp = client.post("/api/v1/performance/config", json={"maxCpuUsage": 60})
    assert resp.status_code == 200
    assert resp.json()["config"]["max_cpu_usage"] == 60
    assert client.post("/api/v1/performance/config", json={"bogus": 1}).status_code == 400


def test_malformed_config_is_400(client):
    for body in ({"performanceThresholds": {"rendering": 5}}, {"pollInterval": 0}):
        assert client.post("/api/v1/performance/config", json=body).status_code == 400
    assert client.get("/api/v1/performance/config").json()["config"]["poll_interval"] == 1.0


def test_strategy_with_malformed_condition_is_400(client):
    strategy = {"id": "x", "type": "caching", "conditions": [{"operator": "gt", "value": 1}]}
    resp = client.post("/api/v1/performance/strategies", json=strategy)
    assert resp.status_code == 400
    assert "missing metric" in resp.json()["detail"]


def test_strategy_crud(client):
    strategy = {
        "id": "cpu_guard",
        "name": "CPU Guard",
        "type": "cpu_optimization",
        "platform": ["desktop"],
        "conditions": [{"metric": "cpuUsage", "operator": "gt", "value": 90}],
        "actions": [{"type": "pause_animations"}],
    }
    assert client.post("/api/v1/performance/strategies", json=strategy).status_code == 200
    ids = [s["id"] for s in client.get("/api/v1/performance/strategies").json()["strategies"]]
    assert "cpu_guard" in ids

    assert client.delete("/api/v1/performance/strategies/cpu_guard").status_code == 200
    assert client.delete("/api/v1/performance/strategies/cpu_guard").status_code == 404


def test_strategy_with_unknown_action_is_400(client):
    strategy = {"id": "x", "type": "caching", "actions": [{"type": "self_destruct"}]}
    resp = client.post("/api/v1/performance/strategies", json=strategy)
    assert resp.status_code == 400
    assert "Unknown action type" in resp.json()["detail"]


# ── Windows ─────────────────────────────────────────────────────────

def test_window_lifecycle(client):
    created = client.post("/api/v1/windows", json={"type": "reading", "title": "Dune"}).json()
    window_id = created["window"]["window_id"]
    listing = client.get("/api/v1/windows").json()
    assert listing["active_window"] == window_id

    assert client.delete(f"/api/v1/windows/{window_id}").status_code == 200
    assert client.get("/api/v1/windows").json() == {"windows": [], "active_window": None}

    history = client.get(f"/api/v1/windows/{window_id}/history").json()["history"]
    assert [h["action"] for h in history] == ["created", "closed"]


def test_window_errors(client):
    assert client.post("/api/v1/windows", json={"type": "terminal", "title": "x"}).status_code == 400
    assert client.delete("/api/v1/windows/nope").status_code == 404
    assert client.post("/api/v1/windows/nope/activate").status_code == 404


# ── Ebooks, export, mobile ──────────────────────────────────────────

def test_import_ebook(client):
    ok = client.post("/api/v1/ebooks/import", json={"path": "/b/Dune.epub"}).json()["result"]
    bad = client.post("/api/v1/ebooks/import", json={"path": "/b/a.xyz"}).json()["result"]
    assert ok["success"] is True
    assert bad["success"] is False


def test_export(client):
    resp = client.post("/api/v1/export", json={"data": [], "path": "/tmp/x.csv", "format": "csv"})
    assert resp.json() == {"ok": True, "bytes": 0}
    bad = client.post("/api/v1/export", json={"data": [], "path": "/tmp/x.xml", "format": "xml"})
    assert bad.status_code == 400
    scalars = client.post("/api/v1/export", json={"data": [1, 2, 3], "path": "/tmp/n.csv", "format": "csv"})
    assert scalars.json() == {"ok": True, "bytes": len("[1, 2, 3]")}


def test_mobile_status(client):
    body = client.get("/api/v1/mobile/status").json()["mobile"]
    assert body["breakpoint"] == "desktop"
    assert body["queue_size"] == 0


def test_mobile_shortcuts_and_accessibility(client):
    shortcuts = client.get("/api/v1/mobile/shortcuts", params={"platform": "desktop"}).json()
    assert "next_page" in [s["id"] for s in shortcuts["shortcuts"]]
    assert client.get("/api/v1/mobile/shortcuts", params={"platform": "fridge"}).status_code == 400

    resp = client.post("/api/v1/mobile/accessibility", json={"high_contrast": True})
    assert resp.json()["accessibility"]["high_contrast"] is True
    assert client.post("/api/v1/mobile/accessibility", json={"glitter": True}).status_code == 400
