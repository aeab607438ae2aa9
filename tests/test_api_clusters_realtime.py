import inspect
import secrets

from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from report_trust.services.notifier import change_notifier


def _register(client: TestClient, role: str = "citizen"):
    email = f"{role}_{secrets.token_hex(4)}@example.org"
    r = client.post("/api/v1/users/", json={"name": f"{role} user", "email": email, "role": role})
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['api_key']}"}


def _submit(client: TestClient, latitude: float):
    r = client.post(
        "/api/v1/reports/",
        json={
            "title": "Landslide blocking mountain road",
            "description": "Soil and rocks slid down the slope and cover both lanes near the pass.",
            "type": "landslide",
            "severity": "high",
            "location": "Pass road km 12",
            "latitude": latitude,
            "longitude": 8.5,
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]["report"]["id"]


def test_clusters_empty_before_first_run(client: TestClient):
    r = client.get("/api/v1/reports/clusters")
    assert r.status_code == 200
    assert r.json() == {"clusters": [], "total_clusters": 0, "total_reports_in_clusters": 0}


def test_run_clustering_requires_coordinator(client: TestClient):
    headers = _register(client)
    assert client.post("/api/v1/reports/run-clustering", headers=headers).status_code == 403


def test_run_clustering_and_list(client: TestClient):
    headers = _register(client, "ngo")
    ids = [_submit(client, 46.0 + i * 0.001) for i in range(3)]

    r = client.post("/api/v1/reports/run-clustering", headers=headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["clusters_found"] == 1
    assert data["reports_analyzed"] == 3
    assert data["reports_updated"] == 2

    listing = client.get("/api/v1/reports/clusters").json()
    assert listing["total_clusters"] == 1
    assert listing["total_reports_in_clusters"] == 3
    cluster = listing["clusters"][0]
    # equal verification counts: the earliest report leads
    assert cluster["primary_report_id"] == ids[0]
    assert sorted(cluster["related_report_ids"]) == sorted(ids[1:])
    assert cluster["reasons"] == [
        "same type",
        "same location radius",
        "overlapping time window",
        "similar description",
    ]

    related = client.get(f"/api/v1/reports/{ids[1]}").json()
    assert related["similar_report_ids"] == [ids[0]]


def test_run_clustering_rejects_bad_limit(client: TestClient):
    headers = _register(client, "admin")
    r = client.post("/api/v1/reports/run-clustering", params={"limit": 0}, headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_websocket_receives_change_events(client: TestClient):
    with client.websocket_connect("/api/v1/ws") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "connected"
        assert hello["data"]["subscribers"] >= 1

        ws.send_text("ping")
        assert ws.receive_json() == {"type": "pong", "data": None}

        change_notifier.publish("report_updated", {"id": "r-1", "version": 2})
        event = ws.receive_json()
        assert event == {"type": "report_updated", "data": {"id": "r-1", "version": 2}}


def test_websocket_sees_new_report(client: TestClient):
    with client.websocket_connect("/api/v1/ws") as ws:
        ws.receive_json()
        report_id = _submit(client, 46.0)
        event = ws.receive_json()
        assert event["type"] == "new_report"
        assert event["data"]["id"] == report_id
        assert event["data"]["consensus_score"] == 30


def test_health_endpoints(client: TestClient):
    basic = client.get("/health")
    assert basic.status_code == 200
    assert basic.json()["status"] == "healthy"
    assert basic.json()["service"] == "report-trust-engine"

    detailed = client.get("/health/detailed").json()
    assert detailed["checks"]["database"] == "healthy"
    assert detailed["checks"]["image_analyzer"]["state"] == "CLOSED"
    assert "depth" in detailed["checks"]["queue"]


def test_database_routes_run_off_the_event_loop(client: TestClient):
    routes = [r for r in client.app.routes if isinstance(r, APIRoute) and r.path.startswith("/api/v1/")]
    on_loop = sorted(r.path for r in routes if inspect.iscoroutinefunction(r.endpoint))
    # only the analyzer rerun awaits network I/O; it hands its DB work to a thread itself
    assert on_loop == ["/api/v1/reports/{report_id}/fake-detection"]
    assert any(r.path == "/api/v1/reports/run-clustering" for r in routes)
