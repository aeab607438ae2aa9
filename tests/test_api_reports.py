import secrets

from fastapi.testclient import TestClient

REPORT_PAYLOAD = {
    "title": "Warehouse fire on Dock Road",
    "description": "Thick smoke and visible flames coming from the old warehouse on Dock Road.",
    "type": "fire",
    "severity": "high",
    "location": "Dock Road, Harbour District",
    "latitude": 40.7128,
    "longitude": -74.0060,
}


def _register(client: TestClient, role: str = "citizen"):
    email = f"{role}_{secrets.token_hex(4)}@example.org"
    r = client.post("/api/v1/users/", json={"name": f"{role} user", "email": email, "role": role})
    assert r.status_code == 201, r.text
    body = r.json()
    return {"Authorization": f"Bearer {body['api_key']}"}, body


def _submit(client: TestClient, headers=None, **overrides):
    payload = {**REPORT_PAYLOAD, **overrides}
    r = client.post("/api/v1/reports/", json=payload, headers=headers or {})
    assert r.status_code == 201, r.text
    return r.json()["data"]["report"]


def test_user_registration_and_me(client: TestClient):
    headers, body = _register(client, "volunteer")
    assert body["can_confirm"] is True
    me = client.get("/api/v1/users/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["id"] == body["id"]

    dup = client.post("/api/v1/users/", json={"name": "Again", "email": body["email"], "role": "citizen"})
    assert dup.status_code == 409

    bad = client.get("/api/v1/users/me", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_list_users_requires_admin(client: TestClient):
    citizen_headers, _ = _register(client)
    assert client.get("/api/v1/users/", headers=citizen_headers).status_code == 403
    admin_headers, _ = _register(client, "admin")
    r = client.get("/api/v1/users/", headers=admin_headers)
    assert r.status_code == 200
    assert len(r.json()) == 2


def test_submit_report_starts_neutral(client: TestClient, job_queue):
    headers, user = _register(client)
    report = _submit(client, headers)
    assert report["user_id"] == user["id"]
    assert report["status"] == "reported"
    assert report["consensus_score"] == 30
    assert report["trust_tier"] == "Low Trust"
    assert report["fake_detection_score"] is None
    assert report["version"] == 1
    # fake detection is queued, not awaited
    assert job_queue.snapshot()["depth"] == 1


def test_anonymous_submission_allowed(client: TestClient):
    report = _submit(client)
    assert report["user_id"] is None


def test_invalid_submission_rejected(client: TestClient):
    r = client.post("/api/v1/reports/", json={**REPORT_PAYLOAD, "type": "meteor"})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "REQUEST_VALIDATION_ERROR"


def test_list_reports_with_filters(client: TestClient):
    _submit(client)
    _submit(client, type="flood", title="Flooded underpass", description="Water up to the car doors under the bridge.")
    everything = client.get("/api/v1/reports/")
    assert everything.status_code == 200
    assert everything.json()["total"] == 2

    floods = client.get("/api/v1/reports/", params={"type": "flood"})
    assert floods.json()["total"] == 1
    assert floods.json()["reports"][0]["type"] == "flood"

    bad = client.get("/api/v1/reports/", params={"status": "archived"})
    assert bad.status_code == 400
    assert bad.json()["code"] == "VALIDATION_ERROR"

    assert client.get("/api/v1/reports/", params={"limit": 0}).status_code == 400


def test_get_report_and_not_found(client: TestClient):
    report = _submit(client)
    r = client.get(f"/api/v1/reports/{report['id']}")
    assert r.status_code == 200
    assert r.json()["id"] == report["id"]

    missing = client.get("/api/v1/reports/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


def test_conditional_get(client: TestClient):
    headers, _ = _register(client)
    report = _submit(client)
    first = client.get(f"/api/v1/reports/{report['id']}")
    etag = first.headers["ETag"]
    assert first.headers["Last-Modified"]

    cached = client.get(f"/api/v1/reports/{report['id']}", headers={"If-None-Match": etag})
    assert cached.status_code == 304

    client.post(f"/api/v1/reports/{report['id']}/vote", json={"vote_type": "upvote"}, headers=headers)
    fresh = client.get(f"/api/v1/reports/{report['id']}", headers={"If-None-Match": etag})
    assert fresh.status_code == 200
    assert fresh.headers["ETag"] != etag
    assert fresh.json()["upvotes"] == 1


def test_status_update_flow(client: TestClient):
    ngo_headers, _ = _register(client, "ngo")
    citizen_headers, _ = _register(client)
    report = _submit(client)
    url = f"/api/v1/reports/{report['id']}/status"

    assert client.patch(url, json={"status": "verified"}, headers=citizen_headers).status_code == 403

    ok = client.patch(url, json={"status": "responding", "version": 1}, headers=ngo_headers)
    assert ok.status_code == 200, ok.text
    data = ok.json()["data"]
    assert data["status"] == "responding"
    assert data["version"] == 2

    stale = client.patch(url, json={"status": "resolved", "version": 1}, headers=ngo_headers)
    assert stale.status_code == 409
    assert stale.json()["code"] == "OPTIMISTIC_LOCK_ERROR"
    assert stale.json()["actual"] == 2

    backwards = client.patch(url, json={"status": "verified"}, headers=ngo_headers)
    assert backwards.status_code == 400
    assert backwards.json()["code"] == "INVALID_STATUS_TRANSITION"

    unknown = client.patch(url, json={"status": "archived"}, headers=ngo_headers)
    assert unknown.status_code == 400
    assert unknown.json()["code"] == "VALIDATION_ERROR"


def test_confirmation_flow(client: TestClient):
    volunteer_headers, volunteer = _register(client, "volunteer")
    citizen_headers, _ = _register(client)
    report = _submit(client)
    confirm_url = f"/api/v1/reports/{report['id']}/confirm"

    forbidden = client.post(confirm_url, headers=citizen_headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "FORBIDDEN"

    early = client.post(confirm_url, headers=volunteer_headers)
    assert early.status_code == 412
    assert early.json()["code"] == "PRECONDITION_FAILED"

    for _ in range(3):
        headers, _ = _register(client)
        r = client.post(f"/api/v1/reports/{report['id']}/verify", headers=headers)
        assert r.status_code == 200, r.text
    assert r.json()["data"]["eligible_for_confirmation"] is True
    score_before = r.json()["data"]["consensus_score"]

    confirmed = client.post(confirm_url, headers=volunteer_headers)
    assert confirmed.status_code == 200
    body = confirmed.json()["data"]
    assert body["changed"] is True
    assert body["report"]["confirmed_by"] == volunteer["id"]
    assert body["report"]["consensus_score"] == score_before + 15

    again = client.post(confirm_url, headers=volunteer_headers)
    assert again.json()["data"]["changed"] is False

    withdrawn = client.delete(confirm_url, headers=volunteer_headers)
    assert withdrawn.status_code == 200
    assert withdrawn.json()["data"]["report"]["confirmed_by"] is None

    nothing = client.delete(confirm_url, headers=volunteer_headers)
    assert nothing.status_code == 409
    assert nothing.json()["code"] == "NOTHING_TO_UNCONFIRM"


def test_ai_validation_admin_only(client: TestClient):
    admin_headers, _ = _register(client, "admin")
    ngo_headers, _ = _register(client, "ngo")
    report = _submit(client)
    url = f"/api/v1/reports/{report['id']}/ai-validation"

    assert client.put(url, json={"score": 90}, headers=ngo_headers).status_code == 403
    ok = client.put(url, json={"score": 90, "notes": "classifier v2"}, headers=admin_headers)
    assert ok.status_code == 200
    assert ok.json()["data"]["consensus_score"] == 38

    out_of_range = client.put(url, json={"score": 150}, headers=admin_headers)
    assert out_of_range.status_code == 400


def test_fake_detection_rerun(client: TestClient):
    ngo_headers, _ = _register(client, "ngo")
    report = _submit(client)
    url = f"/api/v1/reports/{report['id']}/fake-detection"

    payload = {
        "text_analysis": {"consistency_score": 90, "has_spam_patterns": True},
        "images": [{"has_exif": False}],
    }
    r = client.post(url, json=payload, headers=ngo_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["score"] == 40
    assert body["risk_level"] == "medium"
    assert body["flags"] == ["missing_metadata", "spam_pattern"]
    assert body["version"] == 2

    degraded = client.post(url, json={"images": "broken"}, headers=ngo_headers)
    assert degraded.status_code == 200
    assert degraded.json()["score"] is None
    assert degraded.json()["analyzer_error"]

    stored = client.get(f"/api/v1/reports/{report['id']}").json()
    assert stored["fake_detection_score"] is None
    assert stored["fake_detection_risk"] is None
