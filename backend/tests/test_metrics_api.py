from fastapi.testclient import TestClient

from app.core.security import create_access
from app.main import app
from app.services.metrics import MetricsComputationService

from _helpers import unwrap, is_enveloped


def test_first_read_of_the_day_computes_metrics(client: TestClient, db, user):
    r = client.get("/api/v1/profile/metrics/today")
    assert r.status_code == 200, r.text
    data = unwrap(r.json())
    assert data["metrics"]["version"] == 1
    assert data["metrics"]["computed_at"].endswith("Z")
    assert data["acknowledged"] is False

    again = unwrap(client.get("/api/v1/profile/metrics/today").json())
    assert again["metrics"]["computed_at"] == data["metrics"]["computed_at"]


def test_today_is_404_without_usable_profile(client: TestClient, db, user):
    user.profile.weight_kg = None
    db.commit()

    r = client.get("/api/v1/profile/metrics/today")
    assert r.status_code == 404
    body = r.json()
    assert is_enveloped(body)
    assert body["ok"] is False
    assert body["error"]["code"] == "NOT_FOUND"


def test_today_returns_metrics_and_ack_flag(client: TestClient, db, user):
    snap = MetricsComputationService(db).compute_and_store(user.id)

    r = client.get("/api/v1/profile/metrics/today")
    assert r.status_code == 200, r.text
    data = unwrap(r.json())
    assert data["metrics"]["bmr"] == snap.bmr
    assert data["metrics"]["tdee"] == snap.tdee
    assert data["metrics"]["version"] == 1
    assert data["metrics"]["computed_at"].endswith("Z")
    assert set(data["explanations"]) == {"bmi", "bmr", "tdee"}
    assert data["acknowledged"] is False
    assert data["acknowledgement"] is None


def test_acknowledge_flow_is_idempotent(client: TestClient, db, user):
    MetricsComputationService(db).compute_and_store(user.id)
    metrics = unwrap(client.get("/api/v1/profile/metrics/today").json())["metrics"]
    body = {"version": metrics["version"], "metrics_computed_at": metrics["computed_at"]}

    first = client.post("/api/v1/profile/metrics/acknowledge", json=body)
    assert first.status_code == 200, first.text
    ack = unwrap(first.json())
    assert ack["acknowledged"] is True
    assert ack["metrics_computed_at"] == metrics["computed_at"]

    second = client.post("/api/v1/profile/metrics/acknowledge", json=body)
    assert second.status_code == 200
    assert unwrap(second.json())["acknowledged_at"] == ack["acknowledged_at"]

    today = unwrap(client.get("/api/v1/profile/metrics/today").json())
    assert today["acknowledged"] is True
    assert today["acknowledgement"]["acknowledged_at"] == ack["acknowledged_at"]


def test_acknowledge_unknown_snapshot_is_404(client: TestClient, db, user):
    MetricsComputationService(db).compute_and_store(user.id)
    r = client.post(
        "/api/v1/profile/metrics/acknowledge",
        json={"version": 1, "metrics_computed_at": "2001-01-01T00:00:00Z"},
    )
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_acknowledge_rejects_bad_payload(client: TestClient):
    r = client.post("/api/v1/profile/metrics/acknowledge", json={"version": 0, "metrics_computed_at": "nope"})
    assert r.status_code == 422


def test_requires_bearer_token(db, user):
    with TestClient(app) as anon:
        r = anon.get("/api/v1/profile/metrics/today")
    assert r.status_code in (401, 403)


def test_rejects_token_for_unknown_user(db, user):
    token = create_access(user.id + 999)
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        r = c.get("/api/v1/profile/metrics/today")
    assert r.status_code == 401


def test_rejects_expired_token(db, user):
    token = create_access(user.id, minutes=-5)
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        r = c.get("/api/v1/profile/metrics/today")
    assert r.status_code == 401
