from fastapi.testclient import TestClient


def test_request_id_header_is_generated_or_echoed(client: TestClient):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.headers.get("x-request-id")

    resp = client.get("/api/health", headers={"X-Request-Id": "req-42"})
    assert resp.headers.get("x-request-id") == "req-42"


def test_metrics_endpoint_exposes_http_and_job_series(client: TestClient):
    client.get("/api/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "metrics_recompute_runs_total" in resp.text
    assert "metrics_recompute_duration_seconds" in resp.text


def test_latency_health_stats(client: TestClient):
    for _ in range(3):
        client.get("/api/health")
    resp = client.get("/api/health/latency")
    assert resp.status_code == 200
    data = resp.json()
    entries = {p["path"]: p for p in data["paths"]}
    assert "/api/health" in entries
    row = entries["/api/health"]
    assert row["p95_ms"] >= row["p50_ms"]
    assert row["sample_size"] >= 3


def test_domain_errors_are_counted_by_status(client: TestClient):
    from prometheus_client import REGISTRY

    path = "/api/v1/profile/metrics/acknowledge"
    labels = {"path": path, "method": "POST", "status": "404"}
    before = REGISTRY.get_sample_value("http_requests_total", labels) or 0.0
    client.post(path, json={"version": 1, "metrics_computed_at": "2001-01-01T00:00:00Z"})
    assert REGISTRY.get_sample_value("http_requests_total", labels) == before + 1
