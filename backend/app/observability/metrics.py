from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, List

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

router = APIRouter()

REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["path", "method"],
)

# daily metrics recompute job
RECOMPUTE_RUNS = Counter(
    "metrics_recompute_runs_total",
    "Completed daily metrics recompute runs",
)
RECOMPUTE_USERS = Counter(
    "metrics_recompute_users_total",
    "Users processed by the daily metrics recompute, by outcome",
    ["outcome"],
)
RECOMPUTE_LAST_RUN = Gauge(
    "metrics_recompute_last_run_users",
    "Per-outcome user counts from the most recent recompute run",
    ["outcome"],
)
RECOMPUTE_DURATION = Histogram(
    "metrics_recompute_duration_seconds",
    "Wall time of a daily metrics recompute run",
)

_LATENCY_SAMPLES: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=200))


def record_latency(path: str, duration_ms: float) -> None:
    _LATENCY_SAMPLES[path].append(duration_ms)


def record_recompute(success: int, skipped: int, errors: int, duration_s: float) -> None:
    RECOMPUTE_RUNS.inc()
    RECOMPUTE_DURATION.observe(duration_s)
    for outcome, count in (("success", success), ("skipped", skipped), ("error", errors)):
        RECOMPUTE_USERS.labels(outcome=outcome).inc(count)
        RECOMPUTE_LAST_RUN.labels(outcome=outcome).set(count)


@router.get("/metrics")
async def metrics_endpoint() -> PlainTextResponse:
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/api/health/latency")
async def latency_health() -> dict[str, List[dict[str, float | str]]]:
    payload: List[dict[str, float | str]] = []
    for path, samples in _LATENCY_SAMPLES.items():
        if not samples:
            continue
        ordered = sorted(samples)
        payload.append({
            "path": path,
            "p50_ms": round(_percentile(ordered, 50), 2),
            "p95_ms": round(_percentile(ordered, 95), 2),
            "sample_size": len(samples),
        })
    return {"paths": payload}


def _percentile(ordered: List[float], pct: int) -> float:
    if not ordered:
        return 0.0
    k = (len(ordered) - 1) * (pct / 100)
    f = int(k)
    c = min(f + 1, len(ordered) - 1)
    if f == c:
        return ordered[f]
    return ordered[f] * (c - k) + ordered[c] * (k - f)
