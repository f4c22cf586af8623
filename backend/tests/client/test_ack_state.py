from __future__ import annotations

import httpx
import pytest

from app.client import AcknowledgmentState, ApiRequestError, PlanApiClient

TODAY = {
    "metrics": {
        "bmi": 22.86,
        "bmr": 1649,
        "tdee": 2556,
        "computed_at": "2026-10-14T09:30:15Z",
        "version": 1,
    },
    "explanations": {"bmi": "...", "bmr": "...", "tdee": "..."},
    "acknowledged": False,
    "acknowledgement": None,
}


class FakeServer:
    def __init__(self, has_metrics=True):
        self.has_metrics = has_metrics
        self.acknowledged = False
        self.ack_bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/today"):
            if not self.has_metrics:
                return httpx.Response(
                    404, json={"ok": False, "data": None, "error": {"code": "NOT_FOUND", "message": "none"}}
                )
            return httpx.Response(200, json={"ok": True, "data": {**TODAY, "acknowledged": self.acknowledged}})
        self.ack_bodies.append(request.content)
        self.acknowledged = True
        return httpx.Response(200, json={"ok": True, "data": {"acknowledged": True}})


def _state(server) -> AcknowledgmentState:
    return AcknowledgmentState(PlanApiClient("http://test", transport=httpx.MockTransport(server)))


@pytest.mark.anyio
async def test_subscribers_get_current_value_and_changes(anyio_backend):
    server = FakeServer()
    state = _state(server)
    seen_a, seen_b = [], []
    state.subscribe(seen_a.append)
    unsubscribe_b = state.subscribe(seen_b.append)

    await state.refresh()
    assert state.metrics.metrics.bmr == 1649

    unsubscribe_b()
    await state.acknowledge()

    assert state.acknowledged is True
    assert seen_a == [False, True]
    assert seen_b == [False]
    assert len(server.ack_bodies) == 1


@pytest.mark.anyio
async def test_refresh_picks_up_server_side_ack(anyio_backend):
    server = FakeServer()
    server.acknowledged = True
    state = _state(server)
    seen = []
    state.subscribe(seen.append)

    view = await state.refresh()
    assert view.acknowledged is True
    assert seen == [False, True]


@pytest.mark.anyio
async def test_no_metrics_yet(anyio_backend):
    state = _state(FakeServer(has_metrics=False))

    assert await state.refresh() is None
    assert state.acknowledged is False
    with pytest.raises(ApiRequestError) as excinfo:
        await state.acknowledge()
    assert excinfo.value.code == "NOT_FOUND"
