# backend/tests/client/test_plan_cache.py
from __future__ import annotations

import asyncio
import threading

import pytest

from app.client import (
    CacheState,
    ClientPlanCache,
    DegradedCacheError,
    InMemoryPlanStorage,
    NetworkError,
    PlanData,
    PlanFetchError,
    ServerError,
)

from _helpers import FixedClock, plan_payload


def _plan(plan_id=1, calorie_target=2056, protein_target=154, **extra) -> PlanData:
    return PlanData.model_validate(plan_payload(plan_id, calorie_target, protein_target, **extra))


class StubFetcher:
    """Replays queued results (the last one repeats); exceptions are raised."""

    def __init__(self, *results, gate: asyncio.Event | None = None, delay: float = 0.0):
        self.results = list(results)
        self.calls: list[bool] = []
        self.gate = gate
        self.delay = delay

    async def __call__(self, force_recompute: bool) -> PlanData:
        self.calls.append(force_recompute)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def notify_plan_updated(self, old, new):
        self.calls.append((old.calorie_target, new.calorie_target))


async def _drain():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FixedClock(2026, 10, 14, 9, 0, 0)


@pytest.mark.anyio
async def test_cold_fetch_then_hits_within_ttl(anyio_backend, clock):
    fetcher = StubFetcher(_plan())
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), ttl_seconds=3600, clock=clock)
    assert cache.state is CacheState.EMPTY

    first = await cache.fetch()
    assert first.plan.id == 1
    assert cache.state is CacheState.VALID
    assert cache.last_updated == clock()

    clock.advance(minutes=59)
    again = await cache.fetch()
    assert again == first
    assert fetcher.calls == [False]


@pytest.mark.anyio
async def test_expired_entry_is_refetched(anyio_backend, clock):
    fetcher = StubFetcher(_plan(1), _plan(2))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), ttl_seconds=3600, clock=clock)
    await cache.fetch()

    clock.advance(seconds=3600)
    assert cache.state is CacheState.STALE
    data = await cache.fetch()

    assert data.plan.id == 2
    assert len(fetcher.calls) == 2
    assert cache.state is CacheState.VALID


@pytest.mark.anyio
async def test_force_recompute_bypasses_ttl(anyio_backend, clock):
    fetcher = StubFetcher(_plan(1), _plan(2, recomputed=True))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)
    await cache.fetch()

    data = await cache.recompute()
    assert data.recomputed is True
    assert fetcher.calls == [False, True]


@pytest.mark.anyio
async def test_failed_refresh_serves_last_plan(anyio_backend, clock):
    fetcher = StubFetcher(_plan(1), NetworkError("connection refused"), _plan(3))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), ttl_seconds=60, clock=clock)
    await cache.fetch()

    clock.advance(minutes=5)
    data = await cache.fetch()

    assert data.plan.id == 1
    assert cache.plan.plan.id == 1
    assert isinstance(cache.error, DegradedCacheError)
    assert cache.error.message == "Showing last saved plan"
    assert isinstance(cache.error.cause, NetworkError)
    assert cache.state is CacheState.ERROR_WITH_FALLBACK

    # the next good response clears the degraded flag
    data = await cache.fetch()
    assert data.plan.id == 3
    assert cache.error is None
    assert cache.state is CacheState.VALID


@pytest.mark.anyio
async def test_cold_failure_raises(anyio_backend, clock):
    fetcher = StubFetcher(ServerError("server returned 503", status_code=503))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)

    with pytest.raises(ServerError):
        await cache.fetch()

    assert cache.plan is None
    assert isinstance(cache.error, ServerError)
    assert cache.state is CacheState.ERROR

    cache.clear_error()
    assert cache.state is CacheState.EMPTY


@pytest.mark.anyio
async def test_slow_fetch_times_out_as_network_error(anyio_backend, clock):
    fetcher = StubFetcher(_plan(), delay=1.0)
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), timeout_seconds=0.05, clock=clock)

    with pytest.raises(NetworkError) as excinfo:
        await cache.fetch()
    assert "timed out" in excinfo.value.message
    assert excinfo.value.retryable is True


@pytest.mark.anyio
async def test_concurrent_fetches_share_one_request(anyio_backend, clock):
    gate = asyncio.Event()
    fetcher = StubFetcher(_plan(7), gate=gate)
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)

    first = asyncio.create_task(cache.fetch(force_recompute=True))
    second = asyncio.create_task(cache.fetch(force_recompute=True))
    await _drain()
    assert cache.state is CacheState.REFRESHING

    gate.set()
    a, b = await asyncio.gather(first, second)

    assert fetcher.calls == [True]
    assert a.plan.id == b.plan.id == 7


@pytest.mark.anyio
async def test_cancelled_caller_does_not_cancel_shared_request(anyio_backend, clock):
    gate = asyncio.Event()
    fetcher = StubFetcher(_plan(8), gate=gate)
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)

    quitter = asyncio.create_task(cache.fetch())
    waiter = asyncio.create_task(cache.fetch())
    await _drain()

    quitter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await quitter

    gate.set()
    data = await waiter
    assert data.plan.id == 8
    assert cache.plan.plan.id == 8
    assert len(fetcher.calls) == 1


@pytest.mark.anyio
async def test_notifier_only_fires_on_significant_change(anyio_backend, clock):
    notifier = RecordingNotifier()
    fetcher = StubFetcher(
        _plan(1, calorie_target=2056),
        _plan(2, calorie_target=1990),                      # -66 kcal
        _plan(3, calorie_target=2020),                      # +30 kcal
        _plan(4, calorie_target=2020, protein_target=170),  # +16 g protein
    )
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), notifier=notifier, clock=clock)

    await cache.fetch()
    await _drain()
    assert notifier.calls == []
    assert cache.last_diff is None

    await cache.recompute()
    await _drain()
    assert notifier.calls == [(2056, 1990)]
    assert cache.last_diff.calorie_delta == -66

    await cache.recompute()
    await _drain()
    assert len(notifier.calls) == 1
    assert cache.last_diff.significant is False

    await cache.recompute()
    await _drain()
    assert len(notifier.calls) == 2
    assert cache.last_diff.protein_delta == 16


@pytest.mark.anyio
async def test_cold_cache_diffs_against_server_previous_targets(anyio_backend, clock):
    previous = plan_payload(calorie_target=2200)["targets"]
    notifier = RecordingNotifier()
    fetcher = StubFetcher(_plan(5, calorie_target=2056, recomputed=True, previous_targets=previous))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), notifier=notifier, clock=clock)

    await cache.recompute()
    await _drain()
    assert notifier.calls == [(2200, 2056)]


@pytest.mark.anyio
async def test_failing_notifier_does_not_break_fetch(anyio_backend, clock):
    class Broken:
        async def notify_plan_updated(self, old, new):
            raise RuntimeError("push service down")

    fetcher = StubFetcher(_plan(1, calorie_target=2056), _plan(2, calorie_target=1800))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), notifier=Broken(), clock=clock)
    await cache.fetch()

    data = await cache.recompute()
    await _drain()
    assert data.plan.id == 2
    assert cache.error is None


@pytest.mark.anyio
async def test_refresh_clears_storage_but_keeps_fallback(anyio_backend, clock):
    storage = InMemoryPlanStorage()
    fetcher = StubFetcher(_plan(1), NetworkError("offline"))
    cache = ClientPlanCache(fetcher, storage, clock=clock)
    await cache.fetch()
    assert storage.load() is not None

    data = await cache.refresh()

    assert len(fetcher.calls) == 2
    assert data.plan.id == 1
    assert storage.load() is None
    assert isinstance(cache.error, DegradedCacheError)


@pytest.mark.anyio
async def test_persisted_plan_survives_new_instance(anyio_backend, clock):
    storage = InMemoryPlanStorage()
    await ClientPlanCache(StubFetcher(_plan(11)), storage, clock=clock).fetch()

    fresh_fetcher = StubFetcher(_plan(12))
    reopened = ClientPlanCache(fresh_fetcher, storage, clock=clock)

    assert reopened.plan.plan.id == 11
    assert (await reopened.fetch()).plan.id == 11
    assert fresh_fetcher.calls == []


@pytest.mark.anyio
async def test_instances_do_not_share_state(anyio_backend, clock):
    one = ClientPlanCache(StubFetcher(_plan(1)), InMemoryPlanStorage(), clock=clock)
    two = ClientPlanCache(StubFetcher(_plan(2)), InMemoryPlanStorage(), clock=clock)

    await one.fetch()
    assert two.plan is None
    assert (await two.fetch()).plan.id == 2
    assert one.plan.plan.id == 1


@pytest.mark.anyio
async def test_failed_forced_fetch_keeps_held_value(anyio_backend, clock):
    fetcher = StubFetcher(_plan(1), ServerError("server returned 500", status_code=500))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)
    held = await cache.fetch()

    data = await cache.recompute()

    assert data == held
    assert cache.plan == held
    assert isinstance(cache.error, DegradedCacheError)
    assert isinstance(cache.error.cause, ServerError)


@pytest.mark.anyio
async def test_persisted_entry_keeps_its_own_ttl(anyio_backend, clock):
    storage = InMemoryPlanStorage()
    await ClientPlanCache(StubFetcher(_plan(1)), storage, ttl_seconds=60, clock=clock).fetch()
    assert storage.load().ttl_seconds == 60

    clock.advance(seconds=61)
    reopened = ClientPlanCache(StubFetcher(_plan(2)), storage, ttl_seconds=3600, clock=clock)
    assert reopened.is_stale is True


@pytest.mark.anyio
async def test_unexpected_fetch_exception_keeps_held_value(anyio_backend, clock):
    fetcher = StubFetcher(_plan(1), RuntimeError("plan payload missing targets"))
    cache = ClientPlanCache(fetcher, InMemoryPlanStorage(), clock=clock)
    held = await cache.fetch()

    data = await cache.recompute()

    assert data == held
    assert cache.state is CacheState.ERROR_WITH_FALLBACK
    assert isinstance(cache.error.cause, ServerError)
    assert isinstance(cache.error.cause.__cause__, RuntimeError)


@pytest.mark.anyio
async def test_unexpected_fetch_exception_on_cold_cache_is_typed(anyio_backend, clock):
    cache = ClientPlanCache(StubFetcher(KeyError("plan")), InMemoryPlanStorage(), clock=clock)

    with pytest.raises(PlanFetchError):
        await cache.fetch()
    assert cache.state is CacheState.ERROR


@pytest.mark.anyio
async def test_storage_writes_run_off_the_event_loop(anyio_backend, clock):
    class ThreadRecordingStorage(InMemoryPlanStorage):
        def __init__(self):
            super().__init__()
            self.threads = []

        def save(self, entry):
            self.threads.append(threading.get_ident())
            super().save(entry)

        def clear(self):
            self.threads.append(threading.get_ident())
            super().clear()

    storage = ThreadRecordingStorage()
    cache = ClientPlanCache(StubFetcher(_plan(1)), storage, clock=clock)
    await cache.fetch()
    await cache.refresh()

    loop_thread = threading.get_ident()
    assert len(storage.threads) == 3
    assert loop_thread not in storage.threads
    assert storage.load().data.plan.id == 1
