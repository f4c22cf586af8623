"""
Client-side cache for the generated weekly plan.

The cache holds at most one plan. Reads inside the TTL never touch the
network. A refresh that fails keeps serving the last good plan and reports
a DegradedCacheError instead of raising; with nothing to fall back on the
failure propagates.

    EMPTY -> VALID -> STALE -> REFRESHING -> VALID
                                          -> ERROR_WITH_FALLBACK
    (ERROR when a refresh fails with nothing held)
"""
from __future__ import annotations

import asyncio
import enum
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol, Set

import structlog

from app.config import get_settings
from app.utils.timeutil import Clock, utc_now

from .errors import DegradedCacheError, NetworkError, PlanFetchError, ServerError
from .models import PlanCacheEntry, PlanData, PlanDiff, PlanTargets
from .storage import PlanCacheStorage

logger = structlog.get_logger(__name__)

DEGRADED_MESSAGE = "Showing last saved plan"

PlanFetcher = Callable[[bool], Awaitable[PlanData]]


class PlanChangeNotifier(Protocol):
    async def notify_plan_updated(self, old: PlanTargets, new: PlanTargets) -> None: ...


class CacheState(str, enum.Enum):
    EMPTY = "empty"
    VALID = "valid"
    STALE = "stale"
    REFRESHING = "refreshing"
    ERROR_WITH_FALLBACK = "error_with_fallback"
    ERROR = "error"


class ClientPlanCache:
    def __init__(
        self,
        fetcher: PlanFetcher,
        storage: PlanCacheStorage,
        *,
        ttl_seconds: float = 3600,
        timeout_seconds: float = 30.0,
        notifier: Optional[PlanChangeNotifier] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._storage = storage
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._notifier = notifier
        self._clock = clock

        self._entry: Optional[PlanCacheEntry] = storage.load()
        self._expired = False
        self._error: Optional[PlanFetchError] = None
        self._last_diff: Optional[PlanDiff] = None
        self._inflight: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        if self._entry is not None:
            logger.info("plan_cache.loaded", fetched_at=self._entry.fetched_at.isoformat())

    @classmethod
    def from_api(cls, api, storage: PlanCacheStorage, **kwargs) -> "ClientPlanCache":
        """Wire the cache to a PlanApiClient; TTL and timeout default to settings."""
        settings = get_settings()
        kwargs.setdefault("ttl_seconds", settings.PLAN_CACHE_TTL_SECONDS)
        kwargs.setdefault("timeout_seconds", settings.PLAN_CLIENT_TIMEOUT_SECONDS)
        return cls(lambda force: api.generate_plan(force_recompute=force), storage, **kwargs)

    # --- read side -------------------------------------------------------

    @property
    def plan(self) -> Optional[PlanData]:
        return self._entry.data if self._entry is not None else None

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._entry.fetched_at if self._entry is not None else None

    @property
    def error(self) -> Optional[PlanFetchError]:
        return self._error

    @property
    def last_diff(self) -> Optional[PlanDiff]:
        return self._last_diff

    @property
    def is_stale(self) -> bool:
        if self._entry is None or self._expired:
            return True
        return self._entry.age_seconds(self._clock()) >= self._entry.ttl_seconds

    @property
    def state(self) -> CacheState:
        if self._inflight is not None and not self._inflight.done():
            return CacheState.REFRESHING
        if self._error is not None:
            return CacheState.ERROR_WITH_FALLBACK if self._entry is not None else CacheState.ERROR
        if self._entry is None:
            return CacheState.EMPTY
        return CacheState.STALE if self.is_stale else CacheState.VALID

    # --- operations ------------------------------------------------------

    async def fetch(self, force_recompute: bool = False) -> PlanData:
        if not force_recompute and not self.is_stale:
            logger.debug("plan_cache.hit")
            return self._entry.data

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_task(self._load_remote(force_recompute))
            self._inflight.add_done_callback(_consume_result)
        # Shielded so a cancelled caller does not cancel the call other callers share.
        return await asyncio.shield(self._inflight)

    async def recompute(self) -> PlanData:
        return await self.fetch(force_recompute=True)

    async def refresh(self) -> PlanData:
        """Drop the persisted copy and fetch again; the held plan stays as fallback."""
        await asyncio.to_thread(self._storage.clear)
        self._expired = True
        return await self.fetch(force_recompute=False)

    def clear_error(self) -> None:
        self._error = None

    # --- internals -------------------------------------------------------

    async def _load_remote(self, force_recompute: bool) -> PlanData:
        logger.info("plan_cache.fetch_remote", force_recompute=force_recompute)
        try:
            data = await asyncio.wait_for(self._fetcher(force_recompute), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            error = NetworkError(f"plan request timed out after {self.timeout_seconds:g}s")
            error.__cause__ = exc
            return self._on_failure(error)
        except PlanFetchError as exc:
            return self._on_failure(exc)
        except Exception as exc:
            error = ServerError(f"unexpected plan response: {exc}")
            error.__cause__ = exc
            return self._on_failure(error)
        self._on_success(data)
        # File I/O stays off the event loop.
        await asyncio.to_thread(self._storage.save, self._entry)
        return data

    def _on_success(self, data: PlanData) -> None:
        if self._entry is not None:
            previous = self._entry.data.targets
        else:
            previous = data.previous_targets
        diff = PlanDiff.between(previous, data.targets) if previous is not None else None

        self._entry = PlanCacheEntry(data=data, fetched_at=self._clock(), ttl_seconds=self.ttl_seconds)
        self._expired = False
        self._error = None
        self._last_diff = diff

        logger.info(
            "plan_cache.updated",
            plan_id=data.plan.id,
            significant_change=bool(diff and diff.significant),
        )
        if diff is not None and diff.significant and self._notifier is not None:
            self._notify(previous, data.targets)

    def _on_failure(self, error: PlanFetchError) -> PlanData:
        if self._entry is not None:
            logger.warning("plan_cache.degraded", error=error.message, code=error.code)
            self._error = DegradedCacheError(DEGRADED_MESSAGE, cause=error)
            return self._entry.data
        logger.warning("plan_cache.fetch_failed", error=error.message, code=error.code)
        self._error = error
        raise error

    def _notify(self, old: PlanTargets, new: PlanTargets) -> None:
        task = asyncio.get_running_loop().create_task(self._notifier.notify_plan_updated(old, new))
        self._background.add(task)
        task.add_done_callback(self._notify_done)

    def _notify_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("plan_cache.notify_failed", error=str(exc))


def _consume_result(task: asyncio.Task) -> None:
    # Every caller may have been cancelled; mark the outcome as retrieved.
    if not task.cancelled():
        task.exception()


PlanCache = ClientPlanCache

__all__ = [
    "ClientPlanCache",
    "PlanCache",
    "CacheState",
    "PlanChangeNotifier",
    "PlanFetcher",
    "DEGRADED_MESSAGE",
]
