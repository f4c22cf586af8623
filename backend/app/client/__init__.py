"""Async client for plan generation: API access, plan cache and acknowledgment state."""
from .ack_state import AcknowledgmentState
from .api import PlanApiClient
from .errors import (
    ApiRequestError,
    DegradedCacheError,
    GateRejectedError,
    NetworkError,
    PlanFetchError,
    ServerError,
)
from .models import PlanCacheEntry, PlanData, PlanDiff, PlanTargets, TodayMetricsView
from .plan_cache import CacheState, ClientPlanCache, PlanCache
from .storage import InMemoryPlanStorage, JsonFilePlanStorage, PlanCacheStorage

__all__ = [
    "AcknowledgmentState",
    "PlanApiClient",
    "ClientPlanCache",
    "PlanCache",
    "CacheState",
    "PlanCacheStorage",
    "InMemoryPlanStorage",
    "JsonFilePlanStorage",
    "PlanCacheEntry",
    "PlanData",
    "PlanDiff",
    "PlanTargets",
    "TodayMetricsView",
    "PlanFetchError",
    "NetworkError",
    "ServerError",
    "ApiRequestError",
    "GateRejectedError",
    "DegradedCacheError",
]
