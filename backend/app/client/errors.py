from __future__ import annotations

from typing import Optional


class PlanFetchError(Exception):
    """Base for everything the plan client can raise."""

    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class NetworkError(PlanFetchError):
    """Transport failure or timeout; the server may never have seen the request."""

    retryable = True


class ServerError(PlanFetchError):
    retryable = True


class ApiRequestError(PlanFetchError):
    """The server rejected the request with an error envelope (4xx)."""


class GateRejectedError(ApiRequestError):
    """Plan generation refused until today's metrics are acknowledged."""


class DegradedCacheError(PlanFetchError):
    """
    Not a hard failure: the refresh failed and the cache is serving the last
    saved plan. The underlying error is kept on ``cause``.
    """

    def __init__(self, message: str, cause: Optional[PlanFetchError] = None) -> None:
        super().__init__(message, code="DEGRADED")
        self.cause = cause


__all__ = [
    "PlanFetchError",
    "NetworkError",
    "ServerError",
    "ApiRequestError",
    "GateRejectedError",
    "DegradedCacheError",
]
