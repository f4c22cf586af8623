from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from app.config import get_settings

from .errors import ApiRequestError, GateRejectedError, NetworkError, ServerError
from .models import PlanData, TodayMetricsView

logger = structlog.get_logger(__name__)

GATE_ERROR_CODE = "METRICS_NOT_ACKNOWLEDGED"


class PlanApiClient:
    """
    Thin async client for the plan and metrics endpoints.

    Every call is bounded by ``timeout``. Errors come back as the client
    taxonomy in ``app.client.errors``, never as raw httpx exceptions.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        if base_url is None:
            base_url = settings.API_BASE_URL
        if timeout is None:
            timeout = settings.PLAN_CLIENT_TIMEOUT_SECONDS
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "PlanApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 500:
            logger.warning("plan_api.server_error", path=path, status_code=resp.status_code)
            raise ServerError(f"server returned {resp.status_code}", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            if resp.is_success:
                raise ServerError("response body is not a JSON envelope", status_code=resp.status_code)
            body = {}

        if resp.is_success and body.get("ok", True):
            return body.get("data")

        error = body.get("error") or {}
        code = error.get("code") or f"HTTP_{resp.status_code}"
        message = error.get("message") or resp.reason_phrase
        logger.info("plan_api.request_rejected", path=path, status_code=resp.status_code, code=code)
        if code == GATE_ERROR_CODE:
            raise GateRejectedError(message, code=code, status_code=resp.status_code)
        raise ApiRequestError(message, code=code, status_code=resp.status_code)

    def _parse(self, model, data: Any, path: str):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.warning("plan_api.malformed_response", path=path, errors=exc.error_count())
            raise ServerError(f"malformed response from {path}", status_code=200) from exc

    async def generate_plan(self, force_recompute: bool = False) -> PlanData:
        path = "/api/v1/plans/generate"
        data = await self._request("POST", path, json={"force_recompute": force_recompute})
        return self._parse(PlanData, data, path)

    async def get_today_metrics(self) -> TodayMetricsView:
        path = "/api/v1/profile/metrics/today"
        data = await self._request("GET", path)
        return self._parse(TodayMetricsView, data, path)

    async def acknowledge_metrics(self, version: int, metrics_computed_at: Union[datetime, str]) -> dict:
        if isinstance(metrics_computed_at, datetime):
            metrics_computed_at = metrics_computed_at.isoformat()
        return await self._request(
            "POST",
            "/api/v1/profile/metrics/acknowledge",
            json={"version": version, "metrics_computed_at": metrics_computed_at},
        )


__all__ = ["PlanApiClient", "GATE_ERROR_CODE"]
