from __future__ import annotations

from typing import Callable, List, Optional

import structlog

from .api import PlanApiClient
from .errors import ApiRequestError
from .models import TodayMetricsView

logger = structlog.get_logger(__name__)

Listener = Callable[[bool], None]


class AcknowledgmentState:
    """
    Single source of truth for "has the user acknowledged today's metrics".

    Views subscribe instead of polling the API each; listeners get the current
    value on subscribe and again whenever it changes.
    """

    def __init__(self, api: PlanApiClient) -> None:
        self._api = api
        self._acknowledged = False
        self._metrics: Optional[TodayMetricsView] = None
        self._listeners: List[Listener] = []

    @property
    def acknowledged(self) -> bool:
        return self._acknowledged

    @property
    def metrics(self) -> Optional[TodayMetricsView]:
        return self._metrics

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self._acknowledged)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, acknowledged: bool) -> None:
        if acknowledged == self._acknowledged:
            return
        self._acknowledged = acknowledged
        for listener in list(self._listeners):
            listener(acknowledged)

    async def refresh(self) -> Optional[TodayMetricsView]:
        try:
            view = await self._api.get_today_metrics()
        except ApiRequestError as exc:
            if exc.code != "NOT_FOUND":
                raise
            # nothing computed yet
            self._metrics = None
            self._set(False)
            return None
        self._metrics = view
        self._set(view.acknowledged)
        return view

    async def acknowledge(self) -> None:
        if self._metrics is None:
            await self.refresh()
        if self._metrics is None:
            raise ApiRequestError("No metrics available to acknowledge", code="NOT_FOUND", status_code=404)

        m = self._metrics.metrics
        await self._api.acknowledge_metrics(m.version, m.computed_at)
        logger.info("ack_state.acknowledged", version=m.version)
        self._metrics = self._metrics.model_copy(update={"acknowledged": True})
        self._set(True)


__all__ = ["AcknowledgmentState"]
