from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from .models import PlanCacheEntry

logger = structlog.get_logger(__name__)


class PlanCacheStorage(Protocol):
    def load(self) -> Optional[PlanCacheEntry]: ...

    def save(self, entry: PlanCacheEntry) -> None: ...

    def clear(self) -> None: ...


class InMemoryPlanStorage:
    """Per-instance storage; nothing is shared between two of these."""

    def __init__(self, entry: Optional[PlanCacheEntry] = None) -> None:
        self._raw: Optional[str] = entry.model_dump_json() if entry is not None else None

    def load(self) -> Optional[PlanCacheEntry]:
        if self._raw is None:
            return None
        return PlanCacheEntry.model_validate_json(self._raw)

    def save(self, entry: PlanCacheEntry) -> None:
        self._raw = entry.model_dump_json()

    def clear(self) -> None:
        self._raw = None


class JsonFilePlanStorage:
    """Persists the cached plan as a JSON document at ``path``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[PlanCacheEntry]:
        if not self.path.exists():
            return None
        try:
            return PlanCacheEntry.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as exc:
            logger.warning("plan_cache.storage_corrupt", path=str(self.path), error=str(exc))
            self.clear()
            return None

    def save(self, entry: PlanCacheEntry) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(entry.model_dump_json(), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            # the in-memory copy is still good; next save retries
            logger.error("plan_cache.storage_write_failed", path=str(self.path), error=str(exc))

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["PlanCacheStorage", "InMemoryPlanStorage", "JsonFilePlanStorage"]
