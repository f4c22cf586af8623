from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Business-rule failure that maps onto a 4xx envelope, never a 5xx."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Profile inputs are missing or outside accepted ranges. Not retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DomainError):
    """Nothing computed yet; callers may treat this as "not ready"."""

    code = "NOT_FOUND"
    status_code = 404


class GateError(DomainError):
    code = "METRICS_NOT_ACKNOWLEDGED"
    status_code = 400


__all__ = ["DomainError", "ValidationError", "NotFoundError", "GateError"]
