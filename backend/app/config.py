# backend/app/config.py
from functools import lru_cache
from typing import List
import secrets

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None
    DB_REQUIRE_SSL: bool = True

    # --- Auth seam (tokens are issued elsewhere; we only decode them) ---
    JWT_SECRET: str | None = Field(None, description="JWT signing secret. Must be set outside dev/test.")
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MIN: int = 30

    TRUSTED_HOSTS: List[str] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "testserver",
            "test",
        ]
    )

    LOG_LEVEL: str = "INFO"

    # --- Daily metrics recompute ---
    SCHEDULER_ENABLED: bool = True
    # IANA timezone name used by APScheduler (e.g., "UTC", "America/New_York").
    SCHEDULER_TZ: str = "UTC"
    # Optional dedicated job store URL. If None, jobs live in memory.
    SCHEDULER_DB_URL: str | None = None
    METRICS_RECOMPUTE_HOUR: int = Field(0, ge=0, le=23)
    METRICS_RECOMPUTE_MINUTE: int = Field(5, ge=0, le=59)

    # --- Plan generation ---
    # Allow plan generation before any metrics snapshot exists for the day.
    PLAN_GATE_ALLOW_BOOTSTRAP: bool = True
    # A plan started within this many days is reused unless force_recompute is set.
    PLAN_RECENT_DAYS: int = 7

    # --- Client plan cache ---
    PLAN_CACHE_TTL_SECONDS: int = 3600
    PLAN_CLIENT_TIMEOUT_SECONDS: float = 30.0
    API_BASE_URL: str = "http://localhost:8000"

    @model_validator(mode="after")
    def _check_jwt_secret(self):
        # In dev/test, auto-generate an ephemeral secret if none provided to avoid committing secrets.
        if self.ENV in ("dev", "test"):
            if not self.JWT_SECRET:
                self.JWT_SECRET = secrets.token_urlsafe(32)
            return self
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set via environment for non-dev/test environments.")
        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
