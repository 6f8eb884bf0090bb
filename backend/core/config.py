"""
LedgerPulse Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

from dashboard.scheduler import OverlapPolicy
from ledger.base import LedgerBackend

LOCAL_ENVS = {"", "local", "dev", "development", "test"}

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "LedgerPulse"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Ledger gateway
    ledger_backend: str = "memory"
    ledger_url: str = "http://localhost:8545"
    ledger_api_key: str = ""

    # ── Refresh engine ───────────────────────────────────────────────
    refresh_interval_seconds: float = 15.0
    recent_items_limit: int = 10
    query_timeout_seconds: float = 10.0
    max_concurrency: int = 16
    overlap_policy: str = "drop"
    fetch_details: bool = True

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @field_validator("refresh_interval_seconds", "query_timeout_seconds")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_concurrency")
    @classmethod
    def _positive_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("recent_items_limit")
    @classmethod
    def _non_negative_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("overlap_policy")
    @classmethod
    def _known_overlap_policy(cls, value: str) -> str:
        return _normalize_choice(value, OverlapPolicy)

    @field_validator("ledger_backend")
    @classmethod
    def _known_ledger_backend(cls, value: str) -> str:
        return _normalize_choice(value, LedgerBackend)


def _normalize_choice(value: str, choices: type[Enum]) -> str:
    normalized = value.strip().lower()
    allowed = [choice.value for choice in choices]
    if normalized not in allowed:
        raise ValueError(f"must be one of {allowed}, got {value!r}")
    return normalized


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_runtime_guardrails(settings)
    return settings


def _enforce_runtime_guardrails(settings: Settings) -> None:
    env = settings.app_env.strip().lower()
    if env in LOCAL_ENVS:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.ledger_backend == "memory":
        raise ValueError("Refusing to serve the in-memory ledger outside local/dev/test")
