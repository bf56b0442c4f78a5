"""Human-friendly configuration loader.

The ``AppSettings`` class centralises every environment variable we rely on.
That means anyone inspecting the project can quickly answer the questions:

*What:* Which settings exist and what do they control?
*When:* They are read once, the first time ``get_settings`` is called.
*Why:* Centralising configuration prevents magic numbers (timeouts, cache
sizes, debounce windows) scattered all over the codebase.
*How:* ``pydantic-settings`` reads the environment and ``.env`` files, falling
back to sensible defaults so the tools work in development without setup.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Address Desk"
    DATA_DIR: Path = Field(default_factory=lambda: Path.home() / ".addressdesk")
    LOG_LEVEL: str = "INFO"

    # ---- Remote services
    # Only the service name -> base URL mapping matters to the resolver code.
    ADDRESS_VALIDATION_URL: str = ""

    # Per-call budgets in seconds. Validation budgets cover AI-assisted
    # normalization on the backend.
    PROXY_TIMEOUT_S: float = 30.0
    VALIDATE_TIMEOUT_S: float = 30.0
    COMPARE_BLENDED_TIMEOUT_S: float = 120.0
    COMPARE_BASELINE_TIMEOUT_S: float = 60.0

    # ---- Local address cache (one JSON slot per client)
    ADDRESS_CACHE_PATH: Path | None = None
    ADDRESS_CACHE_MAX: int = 200

    # ---- Autocomplete behaviour
    AUTOCOMPLETE_MIN_CHARS: int = 3
    AUTOCOMPLETE_DEBOUNCE_MS: int = 300

    # App binding for the forwarding API
    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def address_cache_path(self) -> Path:
        if self.ADDRESS_CACHE_PATH is not None:
            return self.ADDRESS_CACHE_PATH
        return self.DATA_DIR / "us-address-cache.json"

    @property
    def debounce_seconds(self) -> float:
        return self.AUTOCOMPLETE_DEBOUNCE_MS / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


# Instantiating here means importing ``settings`` anywhere instantly gives you
# access to the configured values without rebuilding the object each time.
settings = get_settings()
