"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Backend base URL per environment
_API_BASE_URLS: dict[str, str] = {
    "development": "https://fitglue-dev.web.app",
    "test": "https://fitglue-test.web.app",
    "production": "https://fitglue.app",
}


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "FitGlue Sync"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | test | production

    # --- Backend ---
    api_base_url: str = ""  # empty = derived from environment
    http_timeout_seconds: float = 30.0

    # --- Device ---
    platform: str = "ios"  # ios | android
    os_version: str = ""
    store_path: Path = Path.home() / ".fitglue" / "sync_state.db"
    healthkit_export_path: Path | None = None  # export.xml for the HealthKit bridge

    # --- Auth ---
    auth_token: str = ""  # static bearer token (dev / CI)
    firebase_api_key: str = ""
    firebase_refresh_token: str = ""

    # --- Background sync ---
    background_sync_enabled: bool = True

    # --- Control API ---
    cors_origins: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    model_config = {"env_prefix": "FITGLUE_", "env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        value = value.lower()
        if value in ("production", "prod"):
            return "production"
        if value in ("test", "staging"):
            return "test"
        return "development"

    @field_validator("platform")
    @classmethod
    def _normalize_platform(cls, value: str) -> str:
        value = value.lower()
        if value not in ("ios", "android"):
            raise ValueError(f"platform must be 'ios' or 'android', got {value!r}")
        return value

    @property
    def resolved_api_base_url(self) -> str:
        """Explicit override, else the backend for the current environment."""
        return (self.api_base_url or _API_BASE_URLS[self.environment]).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
