"""Environment-variable-driven configuration for the table extractor service.

Static settings are module-level constants read once at import. The OpenRouter
connection settings can be changed at runtime through ``POST /api/config`` and
therefore live in a ``ConfigStore`` holding an immutable snapshot.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, replace


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# -- OpenRouter ---------------------------------------------------------------
OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_REFERER = "http://localhost:3000"
OPENROUTER_DEFAULT_APP_TITLE = "PDF & Image to Table Converter"
OPENROUTER_TIMEOUT_SECONDS: float = float(os.getenv("OPENROUTER_TIMEOUT_SECONDS", "120"))
OPENROUTER_MAX_TOKENS: int = int(os.getenv("OPENROUTER_MAX_TOKENS", "4000"))
OPENROUTER_TEMPERATURE: float = float(os.getenv("OPENROUTER_TEMPERATURE", "0.1"))

# -- Uploads ------------------------------------------------------------------
UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))
MAX_UPLOAD_FILES: int = int(os.getenv("MAX_UPLOAD_FILES", "10"))

# -- Rate limiting ------------------------------------------------------------
RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", True)
RATE_LIMIT_PROCESS: str = os.getenv("RATE_LIMIT_PROCESS", "10/minute")
RATE_LIMIT_UPLOAD: str = os.getenv("RATE_LIMIT_UPLOAD", "30/minute")

# -- CORS ---------------------------------------------------------------------
CORS_ALLOW_ORIGINS: list[str] = _env_csv("CORS_ALLOW_ORIGINS", "*")
CORS_ALLOW_METHODS: list[str] = _env_csv("CORS_ALLOW_METHODS", "GET,POST,OPTIONS")
CORS_ALLOW_HEADERS: list[str] = _env_csv(
    "CORS_ALLOW_HEADERS",
    "Authorization,Content-Type,X-Request-ID",
)
CORS_ALLOW_CREDENTIALS: bool = _env_bool("CORS_ALLOW_CREDENTIALS", False)

# -- Server -------------------------------------------------------------------
APP_ENV: str = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "5000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")


@dataclass(frozen=True)
class OpenRouterSettings:
    api_key: str = ""
    base_url: str = OPENROUTER_DEFAULT_BASE_URL
    http_referer: str = OPENROUTER_DEFAULT_REFERER
    app_title: str = OPENROUTER_DEFAULT_APP_TITLE
    timeout_seconds: float = OPENROUTER_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> OpenRouterSettings:
        return cls(
            api_key=os.getenv("OPENROUTER_API_KEY", ""),
            base_url=os.getenv("OPENROUTER_BASE_URL") or OPENROUTER_DEFAULT_BASE_URL,
            http_referer=os.getenv("HTTP_REFERER") or OPENROUTER_DEFAULT_REFERER,
            app_title=os.getenv("OPENROUTER_APP_TITLE") or OPENROUTER_DEFAULT_APP_TITLE,
            timeout_seconds=OPENROUTER_TIMEOUT_SECONDS,
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


class ConfigStore:
    """Process-wide holder of the current ``OpenRouterSettings`` snapshot.

    Updates build a new frozen snapshot and swap it in under a lock, so a
    reader always gets a consistent object. Concurrent updates resolve
    last-writer-wins.
    """

    def __init__(self, settings: OpenRouterSettings | None = None) -> None:
        self._settings = settings if settings is not None else OpenRouterSettings.from_env()
        self._lock = threading.Lock()

    def get(self) -> OpenRouterSettings:
        return self._settings

    def update(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        http_referer: str | None = None,
    ) -> OpenRouterSettings:
        changes: dict[str, str] = {}
        if api_key is not None:
            changes["api_key"] = api_key
        if base_url:
            changes["base_url"] = base_url
        if http_referer:
            changes["http_referer"] = http_referer
        with self._lock:
            self._settings = replace(self._settings, **changes)
            return self._settings
