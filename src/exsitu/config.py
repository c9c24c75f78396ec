"""Runtime settings read from the environment (.env is loaded by the entry points)."""

import logging
import os
from dataclasses import dataclass

from exsitu.errors import ConfigError

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Immutable settings for the fetch layer and entry points."""

    api_base_url: str | None = None  # Strapi REST root, e.g. https://cms.example.org/api
    cache_seconds: float = 600.0  # Response cache TTL
    min_request_interval: float = 1.0  # Seconds between outgoing requests
    max_retries: int = 3  # Retries on HTTP 429
    http_timeout: float = 10.0
    user_agent: str = "ExSitu/1.0"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build Settings from EXSITU_* variables.

        NEXT_PUBLIC_API_BASE_URL is accepted as a fallback for the base URL so
        an existing front-end .env can be reused.

        Raises:
            ConfigError: If a numeric variable doesn't parse.
        """
        base_url = os.environ.get("EXSITU_API_BASE_URL") or os.environ.get(
            "NEXT_PUBLIC_API_BASE_URL"
        )
        return cls(
            api_base_url=base_url.rstrip("/") if base_url else None,
            cache_seconds=_env_float("EXSITU_CACHE_SECONDS", cls.cache_seconds),
            min_request_interval=_env_float(
                "EXSITU_MIN_REQUEST_INTERVAL", cls.min_request_interval
            ),
            max_retries=int(_env_float("EXSITU_MAX_RETRIES", cls.max_retries)),
            http_timeout=_env_float("EXSITU_HTTP_TIMEOUT", cls.http_timeout),
            user_agent=os.environ.get("EXSITU_USER_AGENT", cls.user_agent),
            log_level=os.environ.get("EXSITU_LOG_LEVEL", cls.log_level).upper(),
        )

    def require_api_base_url(self) -> str:
        if not self.api_base_url:
            raise ConfigError("EXSITU_API_BASE_URL is not set")
        return self.api_base_url


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for the app and CLI. Library modules only get loggers."""
    logging.basicConfig(level=level, format=_LOG_FORMAT)
