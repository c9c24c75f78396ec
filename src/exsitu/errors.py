"""Exception types shared across the package."""


class InvalidArgumentError(ValueError):
    """A caller passed something the engine cannot work with at all."""


class ConfigError(Exception):
    """Required configuration is missing."""


class ApiError(Exception):
    """Backend call failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ApiError):
    """Backend kept answering 429 after all retries."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class GeocodingError(Exception):
    """Geocoder call failure."""
