"""Configuration for the authenticated HTTP client.

Uses Pydantic v2 for validation with sensible defaults. Every model is
frozen; derive variants with ``with_overrides``.
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator

from .errors import InvalidConfigError


class RetryConfig(BaseModel):
    """Retry configuration with linear backoff."""

    model_config = ConfigDict(frozen=True)

    attempts: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay: Annotated[float, Field(gt=0, le=60)] = 1.0
    max_delay: Annotated[float, Field(gt=0, le=300)] = 30.0
    jitter: Annotated[float, Field(ge=0, le=1.0)] = 0.0

    def get_delay(self, attempt_number: int) -> float:
        """Delay before retry ``attempt_number`` (1-indexed)."""
        delay = min(self.base_delay * attempt_number, self.max_delay)
        if not self.jitter:
            return delay
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)  # noqa: S311


class CacheConfig(BaseModel):
    """Response cache and request dedup defaults for GET requests."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    default_ttl: Annotated[float, Field(ge=0)] = 60.0
    dedupe: bool = True


class SessionConfig(BaseModel):
    """Token refresh and session monitoring settings."""

    model_config = ConfigDict(frozen=True)

    proactive_window: Annotated[float, Field(ge=0)] = 300.0  # 5 minutes
    check_interval: Annotated[float, Field(gt=0)] = 30.0
    refresh_retry_attempts: Annotated[int, Field(ge=0, le=5)] = 2
    refresh_token_field: str = Field(default="refreshToken", min_length=1)
    expiring_soon_threshold: Annotated[float, Field(ge=0)] = 300.0
    credentials_path: Path | None = None


class TelemetryConfig(BaseModel):
    """OpenTelemetry and structured logging configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "authenticated-http"
    log_level: str = "INFO"


class ClientConfig(BaseModel):
    """Main configuration for ``AuthenticatedClient``."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    base_url: HttpUrl

    # HTTP settings
    timeout: Annotated[float, Field(gt=0, le=300)] = 30.0
    connect_timeout: Annotated[float, Field(gt=0, le=60)] = 10.0

    # Sub-configurations
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    # Endpoints (auto-derived from base_url if not set)
    login_endpoint: str | None = None
    logout_endpoint: str | None = None
    refresh_endpoint: str | None = None

    @model_validator(mode="after")
    def set_default_endpoints(self) -> Self:
        """Set default auth endpoints based on base_url."""
        base = str(self.base_url).rstrip("/")

        # Use object.__setattr__ since model is frozen
        if self.login_endpoint is None:
            object.__setattr__(self, "login_endpoint", f"{base}/auth/login")
        if self.logout_endpoint is None:
            object.__setattr__(self, "logout_endpoint", f"{base}/auth/logout")
        if self.refresh_endpoint is None:
            object.__setattr__(self, "refresh_endpoint", f"{base}/auth/refresh")

        return self

    @property
    def base_url_str(self) -> str:
        """Get base URL as string without trailing slash."""
        return str(self.base_url).rstrip("/")

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values.

        Endpoints derived from the old ``base_url`` are re-derived when
        ``base_url`` changes.
        """
        data = self.model_dump()
        if "base_url" in kwargs:
            for name in ("login_endpoint", "logout_endpoint", "refresh_endpoint"):
                data[name] = None
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, prefix: str = "AUTHENTICATED_HTTP_") -> Self:
        """Create config from environment variables."""
        import os

        def get_env(key: str, default: Any = None) -> Any:
            value = os.environ.get(f"{prefix}{key}", default)
            return value.strip() if isinstance(value, str) else value

        base_url = get_env("BASE_URL")
        if not base_url or not base_url.startswith("http"):
            raise InvalidConfigError(
                f"{prefix}BASE_URL environment variable must be an http(s) URL",
                field="base_url",
            )

        credentials_path = get_env("CREDENTIALS_PATH")
        try:
            return cls(
                base_url=base_url,
                timeout=float(get_env("TIMEOUT", "30.0")),
                retry=RetryConfig(attempts=int(get_env("RETRY_ATTEMPTS", "3"))),
                session=SessionConfig(
                    credentials_path=Path(credentials_path) if credentials_path else None
                ),
            )
        except ValueError as e:
            raise InvalidConfigError(f"Invalid environment configuration: {e}") from e
