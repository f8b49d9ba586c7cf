"""Pydantic models for the authenticated HTTP client.

Frozen models for immutability; a ``TokenSet`` is only ever replaced
as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Self

import jwt
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import TokenInvalidError

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


class TokenResponse(BaseModel):
    """Token endpoint response. Accepts snake_case and camelCase keys."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("access_token", "accessToken")
    )
    refresh_token: str | None = Field(
        default=None, validation_alias=AliasChoices("refresh_token", "refreshToken")
    )
    expires_in: PositiveInt | None = Field(
        default=None, validation_alias=AliasChoices("expires_in", "expiresIn")
    )
    token_type: str = Field(
        default="Bearer", validation_alias=AliasChoices("token_type", "tokenType")
    )


class UserIdentity(BaseModel):
    """Snapshot of the logged-in user, persisted next to the tokens."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    user_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("user_id", "userId", "id")
    )
    user_type: str | None = Field(
        default=None, validation_alias=AliasChoices("user_type", "userType", "role")
    )
    email: str | None = None
    full_name: str | None = Field(
        default=None, validation_alias=AliasChoices("full_name", "fullName")
    )

    @property
    def is_admin(self) -> bool:
        return self.user_type == "ADMIN"


class LoginResponse(TokenResponse):
    """Login response: tokens plus the user identity, flat or nested under ``user``."""

    user_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("user_id", "userId")
    )
    user_type: str | None = Field(
        default=None, validation_alias=AliasChoices("user_type", "userType")
    )
    email: str | None = None
    full_name: str | None = Field(
        default=None, validation_alias=AliasChoices("full_name", "fullName")
    )
    user: dict[str, Any] | None = None

    def identity(self) -> UserIdentity | None:
        """Extract the user identity, if the response carried one."""
        if self.user:
            return UserIdentity.model_validate(self.user)
        if self.user_id is None and self.email is None:
            return None
        return UserIdentity(
            user_id=self.user_id,
            user_type=self.user_type,
            email=self.email,
            full_name=self.full_name,
        )


class TokenSet(BaseModel):
    """The current credentials. Access and refresh tokens change together."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    issued_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def validate_lifetime(self) -> Self:
        """Expiry must come strictly after issuance."""
        if self.expires_at <= self.issued_at:
            msg = "expires_at must be later than issued_at"
            raise ValueError(msg)
        return self

    @classmethod
    def from_response(
        cls,
        response: TokenResponse,
        *,
        now: datetime | None = None,
        previous_refresh_token: str | None = None,
    ) -> Self:
        """Build a TokenSet from a token response.

        The lifetime comes from ``expires_in``; when the server omits it, the
        unverified ``exp`` claim of the access token is used instead.

        Raises:
            TokenInvalidError: If no expiry can be determined.
        """
        now = now or datetime.now(UTC)
        if response.expires_in is not None:
            expires_at = now + timedelta(seconds=response.expires_in)
        else:
            expires_at = _jwt_expiry(response.access_token)

        if expires_at <= now:
            raise TokenInvalidError(
                "Token response is already expired",
                details={"expires_at": expires_at.isoformat()},
            )

        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token or previous_refresh_token,
            issued_at=now,
            expires_at=expires_at,
        )

    def time_until_expiry(self, now: datetime | None = None) -> timedelta:
        """Get time remaining until the access token expires."""
        return self.expires_at - (now or datetime.now(UTC))

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.time_until_expiry(now) <= timedelta(0)

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"


def _jwt_expiry(token: str) -> datetime:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.exceptions.InvalidTokenError as e:
        raise TokenInvalidError(f"Token response has no expires_in and token is not a JWT: {e}") from e

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenInvalidError("Token response has no expires_in and token has no exp claim")
    return datetime.fromtimestamp(exp, tz=UTC)


class CredentialRecord(BaseModel):
    """The single durable record: tokens plus the optional user identity."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    tokens: TokenSet
    user: UserIdentity | None = None


class RequestSpec(BaseModel):
    """One collaborator request with per-call overrides.

    ``None`` overrides fall back to the client configuration.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    path: str
    query: dict[str, Any] | None = None
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    enable_cache: bool | None = None
    cache_ttl: NonNegativeFloat | None = None
    retry_attempts: NonNegativeInt | None = None
    timeout: PositiveFloat | None = None
    dedupe: bool | None = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        method = v.upper()
        if method not in HTTP_METHODS:
            msg = f"Unsupported HTTP method: {v}. Supported: {sorted(HTTP_METHODS)}"
            raise ValueError(msg)
        return method


@dataclass(frozen=True, slots=True)
class RawRequest:
    """What the transport hands to a sender."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True, slots=True)
class RawResponse:
    """What a sender returns: status, decoded body, headers."""

    status_code: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CacheEntry:
    """Cached value with monotonic-clock timestamps."""

    value: Any
    stored_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True, slots=True)
class SessionStatus:
    """Countdown view of the current session."""

    authenticated: bool
    expires_at: datetime | None = None
    seconds_remaining: int | None = None
    expiring_soon: bool = False

    @property
    def formatted(self) -> str:
        if self.seconds_remaining is None:
            return "N/A"
        minutes, seconds = divmod(self.seconds_remaining, 60)
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"
