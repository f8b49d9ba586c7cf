"""Error classes for the authenticated HTTP client.

Every failure a caller can observe is a ``ClientError`` tagged with an
``ErrorKind``. Error codes and correlation IDs are carried for logging.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes."""

    # Authentication errors (1xxx)
    TOKEN_INVALID = "AUTH_1002"
    TOKEN_REFRESH_FAILED = "AUTH_1003"
    UNAUTHENTICATED = "AUTH_1005"

    # Validation errors (2xxx)
    INVALID_CONFIG = "VAL_2002"

    # Network errors (3xxx)
    NETWORK_ERROR = "NET_3001"
    TIMEOUT_ERROR = "NET_3002"
    ABORTED = "NET_3004"

    # HTTP status errors (4xxx / 5xxx)
    HTTP_ERROR = "HTTP_4001"
    SERVER_ERROR = "SRV_5001"


class ErrorKind(StrEnum):
    """Outcome tag shared by the transport and the client."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    UNAUTHENTICATED = "unauthenticated"
    ABORTED = "aborted"


class ClientError(Exception):
    """Base error with structured error information."""

    kind: ErrorKind | None = None
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = str(code)
        self.status_code = status_code
        self.correlation_id = correlation_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "kind": self.kind.value if self.kind else None,
            "code": self.code,
            "status_code": self.status_code,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NetworkError(ClientError):
    """Connection-level failure; safe to retry."""

    kind = ErrorKind.NETWORK
    retryable = True

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.NETWORK_ERROR,
            correlation_id=correlation_id,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class RequestTimeoutError(ClientError):
    """Attempt exceeded its timeout. Never retried: the server may have processed it."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str = "Request timed out",
        *,
        correlation_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TIMEOUT_ERROR,
            status_code=408,
            correlation_id=correlation_id,
            details={"timeout_seconds": timeout_seconds} if timeout_seconds else None,
        )


class HTTPStatusError(ClientError):
    """Non-2xx response. 5xx responses are retryable, everything else is terminal."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: Any = None,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.SERVER_ERROR if status_code >= 500 else ErrorCode.HTTP_ERROR,
            status_code=status_code,
            correlation_id=correlation_id,
            details={"body": body} if body is not None else None,
        )
        self.body = body

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code is not None and self.status_code >= 500

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class UnauthenticatedError(ClientError):
    """The session is gone; the caller must log in again."""

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(
        self,
        message: str = "Session is no longer authenticated",
        *,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.UNAUTHENTICATED,
            status_code=401,
            correlation_id=correlation_id,
            details=details,
        )


class AbortedError(ClientError):
    """The underlying call was cancelled."""

    kind = ErrorKind.ABORTED

    def __init__(
        self,
        message: str = "Request was aborted",
        *,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.ABORTED, correlation_id=correlation_id)


class TokenInvalidError(ClientError):
    """Token endpoint returned a payload that cannot become a TokenSet."""

    def __init__(
        self,
        message: str = "Token is invalid",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.TOKEN_INVALID, details=details)


class InvalidConfigError(ClientError):
    """Invalid client configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIG,
            details={"field": field} if field else None,
        )
