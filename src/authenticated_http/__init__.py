"""Resilient authenticated async HTTP client."""

from .client import AuthenticatedClient
from .config import CacheConfig, ClientConfig, RetryConfig, SessionConfig, TelemetryConfig
from .context import SessionContext
from .core import MISS, Outcome, RefreshCoordinator, RefreshState, ResponseCache, Transport
from .errors import (
    AbortedError,
    ClientError,
    ErrorCode,
    ErrorKind,
    HTTPStatusError,
    InvalidConfigError,
    NetworkError,
    RequestTimeoutError,
    TokenInvalidError,
    UnauthenticatedError,
)
from .http import HttpxSender, Sender
from .models import RequestSpec, SessionStatus, TokenResponse, TokenSet, UserIdentity
from .store import CredentialStore, FileCredentialStore, InMemoryCredentialStore
from .telemetry import configure_telemetry

__all__ = [
    "AbortedError",
    "AuthenticatedClient",
    "CacheConfig",
    "ClientConfig",
    "ClientError",
    "CredentialStore",
    "ErrorCode",
    "ErrorKind",
    "FileCredentialStore",
    "HTTPStatusError",
    "HttpxSender",
    "InMemoryCredentialStore",
    "InvalidConfigError",
    "MISS",
    "NetworkError",
    "Outcome",
    "RefreshCoordinator",
    "RefreshState",
    "RequestSpec",
    "RequestTimeoutError",
    "ResponseCache",
    "RetryConfig",
    "Sender",
    "SessionConfig",
    "SessionContext",
    "SessionStatus",
    "TelemetryConfig",
    "TokenInvalidError",
    "TokenResponse",
    "TokenSet",
    "Transport",
    "UnauthenticatedError",
    "UserIdentity",
    "configure_telemetry",
]

__version__ = "0.1.0"
