"""Centralized error factory.

Maps raw responses and exceptions to ``ClientError`` subclasses so the
transport, the refresh coordinator and the client classify failures the
same way.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from ..errors import (
    AbortedError,
    ClientError,
    HTTPStatusError,
    NetworkError,
    RequestTimeoutError,
)

if TYPE_CHECKING:
    from ..models import RawResponse


class ErrorFactory:
    """Centralized error creation with consistent structure.

    All errors created through this factory include:
    - Standardized error codes
    - Correlation IDs for tracing
    - The response body for HTTP status errors
    """

    @staticmethod
    def generate_correlation_id() -> str:
        """Generate a unique correlation ID."""
        return str(uuid.uuid4())

    @staticmethod
    def from_response(
        response: RawResponse,
        *,
        correlation_id: str | None = None,
    ) -> HTTPStatusError:
        """Create an HTTP status error from a non-2xx response.

        The message is taken from the body's ``message``,
        ``error_description`` or ``error`` field when present.
        """
        status = response.status_code
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()

        message = _extract_message(response.body)
        if message is None:
            message = (
                f"Server error: {status}" if status >= 500 else f"HTTP {status}"
            )

        return HTTPStatusError(
            message,
            status_code=status,
            body=response.body,
            correlation_id=correlation_id,
        )

    @staticmethod
    def from_exception(
        exc: BaseException,
        *,
        correlation_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> ClientError:
        """Create a client error from a sender exception.

        Args:
            exc: Original exception.
            correlation_id: Optional correlation ID for tracing.
            timeout_seconds: Timeout in effect for the attempt.

        Returns:
            Appropriate ClientError subclass.
        """
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()

        if isinstance(exc, ClientError):
            if exc.correlation_id is None:
                exc.correlation_id = correlation_id
            return exc

        if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
            return RequestTimeoutError(
                f"Request timed out after {timeout_seconds}s"
                if timeout_seconds
                else f"Request timed out: {exc}",
                correlation_id=correlation_id,
                timeout_seconds=timeout_seconds,
            )

        if isinstance(exc, asyncio.CancelledError):
            return AbortedError(correlation_id=correlation_id)

        if isinstance(exc, httpx.TransportError):
            return NetworkError(
                f"Connection failed: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        if isinstance(exc, (httpx.HTTPError, OSError)):
            return NetworkError(
                f"HTTP error: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        return NetworkError(
            f"Unexpected error: {exc}",
            correlation_id=correlation_id,
            cause=exc if isinstance(exc, Exception) else None,
        )


def _extract_message(body: Any) -> str | None:
    if isinstance(body, dict):
        for key in ("message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None
