"""Single-attempt transport with timeout and outcome classification.

The transport answers exactly one attempt. Retry policy belongs to the
caller so cross-cutting rules, such as never retrying a post-refresh
retry, stay in one place.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from ..errors import ClientError, HTTPStatusError
from ..telemetry import get_logger, trace_operation
from .errors import ErrorFactory

if TYPE_CHECKING:
    from ..http import Sender
    from ..models import RawRequest


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of one attempt: a decoded body or a classified error."""

    body: Any = None
    error: ClientError | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, body: Any, status_code: int) -> Outcome:
        return cls(body=body, status_code=status_code)

    @classmethod
    def failure(cls, error: ClientError) -> Outcome:
        return cls(error=error, status_code=error.status_code)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    @property
    def is_unauthorized(self) -> bool:
        return isinstance(self.error, HTTPStatusError) and self.error.is_unauthorized

    def unwrap(self) -> Any:
        """Return the body, or raise the classified error."""
        if self.error is not None:
            raise self.error
        return self.body


class Transport:
    """Performs one HTTP attempt through a pluggable sender."""

    def __init__(self, sender: Sender) -> None:
        self._sender = sender
        self._logger = get_logger()

    @property
    def sender(self) -> Sender:
        return self._sender

    async def attempt(self, request: RawRequest, timeout: float) -> Outcome:
        """Perform one attempt and classify the result.

        Args:
            request: Method, absolute URL, headers and body.
            timeout: Seconds before the call is cancelled.

        Returns:
            Outcome carrying the body on 2xx, or the classified error.
        """
        correlation_id = ErrorFactory.generate_correlation_id()

        with trace_operation(
            "http_attempt",
            attributes={
                "http.method": request.method,
                "http.url": request.url,
                "correlation_id": correlation_id,
            },
        ) as span:
            try:
                async with asyncio.timeout(timeout):
                    response = await self._sender.send(
                        request.method,
                        request.url,
                        headers=request.headers,
                        body=request.body,
                        timeout=timeout,
                    )
            except asyncio.CancelledError as e:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                return self._failed(e, correlation_id, timeout)
            except (TimeoutError, httpx.HTTPError, OSError) as e:
                return self._failed(e, correlation_id, timeout)

            span.set_attribute("http.status_code", response.status_code)

            if 200 <= response.status_code < 300:
                return Outcome.success(response.body, response.status_code)

            error = ErrorFactory.from_response(response, correlation_id=correlation_id)
            self._logger.debug(
                "HTTP attempt returned error status",
                method=request.method,
                url=request.url,
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
            return Outcome.failure(error)

    def _failed(
        self,
        exc: BaseException,
        correlation_id: str,
        timeout: float,
    ) -> Outcome:
        error = ErrorFactory.from_exception(
            exc, correlation_id=correlation_id, timeout_seconds=timeout
        )
        self._logger.debug(
            "HTTP attempt failed",
            kind=error.kind,
            error=str(exc),
            correlation_id=correlation_id,
        )
        return Outcome.failure(error)
