"""Single-flight token refresh and proactive session monitoring.

Any number of callers that hit a 401 at the same time share one refresh
call. Refresh tokens are commonly single-use, so a second concurrent
refresh would invalidate the first and log the user out.

State machine::

    IDLE -> REFRESHING -> IDLE              (success)
    IDLE -> REFRESHING -> FAILED -> IDLE    (failure, credentials cleared)
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ..errors import ClientError, TokenInvalidError, UnauthenticatedError
from ..models import RawRequest, SessionStatus, TokenResponse, TokenSet
from ..telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import ClientConfig
    from ..store import CredentialStore
    from .transport import Outcome, Transport


class RefreshState(StrEnum):
    """Refresh coordinator states."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"


class RefreshCoordinator:
    """Owns the refresh protocol and the expiry monitor for one session.

    All methods must be called from the event loop that owns the
    coordinator; single-flight relies on check-and-register happening
    without an intervening ``await``.
    """

    def __init__(
        self,
        store: CredentialStore,
        transport: Transport,
        config: ClientConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._session = config.session
        self._clock = clock or (lambda: datetime.now(UTC))
        self._logger = get_logger()

        self._state = RefreshState.IDLE
        self._operation: asyncio.Task[TokenSet] | None = None
        self._monitor: asyncio.Task[None] | None = None
        self._refresh_failed = False
        self._expiry_handled = False

        self._unsubscribe = store.subscribe(self._on_tokens_changed)

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._operation is not None

    @property
    def is_monitoring(self) -> bool:
        return self._monitor is not None and not self._monitor.done()

    def _on_tokens_changed(self, tokens: TokenSet | None) -> None:
        # A new token set starts a new expiry cycle.
        if tokens is not None:
            self._refresh_failed = False
            self._expiry_handled = False

    async def ensure_fresh(self) -> TokenSet:
        """Refresh the token set, joining an in-flight refresh if there is one.

        Returns:
            The new token set.

        Raises:
            UnauthenticatedError: If the refresh failed; credentials are cleared.
        """
        operation = self._operation
        if operation is None:
            self._state = RefreshState.REFRESHING
            operation = asyncio.ensure_future(self._refresh())
            operation.add_done_callback(_consume_outcome)
            self._operation = operation
        return await asyncio.shield(operation)

    async def _refresh(self) -> TokenSet:
        try:
            with trace_operation("token_refresh"):
                tokens = await self._perform_refresh()
        except UnauthenticatedError as e:
            self._fail(e)
            raise
        except Exception as e:
            self._logger.exception("Token refresh raised unexpectedly")
            error = UnauthenticatedError(
                f"Token refresh failed: {e}", details={"cause": repr(e)}
            )
            self._fail(error)
            raise error from e
        finally:
            self._operation = None
            self._state = RefreshState.IDLE

        self._logger.info(
            "Token refreshed",
            expires_at=tokens.expires_at.isoformat(),
        )
        return tokens

    def _fail(self, error: UnauthenticatedError) -> None:
        self._state = RefreshState.FAILED
        self._refresh_failed = True
        self._logger.warning(
            "Token refresh failed, clearing session",
            error=error.message,
            correlation_id=error.correlation_id,
        )
        self._store.clear()

    async def _perform_refresh(self) -> TokenSet:
        current = self._store.get()
        if current is None or not current.refresh_token:
            raise UnauthenticatedError("No refresh token available")

        request = RawRequest(
            method="POST",
            url=self._config.refresh_endpoint or f"{self._config.base_url_str}/auth/refresh",
            headers={"Content-Type": "application/json"},
            body={self._session.refresh_token_field: current.refresh_token},
        )

        outcome = await self._attempt_refresh(request)
        if not outcome.ok:
            error = outcome.error
            raise UnauthenticatedError(
                f"Token refresh failed: {error.message}" if error else "Token refresh failed",
                correlation_id=error.correlation_id if error else None,
                details={"cause": error.to_dict()} if error else None,
            )

        try:
            response = TokenResponse.model_validate(outcome.body)
            tokens = TokenSet.from_response(
                response,
                now=self._clock(),
                previous_refresh_token=current.refresh_token,
            )
        except (ValidationError, TokenInvalidError) as e:
            raise UnauthenticatedError(f"Invalid refresh response: {e}") from e

        self._store.set(tokens)
        return tokens

    async def _attempt_refresh(self, request: RawRequest) -> Outcome:
        """Send the refresh call with its own small retry budget."""
        budget = self._session.refresh_retry_attempts
        attempt = 0
        while True:
            outcome = await self._transport.attempt(request, self._config.timeout)
            if outcome.ok or not outcome.retryable or attempt >= budget:
                return outcome
            attempt += 1
            delay = self._config.retry.get_delay(attempt)
            self._logger.warning(
                "Token refresh failed, retrying",
                attempt=attempt,
                delay=delay,
                error=outcome.error.message if outcome.error else None,
            )
            await asyncio.sleep(delay)

    async def tick(self) -> None:
        """Run one expiry check.

        Refreshes ahead of expiry when inside the proactive window, and
        ends the session once an unrefreshable token has expired.
        """
        tokens = self._store.get()
        if tokens is None:
            return

        remaining = tokens.time_until_expiry(self._clock())
        can_refresh = bool(tokens.refresh_token) and not self._refresh_failed

        if remaining <= timedelta(0) and not can_refresh:
            self._expire_session(tokens)
            return

        window = timedelta(seconds=self._session.proactive_window)
        if remaining < window and can_refresh and self._state is RefreshState.IDLE:
            self._logger.info(
                "Refreshing token ahead of expiry",
                seconds_remaining=int(remaining.total_seconds()),
            )
            try:
                await self.ensure_fresh()
            except UnauthenticatedError:
                # Already logged and broadcast through the store.
                return

    def _expire_session(self, tokens: TokenSet) -> None:
        if self._expiry_handled:
            return
        self._expiry_handled = True
        self._logger.warning(
            "Session expired",
            expired_at=tokens.expires_at.isoformat(),
            reason="refresh failed" if self._refresh_failed else "no refresh token",
        )
        self._store.clear()

    def start_monitoring(self) -> None:
        """Start the background expiry monitor on the running loop."""
        if self.is_monitoring:
            return
        self._monitor = asyncio.get_running_loop().create_task(
            self._monitor_loop(), name="session-monitor"
        )

    async def stop_monitoring(self) -> None:
        """Stop the background expiry monitor."""
        monitor, self._monitor = self._monitor, None
        if monitor is None:
            return
        monitor.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await monitor

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.tick()
            except ClientError as e:
                self._logger.error("Session check failed", **e.to_dict())
            except Exception:
                self._logger.exception("Session check raised unexpectedly")
            await asyncio.sleep(self._session.check_interval)

    def session_status(self) -> SessionStatus:
        """Countdown view of the current session."""
        tokens = self._store.get()
        if tokens is None:
            return SessionStatus(authenticated=False)

        seconds = max(int(tokens.time_until_expiry(self._clock()).total_seconds()), 0)
        return SessionStatus(
            authenticated=seconds > 0,
            expires_at=tokens.expires_at,
            seconds_remaining=seconds,
            expiring_soon=0 < seconds < self._session.expiring_soon_threshold,
        )

    async def aclose(self) -> None:
        """Stop monitoring and detach from the store."""
        await self.stop_monitoring()
        self._unsubscribe()


def _consume_outcome(task: asyncio.Task[TokenSet]) -> None:
    # Marks the exception retrieved when every waiter has gone away.
    if not task.cancelled():
        task.exception()
