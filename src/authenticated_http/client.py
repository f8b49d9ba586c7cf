"""Authenticated async HTTP client.

Wires transport, response cache, refresh coordinator and credential
store together. Collaborators call ``request`` (or a verb helper) and
get the decoded body back, or a ``ClientError``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import urlencode

from pydantic import ValidationError

from .core.cache import MISS, ResponseCache, cache_key
from .context import SessionContext
from .errors import ClientError, TokenInvalidError, UnauthenticatedError
from .models import LoginResponse, RawRequest, RequestSpec, SessionStatus, TokenSet
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    from collections.abc import Callable

    from .config import ClientConfig
    from .core.refresh import RefreshCoordinator
    from .core.transport import Outcome, Transport
    from .http import Sender
    from .models import UserIdentity
    from .store import CredentialStore


class AuthenticatedClient:
    """Resilient client with caching, retries and single-flight refresh."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        context: SessionContext | None = None,
        sender: Sender | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        """Initialize client.

        Args:
            config: Client configuration.
            context: Session to join; a new one is created if omitted.
            sender: Sender for a newly created context.
            cache: Response cache (a private one by default).
        """
        self.config = config
        self._context = context or SessionContext(config, sender=sender)
        self._cache = cache or ResponseCache()
        self._logger = get_logger()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop monitoring and close the underlying HTTP client."""
        await self._context.aclose()

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def store(self) -> CredentialStore:
        return self._context.store

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._context.coordinator

    @property
    def transport(self) -> Transport:
        return self._context.transport

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    # Collaborator interface

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        enable_cache: bool | None = None,
        cache_ttl: float | None = None,
        retry_attempts: int | None = None,
        timeout: float | None = None,
        dedupe: bool | None = None,
    ) -> Any:
        """Issue a request and return the decoded response body.

        Raises:
            HTTPStatusError: Non-retryable status, or 5xx after retries.
            NetworkError: Connection failure after retries.
            RequestTimeoutError: The attempt timed out.
            UnauthenticatedError: The session could not be refreshed.
        """
        spec = RequestSpec(
            method=method,
            path=path,
            query=query,
            body=body,
            headers=headers or {},
            enable_cache=enable_cache,
            cache_ttl=cache_ttl,
            retry_attempts=retry_attempts,
            timeout=timeout,
            dedupe=dedupe,
        )
        return await self.send(spec)

    async def send(self, spec: RequestSpec) -> Any:
        """Issue a prepared ``RequestSpec``."""
        url = self.build_url(spec.path, spec.query)
        if spec.method != "GET":
            return await self._execute(spec, url, cache_for=None)

        ttl = self._cache_ttl(spec)
        dedupe = spec.dedupe if spec.dedupe is not None else self.config.cache.dedupe
        key = cache_key(spec.method, url)

        if ttl > 0:
            cached = self._cache.read(key)
            if cached is not MISS:
                self._logger.debug("Cache hit", key=key)
                return cached

        cache_for = (key, ttl) if ttl > 0 else None
        if not dedupe:
            return await self._execute(spec, url, cache_for=cache_for)

        task = self._cache.attach_or_create(
            key, lambda: self._execute(spec, url, cache_for=cache_for)
        )
        return await asyncio.shield(task)

    async def get(self, path: str, *, query: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.request("GET", path, query=query, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, body=body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, body=body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, body=body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    def invalidate_cache(self, pattern: str | None = None) -> int:
        """Drop cached GET responses whose key contains ``pattern`` (all if ``None``)."""
        return self._cache.invalidate(pattern)

    def on_session_change(
        self, listener: Callable[[TokenSet | None], None]
    ) -> Callable[[], None]:
        """Subscribe to login, refresh and logout; returns an unsubscribe function."""
        return self.store.subscribe(listener)

    # Session lifecycle

    async def login(self, email: str, password: str) -> LoginResponse:
        """Log in with email and password and store the new session.

        A 401 here means bad credentials and is raised as ``HTTPStatusError``;
        it never triggers a token refresh.
        """
        with trace_operation("login"):
            request = RawRequest(
                method="POST",
                url=self.config.login_endpoint or self.build_url("/auth/login"),
                headers={"Content-Type": "application/json"},
                body={"email": email, "password": password},
            )
            outcome = await self._attempt_with_retries(request)
            body = outcome.unwrap()
            try:
                response = LoginResponse.model_validate(body)
            except ValidationError as e:
                raise TokenInvalidError(f"Invalid login response: {e}") from e
            tokens = TokenSet.from_response(response)
            self.store.set(tokens, user=response.identity())

        self._logger.info("Logged in", expires_at=tokens.expires_at.isoformat())
        return response

    async def logout(self) -> None:
        """Revoke the refresh token server-side (best effort) and clear the session."""
        tokens = self.store.get()
        try:
            if tokens is not None and tokens.refresh_token:
                with trace_operation("logout"):
                    request = RawRequest(
                        method="POST",
                        url=self.config.logout_endpoint or self.build_url("/auth/logout"),
                        headers={
                            "Content-Type": "application/json",
                            "Authorization": tokens.authorization,
                        },
                        body={"refresh_token": tokens.refresh_token},
                    )
                    outcome = await self.transport.attempt(request, self.config.timeout)
                if not outcome.ok and outcome.error is not None:
                    self._logger.warning("Logout request failed", **outcome.error.to_dict())
        finally:
            self.store.clear()
            self._cache.invalidate()

    @property
    def is_authenticated(self) -> bool:
        tokens = self.store.get()
        return tokens is not None and not tokens.is_expired()

    @property
    def current_user(self) -> UserIdentity | None:
        return self.store.get_user()

    def session_status(self) -> SessionStatus:
        return self.coordinator.session_status()

    def start_monitoring(self) -> None:
        """Start proactive refresh and expiry monitoring on the running loop."""
        self.coordinator.start_monitoring()

    async def stop_monitoring(self) -> None:
        await self.coordinator.stop_monitoring()

    # Internals

    def build_url(self, path: str, query: dict[str, Any] | None = None) -> str:
        """Join ``path`` onto the base URL and append non-``None`` query values."""
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.config.base_url_str}/{path.lstrip('/')}"
        if query:
            params = [(k, _query_value(v)) for k, v in query.items() if v is not None]
            if params:
                url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
        return url

    def _cache_ttl(self, spec: RequestSpec) -> float:
        enabled = spec.enable_cache if spec.enable_cache is not None else self.config.cache.enabled
        if not enabled:
            return 0.0
        return spec.cache_ttl if spec.cache_ttl is not None else self.config.cache.default_ttl

    def _is_refresh_url(self, url: str) -> bool:
        return url.split("?", 1)[0] == self.config.refresh_endpoint

    async def _execute(
        self,
        spec: RequestSpec,
        url: str,
        *,
        cache_for: tuple[str, float] | None,
        is_retry: bool = False,
    ) -> Any:
        tokens = self.store.get()
        headers = dict(spec.headers)
        if spec.body is not None:
            headers.setdefault("Content-Type", "application/json")
        if tokens is not None:
            headers["Authorization"] = tokens.authorization

        request = RawRequest(method=spec.method, url=url, headers=headers, body=spec.body)
        outcome = await self._attempt_with_retries(
            request, retry_attempts=spec.retry_attempts, timeout=spec.timeout
        )

        if outcome.is_unauthorized:
            if is_retry:
                raise UnauthenticatedError(
                    "Request rejected again after token refresh",
                    correlation_id=outcome.error.correlation_id if outcome.error else None,
                )
            if self._is_refresh_url(url):
                raise UnauthenticatedError("Refresh endpoint rejected the request")

            # A refresh that settled during this attempt already replaced the token.
            current = self.store.get()
            if current is None or current == tokens:
                await self.coordinator.ensure_fresh()
            return await self._execute(spec, url, cache_for=cache_for, is_retry=True)

        body = outcome.unwrap()
        if cache_for is not None:
            key, ttl = cache_for
            self._cache.write(key, body, ttl)
        return body

    async def _attempt_with_retries(
        self,
        request: RawRequest,
        *,
        retry_attempts: int | None = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Attempt ``request``, retrying network errors and 5xx with linear backoff."""
        retries = retry_attempts if retry_attempts is not None else self.config.retry.attempts
        timeout = timeout or self.config.timeout

        attempt = 0
        while True:
            outcome = await self.transport.attempt(request, timeout)
            if outcome.ok or not outcome.retryable or attempt >= retries:
                if not outcome.ok and outcome.retryable:
                    self._log_exhausted(request, attempt, outcome.error)
                return outcome
            attempt += 1
            delay = self.config.retry.get_delay(attempt)
            self._logger.warning(
                "Request failed, retrying",
                method=request.method,
                url=request.url,
                attempt=attempt,
                delay=delay,
                error=outcome.error.message if outcome.error else None,
            )
            await asyncio.sleep(delay)

    def _log_exhausted(self, request: RawRequest, attempts: int, error: ClientError | None) -> None:
        self._logger.error(
            "Request failed after retries",
            method=request.method,
            url=request.url,
            retries=attempts,
            error=error.message if error else None,
        )


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
