"""
Shared test fixtures for the authenticated HTTP client tests.

Provides configuration, token sets and a scripted fake backend served
through ``httpx.MockTransport`` so tests exercise the real sender.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from authenticated_http.client import AuthenticatedClient
from authenticated_http.config import ClientConfig, RetryConfig, SessionConfig
from authenticated_http.context import SessionContext
from authenticated_http.http import HttpxSender, create_async_http_client
from authenticated_http.models import TokenSet
from authenticated_http.store import CredentialStore, InMemoryCredentialStore

BASE_URL = "https://api.example.com/api/v1"

Reply = tuple[int, Any] | Exception | Callable[[httpx.Request], Any]


class FakeBackend:
    """Scripted HTTP backend.

    Each route holds a queue of replies; the last reply repeats once the
    queue is down to one entry. A reply is ``(status, json_body)``, an
    exception to raise, or a callable (sync or async) taking the request.
    """

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Reply]] = {}

    def route(self, method: str, path: str, *replies: Reply) -> None:
        self._routes[(method.upper(), f"/api/v1{path}")] = list(replies)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        full_path = f"/api/v1{path}"
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == full_path
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "not found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            response = reply(request)
            if inspect.isawaitable(response):
                response = await response
            return response
        status, body = reply
        return httpx.Response(status, json=body)


def make_tokens(
    *,
    access: str = "access-1",
    refresh: str | None = "refresh-1",
    expires_in: float = 3600,
    now: datetime | None = None,
) -> TokenSet:
    now = now or datetime.now(UTC)
    return TokenSet(
        access_token=access,
        refresh_token=refresh,
        issued_at=now - timedelta(seconds=60),
        expires_at=now + timedelta(seconds=expires_in),
    )


def refresh_reply(access: str = "access-2", refresh: str = "refresh-2") -> tuple[int, Any]:
    return 200, {"access_token": access, "refresh_token": refresh, "expires_in": 3600}


def bearer_gate(valid_token: str, body: Any = None) -> Callable[[httpx.Request], httpx.Response]:
    """Reply 200 only when the request carries ``valid_token``."""

    def reply(request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") == f"Bearer {valid_token}":
            return httpx.Response(200, json=body if body is not None else {"ok": True})
        return httpx.Response(401, json={"message": "token expired"})

    return reply


@pytest.fixture
def config() -> ClientConfig:
    """Client configuration with near-zero backoff."""
    return ClientConfig(
        base_url=BASE_URL,
        timeout=5.0,
        retry=RetryConfig(attempts=3, base_delay=0.001, max_delay=0.01),
        session=SessionConfig(proactive_window=300.0, check_interval=0.01),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def tokens() -> TokenSet:
    return make_tokens()


@pytest.fixture
def make_context(
    config: ClientConfig, backend: FakeBackend
) -> Callable[..., SessionContext]:
    """Build a session context wired to the fake backend. Call inside the event loop."""

    def factory(
        *,
        store: CredentialStore | None = None,
        cfg: ClientConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> SessionContext:
        cfg = cfg or config
        sender = HttpxSender(
            create_async_http_client(cfg, transport=httpx.MockTransport(backend.handler))
        )
        return SessionContext(
            cfg, store=store or InMemoryCredentialStore(), sender=sender, clock=clock
        )

    return factory


@pytest.fixture
def make_client(
    config: ClientConfig, make_context: Callable[..., SessionContext]
) -> Callable[..., AuthenticatedClient]:
    """Build a client wired to the fake backend. Call inside the event loop."""

    def factory(
        *,
        store: CredentialStore | None = None,
        cfg: ClientConfig | None = None,
    ) -> AuthenticatedClient:
        cfg = cfg or config
        return AuthenticatedClient(cfg, context=make_context(store=store, cfg=cfg))

    return factory
