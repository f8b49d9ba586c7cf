"""HTTP sender for the authenticated client.

A sender performs exactly one HTTP exchange and returns the raw status
and decoded body. Anything with a matching ``send`` coroutine can be
plugged into the transport; ``HttpxSender`` is the default.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx

from .models import RawResponse

if TYPE_CHECKING:
    from .config import ClientConfig

USER_AGENT = "authenticated-http/0.1.0 Python"


class Sender(Protocol):
    """Protocol for one-shot HTTP senders."""

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        body: Any,
        timeout: float,
    ) -> RawResponse:
        """Perform one HTTP exchange."""
        ...

    async def aclose(self) -> None:
        """Release underlying connections."""
        ...


def create_async_http_client(
    config: ClientConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create configured async HTTP client.

    Args:
        config: Client configuration.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).

    Returns:
        Configured httpx.AsyncClient.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=config.connect_timeout,
            read=config.timeout,
            write=config.timeout,
            pool=config.timeout,
        ),
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        },
        follow_redirects=False,
        transport=transport,
    )


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxSender:
    """Sender backed by ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpxSender:
        return cls(create_async_http_client(config, transport=transport))

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        body: Any,
        timeout: float,
    ) -> RawResponse:
        kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout}
        if body is not None:
            kwargs["json"] = body

        response = await self._client.request(method, url, **kwargs)
        return RawResponse(
            status_code=response.status_code,
            body=decode_body(response),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
