"""Session context: the process-wide session state, passed explicitly."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core.refresh import RefreshCoordinator
from .core.transport import Transport
from .http import HttpxSender
from .store import CredentialStore, FileCredentialStore, InMemoryCredentialStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from .config import ClientConfig
    from .http import Sender


class SessionContext:
    """Bundles the credential store, transport and refresh coordinator.

    One context represents "the current session". Share it between
    clients that must refresh together; build a fresh one per test.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        store: CredentialStore | None = None,
        sender: Sender | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.store = store or _default_store(config)
        self.transport = Transport(sender or HttpxSender.from_config(config))
        self.coordinator = RefreshCoordinator(
            self.store, self.transport, config, clock=clock
        )

    async def aclose(self) -> None:
        """Stop monitoring and close the sender."""
        await self.coordinator.aclose()
        await self.transport.sender.aclose()


def _default_store(config: ClientConfig) -> CredentialStore:
    path = config.session.credentials_path
    if path is not None:
        return FileCredentialStore(path)
    return InMemoryCredentialStore()
