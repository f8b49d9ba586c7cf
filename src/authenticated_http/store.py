"""Credential storage for the current session.

Holds exactly one credential record (token set plus user identity) and
notifies subscribers synchronously after every durable change.
"""

from __future__ import annotations

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from .models import CredentialRecord, TokenSet, UserIdentity
from .telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    SessionListener = Callable[[TokenSet | None], None]


class CredentialStore(ABC):
    """Thread-safe credential store with change listeners.

    Subclasses only decide where the record lives; locking, the
    idempotent ``clear`` and listener dispatch are shared.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []
        self._logger = get_logger()

    @abstractmethod
    def _load(self) -> CredentialRecord | None:
        """Return the stored record, if any."""

    @abstractmethod
    def _save(self, record: CredentialRecord) -> None:
        """Durably replace the stored record."""

    @abstractmethod
    def _delete(self) -> None:
        """Durably remove the stored record."""

    def get(self) -> TokenSet | None:
        """Get the current token set, or ``None`` when logged out."""
        with self._lock:
            record = self._load()
        return record.tokens if record else None

    def get_user(self) -> UserIdentity | None:
        """Get the identity snapshot stored with the tokens."""
        with self._lock:
            record = self._load()
        return record.user if record else None

    def set(self, tokens: TokenSet, user: UserIdentity | None = None) -> None:
        """Atomically replace the token set.

        Args:
            tokens: New token set.
            user: New identity snapshot; ``None`` keeps the current one.
        """
        with self._lock:
            current = self._load()
            if user is None and current is not None:
                user = current.user
            self._save(CredentialRecord(tokens=tokens, user=user))
        self._notify(tokens)

    def clear(self) -> None:
        """Remove the credentials. Clearing an empty store does nothing."""
        with self._lock:
            if self._load() is None:
                return
            self._delete()
        self._notify(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, tokens: TokenSet | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(tokens)
            except Exception:
                self._logger.exception(
                    "Session listener failed",
                    listener=getattr(listener, "__qualname__", repr(listener)),
                )


class InMemoryCredentialStore(CredentialStore):
    """Process-local store, for tests and ephemeral sessions."""

    def __init__(self, record: CredentialRecord | None = None) -> None:
        super().__init__()
        self._record = record

    def _load(self) -> CredentialRecord | None:
        return self._record

    def _save(self, record: CredentialRecord) -> None:
        self._record = record

    def _delete(self) -> None:
        self._record = None


class FileCredentialStore(CredentialStore):
    """JSON file store that survives process restarts.

    Writes go to a temporary file in the same directory and are moved
    into place with ``os.replace``, so readers never see a partial record.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__()
        self.path = Path(path)
        self._record = self._read_file()

    def _read_file(self) -> CredentialRecord | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        if not raw.strip():
            return None
        try:
            return CredentialRecord.model_validate_json(raw)
        except ValueError as e:
            # An unreadable record is treated as logged out.
            self._logger.warning(
                "Discarding unreadable credential record",
                path=str(self.path),
                error=str(e),
            )
            return None

    def _load(self) -> CredentialRecord | None:
        return self._record

    def _save(self, record: CredentialRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = record.model_dump_json(by_alias=True, exclude_none=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._record = record

    def _delete(self) -> None:
        self.path.unlink(missing_ok=True)
        self._record = None
