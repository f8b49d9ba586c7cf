"""Unit tests for credential stores.

Tests round-trips, idempotent clear, listener dispatch and durability.
"""

import json

import pytest

from authenticated_http.models import TokenSet, UserIdentity
from authenticated_http.store import FileCredentialStore, InMemoryCredentialStore
from conftest import make_tokens


class TestInMemoryCredentialStore:
    """Tests for the in-memory store."""

    def test_starts_logged_out(self) -> None:
        store = InMemoryCredentialStore()

        assert store.get() is None
        assert store.get_user() is None

    def test_set_then_get_round_trips(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()

        store.set(tokens)

        assert store.get() == tokens

    def test_clear_then_get_is_absent(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()
        store.set(tokens)

        store.clear()

        assert store.get() is None

    def test_clear_twice_notifies_once(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()
        store.set(tokens)
        events: list[TokenSet | None] = []
        store.subscribe(events.append)

        store.clear()
        store.clear()

        assert events == [None]

    def test_clear_on_empty_store_is_silent(self) -> None:
        store = InMemoryCredentialStore()
        events: list[TokenSet | None] = []
        store.subscribe(events.append)

        store.clear()

        assert events == []

    def test_listener_sees_new_state(self, tokens: TokenSet) -> None:
        """Listeners run after the mutation, so reads inside them are current."""
        store = InMemoryCredentialStore()
        seen: list[TokenSet | None] = []
        store.subscribe(lambda _: seen.append(store.get()))

        store.set(tokens)
        store.clear()

        assert seen == [tokens, None]

    def test_unsubscribe_stops_notifications(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()
        events: list[TokenSet | None] = []
        unsubscribe = store.subscribe(events.append)

        unsubscribe()
        store.set(tokens)
        unsubscribe()  # second call is harmless

        assert events == []

    def test_failing_listener_does_not_block_others(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()
        events: list[TokenSet | None] = []

        def broken(_: TokenSet | None) -> None:
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(events.append)

        store.set(tokens)

        assert events == [tokens]
        assert store.get() == tokens

    def test_set_replaces_tokens_and_keeps_user(self) -> None:
        store = InMemoryCredentialStore()
        user = UserIdentity(user_id=7, user_type="ADMIN", email="a@example.com")
        store.set(make_tokens(access="a1", refresh="r1"), user=user)

        store.set(make_tokens(access="a2", refresh="r2"))

        current = store.get()
        assert current is not None
        assert (current.access_token, current.refresh_token) == ("a2", "r2")
        assert store.get_user() == user

    def test_clear_removes_user(self, tokens: TokenSet) -> None:
        store = InMemoryCredentialStore()
        store.set(tokens, user=UserIdentity(user_id=1))

        store.clear()

        assert store.get_user() is None


class TestFileCredentialStore:
    """Tests for the JSON file store."""

    def test_survives_restart(self, tmp_path, tokens: TokenSet) -> None:
        path = tmp_path / "session.json"
        user = UserIdentity(user_id=42, user_type="ADMIN", email="ops@example.com", full_name="Ops")
        FileCredentialStore(path).set(tokens, user=user)

        reopened = FileCredentialStore(path)

        assert reopened.get() == tokens
        assert reopened.get_user() == user

    def test_persists_single_camel_case_record(self, tmp_path, tokens: TokenSet) -> None:
        path = tmp_path / "session.json"
        FileCredentialStore(path).set(tokens)

        record = json.loads(path.read_text())

        assert set(record) == {"tokens"}
        assert record["tokens"]["accessToken"] == tokens.access_token
        assert record["tokens"]["refreshToken"] == tokens.refresh_token
        assert "expiresAt" in record["tokens"]

    def test_clear_removes_file(self, tmp_path, tokens: TokenSet) -> None:
        path = tmp_path / "session.json"
        store = FileCredentialStore(path)
        store.set(tokens)

        store.clear()
        store.clear()

        assert not path.exists()
        assert FileCredentialStore(path).get() is None

    def test_missing_file_means_logged_out(self, tmp_path) -> None:
        assert FileCredentialStore(tmp_path / "absent.json").get() is None

    @pytest.mark.parametrize("content", ["", "not json", '{"tokens": {"accessToken": "x"}}'])
    def test_unreadable_record_means_logged_out(self, tmp_path, content: str) -> None:
        path = tmp_path / "session.json"
        path.write_text(content)

        assert FileCredentialStore(path).get() is None

    def test_creates_parent_directories(self, tmp_path, tokens: TokenSet) -> None:
        path = tmp_path / "nested" / "dir" / "session.json"

        FileCredentialStore(path).set(tokens)

        assert path.exists()
        assert not list(path.parent.glob("*.tmp"))
