"""Property tests for credential stores.

After any sequence of sets and clears the store holds the last token set
written (or nothing after a clear), and listeners saw one event per
effective change.
"""

from datetime import UTC, datetime, timedelta

from hypothesis import given, settings, strategies as st

from authenticated_http.models import TokenSet
from authenticated_http.store import InMemoryCredentialStore

NOW = datetime(2026, 1, 1, tzinfo=UTC)

token_sets = st.builds(
    lambda access, refresh, lifetime: TokenSet(
        access_token=access,
        refresh_token=refresh,
        issued_at=NOW,
        expires_at=NOW + timedelta(seconds=lifetime),
    ),
    access=st.text(min_size=1, max_size=20),
    refresh=st.one_of(st.none(), st.text(min_size=1, max_size=20)),
    lifetime=st.integers(min_value=1, max_value=86400),
)

operations = st.lists(st.one_of(st.none(), token_sets), max_size=20)


class TestStoreProperties:
    """Property tests for store state and notifications."""

    @given(ops=operations)
    @settings(max_examples=100)
    def test_last_write_wins(self, ops: list[TokenSet | None]) -> None:
        store = InMemoryCredentialStore()
        events: list[TokenSet | None] = []
        store.subscribe(events.append)

        expected: list[TokenSet | None] = []
        current: TokenSet | None = None
        for op in ops:
            if op is None:
                store.clear()
                if current is not None:
                    expected.append(None)
                current = None
            else:
                store.set(op)
                expected.append(op)
                current = op

        assert store.get() == current
        assert events == expected
