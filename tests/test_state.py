"""Tests for the in-memory token state store."""

from __future__ import annotations

from launchpad_tracker.state import TokenStateStore


class TestTokenStateStore:
    def test_add_is_idempotent_per_address(self, store: TokenStateStore, make_token) -> None:
        first = make_token()
        duplicate = make_token(creator="0x" + "d" * 40)

        assert store.add(first) is True
        assert store.add(duplicate) is False

        assert len(store) == 1
        assert store.get(first.address) is first
        assert first.address in store

    def test_add_marks_dirty_and_drain_resets(self, store: TokenStateStore, make_token) -> None:
        token = make_token()
        store.add(token)

        assert store.dirty_count == 1
        assert store.drain_dirty() == [token]
        assert store.dirty_count == 0
        assert store.drain_dirty() == []

    def test_hydrate_does_not_mark_dirty(self, store: TokenStateStore, make_token) -> None:
        tokens = [make_token("0x" + "1" * 40), make_token("0x" + "2" * 40)]

        assert store.hydrate(tokens) == 2
        assert store.dirty_count == 0
        assert {t.address for t in store} == {"0x" + "1" * 40, "0x" + "2" * 40}

    def test_mark_dirty_ignores_unknown_tokens(self, store: TokenStateStore) -> None:
        store.mark_dirty("0x" + "9" * 40)
        assert store.dirty_count == 0

    def test_lock_is_per_token(self, store: TokenStateStore) -> None:
        a = store.lock("0x" + "1" * 40)
        assert store.lock("0x" + "1" * 40) is a
        assert store.lock("0x" + "2" * 40) is not a
