"""Tests for the in-memory record store and store operations."""

import asyncio

import pytest
from kungfu import Ok

from exactly.store import Commit, MemoryStore, add, create_if_absent, keep, put


@pytest.fixture
def store() -> MemoryStore[dict]:
    return MemoryStore[dict]()


@pytest.mark.asyncio
class TestMemoryStore:
    """transact() and get()."""

    async def test_get_missing_key(self, store):
        assert await store.get("missing") == Ok(None)

    async def test_put_writes_and_returns(self, store):
        result = await store.transact("k", lambda current: put({"n": 1}, "written"))

        assert result == Ok("written")
        assert await store.get("k") == Ok({"n": 1})

    async def test_keep_leaves_value_untouched(self, store):
        await store.transact("k", lambda current: put({"n": 1}, None))

        result = await store.transact("k", lambda current: keep(current["n"]))

        assert result == Ok(1)
        assert await store.get("k") == Ok({"n": 1})

    async def test_transaction_sees_current_value(self, store):
        def increment(current):
            n = 0 if current is None else current["n"]
            return Commit(returns=n + 1, write={"n": n + 1})

        results = await asyncio.gather(*(store.transact("k", increment) for _ in range(10)))

        assert sorted(r.value for r in results) == list(range(1, 11))
        assert await store.get("k") == Ok({"n": 10})


@pytest.mark.asyncio
class TestOperations:
    """create_if_absent() and add()."""

    async def test_create_if_absent_creates_once(self, store):
        first = await create_if_absent(store, "evt-1", {"cook": "John"})
        second = await create_if_absent(store, "evt-1", {"cook": "Mike"})

        assert first.value.created is True
        assert second.value.created is False
        assert second.value.value == {"cook": "John"}
        assert len(store) == 1

    async def test_concurrent_create_if_absent_has_one_winner(self, store):
        results = await asyncio.gather(
            *(create_if_absent(store, "evt-1", {"attempt": i}) for i in range(5))
        )

        assert sum(r.value.created for r in results) == 1
        assert len({repr(r.value.value) for r in results}) == 1

    async def test_add_never_dedups(self, store):
        keys = [(await add(store, {"same": True})).value for _ in range(3)]

        assert len(set(keys)) == 3
        assert len(store) == 3
        assert sorted(store.keys()) == sorted(keys)
