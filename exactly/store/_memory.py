"""
In-memory record store — for tests and single-process demos.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

from kungfu import Result, Ok

from exactly.store._types import StoreError, Txn


class MemoryStore[V]:
    """
    In-memory RecordStore.

    Note: Only for single-process use and tests.
    Per-key asyncio.Lock models per-key transaction isolation; different
    keys never wait on each other.
    """

    def __init__(self) -> None:
        self._records: dict[str, V] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, key: str) -> Result[V | None, StoreError]:
        async with self._locks[key]:
            return Ok(self._records.get(key))

    async def transact[R](self, key: str, fn: Txn[V, R]) -> Result[R, StoreError]:
        async with self._locks[key]:
            commit = fn(self._records.get(key))
            if commit.write is not None:
                self._records[key] = commit.write
            return Ok(commit.returns)

    def keys(self) -> list[str]:
        return list(self._records)

    def values(self) -> list[V]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)


__all__ = ("MemoryStore",)
