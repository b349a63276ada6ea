"""
Store operations built on transact().
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from kungfu import Result

from exactly.store._types import RecordStore, StoreError, keep, put


@dataclass(frozen=True, slots=True)
class Created[V]:
    """Result of create_if_absent: the value now stored and who wrote it."""

    value: V
    created: bool


async def create_if_absent[V](
    store: RecordStore[V],
    key: str,
    value: V,
) -> Result[Created[V], StoreError]:
    """
    Write value under key only if nothing is stored there yet.

    Returns the winning value: ours when created, the existing one otherwise.
    """

    def txn(current: V | None):
        if current is not None:
            return keep(Created(current, created=False))
        return put(value, Created(value, created=True))

    return await store.transact(key, txn)


async def add[V](store: RecordStore[V], value: V) -> Result[str, StoreError]:
    """
    Insert value under a fresh random key (a blind insert).

    Note: Not idempotent — every call creates a new record.
    """
    key = uuid.uuid4().hex
    return await store.transact(key, lambda _current: put(value, key))


__all__ = ("Created", "create_if_absent", "add")
