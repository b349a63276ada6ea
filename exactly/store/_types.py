"""
Record store — single-key transactional storage protocol.

RecordStore[V] — stores values of type V under string keys.
All methods return Result for explicit error handling.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from kungfu import Result


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Commit — what a transaction function decided
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Commit[R, V]:
    """
    Outcome of a transaction function.

    returns: handed back to the caller of transact().
    write: new value for the key, or None to leave the key untouched.
    """

    returns: R
    write: V | None = None


def keep[R](returns: R) -> Commit[R, Any]:
    """Commit nothing, return a value."""
    return Commit(returns=returns, write=None)


def put[R, V](value: V, returns: R) -> Commit[R, V]:
    """Write value, return a value."""
    return Commit(returns=returns, write=value)


type Txn[V, R] = Callable[[V | None], Commit[R, V]]
"""Transaction function: current value (None when absent) → Commit."""


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class RecordStore[V](Protocol):
    """
    Key-addressed store with atomic single-key transactions.

    Note: transact() must run read → fn → write as one isolated unit per key.
    Two concurrent transact() calls on the same key must never both observe
    the same prior value and both write.

    Example — an insert-only write:

        async def create(store: RecordStore[Doc], key: str, doc: Doc) -> bool:
            result = await store.transact(
                key,
                lambda current: keep(False) if current is not None else put(doc, True),
            )
            return result.unwrap()
    """

    async def get(self, key: str) -> Result[V | None, StoreError]:
        """Get current value. Returns Ok(None) if absent."""
        ...

    async def transact[R](self, key: str, fn: Txn[V, R]) -> Result[R, StoreError]:
        """Atomically read the key, apply fn, write fn's decision."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Codec — value ⇄ JSON document, for durable backends
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Codec[V]:
    """Converts stored values to JSON-compatible documents and back."""

    encode: Callable[[V], dict[str, Any]]
    decode: Callable[[dict[str, Any]], V]


def _identity(document: dict[str, Any]) -> dict[str, Any]:
    return document


DOCUMENT_CODEC: Codec[dict[str, Any]] = Codec(encode=_identity, decode=_identity)
"""Codec for plain JSON documents."""


__all__ = (
    "StoreError",
    "Commit",
    "keep",
    "put",
    "Txn",
    "RecordStore",
    "Codec",
    "DOCUMENT_CODEC",
)
