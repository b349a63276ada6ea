"""
Processor types — strategies, effects and results.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Strategy — How duplicates are handled
# ═══════════════════════════════════════════════════════════════════════════════


class Strategy(Enum):
    """
    How a processor guards its side effect against redelivery.

    NONE: Call, then insert under a random key. No dedup at all.
          Every redelivery duplicates both the call and the record.

    KEYED_WRITE: Create-if-absent keyed by event id, then call.
          No duplicate records, duplicate calls remain possible.

    LEDGER: decide() on the dedup ledger, run only on ShouldRun,
          mark_done() after. The only strategy with exactly-once calls.
    """

    NONE = auto()
    KEYED_WRITE = auto()
    LEDGER = auto()


# Singleton instances for convenience
NONE = Strategy.NONE
KEYED_WRITE = Strategy.KEYED_WRITE
LEDGER = Strategy.LEDGER


# ═══════════════════════════════════════════════════════════════════════════════
# Effect — What a processor does with an event
# ═══════════════════════════════════════════════════════════════════════════════


def _identity(content: Any) -> Any:
    return content


@dataclass(frozen=True, slots=True)
class Call:
    """One downstream call; payload derives the request body from the content."""

    service: str
    payload: Callable[[Any], Any] = _identity


@dataclass(frozen=True, slots=True)
class Effect:
    """
    Side effect of one event.

    persist: store the content as a document in the records store.
    calls: downstream calls made in order; the last response is the result.
    after: calls made once the result is committed, on every delivery,
        replays included. Under LEDGER they carry the event id as
        idempotency key and are not gated, so a failure here is
        redelivered without repeating `calls`.
    """

    name: str
    calls: tuple[Call, ...]
    persist: bool = True
    after: tuple[Call, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Processed:
    """
    Acknowledged delivery.

    executed: this delivery ran the side effect. False when it was
    skipped because an earlier delivery already completed it, in which
    case value is the recorded result.
    """

    event_id: str
    value: Any
    executed: bool


__all__ = (
    "Strategy",
    "NONE",
    "KEYED_WRITE",
    "LEDGER",
    "Call",
    "Effect",
    "Processed",
)
