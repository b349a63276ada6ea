"""Shared fakes and fixtures: controllable clock, scripted services, failing store."""

import asyncio
import itertools
import random
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from kungfu import Error, LazyCoroResult, Ok, Result

from exactly import Errors
from exactly.ledger import DedupLedger, DedupRecord, LedgerPolicy
from exactly.store import MemoryStore, StoreError, Txn

COOKS = ("John", "Patricia", "Mike", "Linda", "Steve", "Katie")


# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, *, minutes: float = 0) -> datetime:
        self.now += timedelta(seconds=seconds, minutes=minutes)
        return self.now


# ═══════════════════════════════════════════════════════════════════════════════
# Downstream services
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Invocation:
    service: str
    payload: Any
    idempotency_key: str | None
    ok: bool


class FakeInvoker:
    """In-process downstream services with scripted or random failures.

    chooseCook answers with the next cook in rotation, so a second choice for
    the same order shows up as a different cook.
    """

    def __init__(
        self,
        *,
        delay: float = 0.0,
        success_ratio: float = 1.0,
        seed: int = 7,
    ) -> None:
        self.calls: list[Invocation] = []
        self.delay = delay
        self._success_ratio = success_ratio
        self._random = random.Random(seed)
        self._failures: defaultdict[str, int] = defaultdict(int)
        self._cooks = itertools.cycle(COOKS)
        self._responders: dict[str, Callable[[Any], Any]] = {
            "chooseCook": lambda _payload: {"cook": next(self._cooks)},
            "prepareMeal": lambda _payload: "Cook successfully notified to prepare a meal.",
            "sendEmail": lambda payload: {"sent": payload.get("text")},
            "flaky": lambda _payload: "OK",
        }

    def fail(self, service: str, times: int = 1) -> None:
        """Fail the next `times` calls to service."""
        self._failures[service] += times

    def call(
        self,
        service: str,
        payload: Any,
        idempotency_key: str | None = None,
    ) -> LazyCoroResult[Any, Any]:
        async def run() -> Result[Any, Any]:
            await asyncio.sleep(self.delay)
            if self._failures[service] > 0 or self._random.random() >= self._success_ratio:
                if self._failures[service] > 0:
                    self._failures[service] -= 1
                self.calls.append(Invocation(service, payload, idempotency_key, ok=False))
                return Error(Errors.service(service, f"Transient failure from {service}.", idempotency_key))

            self.calls.append(Invocation(service, payload, idempotency_key, ok=True))
            return Ok(self._responders[service](payload))

        return LazyCoroResult(run)

    def calls_to(self, service: str, *, ok: bool | None = None) -> list[Invocation]:
        return [c for c in self.calls if c.service == service and (ok is None or c.ok == ok)]


# ═══════════════════════════════════════════════════════════════════════════════
# Store that fails on demand
# ═══════════════════════════════════════════════════════════════════════════════


class FailingStore[V]:
    """MemoryStore wrapper whose next N operations fail."""

    def __init__(self, inner: MemoryStore[V] | None = None) -> None:
        self.inner = inner if inner is not None else MemoryStore[V]()
        self._remaining = 0

    def fail_next(self, times: int = 1) -> None:
        self._remaining += times

    def _should_fail(self) -> bool:
        if self._remaining > 0:
            self._remaining -= 1
            return True
        return False

    async def get(self, key: str) -> Result[V | None, StoreError]:
        if self._should_fail():
            return Error(StoreError("store unavailable"))
        return await self.inner.get(key)

    async def transact[R](self, key: str, fn: Txn[V, R]) -> Result[R, StoreError]:
        if self._should_fail():
            return Error(StoreError("store unavailable"))
        return await self.inner.transact(key, fn)


# ═══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger_store() -> MemoryStore[DedupRecord]:
    return MemoryStore[DedupRecord]()


@pytest.fixture
def ledger(ledger_store: MemoryStore[DedupRecord], clock: FakeClock) -> DedupLedger:
    return DedupLedger(ledger_store, LedgerPolicy().with_lease(seconds=60), clock=clock)


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def contents() -> MemoryStore[dict[str, Any]]:
    return MemoryStore[dict[str, Any]]()


@pytest.fixture
def orders() -> MemoryStore[dict[str, Any]]:
    return MemoryStore[dict[str, Any]]()
