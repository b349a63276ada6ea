"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from kungfu import LazyCoroResult, Result, Ok, Error

from exactly import Errors, ProcessingError


# Fake kitchen services
@dataclass(slots=True)
class Kitchen:
    """
    chooseCook / prepareMeal / sendEmail / flaky, in process.

    Every `fail_every`-th call fails, so runs are reproducible.
    """

    fail_every: int = 3
    calls: dict[str, int] = field(default_factory=dict)
    notified: list[Any] = field(default_factory=list)
    _cooks: itertools.cycle = field(
        default_factory=lambda: itertools.cycle(["John", "Patricia", "Mike", "Linda", "Steve", "Katie"])
    )
    _total: int = 0

    def call(
        self,
        service: str,
        payload: Any,
        idempotency_key: str | None = None,
    ) -> LazyCoroResult[Any, ProcessingError]:
        async def run() -> Result[Any, ProcessingError]:
            await asyncio.sleep(0.01)
            self._total += 1
            self.calls[service] = self.calls.get(service, 0) + 1
            if self.fail_every and self._total % self.fail_every == 0:
                return Error(Errors.service(service, "Something went wrong", idempotency_key))
            match service:
                case "chooseCook":
                    return Ok({"cook": next(self._cooks)})
                case "prepareMeal":
                    self.notified.append(payload)
                    return Ok("Cook successfully notified to prepare a meal.")
                case _:
                    return Ok("OK")

        return LazyCoroResult(run)


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def run(main: Callable[[], Coroutine[object, object, None]]) -> None:
    asyncio.run(main())
