"""
Invoker — boundary to external, unreliable services.
"""

from __future__ import annotations

from typing import Any, Protocol

from kungfu import LazyCoroResult

from exactly._errors import ProcessingError


class Invoker(Protocol):
    """
    Calls a named downstream service.

    Stateless. Any failure is reported as TRANSIENT_SERVICE.

    Note: idempotency_key is the event id for every call made after a dedup
    decision, so a service that dedups on it can absorb duplicate calls.
    """

    def call(
        self,
        service: str,
        payload: Any,
        idempotency_key: str | None = None,
    ) -> LazyCoroResult[Any, ProcessingError]:
        """Lazy call; nothing is sent until awaited."""
        ...


__all__ = ("Invoker",)
