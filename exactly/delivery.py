"""
Redelivery — drive a handler the way at-least-once delivery does.

    policy = RedeliveryPolicy().with_attempts(10).with_backoff(initial=1.0)
    result = await redeliver(pipeline, envelope, policy)

Each attempt hands the same envelope (same event_id) to the handler again.
Retryable errors are redelivered with exponential backoff and jitter,
PERMANENT errors stop at once.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from combinators import retry, RetryPolicy
from kungfu import LazyCoroResult, Result

from exactly._errors import ProcessingError
from exactly.envelope import EventEnvelope
from exactly.observability import get_logger

log = get_logger(__name__)

type Handler[T] = Callable[[EventEnvelope], Awaitable[Result[T, ProcessingError]]]


@dataclass(frozen=True, slots=True)
class RedeliveryPolicy:
    """
    Redelivery configuration.

    Defaults match a client retrying 10 times with factor 2 and randomized
    delays.

    Example:
        policy = (
            RedeliveryPolicy()
            .with_attempts(5)
            .with_backoff(initial=0.5, max_delay=10.0)
        )
    """

    attempts: int = 11
    initial: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.3

    def with_attempts(self, attempts: int) -> RedeliveryPolicy:
        """Total deliveries, first one included."""
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        return RedeliveryPolicy(
            attempts=attempts,
            initial=self.initial,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )

    def with_backoff(
        self,
        *,
        initial: float | None = None,
        multiplier: float | None = None,
        max_delay: float | None = None,
        jitter: float | None = None,
    ) -> RedeliveryPolicy:
        """
        Set backoff between deliveries.

        Example:
            .with_backoff(initial=0)            # redeliver immediately
            .with_backoff(initial=1.0, jitter=0)
        """
        return RedeliveryPolicy(
            attempts=self.attempts,
            initial=self.initial if initial is None else initial,
            multiplier=self.multiplier if multiplier is None else multiplier,
            max_delay=self.max_delay if max_delay is None else max_delay,
            jitter=self.jitter if jitter is None else jitter,
        )

    def to_retry_policy(self) -> RetryPolicy[ProcessingError]:
        return RetryPolicy.exponential_jitter(
            self.attempts,
            initial=self.initial,
            multiplier=self.multiplier,
            max_delay=max(self.max_delay, self.initial),
            jitter_factor=self.jitter,
            retry_on=lambda error: error.retryable,
        )


def redeliver[T](
    handler: Handler[T],
    envelope: EventEnvelope,
    policy: RedeliveryPolicy | None = None,
) -> LazyCoroResult[T, ProcessingError]:
    """
    Deliver envelope to handler until it acks or attempts run out.

    Returns the last attempt's result.
    """
    attempt = 0

    async def deliver() -> Result[T, ProcessingError]:
        nonlocal attempt
        attempt += 1
        log.debug("delivery.attempt", event_id=envelope.event_id, attempt=attempt)
        return await handler(envelope)

    effective = policy if policy is not None else RedeliveryPolicy()
    return retry(LazyCoroResult(deliver), policy=effective.to_retry_policy())


__all__ = ("Handler", "RedeliveryPolicy", "redeliver")
