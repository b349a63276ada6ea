"""Tests for redelivery."""

import pytest
from kungfu import Error, Ok

from exactly import Errors, EventEnvelope, RedeliveryPolicy, redeliver, utc_now

IMMEDIATE = RedeliveryPolicy().with_backoff(initial=0, max_delay=0, jitter=0)


class ScriptedHandler:
    def __init__(self, *results):
        self._results = list(results)
        self.seen: list[str] = []

    async def __call__(self, envelope):
        self.seen.append(envelope.event_id)
        return self._results.pop(0)


@pytest.mark.asyncio
class TestRedeliver:
    """Retryable errors are redelivered, PERMANENT ones are not."""

    async def test_redelivers_until_ack(self):
        handler = ScriptedHandler(
            Error(Errors.service("flaky", "boom")),
            Error(Errors.store("timeout")),
            Ok("done"),
        )

        result = await redeliver(handler, EventEnvelope("evt-1"), IMMEDIATE)

        assert result == Ok("done")
        assert handler.seen == ["evt-1", "evt-1", "evt-1"]

    async def test_permanent_error_stops_at_once(self):
        handler = ScriptedHandler(Error(Errors.permanent("bad payload")), Ok("never"))

        result = await redeliver(handler, EventEnvelope("evt-1"), IMMEDIATE)

        assert isinstance(result, Error)
        assert result.error.message == "bad payload"
        assert len(handler.seen) == 1

    async def test_exhaustion_returns_last_error(self):
        handler = ScriptedHandler(
            Error(Errors.service("flaky", "first")),
            Error(Errors.lease_conflict("evt-1", utc_now())),
        )

        result = await redeliver(handler, EventEnvelope("evt-1"), IMMEDIATE.with_attempts(2))

        assert isinstance(result, Error)
        assert result.error.kind.name == "LEASE_CONFLICT"
        assert len(handler.seen) == 2


class TestPolicy:
    """RedeliveryPolicy builders."""

    def test_defaults(self):
        policy = RedeliveryPolicy()

        assert (policy.attempts, policy.initial, policy.multiplier) == (11, 1.0, 2.0)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RedeliveryPolicy().with_attempts(0)

    def test_builders_do_not_mutate(self):
        base = RedeliveryPolicy()
        base.with_attempts(3).with_backoff(initial=0.5)

        assert base.attempts == 11
        assert base.initial == 1.0
