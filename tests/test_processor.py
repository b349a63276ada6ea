"""Tests for the document and email processors under each strategy."""

import pytest
from kungfu import Error, Ok

from conftest import FailingStore, FakeInvoker
from exactly import ErrorKind, EventEnvelope
from exactly import processor as P
from exactly.ledger import DedupLedger, DedupRecord, LedgerPolicy, LedgerState, ShouldRun


def document_event(event_id: str = "evt-1") -> EventEnvelope:
    return EventEnvelope.of(event_id, {"text": "hello", "n": 1})


def build(effect, strategy, invoker, contents, ledger=None):
    builder = P.processor(effect).strategy(strategy).invoker(invoker).records(contents)
    if ledger is not None:
        builder = builder.ledger(ledger)
    return builder.build()


@pytest.mark.asyncio
class TestNoneStrategy:
    """NONE duplicates everything."""

    async def test_redelivery_duplicates_call_and_record(self, invoker, contents):
        handle = build(P.STORE_DOCUMENT, P.NONE, invoker, contents)

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert isinstance(first, Ok) and isinstance(second, Ok)
        assert len(invoker.calls_to("flaky")) == 2
        assert len(contents) == 2
        assert all(c.idempotency_key is None for c in invoker.calls)

    async def test_failed_call_writes_nothing(self, invoker, contents):
        handle = build(P.STORE_DOCUMENT, P.NONE, invoker, contents)
        invoker.fail("flaky")

        result = await handle.run(document_event())

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.TRANSIENT_SERVICE
        assert result.error.event_id == "evt-1"
        assert len(contents) == 0


@pytest.mark.asyncio
class TestKeyedWriteStrategy:
    """KEYED_WRITE dedups records but not calls."""

    async def test_one_record_two_calls(self, invoker, contents):
        handle = build(P.STORE_DOCUMENT, P.KEYED_WRITE, invoker, contents)
        invoker.fail("flaky")

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert isinstance(first, Error)
        assert isinstance(second, Ok)
        assert contents.keys() == ["evt-1"]
        assert len(invoker.calls_to("flaky")) == 2
        assert {c.idempotency_key for c in invoker.calls} == {"evt-1"}

    async def test_requires_persisting_effect(self, invoker, contents):
        with pytest.raises(ValueError, match="KEYED_WRITE"):
            build(P.SEND_EMAIL, P.KEYED_WRITE, invoker, contents)


@pytest.mark.asyncio
class TestLedgerStrategy:
    """LEDGER runs the side effect exactly once."""

    async def test_duplicate_delivery_is_skipped(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert first == Ok(P.Processed("evt-1", "OK", executed=True))
        assert second == Ok(P.Processed("evt-1", "OK", executed=False))
        assert len(invoker.calls_to("flaky")) == 1
        assert await contents.get("evt-1") == Ok({"text": "hello", "n": 1})

    async def test_failure_releases_lease_for_redelivery(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)
        invoker.fail("flaky")

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert isinstance(first, Error)
        assert first.error.kind == ErrorKind.TRANSIENT_SERVICE
        assert second == Ok(P.Processed("evt-1", "OK", executed=True))
        assert len(invoker.calls_to("flaky", ok=True)) == 1
        assert len(contents) == 1
        record = (await ledger.get("evt-1")).value
        assert record.state == LedgerState.DONE
        assert record.epoch == 2

    async def test_concurrent_holder_defers_delivery(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)
        holder = (await ledger.decide("evt-1")).value
        assert isinstance(holder, ShouldRun)

        result = await handle.run(document_event())

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.LEASE_CONFLICT
        assert result.error.retryable
        assert invoker.calls == []
        assert len(contents) == 0

    async def test_store_failure_runs_nothing(self, invoker, contents, clock):
        store = FailingStore[DedupRecord]()
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, DedupLedger(store, clock=clock))
        store.fail_next()

        result = await handle.run(document_event())

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.TRANSIENT_STORE
        assert invoker.calls == []

    async def test_calls_carry_event_id(self, invoker, contents, ledger):
        handle = build(P.SEND_EMAIL, P.LEDGER, invoker, contents, ledger)

        await handle.run(document_event("evt-9"))

        assert [(c.service, c.idempotency_key) for c in invoker.calls] == [
            ("sendEmail", "evt-9"),
            ("flaky", "evt-9"),
        ]
        assert invoker.calls[0].payload == {"text": "hello"}

    async def test_email_not_resent_after_flaky_failure(self, invoker, contents, ledger):
        handle = build(P.SEND_EMAIL, P.LEDGER, invoker, contents, ledger)
        invoker.fail("flaky")

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert isinstance(first, Error)
        assert first.error.kind == ErrorKind.TRANSIENT_SERVICE
        assert second == Ok(P.Processed("evt-1", {"sent": "hello"}, executed=False))
        assert len(invoker.calls_to("sendEmail", ok=True)) == 1
        assert [c.idempotency_key for c in invoker.calls_to("flaky")] == ["evt-1", "evt-1"]
        assert (await ledger.get("evt-1")).value.state == LedgerState.DONE

    async def test_email_sent_once(self, invoker, contents, ledger):
        handle = build(P.SEND_EMAIL, P.LEDGER, invoker, contents, ledger)

        for _ in range(3):
            await handle.run(document_event())

        assert len(invoker.calls_to("sendEmail")) == 1
        assert len(contents) == 0


@pytest.mark.asyncio
class TestRelaxedMode:
    """Relaxed mode commits before running."""

    async def test_failure_after_commit_is_not_retried(self, invoker, contents, ledger_store, clock):
        relaxed = DedupLedger(ledger_store, LedgerPolicy().with_relaxed(), clock=clock)
        handle = build(P.SEND_EMAIL, P.LEDGER, invoker, contents, relaxed)
        invoker.fail("sendEmail")

        first = await handle.run(document_event())
        second = await handle.run(document_event())

        assert isinstance(first, Error)
        assert second == Ok(P.Processed("evt-1", None, executed=False))
        assert invoker.calls_to("sendEmail", ok=True) == []

    async def test_never_stalls_on_lease(self, invoker, contents, ledger_store, clock):
        relaxed = DedupLedger(ledger_store, LedgerPolicy().with_relaxed(), clock=clock)
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, relaxed)

        first = await handle.run(document_event())
        record = (await relaxed.get("evt-1")).value

        assert first == Ok(P.Processed("evt-1", "OK", executed=True))
        assert record.state == LedgerState.DONE
        assert record.result is None


@pytest.mark.asyncio
class TestMalformedEvents:
    """PERMANENT errors never touch the ledger."""

    async def test_invalid_json(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)

        result = await handle.run(EventEnvelope("evt-1", b"{not json"))

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.PERMANENT
        assert not result.error.retryable
        assert await ledger.get("evt-1") == Ok(None)

    async def test_document_must_be_object(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)

        result = await handle.run(EventEnvelope.of("evt-1", [1, 2, 3]))

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.PERMANENT
        assert invoker.calls == []

    async def test_empty_payload_is_empty_document(self, invoker, contents, ledger):
        handle = build(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, ledger)

        result = await handle.run(EventEnvelope("evt-1"))

        assert isinstance(result, Ok)
        assert await contents.get("evt-1") == Ok({})


class TestBuilder:
    """Builder validation."""

    def test_invoker_required(self, contents):
        with pytest.raises(ValueError, match="invoker"):
            P.processor(P.STORE_DOCUMENT).records(contents).build()

    def test_records_required_for_documents(self):
        with pytest.raises(ValueError, match="records"):
            P.processor(P.STORE_DOCUMENT).strategy(P.NONE).invoker(FakeInvoker()).build()

    def test_ledger_required_for_ledger_strategy(self, contents):
        with pytest.raises(ValueError, match="ledger"):
            P.processor(P.STORE_DOCUMENT).invoker(FakeInvoker()).records(contents).build()

    def test_builder_is_immutable(self, contents):
        base = P.processor(P.STORE_DOCUMENT)
        base.strategy(P.NONE)

        assert base.invoker(FakeInvoker()).records(contents).strategy(P.NONE).build().strategy is P.NONE
        assert base._strategy is P.LEDGER


@pytest.mark.asyncio
class TestDirectExecutor:
    """Executors built without the builder."""

    async def test_missing_ledger_is_reported(self, invoker, contents):
        handle = P.ProcessorExecutor(P.STORE_DOCUMENT, P.LEDGER, invoker, contents, None)

        result = await handle.run(document_event())

        assert isinstance(result, Error)
        assert result.error.kind == ErrorKind.PERMANENT
        assert invoker.calls == []

    async def test_missing_records_is_reported(self, invoker):
        handle = P.ProcessorExecutor(P.STORE_DOCUMENT, P.KEYED_WRITE, invoker, None, None)

        result = await handle.run(document_event())

        assert result.error.kind == ErrorKind.PERMANENT
        assert "records store" in result.error.message
        assert invoker.calls == []
