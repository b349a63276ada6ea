"""End-to-end: runtime over SQLite and mocked downstream services."""

import itertools

import httpx
import pytest
from kungfu import Ok

from exactly import EventEnvelope, redeliver
from exactly import orders as O
from exactly import processor as P
from exactly.app import ORDERS_HANDLER, build_runtime
from exactly.config import Settings
from exactly.ledger import LedgerState


def kitchen():
    requests: list[httpx.Request] = []
    cooks = itertools.cycle(["John", "Mike"])
    failures = {"prepareMeal": 1}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        service = request.url.path.split("/")[1]
        if failures.get(service, 0) > 0:
            failures[service] -= 1
            return httpx.Response(503, text="Something went wrong")
        if service == "chooseCook":
            return httpx.Response(200, json={"cook": next(cooks)})
        return httpx.Response(200, text="OK")

    return requests, httpx.MockTransport(handler)


@pytest.fixture
def services():
    return kitchen()


@pytest.fixture
async def runtime(tmp_path, services):
    _, transport = services
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'exactly.db'}",
        service_base_url="http://kitchen",
        redelivery_initial=0,
        redelivery_max_delay=0,
        log_format="console",
    )
    runtime = await build_runtime(settings, transport)
    yield runtime
    await runtime.aclose()


@pytest.mark.asyncio
class TestRuntime:
    """Runtime wiring."""

    async def test_order_survives_notify_failure(self, runtime):
        pipeline = runtime.order_pipeline(P.LEDGER)

        result = await redeliver(pipeline, EventEnvelope("evt-1", b"pasta"), runtime.redelivery)

        assert isinstance(result, Ok)
        assert result.value.order.cook == "John"
        assert result.value.stages_run == (O.OrderStage.NOTIFIED,)
        assert (await runtime.orders.get("evt-1")).value["cook"] == "John"
        record = (await runtime.ledger(ORDERS_HANDLER).get("evt-1")).value
        assert record.state == LedgerState.DONE
        assert record.epoch == 2

    async def test_document_stored_once(self, runtime):
        handle = runtime.processor(P.STORE_DOCUMENT, P.LEDGER)
        envelope = EventEnvelope.of("evt-2", {"text": "hello"})

        first = await handle.run(envelope)
        second = await handle.run(envelope)

        assert isinstance(first, Ok) and first.value.executed
        assert isinstance(second, Ok) and not second.value.executed
        assert await runtime.contents.get("evt-2") == Ok({"text": "hello"})

    async def test_settings_reach_ledger(self, runtime):
        assert runtime.ledger(ORDERS_HANDLER).policy == runtime.settings.ledger_policy()
        assert runtime.redelivery.initial == 0

    async def test_handlers_dedup_independently(self, runtime, services):
        requests, _ = services
        envelope = EventEnvelope.of("evt-3", {"text": "hello"})

        stored = await runtime.processor(P.STORE_DOCUMENT, P.LEDGER).run(envelope)
        emailed = await runtime.processor(P.SEND_EMAIL, P.LEDGER).run(envelope)
        ordered = await redeliver(runtime.order_pipeline(P.LEDGER), envelope, runtime.redelivery)

        assert stored.value.executed
        assert emailed.value.executed
        assert isinstance(ordered, Ok)
        assert ordered.value.replayed is False
        assert [r.url.path for r in requests if r.url.path.startswith("/sendEmail")] == ["/sendEmail/evt-3"]
        for handler in (P.STORE_DOCUMENT.name, P.SEND_EMAIL.name, ORDERS_HANDLER):
            record = (await runtime.ledger(handler).get("evt-3")).value
            assert record.state == LedgerState.DONE
