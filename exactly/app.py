"""
Runtime — process-wide handles, built once and passed into handlers.

    runtime = await build_runtime(Settings())
    try:
        handle = runtime.processor(P.STORE_DOCUMENT, P.LEDGER)
        pipeline = runtime.order_pipeline(P.LEDGER)
        await pipeline.run(envelope)
    finally:
        await runtime.aclose()

Every handler gets its own ledger collection ("ledger:<handler>"), so one
event id handled by several handlers is deduplicated per handler.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from exactly.config import Settings
from exactly.delivery import RedeliveryPolicy
from exactly.invoker import HttpInvoker
from exactly.ledger import RECORD_CODEC, DedupLedger
from exactly.observability import get_logger, setup_logging
from exactly.orders import (
    KeyedOrderPipeline,
    NaiveOrderPipeline,
    OrderDocument,
    OrderPipeline,
    order_pipeline,
)
from exactly.processor import Document, Effect, ProcessorExecutor, Strategy, processor
from exactly.store import DOCUMENT_CODEC, SQLAlchemyStore, create_database

log = get_logger(__name__)

LEDGER_PREFIX = "ledger"
CONTENTS_COLLECTION = "contents"
ORDERS_COLLECTION = "orders"
ORDERS_HANDLER = "orders"


def ledger_collection(handler: str) -> str:
    return f"{LEDGER_PREFIX}:{handler}"


@dataclass(frozen=True, slots=True)
class Runtime:
    """Shared stores and HTTP client of one process."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    client: httpx.AsyncClient
    contents: SQLAlchemyStore[Document]
    orders: SQLAlchemyStore[OrderDocument]
    invoker: HttpInvoker

    @property
    def redelivery(self) -> RedeliveryPolicy:
        return self.settings.redelivery_policy()

    def ledger(self, handler: str) -> DedupLedger:
        """Dedup ledger of one handler (an effect name or "orders")."""
        records = SQLAlchemyStore(self.session_factory, ledger_collection(handler), RECORD_CODEC)
        return DedupLedger(records, self.settings.ledger_policy())

    def processor(self, effect: Effect, strategy: Strategy) -> ProcessorExecutor:
        return (
            processor(effect)
            .strategy(strategy)
            .invoker(self.invoker)
            .records(self.contents)
            .ledger(self.ledger(effect.name))
            .build()
        )

    def order_pipeline(
        self,
        strategy: Strategy,
    ) -> OrderPipeline | KeyedOrderPipeline | NaiveOrderPipeline:
        return order_pipeline(strategy, self.invoker, self.orders, self.ledger(ORDERS_HANDLER))

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.engine.dispose()


async def build_runtime(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Runtime:
    """
    Configure logging, create the schema and open the HTTP client.

    Args:
        settings: Defaults to Settings() from the environment
        transport: httpx transport override (e.g. httpx.MockTransport)
    """
    settings = settings if settings is not None else Settings()
    setup_logging(settings.log_level, settings.log_format)

    session_factory, engine = await create_database(settings.database_url)
    client = httpx.AsyncClient(
        base_url=settings.service_base_url,
        timeout=settings.request_timeout,
        transport=transport,
    )

    runtime = Runtime(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        client=client,
        contents=SQLAlchemyStore(session_factory, CONTENTS_COLLECTION, DOCUMENT_CODEC),
        orders=SQLAlchemyStore(session_factory, ORDERS_COLLECTION, DOCUMENT_CODEC),
        invoker=HttpInvoker(client),
    )
    log.info(
        "runtime.ready",
        database_url=settings.database_url,
        service_base_url=settings.service_base_url,
        lease_seconds=settings.lease_seconds,
        relaxed=settings.relaxed,
    )
    return runtime


__all__ = (
    "LEDGER_PREFIX",
    "CONTENTS_COLLECTION",
    "ORDERS_COLLECTION",
    "ORDERS_HANDLER",
    "ledger_collection",
    "Runtime",
    "build_runtime",
)
