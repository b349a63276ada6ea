"""
Order pipelines — choose cook → store order → notify cook.

Three variants, same delivery contract (Ok = ack, Error = redeliver):

    OrderPipeline       ledger-gated saga. Cook chosen once, order stored
                        once, cook notified once per event id.
    KeyedOrderPipeline  create-if-absent keyed by event id. One record with
                        the first cook, but chooseCook/prepareMeal repeat.
    NaiveOrderPipeline  no dedup: every delivery adds a record under a random
                        key and notifies with the full order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kungfu import LazyCoroResult, Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly.envelope import EventEnvelope
from exactly.invoker import Invoker
from exactly.ledger import AlreadyDone, DedupLedger, Lease, LeaseHeld, ShouldRun
from exactly.observability import get_logger
from exactly.orders._types import Order, OrderStage, PipelineResult, cook_from
from exactly.processor import Strategy
from exactly.store import RecordStore, add, create_if_absent

log = get_logger(__name__)

CHOOSE_COOK = "chooseCook"
PREPARE_MEAL = "prepareMeal"

type OrderDocument = dict[str, Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class _Pipeline(ABC):
    """Shared delivery handling: decode the order, run, log ack/nack."""

    strategy: Strategy

    def __init__(self, invoker: Invoker, orders: RecordStore[OrderDocument]) -> None:
        self._invoker = invoker
        self._orders = orders

    def run(self, envelope: EventEnvelope) -> LazyCoroResult[PipelineResult, ProcessingError]:
        """Process one order delivery."""

        async def execute() -> Result[PipelineResult, ProcessingError]:
            match Order.from_envelope(envelope):
                case Error(err):
                    return Error(err)
                case Ok(order):
                    log.info("order.received", event_id=order.id, meal=order.meal)

            match await self._process(order):
                case Ok(result):
                    log.info(
                        "order.acked",
                        event_id=order.id,
                        strategy=self.strategy.name,
                        cook=result.order.cook,
                        stages=[stage.value for stage in result.stages_run],
                        replayed=result.replayed,
                    )
                    return Ok(result)
                case Error(err):
                    error = err.for_event(order.id)
                    log.warning(
                        "order.nacked",
                        event_id=order.id,
                        strategy=self.strategy.name,
                        kind=error.kind.name,
                        error=error.message,
                    )
                    return Error(error)

        return LazyCoroResult(execute)

    async def __call__(self, envelope: EventEnvelope) -> Result[PipelineResult, ProcessingError]:
        return await self.run(envelope)

    @abstractmethod
    async def _process(self, order: Order) -> Result[PipelineResult, ProcessingError]: ...

    async def _choose_cook(self, order: Order, idempotency_key: str | None) -> Result[str, ProcessingError]:
        payload = {"id": order.id, "meal": order.meal}
        match await self._invoker.call(CHOOSE_COOK, payload, idempotency_key):
            case Ok(response):
                return cook_from(response, order.id)
            case Error(err):
                return Error(err)

    async def _notify(self, payload: Any, idempotency_key: str | None) -> Result[Any, ProcessingError]:
        return await self._invoker.call(PREPARE_MEAL, payload, idempotency_key)


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger-gated saga
# ═══════════════════════════════════════════════════════════════════════════════


class OrderPipeline(_Pipeline):
    """
    Exactly-once order saga on the dedup ledger.

    RECEIVED → COOK_CHOSEN: chooseCook under the lease, result written as
        the ledger checkpoint (check-and-set, lease verified in the same
        transaction).
    COOK_CHOSEN → STORED: order-with-cook created in the catalog if absent.
    STORED → NOTIFIED: prepareMeal with {"id"} only, then mark_done.

    A failure releases the lease and nacks. The next delivery reclaims the
    lease, finds the checkpoint and resumes at STORED with the same cook.
    """

    strategy = Strategy.LEDGER

    def __init__(
        self,
        invoker: Invoker,
        orders: RecordStore[OrderDocument],
        ledger: DedupLedger,
    ) -> None:
        super().__init__(invoker, orders)
        self._ledger = ledger

    async def _process(self, order: Order) -> Result[PipelineResult, ProcessingError]:
        match await self._ledger.decide(order.id):
            case Error(err):
                return Error(err)
            case Ok(AlreadyDone(result=result)):
                done = Order.from_dict(result) if result is not None else order
                return Ok(PipelineResult(done, OrderStage.NOTIFIED, replayed=True))
            case Ok(LeaseHeld(expires_at=expires_at)):
                return Error(Errors.lease_conflict(order.id, expires_at))
            case Ok(ShouldRun(lease=lease, checkpoint=checkpoint)):
                match await self._saga(order, lease, checkpoint):
                    case Ok(result):
                        return Ok(result)
                    case Error(err):
                        await self._ledger.release(lease)
                        return Error(err)

    async def _saga(
        self,
        order: Order,
        lease: Lease,
        checkpoint: Any,
    ) -> Result[PipelineResult, ProcessingError]:
        stages: list[OrderStage] = []

        # RECEIVED → COOK_CHOSEN
        if checkpoint is None:
            match await self._choose_cook(order, order.id):
                case Error(err):
                    return Error(err)
                case Ok(cook):
                    pass

            match await self._ledger.checkpoint(lease, order.with_cook(cook).to_dict()):
                case Error(err):
                    return Error(err)
                case Ok(stored):
                    checkpoint = stored
            stages.append(OrderStage.COOK_CHOSEN)
        else:
            log.info("order.resumed", event_id=order.id, cook=checkpoint.get("cook"))

        assigned = Order.from_dict(checkpoint)

        # COOK_CHOSEN → STORED
        match await create_if_absent(self._orders, order.id, assigned.to_dict()):
            case Error(err):
                return Error(Errors.store(err.message, err, order.id))
            case Ok(created):
                if created.created:
                    stages.append(OrderStage.STORED)

        # STORED → NOTIFIED
        match await self._notify({"id": order.id}, order.id):
            case Error(err):
                return Error(err)
            case Ok(_):
                stages.append(OrderStage.NOTIFIED)

        match await self._ledger.mark_done(lease, assigned.to_dict()):
            case Error(err):
                return Error(err)
            case Ok(_):
                return Ok(PipelineResult(assigned, OrderStage.NOTIFIED, tuple(stages)))


# ═══════════════════════════════════════════════════════════════════════════════
# Check-and-set, no ledger
# ═══════════════════════════════════════════════════════════════════════════════


class KeyedOrderPipeline(_Pipeline):
    """
    Order stored once per event id; the first stored cook wins.

    Note: chooseCook and prepareMeal still run on every delivery.
    """

    strategy = Strategy.KEYED_WRITE

    async def _process(self, order: Order) -> Result[PipelineResult, ProcessingError]:
        match await self._choose_cook(order, None):
            case Error(err):
                return Error(err)
            case Ok(cook):
                pass

        stages = [OrderStage.COOK_CHOSEN]
        match await create_if_absent(self._orders, order.id, order.with_cook(cook).to_dict()):
            case Error(err):
                return Error(Errors.store(err.message, err, order.id))
            case Ok(created):
                stored = Order.from_dict(created.value)
                if created.created:
                    stages.append(OrderStage.STORED)

        match await self._notify({"id": order.id}, None):
            case Error(err):
                return Error(err)
            case Ok(_):
                stages.append(OrderStage.NOTIFIED)
                return Ok(PipelineResult(stored, OrderStage.NOTIFIED, tuple(stages)))


# ═══════════════════════════════════════════════════════════════════════════════
# No dedup
# ═══════════════════════════════════════════════════════════════════════════════


class NaiveOrderPipeline(_Pipeline):
    """
    Every delivery chooses a cook, adds a record and notifies.

    Note: Redelivery after any failure duplicates the order and may assign
    a second cook.
    """

    strategy = Strategy.NONE

    async def _process(self, order: Order) -> Result[PipelineResult, ProcessingError]:
        match await self._choose_cook(order, None):
            case Error(err):
                return Error(err)
            case Ok(cook):
                assigned = order.with_cook(cook)

        match await add(self._orders, assigned.to_dict()):
            case Error(err):
                return Error(Errors.store(err.message, err, order.id))
            case Ok(_):
                pass

        match await self._notify(assigned.to_dict(), None):
            case Error(err):
                return Error(err)
            case Ok(_):
                return Ok(
                    PipelineResult(
                        assigned,
                        OrderStage.NOTIFIED,
                        (OrderStage.COOK_CHOSEN, OrderStage.STORED, OrderStage.NOTIFIED),
                    )
                )


# ═══════════════════════════════════════════════════════════════════════════════
# order_pipeline() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════


def order_pipeline(
    strategy: Strategy,
    invoker: Invoker,
    orders: RecordStore[OrderDocument],
    ledger: DedupLedger | None = None,
) -> OrderPipeline | KeyedOrderPipeline | NaiveOrderPipeline:
    """
    Create the order pipeline for a strategy.

    Example:
        pipeline = O.order_pipeline(P.LEDGER, invoker, orders, ledger)
        result = await pipeline.run(envelope)
    """
    match strategy:
        case Strategy.LEDGER:
            if ledger is None:
                raise ValueError("ledger is required for LEDGER")
            return OrderPipeline(invoker, orders, ledger)
        case Strategy.KEYED_WRITE:
            return KeyedOrderPipeline(invoker, orders)
        case Strategy.NONE:
            return NaiveOrderPipeline(invoker, orders)

    raise ValueError(f"Unknown strategy: {strategy}")


__all__ = (
    "CHOOSE_COOK",
    "PREPARE_MEAL",
    "OrderDocument",
    "OrderPipeline",
    "KeyedOrderPipeline",
    "NaiveOrderPipeline",
    "order_pipeline",
)
