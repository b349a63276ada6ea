"""
Orders — the choose cook → store → notify pipeline.

    from exactly import orders as O

    pipeline = O.order_pipeline(P.LEDGER, invoker, orders, ledger)

    match await pipeline.run(envelope):
        case Ok(O.PipelineResult(order=order, replayed=False)): ...
        case Ok(O.PipelineResult(replayed=True)): ...
        case Error(err): ...
"""

from exactly.orders._types import (
    OrderStage,
    Order,
    cook_from,
    PipelineResult,
)
from exactly.orders._pipeline import (
    CHOOSE_COOK,
    PREPARE_MEAL,
    OrderDocument,
    OrderPipeline,
    KeyedOrderPipeline,
    NaiveOrderPipeline,
    order_pipeline,
)

__all__ = (
    # Types
    "OrderStage",
    "Order",
    "cook_from",
    "PipelineResult",
    "OrderDocument",
    # Services
    "CHOOSE_COOK",
    "PREPARE_MEAL",
    # Pipelines
    "OrderPipeline",
    "KeyedOrderPipeline",
    "NaiveOrderPipeline",
    "order_pipeline",
)
