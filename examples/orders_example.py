"""
Order Pipeline Example

Same flaky kitchen, same redelivered order, three strategies.

Run: uv run python examples/orders_example.py
"""

from combinators import batch
from kungfu import Ok, Error

from examples._infra import Kitchen, run, banner
from exactly import EventEnvelope, RedeliveryPolicy, redeliver
from exactly import orders as O
from exactly import processor as P
from exactly.ledger import DedupLedger, DedupRecord
from exactly.observability import setup_logging
from exactly.store import MemoryStore

POLICY = RedeliveryPolicy().with_attempts(20).with_backoff(initial=0.02, max_delay=0.2)


async def deliver(strategy: P.Strategy) -> None:
    kitchen = Kitchen()
    orders = MemoryStore[O.OrderDocument]()
    ledger = DedupLedger(MemoryStore[DedupRecord]())
    pipeline = O.order_pipeline(strategy, kitchen, orders, ledger)
    envelope = EventEnvelope("order-42", b"pizza margherita")

    # 5 concurrent deliveries of one event via combinators.batch
    results = await batch(
        range(5),
        handler=lambda _: redeliver(pipeline, envelope, POLICY),
        concurrency=5,
    )

    print(f"{strategy.name}:")
    match results:
        case Ok(done):
            cooks = sorted({r.order.cook for r in done})
            print(f"   Acked: {len(done)}, cooks assigned: {cooks}")
        case Error(e):
            print(f"   Error: {e.kind.name} {e.message}")
    print(f"   Orders stored: {len(orders)}")
    print(f"   chooseCook calls: {kitchen.calls.get('chooseCook', 0)}")
    print(f"   Cook notified: {len(kitchen.notified)} time(s)\n")


async def main() -> None:
    setup_logging("WARNING", "console")
    banner("Order Pipeline: choose cook → store → notify")

    for strategy in (P.NONE, P.KEYED_WRITE, P.LEDGER):
        await deliver(strategy)

    print("Only LEDGER notifies the cook exactly once.")


if __name__ == "__main__":
    run(main)
