"""
Processor — per-event handlers with a duplicate handling strategy.

    from exactly import processor as P

    handle = (
        P.processor(P.STORE_DOCUMENT)
        .strategy(P.LEDGER)
        .invoker(invoker)
        .records(contents)
        .ledger(ledger)
        .build()
    )

    match await handle.run(envelope):
        case Ok(P.Processed(executed=True)): ...   # ran the side effect
        case Ok(P.Processed(executed=False)): ...  # duplicate, skipped
        case Error(err): ...                       # nack, redeliver if err.retryable

Strategies:
    NONE         call, insert                  duplicates everything
    KEYED_WRITE  create-if-absent, call        duplicate calls only
    LEDGER       decide, run, mark_done        exactly once
    LEDGER + LedgerPolicy().with_relaxed()     at most once
"""

from exactly.processor._types import (
    Strategy,
    NONE,
    KEYED_WRITE,
    LEDGER,
    Call,
    Effect,
    Processed,
)
from exactly.processor._effects import (
    Document,
    STORE_DOCUMENT,
    SEND_EMAIL,
)
from exactly.processor._builder import (
    Processor,
    ProcessorExecutor,
    processor,
)
from exactly.processor._graph import (
    GatedSpec,
    run_gated,
)

__all__ = (
    # Types
    "Strategy",
    "NONE",
    "KEYED_WRITE",
    "LEDGER",
    "Call",
    "Effect",
    "Processed",
    "Document",
    # Effects
    "STORE_DOCUMENT",
    "SEND_EMAIL",
    # Builder
    "Processor",
    "ProcessorExecutor",
    "processor",
    # Graph
    "GatedSpec",
    "run_gated",
)
