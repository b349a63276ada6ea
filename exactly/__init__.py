"""
exactly — exactly-once side effects under at-least-once delivery.

    from exactly import store as St      # Transactional record stores
    from exactly import ledger as D      # Dedup ledger (decide / mark_done)
    from exactly import processor as P   # Per-event handlers, three strategies
    from exactly import orders as O      # Choose cook → store → notify saga
"""

from exactly import store
from exactly import ledger
from exactly import graph
from exactly import invoker
from exactly import processor
from exactly import orders
from exactly._errors import ErrorKind, ProcessingError, Errors
from exactly._types import (
    Lazy,
    Clock,
    utc_now,
    LCR,
    NoError,
)
from exactly.envelope import EventEnvelope
from exactly.delivery import RedeliveryPolicy, redeliver

__version__ = "0.1.0"

__all__ = (
    "store",
    "ledger",
    "graph",
    "invoker",
    "processor",
    "orders",
    "ErrorKind",
    "ProcessingError",
    "Errors",
    "Lazy",
    "Clock",
    "utc_now",
    "LCR",
    "NoError",
    "EventEnvelope",
    "RedeliveryPolicy",
    "redeliver",
)
