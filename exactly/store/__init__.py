"""
Store — durable record store with atomic single-key transactions.

    from exactly import store as St

    contents = St.MemoryStore[dict]()
    created = await St.create_if_absent(contents, event_id, document)

    # Custom transaction
    result = await contents.transact(
        key,
        lambda current: St.keep(current) if current else St.put(doc, doc),
    )

The only primitive is transact(key, fn): fn sees the current value (or None)
and returns a Commit saying what to hand back and what, if anything, to write.
"""

from exactly.store._types import (
    StoreError,
    Commit,
    keep,
    put,
    Txn,
    RecordStore,
    Codec,
    DOCUMENT_CODEC,
)
from exactly.store._memory import MemoryStore
from exactly.store._ops import Created, create_if_absent, add
from exactly.store._sqlalchemy import (
    Base,
    RecordTable,
    SQLAlchemyStore,
    create_database,
)

__all__ = (
    # Types
    "StoreError",
    "Commit",
    "keep",
    "put",
    "Txn",
    "RecordStore",
    "Codec",
    "DOCUMENT_CODEC",
    # Backends
    "MemoryStore",
    "SQLAlchemyStore",
    "Base",
    "RecordTable",
    "create_database",
    # Operations
    "Created",
    "create_if_absent",
    "add",
)
