"""
Ledger — dedup/lease state machine keyed by event id.

    from exactly import ledger as D

    ledger = D.DedupLedger(
        MemoryStore(),
        D.LedgerPolicy().with_lease(seconds=60),
    )

    match await ledger.decide(event_id):
        case Ok(D.ShouldRun(lease=lease)):
            ...
            await ledger.mark_done(lease, result)
        case Ok(D.AlreadyDone(result=result)):
            ...
        case Ok(D.LeaseHeld()):
            ...

States:
    (unseen) → LEASED → DONE
"""

from exactly.ledger._types import (
    LedgerState,
    Lease,
    DedupRecord,
    ShouldRun,
    AlreadyDone,
    LeaseHeld,
    Decision,
    encode_record,
    decode_record,
    RECORD_CODEC,
)
from exactly.ledger._policy import LedgerPolicy
from exactly.ledger._ledger import DedupLedger

__all__ = (
    # Types
    "LedgerState",
    "Lease",
    "DedupRecord",
    "ShouldRun",
    "AlreadyDone",
    "LeaseHeld",
    "Decision",
    # Codec
    "encode_record",
    "decode_record",
    "RECORD_CODEC",
    # Policy
    "LedgerPolicy",
    # Ledger
    "DedupLedger",
)
