"""
Ledger types — dedup record, lease and decision values.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from exactly.store import Codec


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger State — Record Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class LedgerState(Enum):
    """
    State of a dedup record.

    Lifecycle:
        (unseen) → LEASED → DONE

    Note: Unseen is the absence of a record. DONE never regresses.
    """

    LEASED = "leased"
    DONE = "done"


# ═══════════════════════════════════════════════════════════════════════════════
# Lease
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Lease:
    """
    Right to run the side effect of one event until expires_at.

    epoch grows by one every time the lease is granted, token is random.
    Together they identify one attempt: a reclaimed lease has a higher
    epoch, so the attempt it replaced can no longer commit.
    """

    event_id: str
    token: str
    epoch: int
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Expired at and after expires_at."""
        return now >= self.expires_at

    def held_by(self, other: Lease) -> bool:
        """Same attempt (epoch and token match)."""
        return self.epoch == other.epoch and self.token == other.token


# ═══════════════════════════════════════════════════════════════════════════════
# Dedup Record — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DedupRecord:
    """
    Ledger entry for one event id.

    lease: present while LEASED.
    result: set when DONE, replayed to later deliveries.
    checkpoint: saga progress written under the lease, at most once.
    """

    event_id: str
    state: LedgerState
    epoch: int
    lease: Lease | None
    result: Any = None
    checkpoint: Any = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_done(self) -> bool:
        return self.state == LedgerState.DONE

    @property
    def is_leased(self) -> bool:
        return self.state == LedgerState.LEASED

    def owned_by(self, lease: Lease) -> bool:
        """Still leased to exactly this attempt."""
        return self.is_leased and self.lease is not None and self.lease.held_by(lease)

    def leased(self, lease: Lease) -> DedupRecord:
        return replace(self, lease=lease, epoch=lease.epoch)

    def done(self, result: Any, now: datetime) -> DedupRecord:
        return replace(
            self,
            state=LedgerState.DONE,
            lease=None,
            result=result,
            completed_at=now,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Decisions
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ShouldRun:
    """
    Caller owns the lease and must run the side effect.

    checkpoint: progress left by an earlier attempt (None on first run).
    reclaimed: lease was taken over from an expired attempt.
    """

    lease: Lease
    checkpoint: Any = None
    reclaimed: bool = False

    @property
    def event_id(self) -> str:
        return self.lease.event_id


@dataclass(frozen=True, slots=True)
class AlreadyDone:
    """Side effect already ran. result is what the first run recorded."""

    event_id: str
    result: Any = None


@dataclass(frozen=True, slots=True)
class LeaseHeld:
    """Another attempt holds a live lease. Fail and retry later."""

    event_id: str
    expires_at: datetime


type Decision = ShouldRun | AlreadyDone | LeaseHeld


# ═══════════════════════════════════════════════════════════════════════════════
# Codec — for durable stores
# ═══════════════════════════════════════════════════════════════════════════════


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def encode_record(record: DedupRecord) -> dict[str, Any]:
    """
    DedupRecord → JSON document.

    Note: result and checkpoint must be JSON-compatible for durable stores.
    """
    lease = record.lease
    return {
        "event_id": record.event_id,
        "state": record.state.value,
        "epoch": record.epoch,
        "lease": None
        if lease is None
        else {
            "token": lease.token,
            "epoch": lease.epoch,
            "expires_at": lease.expires_at.isoformat(),
        },
        "result": record.result,
        "checkpoint": record.checkpoint,
        "created_at": _iso(record.created_at),
        "completed_at": _iso(record.completed_at),
    }


def decode_record(document: dict[str, Any]) -> DedupRecord:
    """JSON document → DedupRecord."""
    event_id = document["event_id"]
    raw_lease = document.get("lease")
    lease = (
        None
        if raw_lease is None
        else Lease(
            event_id=event_id,
            token=raw_lease["token"],
            epoch=raw_lease["epoch"],
            expires_at=datetime.fromisoformat(raw_lease["expires_at"]),
        )
    )
    return DedupRecord(
        event_id=event_id,
        state=LedgerState(document["state"]),
        epoch=document["epoch"],
        lease=lease,
        result=document.get("result"),
        checkpoint=document.get("checkpoint"),
        created_at=_from_iso(document.get("created_at")),
        completed_at=_from_iso(document.get("completed_at")),
    )


RECORD_CODEC: Codec[DedupRecord] = Codec(encode=encode_record, decode=decode_record)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "LedgerState",
    "Lease",
    "DedupRecord",
    "ShouldRun",
    "AlreadyDone",
    "LeaseHeld",
    "Decision",
    "encode_record",
    "decode_record",
    "RECORD_CODEC",
)
