"""
Dedup ledger — per-event lease state machine over a RecordStore.

Every operation is ONE store transaction: the transition functions below are
pure (record, now) → Commit, and the store runs read → transition → write
atomically per event id.

    decide     unseen          → LEASED (ShouldRun)
               LEASED, live    → LeaseHeld
               LEASED, expired → LEASED, epoch + 1 (ShouldRun, reclaimed)
               DONE            → AlreadyDone

    mark_done  LEASED, ours    → DONE
               LEASED, other   → LEASE_SUPERSEDED
               DONE            → unchanged

    checkpoint LEASED, ours    → checkpoint set once, winner returned
    release    LEASED, ours    → lease expires now
"""

from __future__ import annotations

import secrets
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from kungfu import Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly._types import Clock, utc_now
from exactly.ledger._policy import LedgerPolicy
from exactly.ledger._types import (
    AlreadyDone,
    DedupRecord,
    Decision,
    Lease,
    LeaseHeld,
    LedgerState,
    ShouldRun,
)
from exactly.observability import get_logger
from exactly.store import Commit, RecordStore, StoreError, keep, put

log = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Transitions — pure, run inside store.transact()
# ═══════════════════════════════════════════════════════════════════════════════


def _grant(event_id: str, epoch: int, now: datetime, duration: timedelta) -> Lease:
    return Lease(
        event_id=event_id,
        token=secrets.token_hex(16),
        epoch=epoch,
        expires_at=now + duration,
    )


def _decide(
    event_id: str,
    current: DedupRecord | None,
    now: datetime,
    duration: timedelta,
) -> Commit[Decision, DedupRecord]:
    if current is None:
        lease = _grant(event_id, 1, now, duration)
        record = DedupRecord(
            event_id=event_id,
            state=LedgerState.LEASED,
            epoch=lease.epoch,
            lease=lease,
            created_at=now,
        )
        return put(record, ShouldRun(lease))

    if current.is_done:
        return keep(AlreadyDone(event_id, current.result))

    held = current.lease
    if held is not None and not held.is_expired(now):
        return keep(LeaseHeld(event_id, held.expires_at))

    lease = _grant(event_id, current.epoch + 1, now, duration)
    return put(
        current.leased(lease),
        ShouldRun(lease, checkpoint=current.checkpoint, reclaimed=True),
    )


def _mark_done(
    lease: Lease,
    current: DedupRecord | None,
    result: Any,
    now: datetime,
) -> Commit[Result[DedupRecord, ProcessingError], DedupRecord]:
    if current is None:
        return keep(Error(Errors.superseded(lease.event_id, "No ledger record for event")))

    if current.is_done:
        return keep(Ok(current))

    if not current.owned_by(lease):
        return keep(Error(Errors.superseded(lease.event_id)))

    done = current.done(result, now)
    return put(done, Ok(done))


def _checkpoint(
    lease: Lease,
    current: DedupRecord | None,
    value: Any,
) -> Commit[Result[Any, ProcessingError], DedupRecord]:
    if current is None or not current.owned_by(lease):
        return keep(Error(Errors.superseded(lease.event_id)))

    if current.checkpoint is not None:
        return keep(Ok(current.checkpoint))

    return put(replace(current, checkpoint=value), Ok(value))


def _release(
    lease: Lease,
    current: DedupRecord | None,
    now: datetime,
) -> Commit[bool, DedupRecord]:
    if current is None or not current.owned_by(lease):
        return keep(False)

    expired = Lease(
        event_id=lease.event_id,
        token=lease.token,
        epoch=lease.epoch,
        expires_at=now,
    )
    return put(current.leased(expired), True)


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class DedupLedger:
    """
    Dedup ledger — decides per delivery whether the side effect runs.

    Example:
        ledger = DedupLedger(MemoryStore(), LedgerPolicy().with_lease(seconds=60))

        match await ledger.decide(event_id):
            case Ok(ShouldRun(lease=lease)):
                ...  # run the side effect
                await ledger.mark_done(lease, result)
            case Ok(AlreadyDone(result=result)):
                ...  # ack, replay result
            case Ok(LeaseHeld()):
                ...  # nack, delivery retries later
            case Error(err):
                ...  # transient store error, nack

    Note: The ledger holds no state of its own. The store is the only
    synchronization point between concurrent deliveries.
    """

    def __init__(
        self,
        store: RecordStore[DedupRecord],
        policy: LedgerPolicy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._policy = policy if policy is not None else LedgerPolicy()
        self._clock = clock

    @property
    def policy(self) -> LedgerPolicy:
        return self._policy

    @property
    def store(self) -> RecordStore[DedupRecord]:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    async def decide(
        self,
        event_id: str,
        now: datetime | None = None,
        lease_duration: timedelta | None = None,
    ) -> Result[Decision, ProcessingError]:
        """
        Atomically decide whether this delivery runs the side effect.

        Args:
            event_id: Stable id shared by all redeliveries
            now: Decision time (defaults to the ledger clock)
            lease_duration: Overrides policy.lease_duration
        """
        at = now if now is not None else self._clock()
        duration = lease_duration if lease_duration is not None else self._policy.lease_duration

        result = await self._store.transact(
            event_id,
            lambda current: _decide(event_id, current, at, duration),
        )

        match result:
            case Ok(ShouldRun(lease=lease, reclaimed=reclaimed) as decision):
                log.info(
                    "ledger.should_run",
                    event_id=event_id,
                    epoch=lease.epoch,
                    reclaimed=reclaimed,
                )
                return Ok(decision)
            case Ok(AlreadyDone() as decision):
                log.info("ledger.already_done", event_id=event_id)
                return Ok(decision)
            case Ok(LeaseHeld(expires_at=expires_at) as decision):
                log.info(
                    "ledger.lease_held",
                    event_id=event_id,
                    expires_at=expires_at.isoformat(),
                )
                return Ok(decision)
            case Error(err):
                return Error(self._store_error(event_id, err))

    async def mark_done(
        self,
        lease: Lease,
        result: Any = None,
        now: datetime | None = None,
    ) -> Result[DedupRecord, ProcessingError]:
        """
        Commit the side effect: LEASED → DONE with result.

        Idempotent: on a DONE record it succeeds and leaves the stored result
        untouched. An attempt whose lease was reclaimed gets LEASE_SUPERSEDED.
        """
        at = now if now is not None else self._clock()
        event_id = lease.event_id

        outcome = await self._store.transact(
            event_id,
            lambda current: _mark_done(lease, current, result, at),
        )

        match outcome:
            case Ok(Ok(record)):
                log.info("ledger.done", event_id=event_id, epoch=lease.epoch)
                return Ok(record)
            case Ok(Error(err)):
                log.warning("ledger.superseded", event_id=event_id, epoch=lease.epoch)
                return Error(err)
            case Error(err):
                return Error(self._store_error(event_id, err))

    async def checkpoint(
        self,
        lease: Lease,
        value: Any,
    ) -> Result[Any, ProcessingError]:
        """
        Record saga progress under the lease (check-and-set).

        Writes value only if no checkpoint exists yet and returns the stored
        one. Ownership is checked by epoch/token, not by time.
        """
        event_id = lease.event_id

        outcome = await self._store.transact(
            event_id,
            lambda current: _checkpoint(lease, current, value),
        )

        match outcome:
            case Ok(Ok(stored)):
                log.info("ledger.checkpoint", event_id=event_id, epoch=lease.epoch)
                return Ok(stored)
            case Ok(Error(err)):
                log.warning("ledger.superseded", event_id=event_id, epoch=lease.epoch)
                return Error(err)
            case Error(err):
                return Error(self._store_error(event_id, err))

    async def release(
        self,
        lease: Lease,
        now: datetime | None = None,
    ) -> Result[bool, ProcessingError]:
        """
        Give up our lease so the next delivery can reclaim it at once.

        Record stays LEASED with expires_at = now. Returns Ok(False) when the
        lease is no longer ours.
        """
        at = now if now is not None else self._clock()
        event_id = lease.event_id

        outcome = await self._store.transact(
            event_id,
            lambda current: _release(lease, current, at),
        )

        match outcome:
            case Ok(released):
                log.info("ledger.released", event_id=event_id, released=released)
                return Ok(released)
            case Error(err):
                return Error(self._store_error(event_id, err))

    async def get(self, event_id: str) -> Result[DedupRecord | None, ProcessingError]:
        """Current record, or None for an unseen event."""
        match await self._store.get(event_id):
            case Ok(record):
                return Ok(record)
            case Error(err):
                return Error(self._store_error(event_id, err))

    @staticmethod
    def _store_error(event_id: str, err: StoreError) -> ProcessingError:
        log.warning("ledger.store_error", event_id=event_id, error=err.message)
        return Errors.store(err.message, err, event_id)


__all__ = ("DedupLedger",)
