"""
Processor builder — fluent API over the three strategies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kungfu import LazyCoroResult, Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly.envelope import EventEnvelope
from exactly.invoker import Invoker
from exactly.ledger import DedupLedger
from exactly.observability import get_logger
from exactly.processor._effects import (
    Document,
    as_document,
    call_after,
    call_all,
    persist_blind,
    persist_keyed,
)
from exactly.processor._graph import GatedSpec, run_gated
from exactly.processor._types import Effect, Processed, Strategy
from exactly.store import RecordStore

log = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Processor Builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Processor:
    """
    Fluent processor builder.
    """
    _effect: Effect
    _strategy: Strategy
    _invoker: Invoker | None
    _records: RecordStore[Document] | None
    _ledger: DedupLedger | None

    def strategy(self, s: Strategy) -> Processor:
        """Set duplicate handling strategy."""
        return Processor(
            _effect=self._effect,
            _strategy=s,
            _invoker=self._invoker,
            _records=self._records,
            _ledger=self._ledger,
        )

    def invoker(self, i: Invoker) -> Processor:
        """Set downstream invoker."""
        return Processor(
            _effect=self._effect,
            _strategy=self._strategy,
            _invoker=i,
            _records=self._records,
            _ledger=self._ledger,
        )

    def records(self, r: RecordStore[Document]) -> Processor:
        """Set document store for effects that persist."""
        return Processor(
            _effect=self._effect,
            _strategy=self._strategy,
            _invoker=self._invoker,
            _records=r,
            _ledger=self._ledger,
        )

    def ledger(self, d: DedupLedger) -> Processor:
        """Set dedup ledger (LEDGER strategy). Its policy decides relaxed mode."""
        return Processor(
            _effect=self._effect,
            _strategy=self._strategy,
            _invoker=self._invoker,
            _records=self._records,
            _ledger=d,
        )

    def build(self) -> ProcessorExecutor:
        """Build executable."""
        if self._invoker is None:
            raise ValueError("invoker() is required")
        if self._effect.persist and self._records is None:
            raise ValueError(f"records() is required: {self._effect.name} persists documents")
        if self._strategy is Strategy.LEDGER and self._ledger is None:
            raise ValueError("ledger() is required for LEDGER")
        if self._strategy is Strategy.KEYED_WRITE and not self._effect.persist:
            raise ValueError(f"KEYED_WRITE needs an effect that persists, {self._effect.name} does not")

        return ProcessorExecutor(
            effect=self._effect,
            strategy=self._strategy,
            invoker=self._invoker,
            records=self._records,
            ledger=self._ledger,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Processor Executor
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class ProcessorExecutor:
    """
    Compiled processor — the delivery handler.

    run(envelope) is Ok to acknowledge the delivery, Error to have it
    redelivered (unless the error is PERMANENT).
    """
    effect: Effect
    strategy: Strategy
    invoker: Invoker
    records: RecordStore[Document] | None
    ledger: DedupLedger | None

    def run(self, envelope: EventEnvelope) -> LazyCoroResult[Processed, ProcessingError]:
        """Process one delivery."""

        async def execute() -> Result[Processed, ProcessingError]:
            match envelope.json():
                case Error(err):
                    log.warning("processor.malformed", event_id=envelope.event_id, error=err.message)
                    return Error(err)
                case Ok(content):
                    pass

            if self.effect.persist:
                match as_document(content, envelope.event_id):
                    case Error(err):
                        return Error(err)
                    case Ok(_):
                        pass

            match self.strategy:
                case Strategy.NONE:
                    result = await self._unguarded(envelope, content)
                case Strategy.KEYED_WRITE:
                    result = await self._keyed(envelope, content)
                case Strategy.LEDGER:
                    result = await self._gated(envelope, content)

            match result:
                case Ok(processed):
                    log.info(
                        "processor.acked",
                        event_id=envelope.event_id,
                        effect=self.effect.name,
                        strategy=self.strategy.name,
                        executed=processed.executed,
                    )
                    return Ok(processed)
                case Error(err):
                    error = err.for_event(envelope.event_id)
                    log.warning(
                        "processor.nacked",
                        event_id=envelope.event_id,
                        effect=self.effect.name,
                        strategy=self.strategy.name,
                        kind=error.kind.name,
                        error=error.message,
                    )
                    return Error(error)

        return LazyCoroResult(execute)

    async def __call__(self, envelope: EventEnvelope) -> Result[Processed, ProcessingError]:
        return await self.run(envelope)

    def _misconfigured(self, message: str, envelope: EventEnvelope) -> ProcessingError:
        log.error("processor.misconfigured", event_id=envelope.event_id, effect=self.effect.name, error=message)
        return Errors.permanent(f"{self.effect.name}: {message}", event_id=envelope.event_id)

    async def _unguarded(self, envelope: EventEnvelope, content: Any) -> Result[Processed, ProcessingError]:
        """NONE: call, then blind insert."""
        match await call_all(self.effect, content, self.invoker, None):
            case Error(err):
                return Error(err)
            case Ok(value):
                pass

        if self.effect.persist and self.records is not None:
            match await persist_blind(self.records, envelope.event_id, content):
                case Error(err):
                    return Error(err)
                case Ok(_):
                    pass

        match await call_after(self.effect, content, self.invoker, None):
            case Ok(_):
                return Ok(Processed(envelope.event_id, value, executed=True))
            case Error(err):
                return Error(err)

    async def _keyed(self, envelope: EventEnvelope, content: Any) -> Result[Processed, ProcessingError]:
        """KEYED_WRITE: create-if-absent by event id, then call."""
        records = self.records
        if records is None:
            return Error(self._misconfigured("KEYED_WRITE needs a records store", envelope))

        match await persist_keyed(records, envelope.event_id, content):
            case Error(err):
                return Error(err)
            case Ok(created):
                if not created.created:
                    log.info("processor.record_exists", event_id=envelope.event_id)

        match await call_all(self.effect, content, self.invoker, envelope.event_id):
            case Error(err):
                return Error(err)
            case Ok(value):
                pass

        match await call_after(self.effect, content, self.invoker, envelope.event_id):
            case Ok(_):
                return Ok(Processed(envelope.event_id, value, executed=True))
            case Error(err):
                return Error(err)

    async def _gated(self, envelope: EventEnvelope, content: Any) -> Result[Processed, ProcessingError]:
        """LEDGER: via graph."""
        ledger = self.ledger
        if ledger is None:
            return Error(self._misconfigured("LEDGER needs a dedup ledger", envelope))

        spec = GatedSpec(
            envelope=envelope,
            content=content,
            effect=self.effect,
            ledger=ledger,
            invoker=self.invoker,
            records=self.records,
        )
        return await run_gated(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# processor() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════

def processor(effect: Effect) -> Processor:
    """
    Create a processor for an effect. Defaults to the LEDGER strategy.

    Example:
        handle = (
            P.processor(P.STORE_DOCUMENT)
            .strategy(P.LEDGER)
            .invoker(HttpInvoker(client))
            .records(contents)
            .ledger(ledger)
            .build()
        )

        result = await handle.run(envelope)
    """
    return Processor(
        _effect=effect,
        _strategy=Strategy.LEDGER,
        _invoker=None,
        _records=None,
        _ledger=None,
    )


__all__ = (
    "Processor",
    "ProcessorExecutor",
    "processor",
)
