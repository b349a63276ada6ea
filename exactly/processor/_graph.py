"""
Ledger-gated processing — ALL logic as nodnod nodes.

Architecture:
    GatedSpec (injected)
         │
         ▼
    SpecNode
         │
         ▼
    DecisionNode (ledger.decide)
         │
         ├── DecideErrorNode ───┐
         ├── AlreadyDoneNode ───┤
         ├── LeaseHeldNode ─────┼── GatedOutcome (@polymorphic)
         └── ShouldRunNode ─────┘          │
                                           ▼
                                    FinalResultNode

Note: no 'from __future__ import annotations' here, nodnod reads type hints
at runtime to resolve dependencies.
"""

from dataclasses import dataclass
from typing import Any

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error

from exactly import graph as G
from exactly._errors import Errors, ProcessingError
from exactly.envelope import EventEnvelope
from exactly.invoker import Invoker
from exactly.ledger import AlreadyDone, DedupLedger, Lease, LeaseHeld, ShouldRun
from exactly.observability import get_logger
from exactly.processor._effects import Document, as_document, call_after, call_all, persist_keyed
from exactly.processor._types import Effect, Processed
from exactly.store import RecordStore

log = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class GatedSpec:
    """Everything one ledger-gated delivery needs."""

    envelope: EventEnvelope
    content: Any
    effect: Effect
    ledger: DedupLedger
    invoker: Invoker
    records: RecordStore[Document] | None = None

    @property
    def event_id(self) -> str:
        return self.envelope.event_id


# ═══════════════════════════════════════════════════════════════════════════════
# Entry Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    """Wraps GatedSpec for graph."""

    def __init__(self, spec: GatedSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: GatedSpec) -> "SpecNode":
        return cls(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Decision
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class DecisionNode:
    """Runs ledger.decide() once per delivery."""

    def __init__(self, decision: Any, spec: GatedSpec, error: ProcessingError | None = None) -> None:
        self.decision = decision
        self.spec = spec
        self.error = error

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "DecisionNode":
        spec = spec_node.spec
        match await spec.ledger.decide(spec.event_id):
            case Ok(decision):
                return cls(decision, spec)
            case Error(err):
                return cls(None, spec, error=err)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — Each validates one decision
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class ShouldRunNode:
    """Validates: this delivery owns the lease."""

    def __init__(self, lease: Lease, spec: GatedSpec) -> None:
        self.lease = lease
        self.spec = spec

    @classmethod
    def __compose__(cls, decision: DecisionNode) -> "ShouldRunNode":
        if not isinstance(decision.decision, ShouldRun):
            raise NodeError("Not ShouldRun")
        return cls(decision.decision.lease, decision.spec)


@G.node
class AlreadyDoneNode:
    """Validates: an earlier delivery completed the side effect."""

    def __init__(self, done: AlreadyDone, spec: GatedSpec) -> None:
        self.done = done
        self.spec = spec

    @classmethod
    def __compose__(cls, decision: DecisionNode) -> "AlreadyDoneNode":
        if not isinstance(decision.decision, AlreadyDone):
            raise NodeError("Not AlreadyDone")
        return cls(decision.decision, decision.spec)


@G.node
class LeaseHeldNode:
    """Validates: another delivery holds a live lease."""

    def __init__(self, held: LeaseHeld, spec: GatedSpec) -> None:
        self.held = held
        self.spec = spec

    @classmethod
    def __compose__(cls, decision: DecisionNode) -> "LeaseHeldNode":
        if not isinstance(decision.decision, LeaseHeld):
            raise NodeError("Not LeaseHeld")
        return cls(decision.decision, decision.spec)


@G.node
class DecideErrorNode:
    """Validates: decide() itself failed."""

    def __init__(self, error: ProcessingError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, decision: DecisionNode) -> "DecideErrorNode":
        if decision.error is None:
            raise NodeError("No decide error")
        return cls(decision.error)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeOk:
    """Acknowledge the delivery."""

    processed: Processed


@dataclass(frozen=True)
class OutcomeError:
    """Fail the delivery."""

    error: ProcessingError


type Outcome = OutcomeOk | OutcomeError


async def _side_effect(spec: GatedSpec) -> Result[Any, ProcessingError]:
    """Persist (keyed, so a re-run never duplicates the record), then call."""
    if spec.effect.persist and spec.records is not None:
        match as_document(spec.content, spec.event_id):
            case Ok(document):
                match await persist_keyed(spec.records, spec.event_id, document):
                    case Ok(_):
                        pass
                    case Error(err):
                        return Error(err)
            case Error(err):
                return Error(err)

    return await call_all(spec.effect, spec.content, spec.invoker, spec.event_id)


async def _finish(spec: GatedSpec, processed: Processed) -> Outcome:
    """Committed: run the after-calls under the event id, ack if they succeed."""
    match await call_after(spec.effect, spec.content, spec.invoker, spec.event_id):
        case Ok(_):
            return OutcomeOk(processed)
        case Error(err):
            return OutcomeError(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome — Each case uses a validated state node
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class GatedOutcome:
    """
    Polymorphic router — each @case depends on a validated decision node.

    Note: Cases are tried in order; relaxed must precede execute, both
    depend on ShouldRunNode.
    """

    @case
    def decide_failed(cls, node: DecideErrorNode) -> Outcome:
        """Store failed: run nothing, mark nothing."""
        return OutcomeError(node.error)

    @case
    async def replay(cls, node: AlreadyDoneNode) -> Outcome:
        """Duplicate delivery: skip the side effect, finish the after-calls."""
        spec = node.spec
        log.info("processor.skipped", event_id=spec.event_id, effect=spec.effect.name)
        return await _finish(spec, Processed(spec.event_id, node.done.result, executed=False))

    @case
    def deferred(cls, node: LeaseHeldNode) -> Outcome:
        """Concurrent delivery in flight: fail so delivery retries later."""
        return OutcomeError(Errors.lease_conflict(node.held.event_id, node.held.expires_at))

    @case
    async def relaxed(cls, node: ShouldRunNode) -> Outcome:
        """
        Relaxed mode: commit first, then run.

        Note: A failure after the commit is not retried. The next delivery
        sees AlreadyDone and the side effect is lost.
        """
        spec = node.spec
        if not spec.ledger.policy.relaxed:
            raise NodeError("Policy not relaxed")

        match await spec.ledger.mark_done(node.lease):
            case Error(err):
                return OutcomeError(err)
            case Ok(_):
                pass

        match await _side_effect(spec):
            case Ok(value):
                return await _finish(spec, Processed(spec.event_id, value, executed=True))
            case Error(err):
                log.warning("processor.lost_after_commit", event_id=spec.event_id, error=err.message)
                return OutcomeError(err)

    @case
    async def execute(cls, node: ShouldRunNode) -> Outcome:
        """Run the side effect under the lease, then mark_done."""
        spec = node.spec
        lease = node.lease

        match await _side_effect(spec):
            case Error(err):
                await spec.ledger.release(lease)
                return OutcomeError(err)
            case Ok(value):
                pass

        match await spec.ledger.mark_done(lease, value):
            case Ok(_):
                return await _finish(spec, Processed(spec.event_id, value, executed=True))
            case Error(err):
                return OutcomeError(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    """Converts Outcome to typed Result."""

    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: GatedOutcome) -> "FinalResultNode":
        return cls(outcome.value)

    def to_result(self) -> Result[Processed, ProcessingError]:
        match self.outcome:
            case OutcomeOk(processed=processed):
                return Ok(processed)
            case OutcomeError(error=error):
                return Error(error)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def run_gated(spec: GatedSpec) -> Result[Processed, ProcessingError]:
    """Process one delivery via graph."""
    node = await G.resolve(FinalResultNode, spec)
    return node.to_result()


__all__ = (
    "GatedSpec",
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    "SpecNode",
    "DecisionNode",
    "ShouldRunNode",
    "AlreadyDoneNode",
    "LeaseHeldNode",
    "DecideErrorNode",
    "GatedOutcome",
    "FinalResultNode",
    "run_gated",
)
