"""
Order types — order, stages and pipeline result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from kungfu import Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly.envelope import EventEnvelope


# ═══════════════════════════════════════════════════════════════════════════════
# Stage — Order Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStage(Enum):
    """
    Stage of one order.

    Lifecycle:
        RECEIVED → COOK_CHOSEN → STORED → NOTIFIED

    Note: A failed attempt stays at its last completed stage. The next
    delivery resumes after it.
    """

    RECEIVED = "received"
    COOK_CHOSEN = "cook_chosen"
    STORED = "stored"
    NOTIFIED = "notified"


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Order:
    """
    Meal order. id is the event id; cook is set once assigned.
    """

    id: str
    timestamp: datetime
    meal: str
    cook: str | None = None

    @classmethod
    def from_envelope(cls, envelope: EventEnvelope) -> Result[Order, ProcessingError]:
        """Order carried by an event: the payload text is the meal."""
        match envelope.text():
            case Ok(meal):
                return Ok(cls(id=envelope.event_id, timestamp=envelope.timestamp, meal=meal))
            case Error(err):
                return Error(err)

    @classmethod
    def from_dict(cls, document: dict[str, Any]) -> Order:
        return cls(
            id=document["id"],
            timestamp=datetime.fromisoformat(document["timestamp"]),
            meal=document["meal"],
            cook=document.get("cook"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "meal": self.meal,
            "cook": self.cook,
        }

    def with_cook(self, cook: str) -> Order:
        return replace(self, cook=cook)


def cook_from(response: Any, order_id: str) -> Result[str, ProcessingError]:
    """Extract the cook from a chooseCook response ({"cook": name})."""
    if isinstance(response, dict) and isinstance(response.get("cook"), str):
        return Ok(response["cook"])
    return Error(Errors.service("chooseCook", f"unexpected response {response!r}", order_id))


# ═══════════════════════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """
    Acknowledged order delivery.

    stages_run: stages this delivery completed itself, in order.
    replayed: the order was already NOTIFIED, nothing ran.
    """

    order: Order
    stage: OrderStage
    stages_run: tuple[OrderStage, ...] = ()
    replayed: bool = False


__all__ = (
    "OrderStage",
    "Order",
    "cook_from",
    "PipelineResult",
)
