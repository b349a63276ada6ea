"""
Processing errors — the taxonomy every layer reports in.

Errors are values (returned inside kungfu.Error), not raised exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, auto
from typing import Any


class ErrorKind(Enum):
    """
    Kinds of processing errors.

    Everything except PERMANENT is safe to redeliver.
    """

    TRANSIENT_STORE = auto()  # Store unavailable or transaction conflict
    TRANSIENT_SERVICE = auto()  # Downstream call failed
    LEASE_CONFLICT = auto()  # Another attempt holds a live lease
    LEASE_SUPERSEDED = auto()  # Our lease expired and was reclaimed
    PERMANENT = auto()  # Malformed event, never retry


@dataclass(frozen=True, slots=True)
class ProcessingError:
    """
    Error of a single delivery attempt.

    Note: cause keeps the underlying exception or StoreError for logging.
    """

    kind: ErrorKind
    message: str
    event_id: str | None = None
    cause: Any = None

    @property
    def retryable(self) -> bool:
        return self.kind is not ErrorKind.PERMANENT

    def for_event(self, event_id: str) -> ProcessingError:
        """Attach the event id if the error was produced without one."""
        if self.event_id is not None:
            return self
        return replace(self, event_id=event_id)


class Errors:
    """Constructors for ProcessingError."""

    @staticmethod
    def store(message: str, cause: Any = None, event_id: str | None = None) -> ProcessingError:
        return ProcessingError(ErrorKind.TRANSIENT_STORE, message, event_id, cause)

    @staticmethod
    def service(service: str, cause: Any = None, event_id: str | None = None) -> ProcessingError:
        return ProcessingError(
            ErrorKind.TRANSIENT_SERVICE,
            f"Service {service} failed: {cause}",
            event_id,
            cause,
        )

    @staticmethod
    def lease_conflict(event_id: str, expires_at: datetime) -> ProcessingError:
        return ProcessingError(
            ErrorKind.LEASE_CONFLICT,
            f"Lease already taken until {expires_at.isoformat()}, try later",
            event_id,
        )

    @staticmethod
    def superseded(event_id: str, message: str = "Lease was superseded") -> ProcessingError:
        return ProcessingError(ErrorKind.LEASE_SUPERSEDED, message, event_id)

    @staticmethod
    def permanent(message: str, cause: Any = None, event_id: str | None = None) -> ProcessingError:
        return ProcessingError(ErrorKind.PERMANENT, message, event_id, cause)


__all__ = (
    "ErrorKind",
    "ProcessingError",
    "Errors",
)
