"""
Event envelope — one delivery of a logical event.

Redeliveries of the same logical event carry the same event_id.
"""

from __future__ import annotations

import base64
import binascii
import json as jsonlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from kungfu import Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly._types import utc_now


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    """
    Delivered event.

    event_id: opaque, stable across redeliveries.
    data: raw payload bytes.
    timestamp: publish time when known, arrival time otherwise.
    """

    event_id: str
    data: bytes = b""
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_pubsub(
        cls,
        message: Mapping[str, Any],
        context: Mapping[str, Any],
    ) -> Result[EventEnvelope, ProcessingError]:
        """
        Decode a Pub/Sub push: base64 message["data"], context["eventId"],
        optional ISO-8601 context["timestamp"].
        """
        event_id = context.get("eventId")
        if not event_id:
            return Error(Errors.permanent("Event has no eventId"))

        try:
            data = base64.b64decode(message.get("data") or "", validate=True)
        except (binascii.Error, ValueError) as e:
            return Error(Errors.permanent("Payload is not valid base64", e, event_id))

        raw_timestamp = context.get("timestamp")
        if raw_timestamp is None:
            timestamp = utc_now()
        else:
            try:
                timestamp = datetime.fromisoformat(str(raw_timestamp).replace("Z", "+00:00"))
            except ValueError as e:
                return Error(Errors.permanent("Malformed timestamp", e, event_id))

        return Ok(cls(event_id=str(event_id), data=data, timestamp=timestamp))

    @classmethod
    def of(cls, event_id: str, content: Any, timestamp: datetime | None = None) -> EventEnvelope:
        """Envelope carrying content as JSON. For producers and tests."""
        return cls(
            event_id=event_id,
            data=jsonlib.dumps(content).encode(),
            timestamp=timestamp if timestamp is not None else utc_now(),
        )

    def text(self) -> Result[str, ProcessingError]:
        """Payload as UTF-8 text."""
        try:
            return Ok(self.data.decode("utf-8"))
        except UnicodeDecodeError as e:
            return Error(Errors.permanent("Payload is not UTF-8", e, self.event_id))

    def json(self) -> Result[Any, ProcessingError]:
        """Payload parsed as JSON. Empty payload is {}."""
        match self.text():
            case Ok(text) if not text.strip():
                return Ok({})
            case Ok(text):
                try:
                    return Ok(jsonlib.loads(text))
                except jsonlib.JSONDecodeError as e:
                    return Error(Errors.permanent("Payload is not JSON", e, self.event_id))
            case Error(err):
                return Error(err)


__all__ = ("EventEnvelope",)
