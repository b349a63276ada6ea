"""
Effects — the document and email handlers, and the steps they are made of.
"""

from __future__ import annotations

from typing import Any

from kungfu import Result, Ok, Error

from exactly._errors import Errors, ProcessingError
from exactly.invoker import Invoker
from exactly.processor._types import Call, Effect
from exactly.store import Created, RecordStore, add, create_if_absent

type Document = dict[str, Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Built-in Effects
# ═══════════════════════════════════════════════════════════════════════════════


def _email_body(content: Any) -> dict[str, Any]:
    text = content.get("text") if isinstance(content, dict) else None
    return {"text": text}


STORE_DOCUMENT = Effect(
    name="store_document",
    calls=(Call("flaky"),),
    persist=True,
)
"""Store the JSON content as a document, then call the flaky service."""

SEND_EMAIL = Effect(
    name="send_email",
    calls=(Call("sendEmail", _email_body),),
    persist=False,
    after=(Call("flaky"),),
)
"""Send an email with content["text"]; call the flaky service once it is recorded as sent."""


# ═══════════════════════════════════════════════════════════════════════════════
# Steps
# ═══════════════════════════════════════════════════════════════════════════════


def as_document(content: Any, event_id: str) -> Result[Document, ProcessingError]:
    """Only JSON objects can be stored as documents."""
    if isinstance(content, dict):
        return Ok(content)
    return Error(Errors.permanent("Document payload must be a JSON object", event_id=event_id))


async def persist_keyed(
    records: RecordStore[Document],
    event_id: str,
    document: Document,
) -> Result[Created[Document], ProcessingError]:
    """Create-if-absent under the event id."""
    match await create_if_absent(records, event_id, document):
        case Ok(created):
            return Ok(created)
        case Error(err):
            return Error(Errors.store(err.message, err, event_id))


async def persist_blind(
    records: RecordStore[Document],
    event_id: str,
    document: Document,
) -> Result[str, ProcessingError]:
    """Insert under a fresh random key."""
    match await add(records, document):
        case Ok(key):
            return Ok(key)
        case Error(err):
            return Error(Errors.store(err.message, err, event_id))


async def _call_each(
    calls: tuple[Call, ...],
    content: Any,
    invoker: Invoker,
    idempotency_key: str | None,
) -> Result[Any, ProcessingError]:
    response: Any = None
    for call in calls:
        match await invoker.call(call.service, call.payload(content), idempotency_key):
            case Ok(value):
                response = value
            case Error(err):
                return Error(err)
    return Ok(response)


async def call_all(
    effect: Effect,
    content: Any,
    invoker: Invoker,
    idempotency_key: str | None,
) -> Result[Any, ProcessingError]:
    """Run the effect's calls in order, stop at the first failure."""
    return await _call_each(effect.calls, content, invoker, idempotency_key)


async def call_after(
    effect: Effect,
    content: Any,
    invoker: Invoker,
    idempotency_key: str | None,
) -> Result[None, ProcessingError]:
    """Run the calls that follow the commit point."""
    match await _call_each(effect.after, content, invoker, idempotency_key):
        case Ok(_):
            return Ok(None)
        case Error(err):
            return Error(err)


__all__ = (
    "Document",
    "STORE_DOCUMENT",
    "SEND_EMAIL",
    "as_document",
    "persist_keyed",
    "persist_blind",
    "call_all",
    "call_after",
)
