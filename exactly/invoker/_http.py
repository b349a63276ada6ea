"""
HTTP invoker — downstream services behind one base URL.

    async with httpx.AsyncClient(base_url="https://region-project.cloudfunctions.net") as client:
        invoker = HttpInvoker(client)
        await invoker.call("flaky", {"text": "hi"}, idempotency_key=event_id)

POST {base_url}/{service}               without a key
POST {base_url}/{service}/{key}         with a key, plus Idempotency-Key header
"""

from __future__ import annotations

from typing import Any

import httpx
from combinators import lift as L
from kungfu import LazyCoroResult

from exactly._errors import Errors, ProcessingError
from exactly.observability import get_logger

log = get_logger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class HttpInvoker:
    """
    Invoker over an httpx.AsyncClient.

    Transport errors and non-2xx responses become TRANSIENT_SERVICE errors.
    The client is owned by the caller and shared across calls.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def call(
        self,
        service: str,
        payload: Any,
        idempotency_key: str | None = None,
    ) -> LazyCoroResult[Any, ProcessingError]:
        client = self._client

        async def send() -> Any:
            if idempotency_key is None:
                url, headers = f"/{service}", {}
            else:
                url, headers = f"/{service}/{idempotency_key}", {IDEMPOTENCY_HEADER: idempotency_key}

            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            log.debug(
                "invoker.called",
                service=service,
                status=response.status_code,
                idempotency_key=idempotency_key,
            )
            return _body(response)

        def on_error(exc: Exception) -> ProcessingError:
            log.warning("invoker.failed", service=service, error=str(exc))
            return Errors.service(service, exc, idempotency_key)

        return L.catching_async(send, on_error=on_error)


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if response.headers.get("content-type", "").startswith("application/json"):
        return response.json()
    return response.text


__all__ = ("HttpInvoker", "IDEMPOTENCY_HEADER")
