"""
Invoker — calls to downstream services.
"""

from exactly.invoker._types import Invoker
from exactly.invoker._http import HttpInvoker, IDEMPOTENCY_HEADER

__all__ = (
    "Invoker",
    "HttpInvoker",
    "IDEMPOTENCY_HEADER",
)
