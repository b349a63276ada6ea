"""
Graph resolution — push inputs into a fresh scope, resolve one target node.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value


async def resolve[T](target: type[T], *inputs: object) -> T:
    """
    Resolve target and everything it depends on.

    Each input is pushed under its runtime type, so nodes ask for it by
    annotation.

    Example:
        final = await resolve(FinalResultNode, spec)
    """
    agent = EventLoopAgent.build({cast(type[Node[Any, Any]], target)})
    # EventLoopAgent.run is untyped in nodnod
    run_agent = cast(
        Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
        getattr(agent, "run"),
    )

    scope = Scope(detail=f"resolve {target.__name__}")
    async with scope:
        for value in inputs:
            scope.push(Value(type(value), value))
        await run_agent(scope, {})

        found = scope.get(target)
        if found is None:
            raise LookupError(f"{target.__name__} was not resolved")
        return cast(T, found.value)


__all__ = ("resolve",)
