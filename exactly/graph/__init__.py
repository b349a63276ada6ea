"""
Graph — nodnod dependency graphs.

    from exactly import graph as G

    @G.node
    class DecisionNode:
        @classmethod
        async def __compose__(cls, spec_node: SpecNode) -> DecisionNode:
            ...

    final = await G.resolve(FinalResultNode, spec)
"""

from nodnod import scalar_node as node

from exactly.graph._run import resolve

__all__ = (
    "node",
    "resolve",
)
