# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Typed handles for building expression graphs.

An `Expression` is a (graph, index) pair pointing at one node of an
`ExpressionGraph`. Handles are cheap, hashable and immutable; building a
new expression appends nodes to the arena and returns a new handle, it never
changes existing nodes.

Typical construction of the bundle-adjustment projection residual:

    g = ExpressionGraph()
    x = leaf(g, 1, Pose3)
    p = leaf(g, 2, Point3)
    K = leaf(g, 3, Cal3_S2)
    uv_hat = uncalibrate(K, project(transform_to(x, p)))

Raw manifold values passed where an expression is expected become constant
nodes of the same arena. Handles from different arenas cannot be combined.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple

from bad_jit.core.types import JacobianMap, Key
from bad_jit.core.values import Values
from . import engine
from .graph import ExpressionGraph, Node
from .operation import Operation


@dataclass(frozen=True)
class Expression:
    graph: ExpressionGraph
    index: int

    @property
    def manifold(self) -> type:
        """Manifold type of the value this expression produces."""
        return self.graph.manifold(self.index)

    @property
    def node(self) -> Node:
        return self.graph.node(self.index)

    def value(self, values: Values) -> Any:
        return engine.value(self.graph, self.index, values)

    def value_and_jacobians(self, values: Values) -> Tuple[Any, JacobianMap]:
        return engine.value_and_jacobians(self.graph, self.index, values)

    def keys(self) -> List[Key]:
        return self.graph.keys(self.index)

    def __sub__(self, other) -> "Expression":
        from .operations import subtract

        return subtract(self, other)

    def __rsub__(self, other) -> "Expression":
        from .operations import subtract

        return subtract(other, self)

    def __add__(self, other) -> "Expression":
        from .operations import add

        return add(self, other)

    def __radd__(self, other) -> "Expression":
        from .operations import add

        return add(other, self)

    def __repr__(self) -> str:
        return f"Expression<{self.manifold.__name__}>(node={self.index})"


def leaf(graph: ExpressionGraph, key: Key, manifold: type) -> Expression:
    """Expression reading variable `key` (of type `manifold`) from the assignment."""
    return Expression(graph, graph.add_leaf(key, manifold))


def constant(graph: ExpressionGraph, value: Any) -> Expression:
    """Expression always producing `value`; it contributes no Jacobian entries."""
    return Expression(graph, graph.add_constant(value))


def _as_index(graph: ExpressionGraph, arg: Any) -> int:
    if isinstance(arg, Expression):
        if arg.graph is not graph:
            raise ValueError("Cannot combine expressions from different graphs")
        return arg.index
    return graph.add_constant(arg)


def apply(op: Operation, *args: Any) -> Expression:
    """Append a node applying `op` to `args` and return its handle."""
    if len(args) != op.arity:
        raise ValueError(f"Operation '{op.name}' takes {op.arity} argument(s), got {len(args)}")
    graph = next((a.graph for a in args if isinstance(a, Expression)), None)
    if graph is None:
        raise ValueError(f"Operation '{op.name}' needs at least one expression argument")
    indices = [_as_index(graph, a) for a in args]
    if op.arity == 1:
        return Expression(graph, graph.add_unary(op, indices[0]))
    if op.arity == 2:
        return Expression(graph, graph.add_binary(op, indices[0], indices[1]))
    raise ValueError(f"Operations of arity {op.arity} are not supported")
