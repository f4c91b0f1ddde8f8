# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Expression arena.

An `ExpressionGraph` owns every node of one or more expressions. Nodes are a
tagged variant over four immutable kinds:

    ConstantNode(value)              fixed value, no Jacobian entries
    LeafNode(key, manifold)          value looked up in the assignment
    UnaryNode(op, child)             op applied to one child
    BinaryNode(op, left, right)      op applied to two children

Children are referenced by their integer index in the arena, never by
object. The arena is append-only and a node can only reference indices
that already exist, so children always precede their parents: the graph
is acyclic by construction and ascending index order is a topological
order. The same child index may be shared by several parents (DAG).

The arena also records the manifold type produced by every node, so type
errors are caught when a node is added rather than at evaluation time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from bad_jit.core.types import Key
from .operation import Operation


@dataclass(frozen=True, eq=False)
class ConstantNode:
    value: Any


@dataclass(frozen=True)
class LeafNode:
    key: Key
    manifold: type


@dataclass(frozen=True, eq=False)
class UnaryNode:
    op: Operation
    child: int


@dataclass(frozen=True, eq=False)
class BinaryNode:
    op: Operation
    left: int
    right: int


Node = Union[ConstantNode, LeafNode, UnaryNode, BinaryNode]


def children_of(node: Node) -> Tuple[int, ...]:
    if isinstance(node, UnaryNode):
        return (node.child,)
    if isinstance(node, BinaryNode):
        return (node.left, node.right)
    return ()


class ExpressionGraph:
    """Append-only arena of expression nodes."""

    def __init__(self):
        self._nodes: List[Node] = []
        self._types: List[type] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, index: int) -> Node:
        self._check_index(index)
        return self._nodes[index]

    def manifold(self, index: int) -> type:
        self._check_index(index)
        return self._types[index]

    def children(self, index: int) -> Tuple[int, ...]:
        return children_of(self.node(index))

    # --- construction ---

    def add_constant(self, value: Any) -> int:
        if not hasattr(value, "dim"):
            raise TypeError(f"Constant of type {type(value).__name__} is not a manifold value")
        return self._append(ConstantNode(value), type(value))

    def add_leaf(self, key: Key, manifold: type) -> int:
        return self._append(LeafNode(Key(int(key)), manifold), manifold)

    def add_unary(self, op: Operation, child: int) -> int:
        self._check_index(child)
        out = op.result_type(self._types[child])
        return self._append(UnaryNode(op, child), out)

    def add_binary(self, op: Operation, left: int, right: int) -> int:
        self._check_index(left)
        self._check_index(right)
        out = op.result_type(self._types[left], self._types[right])
        return self._append(BinaryNode(op, left, right), out)

    def _append(self, node: Node, manifold: type) -> int:
        self._nodes.append(node)
        self._types.append(manifold)
        return len(self._nodes) - 1

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._nodes):
            raise ValueError(f"Node index {index} is not in the arena (size {len(self._nodes)})")

    # --- queries ---

    def reachable(self, root: int) -> List[int]:
        """Indices of all nodes reachable from `root`, ascending (topological)."""
        self._check_index(root)
        seen = {root}
        stack = [root]
        while stack:
            for c in children_of(self._nodes[stack.pop()]):
                if c not in seen:
                    seen.add(c)
                    stack.append(c)
        return sorted(seen)

    def keys(self, root: int) -> List[Key]:
        """Sorted keys of the leaves reachable from `root`."""
        keys = {
            self._nodes[i].key
            for i in self.reachable(root)
            if isinstance(self._nodes[i], LeafNode)
        }
        return sorted(keys)
