# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Evaluation and reverse-mode differentiation of expression graphs.

Two entry points operate on a root node of an `ExpressionGraph`:

value(graph, root, values)
    Forward evaluation only.

value_and_jacobians(graph, root, values)
    Forward evaluation plus the sparse Jacobian map
    {key: d local(output) / d local(variable)}.

Algorithm
---------
1. Forward pass. The nodes reachable from the root are visited once in
   ascending arena index (children before parents). Each node's value, and
   for differentiable nodes the local partials of its operation, are stored
   in a cache that is local to the call. A node shared by several parents is
   therefore evaluated exactly once per call, and nothing is kept between
   calls: a later call with a different assignment can never see stale
   values or derivatives.

   A node is *active* when some leaf is reachable from it. Inactive nodes
   (constants and operations over constants only) are evaluated without
   partials and never receive adjoints.

2. Reverse pass. The root adjoint is seeded with I(dim output). Nodes are
   visited in descending index, so every parent pushes its contribution
   before a child is processed:

       adjoint[child] += adjoint[node] · D_child

   Leaves deposit their adjoint into the Jacobian block of their key. For a
   binary f(a, b) this is exactly the chain rule
   J[key] = Da · J_a[key] + Db · J_b[key], with single-term blocks for keys
   that only one child depends on.

The returned map is ordered by ascending key and only contains keys that
some leaf reachable through active nodes refers to; absent keys are
implicit zero blocks.

Both functions are pure: the graph and the assignment are only read, so
evaluations may run concurrently on separate threads.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

import jax.numpy as jnp

from bad_jit.core.errors import DimensionMismatch, KeyNotFound, MissingVariable
from bad_jit.core.types import JacobianMap, Key
from bad_jit.core.values import Values
from .graph import BinaryNode, ConstantNode, ExpressionGraph, LeafNode, UnaryNode, children_of

logger = logging.getLogger(__name__)


def _lookup(node: LeafNode, values: Values) -> Any:
    try:
        value = values.at(node.key)
    except KeyNotFound as exc:
        raise MissingVariable(node.key) from exc
    if not isinstance(value, node.manifold):
        raise TypeError(
            f"Variable {node.key} holds a {type(value).__name__}, "
            f"expression expects {node.manifold.__name__}"
        )
    return value


def _check_partials(op, value: Any, args: Tuple[Any, ...], partials: Tuple[jnp.ndarray, ...]) -> None:
    rows = value.dim()
    for i, (arg, d) in enumerate(zip(args, partials)):
        if d.shape != (rows, arg.dim()):
            raise DimensionMismatch(
                f"Operation '{op.name}' partial {i} has shape {d.shape}, "
                f"expected {(rows, arg.dim())}"
            )


def _forward(
    graph: ExpressionGraph,
    order: List[int],
    values: Values,
    with_partials: bool,
) -> Tuple[Dict[int, Any], Dict[int, Tuple[jnp.ndarray, ...]], Dict[int, bool]]:
    """
    Evaluate every node in `order` (ascending) exactly once.

    Returns the per-call caches (index -> value, index -> partials,
    index -> active).
    """
    cache: Dict[int, Any] = {}
    partials: Dict[int, Tuple[jnp.ndarray, ...]] = {}
    active: Dict[int, bool] = {}

    for i in order:
        node = graph.node(i)
        if isinstance(node, ConstantNode):
            cache[i] = node.value
            active[i] = False
        elif isinstance(node, LeafNode):
            cache[i] = _lookup(node, values)
            active[i] = True
        elif isinstance(node, (UnaryNode, BinaryNode)):
            kids = children_of(node)
            args = tuple(cache[c] for c in kids)
            active[i] = any(active[c] for c in kids)
            if with_partials and active[i]:
                value, ds = node.op.evaluate(*args)
                _check_partials(node.op, value, args, ds)
                partials[i] = ds
            else:
                value = node.op(*args)
            cache[i] = value
        else:
            raise TypeError(f"Unknown node type {type(node).__name__}")

    return cache, partials, active


def value(graph: ExpressionGraph, root: int, values: Values) -> Any:
    """Evaluate the expression rooted at `root` for the given assignment."""
    order = graph.reachable(root)
    cache, _, _ = _forward(graph, order, values, with_partials=False)
    return cache[root]


def value_and_jacobians(
    graph: ExpressionGraph,
    root: int,
    values: Values,
) -> Tuple[Any, JacobianMap]:
    """Evaluate the expression and its Jacobian blocks by reverse accumulation."""
    order = graph.reachable(root)
    cache, partials, active = _forward(graph, order, values, with_partials=True)
    result = cache[root]

    jacobians: Dict[Key, jnp.ndarray] = {}
    if not active[root]:
        logger.debug("Root %d depends on no variable; empty Jacobian map", root)
        return result, jacobians

    adjoints: Dict[int, jnp.ndarray] = {root: jnp.eye(result.dim())}

    for i in reversed(order):
        adj = adjoints.pop(i, None)
        if adj is None:
            continue
        node = graph.node(i)
        if isinstance(node, LeafNode):
            if node.key in jacobians:
                jacobians[node.key] = jacobians[node.key] + adj
            else:
                jacobians[node.key] = adj
            continue
        for c, d in zip(children_of(node), partials[i]):
            if not active[c]:
                continue
            contribution = adj @ d
            if c in adjoints:
                adjoints[c] = adjoints[c] + contribution
            else:
                adjoints[c] = contribution

    logger.debug(
        "Differentiated root %d: %d nodes, keys %s",
        root,
        len(order),
        sorted(jacobians),
    )
    return result, {k: jacobians[k] for k in sorted(jacobians)}
