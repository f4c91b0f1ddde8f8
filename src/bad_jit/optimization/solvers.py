# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Nonlinear least-squares solver consuming linearized factors.

This module implements a small, dense, manifold-aware Gauss–Newton loop on
top of `FactorGraph.linearize`. It exists to exercise the linear factors
produced by `ExpressionFactor` end to end; it is not a sparse solver.

Key Concepts
------------
GNConfig
    Dataclass holding configuration for Gauss–Newton:
    - max_iters: maximum number of GN iterations
    - damping: Levenberg–Marquardt-style diagonal damping
    - max_step_norm: clamp on the norm of the tangent-space update
    - abs_tol / rel_tol: stop when the error decrease falls below these

gauss_newton(graph, values, cfg)
    Each iteration:
        1. linearize every factor at the current `Values`,
        2. stack the `JacobianFactor`s into a dense system in ascending-key
           ordering (`linear.jacobian_factor.stack`),
        3. solve the damped normal equations (AᵀA + λI) δ = Aᵀb,
        4. clamp the step and retract every variable on its own manifold
           (SE(3) retraction for poses, addition for Euclidean values).

Notes
-----
Errors raised by factors (missing variables, cheirality, dimension
mismatches) propagate to the caller unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jax.numpy as jnp

from bad_jit.core.factor_graph import FactorGraph
from bad_jit.core.values import Values
from bad_jit.linear.jacobian_factor import stack

logger = logging.getLogger(__name__)


@dataclass
class GNConfig:
    max_iters: int = 20
    damping: float = 1e-3       # LM-style diagonal damping
    max_step_norm: float = 1.0  # clamp step size for stability
    abs_tol: float = 1e-12
    rel_tol: float = 1e-9


def gauss_newton(graph: FactorGraph, values: Values, cfg: GNConfig | None = None) -> Values:
    """
    Manifold-aware Gauss-Newton over the variables of `graph`.

    Returns a new `Values`; the input store is not modified.
    """
    cfg = cfg or GNConfig()
    keys = graph.keys()
    dims = {key: values.dim(key) for key in keys}

    error = graph.error(values)
    logger.debug("GN start: error = %.6e", error)

    for it in range(cfg.max_iters):
        A, b, offsets = stack(graph.linearize(values), dims)

        n = A.shape[1]
        H = A.T @ A + cfg.damping * jnp.eye(n)
        g = A.T @ b

        delta = jnp.linalg.solve(H, g)

        # Optional step-size clamp to avoid huge jumps
        step_norm = jnp.linalg.norm(delta)
        scale = jnp.minimum(1.0, cfg.max_step_norm / (step_norm + 1e-9))
        delta = scale * delta

        values = values.retract(
            {key: delta[offsets[key]:offsets[key] + dims[key]] for key in keys}
        )

        new_error = graph.error(values)
        logger.debug("GN iter %d: error = %.6e, |step| = %.3e", it, new_error, float(step_norm))

        decrease = error - new_error
        error = new_error
        if abs(decrease) <= cfg.abs_tol or abs(decrease) <= cfg.rel_tol * abs(error):
            logger.info("GN converged after %d iterations, error = %.6e", it + 1, error)
            break

    return values
