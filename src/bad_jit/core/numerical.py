# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Central finite-difference derivatives on manifolds.

These are the numerical counterparts of the Jacobians produced by the
expression engine and are used to check them:

    column i = ( y ⊖ f(x ⊕ h e_i) - y ⊖ f(x ⊕ -h e_i) ) / 2h,   y = f(x)

where ⊕ is the argument's `retract` and ⊖ the output's
`local_coordinates`.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

import jax.numpy as jnp

from .types import Key
from .values import Values


def numerical_derivative(f: Callable[[Any], Any], x: Any, delta: float = 1e-5) -> jnp.ndarray:
    """Jacobian of f at manifold point x, shape (dim f(x), dim x)."""
    y = f(x)
    columns = []
    for i in range(x.dim()):
        e = jnp.zeros(x.dim()).at[i].set(delta)
        plus = y.local_coordinates(f(x.retract(e)))
        minus = y.local_coordinates(f(x.retract(-e)))
        columns.append((plus - minus) / (2.0 * delta))
    return jnp.stack(columns, axis=1)


def numerical_jacobians(expression, values: Values, delta: float = 1e-5) -> Dict[Key, jnp.ndarray]:
    """Per-key numerical Jacobian map of an expression at `values`."""
    result: Dict[Key, jnp.ndarray] = {}
    for key in expression.keys():

        def f(x, key=key):
            perturbed = values.copy()
            perturbed.update(key, x)
            return expression.value(perturbed)

        result[key] = numerical_derivative(f, values.at(key), delta)
    return result
