# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
The differentiable operation contract.

An `Operation` is a named, stateless, pure function of one or two manifold
values together with its partial derivatives at a point:

    forward(*args)  -> value
    partials(*args) -> (D_0, ..., D_{n-1})

Each D_i has shape ``(value.dim(), args[i].dim())`` and is expressed in
tangent coordinates: it maps a perturbation δ applied as
``args[i].retract(δ)`` to the first-order change of the output measured with
``value.local_coordinates``. For non-Euclidean arguments such as `Pose3` this
is the Lie-group derivative, not the derivative of the raw storage.

Adding a new operation only requires these two functions; the evaluation
engine never needs to change. When writing the partials by hand is not
worth it, `AutodiffOperation` derives them with `jax.jacfwd` through the
manifold charts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp

ForwardFn = Callable[..., Any]
PartialsFn = Callable[..., Tuple[jnp.ndarray, ...]]


@dataclass(frozen=True, eq=False)
class Operation:
    """
    A named differentiable operation.

    Attributes
    ----------
    name:
        Human-readable name, used in error messages and reprs.
    arity:
        Number of arguments (1 or 2).
    forward:
        Function computing the output value.
    partials:
        Function computing one Jacobian per argument at the same point.
    out:
        Output manifold type. ``None`` means "same type as the first
        argument" (e.g. subtraction of points).
    arg_types:
        Optional expected argument types, checked when a node is built.
    check:
        Optional precondition on concrete arguments, run by `__call__` and
        `evaluate` before `forward`; `forward` itself stays traceable by
        `jax.jacfwd` and `jax.jit`.
    """

    name: str
    arity: int
    forward: ForwardFn
    partials: PartialsFn
    out: Optional[type] = None
    arg_types: Optional[Tuple[type, ...]] = None
    check: Optional[Callable[..., None]] = None

    def result_type(self, *arg_types: type) -> type:
        if len(arg_types) != self.arity:
            raise ValueError(
                f"Operation '{self.name}' takes {self.arity} argument(s), got {len(arg_types)}"
            )
        if self.arg_types is not None:
            for i, (got, expected) in enumerate(zip(arg_types, self.arg_types)):
                if not issubclass(got, expected):
                    raise TypeError(
                        f"Operation '{self.name}' argument {i} must be "
                        f"{expected.__name__}, got {got.__name__}"
                    )
        return self.out if self.out is not None else arg_types[0]

    def __call__(self, *args: Any) -> Any:
        if self.check is not None:
            self.check(*args)
        return self.forward(*args)

    def evaluate(self, *args: Any) -> Tuple[Any, Tuple[jnp.ndarray, ...]]:
        """Forward value together with the partials at the same point."""
        value = self(*args)
        partials = tuple(jnp.asarray(d) for d in self.partials(*args))
        if len(partials) != self.arity:
            raise ValueError(
                f"Operation '{self.name}' returned {len(partials)} partials for "
                f"{self.arity} argument(s)"
            )
        return value, partials

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class AutodiffOperation(Operation):
    """
    Operation whose partials are derived by forward-mode autodiff.

    For argument i the partial is

        jacfwd( δ ↦ y.local_coordinates(forward(..., args[i].retract(δ), ...)) )(0)

    with y = forward(*args). `forward` must be written in `jax.numpy` so it
    can be traced.
    """

    def __init__(
        self,
        name: str,
        arity: int,
        forward: ForwardFn,
        out: Optional[type] = None,
        arg_types: Optional[Tuple[type, ...]] = None,
        check: Optional[Callable[..., None]] = None,
    ):
        super().__init__(name, arity, forward, self._jacfwd_partials, out, arg_types, check)

    def _jacfwd_partials(self, *args: Any) -> Tuple[jnp.ndarray, ...]:
        y = self.forward(*args)
        partials = []
        for i, arg in enumerate(args):

            def chart(delta, i=i, arg=arg):
                perturbed = list(args)
                perturbed[i] = arg.retract(delta)
                return y.local_coordinates(self.forward(*perturbed))

            partials.append(jax.jacfwd(chart)(jnp.zeros(arg.dim())))
        return tuple(partials)
