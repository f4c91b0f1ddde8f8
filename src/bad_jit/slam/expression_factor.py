# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Measurement factor driven by an expression graph.

`ExpressionFactor` binds a fixed measurement z to an expression h(x) of the
same manifold type. Its residual is the tangent-space difference

    r(x) = z.local_coordinates(h(x))

which is well defined for non-Euclidean measurement types as well, and its
linearization reuses the Jacobian blocks that the expression engine derives
by reverse accumulation, so no residual ever needs to be differentiated by
hand.

For vector-space measurements the residual Jacobian is the expression
Jacobian itself. For other measurement types (`Pose3`) each block is
left-multiplied by

    H = d z.local_coordinates(h ⊕ δ) / dδ  at δ = 0

obtained with `jax.jacfwd` through the manifold charts, so the linear factor
is the exact first-order model of r also away from r = 0.

Weighting policy
----------------
With a noise model, the residual and every block are whitened by its
square-root information. Without one, identity weighting is applied
explicitly: construction emits an `UnweightedFactor` warning and the
assembled `JacobianFactor` records ``model=None``.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, List, Optional

import jax
import jax.numpy as jnp

from bad_jit.core.errors import DimensionMismatch, UnweightedFactor
from bad_jit.core.types import Key
from bad_jit.core.values import Values
from bad_jit.expression.expression import Expression
from bad_jit.linear.jacobian_factor import JacobianFactor, assemble
from .manifold import VectorSpace
from .noise import Gaussian, Unit

logger = logging.getLogger(__name__)


class ExpressionFactor:
    """
    Nonlinear factor 0.5 ‖whiten(z ⊖ h(x))‖² with h given as an expression.

    Args:
        measurement: fixed measured value z.
        expression: expression producing a value of the same type as z.
        model: optional noise model, shared by reference.
    """

    def __init__(self, measurement: Any, expression: Expression, model: Optional[Gaussian] = None):
        if not isinstance(measurement, expression.manifold):
            raise DimensionMismatch(
                f"Measurement of type {type(measurement).__name__} does not match "
                f"expression output {expression.manifold.__name__}"
            )
        self._measurement = measurement
        self._expression = expression
        self._dim = measurement.dim()
        self._keys = expression.keys()

        if model is not None and model.dim() != self._dim:
            raise DimensionMismatch(
                f"Noise model of dimension {model.dim()} for a {self._dim}-dimensional measurement"
            )
        self._model = model
        self._whitener = model if model is not None else Unit.create(self._dim)

        if model is None:
            warnings.warn(
                f"ExpressionFactor on keys {self._keys} has no noise model; "
                "using identity weighting",
                UnweightedFactor,
                stacklevel=2,
            )
            logger.info("Factor on keys %s uses identity weighting", self._keys)

    @property
    def measurement(self) -> Any:
        return self._measurement

    @property
    def expression(self) -> Expression:
        return self._expression

    @property
    def model(self) -> Optional[Gaussian]:
        return self._model

    def keys(self) -> List[Key]:
        return list(self._keys)

    def dim(self) -> int:
        """Number of rows of the linearized factor."""
        return self._dim

    def unwhitened_error(self, values: Values) -> jnp.ndarray:
        predicted = self._expression.value(values)
        return self._measurement.local_coordinates(predicted)

    def error(self, values: Values) -> float:
        r = self._whitener.whiten(self.unwhitened_error(values))
        return 0.5 * float(jnp.dot(r, r))

    def _residual_chart_jacobian(self, predicted: Any) -> Optional[jnp.ndarray]:
        if isinstance(self._measurement, VectorSpace):
            return None

        def chart(delta):
            return self._measurement.local_coordinates(predicted.retract(delta))

        return jax.jacfwd(chart)(jnp.zeros(predicted.dim()))

    def linearize(self, values: Values) -> JacobianFactor:
        predicted, jacobians = self._expression.value_and_jacobians(values)
        residual = self._measurement.local_coordinates(predicted)
        H = self._residual_chart_jacobian(predicted)

        dims = {}
        blocks = {}
        for key, J in jacobians.items():
            dims[key] = values.dim(key)
            if J.shape[1] != dims[key]:
                raise DimensionMismatch(
                    f"Jacobian block for key {key} has {J.shape[1]} columns, "
                    f"variable has dimension {dims[key]}"
                )
            blocks[key] = self._whitener.whiten_matrix(J if H is None else H @ J)

        return assemble(blocks, self._whitener.whiten(residual), dims, model=self._model)

    def __repr__(self) -> str:
        return f"ExpressionFactor(keys={self._keys}, measurement={self._measurement!r})"
