# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
BAD-JIT: Block Automatic Differentiation for manifold-valued factors.

Nonlinear least-squares residuals are written as compositions of named
operations (rigid-transform application, projection, uncalibration,
subtraction, ...) over optimization variables. The composition is recorded
in an immutable expression graph, and the sparse Jacobian of the residual
with respect to every contributing variable is obtained by reverse
accumulation along that graph.

Subpackages
-----------
core
    Keys, errors, Lie-group math, the assignment store `Values`, numerical
    derivatives and the `FactorGraph` container.
expression
    The expression arena, the evaluation/differentiation engine and the
    operation library.
linear
    `JacobianFactor` and the sparse block assembler.
slam
    Manifold types, noise models, `ExpressionFactor` and the
    hand-differentiated reference factor.
optimization
    A dense Gauss-Newton solver consuming the linear factors.

Notes
-----
64-bit floats are enabled here, before any array is created, so every value
and Jacobian in the package is float64.
"""

import jax

jax.config.update("jax_enable_x64", True)

__version__ = "0.1.0"
