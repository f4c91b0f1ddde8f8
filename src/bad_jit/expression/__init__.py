"""
Expression graphs and their reverse-mode differentiation.

Build expressions with `leaf`, `constant` and the functions of
`expression.operations`; evaluate them with `Expression.value` and
`Expression.value_and_jacobians`.
"""

from .expression import Expression, apply, constant, leaf
from .graph import ExpressionGraph
from .operation import AutodiffOperation, Operation
from .operations import (
    add,
    between,
    compose,
    project,
    rotate,
    subtract,
    transform_from,
    transform_to,
    uncalibrate,
)
