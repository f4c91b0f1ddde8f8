# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Nonlinear factor container for BAD-JIT.

`FactorGraph` collects nonlinear factors (`ExpressionFactor`,
`GeneralSFMFactor`, or anything exposing `keys()`, `dim()`,
`error(values)` and `linearize(values)`) and provides the whole-problem
views a solver needs:

keys()
    Sorted union of the keys of all factors.

error(values)
    Total nonlinear error Σ_f error_f(values).

linearize(values)
    One `JacobianFactor` per factor, in insertion order.

The graph holds no variable values; assignments are passed in explicitly so
the same graph can be evaluated against many `Values`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List

from .types import Key
from .values import Values


@dataclass
class FactorGraph:
    factors: List[Any] = field(default_factory=list)

    def add(self, factor: Any) -> None:
        self.factors.append(factor)

    def __len__(self) -> int:
        return len(self.factors)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.factors)

    def keys(self) -> List[Key]:
        keys = set()
        for factor in self.factors:
            keys.update(factor.keys())
        return sorted(keys)

    def dim(self) -> int:
        """Total number of residual rows."""
        return sum(f.dim() for f in self.factors)

    def error(self, values: Values) -> float:
        return sum(f.error(values) for f in self.factors)

    def linearize(self, values: Values) -> list:
        return [f.linearize(values) for f in self.factors]
