# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Exceptions and warnings raised by BAD-JIT.

Nothing in the package retries or recovers from these; they surface
synchronously to whoever called `value`, `linearize` or the solver.
"""

from __future__ import annotations


class KeyNotFound(KeyError):
    """Raised by `Values.at` when a key has no assigned value."""

    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"No value assigned to key {self.key}"


class MissingVariable(KeyError):
    """An expression leaf refers to a key absent from the assignment."""

    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Expression requires variable {self.key}, which is not in the assignment"


class DimensionMismatch(ValueError):
    """A Jacobian block, residual or noise model has an inconsistent shape."""


class CheiralityError(ValueError):
    """A point projected by a camera lies on or behind the image plane."""


class UnweightedFactor(UserWarning):
    """A factor was built without a noise model; identity weighting is used."""
