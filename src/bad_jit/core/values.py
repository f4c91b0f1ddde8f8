# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Variable assignment store.

`Values` maps each `Key` to the current manifold-valued estimate of that
variable (a `Pose3`, `Point3`, `Cal3_S2`, ...). Expressions and factors only
read from it; the solver produces updated stores with `retract` between
iterations.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping

import jax.numpy as jnp

from .errors import KeyNotFound
from .types import Key


class Values:
    """Mapping Key -> manifold value."""

    def __init__(self, items: Mapping[Key, Any] | None = None):
        self._values: Dict[Key, Any] = {}
        if items:
            for key, value in items.items():
                self.insert(key, value)

    def insert(self, key: Key, value: Any) -> None:
        if key in self._values:
            raise ValueError(f"Key {key} is already present in Values")
        self._values[key] = value

    def update(self, key: Key, value: Any) -> None:
        if key not in self._values:
            raise KeyNotFound(key)
        self._values[key] = value

    def at(self, key: Key) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise KeyNotFound(key) from None

    def exists(self, key: Key) -> bool:
        return key in self._values

    def keys(self) -> List[Key]:
        return sorted(self._values)

    def dim(self, key: Key) -> int:
        """Tangent dimension of the value stored under `key`."""
        return self.at(key).dim()

    def total_dim(self) -> int:
        return sum(v.dim() for v in self._values.values())

    def copy(self) -> "Values":
        result = Values()
        result._values = dict(self._values)
        return result

    def retract(self, deltas: Mapping[Key, jnp.ndarray]) -> "Values":
        """
        Return a new store with `value ⊕ delta` for every key in `deltas`.
        Keys without a delta are carried over unchanged.
        """
        result = Values()
        for key, value in self._values.items():
            delta = deltas.get(key)
            result._values[key] = value if delta is None else value.retract(delta)
        return result

    def local_coordinates(self, other: "Values") -> Dict[Key, jnp.ndarray]:
        """Per-key tangent vectors from self to `other`."""
        return {key: self.at(key).local_coordinates(other.at(key)) for key in self.keys()}

    def equals(self, other: "Values", tol: float = 1e-9) -> bool:
        if self.keys() != other.keys():
            return False
        return all(self.at(k).equals(other.at(k), tol) for k in self.keys())

    def __contains__(self, key: Key) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Key]:
        return iter(self.keys())

    def __repr__(self) -> str:
        body = ", ".join(f"{k}: {self._values[k]!r}" for k in self.keys())
        return f"Values({{{body}}})"
