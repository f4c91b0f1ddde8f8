# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Core type aliases for BAD-JIT.

Key
    Opaque integer identifier of one optimization variable. Keys carry no
    ownership; they are only used to look values up in a `Values` store and
    to label Jacobian blocks.

JacobianMap
    Mapping from `Key` to a dense block of shape
    ``(output tangent dim, variable tangent dim)``. Keys absent from the map
    stand for zero blocks and are never stored explicitly. Maps produced by
    the engine iterate in ascending key order.

Manifold
    Structural protocol every value type used in an expression satisfies.
"""

from __future__ import annotations
from typing import Dict, NewType, Protocol, TypeVar

import jax.numpy as jnp

Key = NewType("Key", int)

JacobianMap = Dict[Key, jnp.ndarray]

T = TypeVar("T", bound="Manifold")


class Manifold(Protocol):
    """Capability set the core needs from a value type."""

    def dim(self) -> int: ...

    def retract(self: T, delta: jnp.ndarray) -> T: ...

    def local_coordinates(self: T, other: T) -> jnp.ndarray: ...
