# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Sparse linear factors and their assembly.

A `JacobianFactor` is the local linear approximation of one nonlinear factor
around a linearization point. It stores, already whitened,

    • an ordered sequence of (key, block) pairs, one block column per
      contributing variable (ascending key),
    • the residual vector r at the linearization point,
    • the noise model that was applied (or None for identity weighting),

and represents the linear least-squares term

    0.5 · ‖ r + Σ_j A_j δ_j ‖²

over tangent-space updates δ_j of the variables.

`assemble` builds a `JacobianFactor` from a Jacobian map and checks the block
structure instead of assuming it: every block has one row per residual
component, and the block columns add up to the tangent dimensions of the
included keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import jax.numpy as jnp

from bad_jit.core.errors import DimensionMismatch
from bad_jit.core.types import JacobianMap, Key


@dataclass(frozen=True, eq=False)
class JacobianFactor:
    keys: Tuple[Key, ...]
    blocks: Tuple[jnp.ndarray, ...]
    residual: jnp.ndarray
    model: Optional[Any] = None

    def rows(self) -> int:
        return int(self.residual.shape[0])

    def terms(self) -> Tuple[Tuple[Key, jnp.ndarray], ...]:
        return tuple(zip(self.keys, self.blocks))

    def block(self, key: Key) -> jnp.ndarray:
        try:
            return self.blocks[self.keys.index(key)]
        except ValueError:
            raise KeyError(key) from None

    @property
    def b(self) -> jnp.ndarray:
        """Right-hand side of A δ = b, i.e. -r."""
        return -self.residual

    def error(self, delta: Mapping[Key, jnp.ndarray] | None = None) -> float:
        """0.5 ‖r + Σ A_j δ_j‖²; missing keys in `delta` count as zero updates."""
        e = self.residual
        if delta:
            for key, A in zip(self.keys, self.blocks):
                if key in delta:
                    e = e + A @ jnp.asarray(delta[key])
        return 0.5 * float(jnp.dot(e, e))

    def augmented_jacobian(self, offsets: Mapping[Key, int], total_dim: int) -> jnp.ndarray:
        """
        Dense [A | b] with the blocks placed at the given column offsets.

        offsets: key -> first column of that key in an n = total_dim ordering.
        """
        A = jnp.zeros((self.rows(), total_dim + 1))
        for key, block in zip(self.keys, self.blocks):
            start = offsets[key]
            A = A.at[:, start:start + block.shape[1]].set(block)
        return A.at[:, total_dim].set(self.b)

    def equals(self, other: "JacobianFactor", tol: float = 1e-9) -> bool:
        if not isinstance(other, JacobianFactor) or self.keys != other.keys:
            return False
        if self.residual.shape != other.residual.shape:
            return False
        if not bool(jnp.allclose(self.residual, other.residual, atol=tol, rtol=0.0)):
            return False
        for a, b in zip(self.blocks, other.blocks):
            if a.shape != b.shape or not bool(jnp.allclose(a, b, atol=tol, rtol=0.0)):
                return False
        if (self.model is None) != (other.model is None):
            return False
        return self.model is None or self.model.equals(other.model, tol)


def assemble(
    jacobians: JacobianMap,
    residual: jnp.ndarray,
    dims: Mapping[Key, int],
    model: Optional[Any] = None,
) -> JacobianFactor:
    """
    Turn a (whitened) Jacobian map and residual into a `JacobianFactor`.

    Args:
        jacobians: key -> block, as produced by the expression engine
            (already whitened by the caller).
        residual: whitened residual vector.
        dims: tangent dimension of every key in `jacobians`.
        model: noise model that was applied, stored by reference.

    Raises:
        DimensionMismatch: if a block does not have one row per residual
            component, or if the block columns do not match `dims`.
    """
    residual = jnp.asarray(residual).reshape(-1)
    rows = residual.shape[0]

    keys = tuple(sorted(jacobians))
    blocks = []
    for key in keys:
        block = jnp.asarray(jacobians[key])
        if block.ndim != 2 or block.shape[0] != rows:
            raise DimensionMismatch(
                f"Block for key {key} has shape {block.shape}, expected {rows} rows"
            )
        blocks.append(block)

    columns = sum(block.shape[1] for block in blocks)
    expected = sum(dims[key] for key in keys)
    if columns != expected:
        raise DimensionMismatch(
            f"Blocks span {columns} columns but keys {list(keys)} have total dimension {expected}"
        )

    return JacobianFactor(keys=keys, blocks=tuple(blocks), residual=residual, model=model)


def stack(
    factors: Sequence[JacobianFactor],
    dims: Mapping[Key, int],
) -> Tuple[jnp.ndarray, jnp.ndarray, Dict[Key, int]]:
    """
    Stack linear factors into one dense system in ascending-key ordering.

    Returns (A, b, offsets) with A of shape (Σ rows, Σ dims) and
    offsets[key] the first column of `key`.
    """
    offsets: Dict[Key, int] = {}
    n = 0
    for key in sorted(dims):
        offsets[key] = n
        n += dims[key]

    if not factors:
        return jnp.zeros((0, n)), jnp.zeros((0,)), offsets

    Ab = jnp.vstack([f.augmented_jacobian(offsets, n) for f in factors])
    return Ab[:, :n], Ab[:, n], offsets
