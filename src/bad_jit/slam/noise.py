# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Gaussian noise models (weighting) for measurement factors.

A noise model whitens residuals and Jacobians with its square-root
information matrix R (RᵀR = Σ⁻¹), so that the least-squares problem is in
standardized units:

    whiten(r)        = R r
    whiten_matrix(A) = R A

Constructors
------------
Gaussian.sqrt_information(R)
    Full square-root information matrix.

Gaussian.covariance(Σ)
    Full covariance; R is derived from the Cholesky factor of Σ⁻¹.

Diagonal.sigmas(s)
    Independent per-component standard deviations, R = diag(1/s).

Isotropic.sigma(dim, s)
    Same standard deviation on every component.

Unit.create(dim)
    Identity weighting. Used explicitly by factors that were built
    without a noise model.
"""

from __future__ import annotations

import jax.numpy as jnp

from bad_jit.core.errors import DimensionMismatch


class Gaussian:
    """Noise model defined by a square-root information matrix."""

    def __init__(self, sqrt_info: jnp.ndarray):
        sqrt_info = jnp.asarray(sqrt_info, dtype=jnp.float64)
        if sqrt_info.ndim != 2 or sqrt_info.shape[0] != sqrt_info.shape[1]:
            raise DimensionMismatch(
                f"Square-root information must be square, got shape {sqrt_info.shape}"
            )
        self._R = sqrt_info

    @staticmethod
    def sqrt_information(R: jnp.ndarray) -> "Gaussian":
        """Full model from R; a `Gaussian` also when called on a subclass."""
        return Gaussian(R)

    @staticmethod
    def covariance(cov: jnp.ndarray) -> "Gaussian":
        info = jnp.linalg.inv(jnp.asarray(cov, dtype=jnp.float64))
        # info = L Lᵀ  =>  R = Lᵀ
        return Gaussian(jnp.linalg.cholesky(info).T)

    def dim(self) -> int:
        return self._R.shape[0]

    def R(self) -> jnp.ndarray:
        return self._R

    def _check(self, rows: int) -> None:
        if rows != self.dim():
            raise DimensionMismatch(
                f"Noise model of dimension {self.dim()} applied to {rows} rows"
            )

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        v = jnp.asarray(v)
        self._check(v.shape[0])
        return self._R @ v

    def whiten_matrix(self, A: jnp.ndarray) -> jnp.ndarray:
        A = jnp.asarray(A)
        self._check(A.shape[0])
        return self._R @ A

    def squared_mahalanobis_distance(self, v: jnp.ndarray) -> float:
        w = self.whiten(v)
        return float(jnp.dot(w, w))

    def equals(self, other, tol: float = 1e-9) -> bool:
        return (
            isinstance(other, Gaussian)
            and other.dim() == self.dim()
            and bool(jnp.allclose(self._R, other.R(), atol=tol, rtol=0.0))
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dim={self.dim()})"


class Diagonal(Gaussian):
    """Independent per-component standard deviations."""

    def __init__(self, sigmas: jnp.ndarray):
        sigmas = jnp.asarray(sigmas, dtype=jnp.float64).reshape(-1)
        super().__init__(jnp.diag(1.0 / sigmas))
        self._sigmas = sigmas

    @classmethod
    def sigmas(cls, sigmas) -> "Diagonal":
        return cls(sigmas)

    def sigma_vector(self) -> jnp.ndarray:
        return self._sigmas

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        v = jnp.asarray(v)
        self._check(v.shape[0])
        return v / self._sigmas

    def whiten_matrix(self, A: jnp.ndarray) -> jnp.ndarray:
        A = jnp.asarray(A)
        self._check(A.shape[0])
        return A / self._sigmas[:, None]


class Isotropic(Diagonal):
    """Same standard deviation on every component."""

    @classmethod
    def sigma(cls, dim: int, sigma: float) -> "Isotropic":
        return cls(jnp.full((dim,), sigma, dtype=jnp.float64))


class Unit(Isotropic):
    """Identity weighting."""

    @classmethod
    def create(cls, dim: int) -> "Unit":
        return cls(jnp.ones((dim,), dtype=jnp.float64))

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        v = jnp.asarray(v)
        self._check(v.shape[0])
        return v

    def whiten_matrix(self, A: jnp.ndarray) -> jnp.ndarray:
        A = jnp.asarray(A)
        self._check(A.shape[0])
        return A
