# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Manifold value types for BAD-JIT.

Every value that flows through an expression graph is an instance of one of
the types below. They all expose the same small capability set used by the
differentiation engine and the factors:

    • `dim()`                  tangent-space dimension
    • `retract(delta)`         manifold element ⊕ tangent vector
    • `local_coordinates(q)`   tangent vector δ with self ⊕ δ ≈ q
    • `equals(other, tol)`     approximate comparison for tests

Types
-----
Point2, Point3
    Euclidean vector spaces (image points, 3D points).

Cal3_S2
    Five-parameter pinhole calibration (fx, fy, s, u0, v0), treated as a
    5-dimensional vector space.

Pose3
    Rigid transform stored as a rotation matrix and a translation. The
    tangent space is ordered [v, w] (translation first) and perturbations
    are applied on the right:

        T ⊕ ξ = T · Exp(ξ)
        local_coordinates(T, T2) = Log(T⁻¹ · T2)

All types are immutable and registered as JAX pytrees, so they can be
passed through `jax.tree_util` and traced by `jax.jacfwd`.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from bad_jit.core.math3d import (
    pose_vec_to_rt,
    se3_adjoint,
    se3_exp,
    se3_log,
    so3_exp,
)


class VectorSpace:
    """
    Base class for Euclidean manifold types.

    Subclasses set `DIM` and store their coordinates in a single vector;
    retraction is addition and local coordinates are subtraction.
    """

    DIM: int = 0

    def __init__(self, vec: jnp.ndarray):
        vec = jnp.asarray(vec, dtype=jnp.float64).reshape(-1)
        if vec.shape[0] != self.DIM:
            raise ValueError(
                f"{type(self).__name__} expects {self.DIM} coordinates, got {vec.shape[0]}"
            )
        self._vec = vec

    @classmethod
    def from_vector(cls, vec: jnp.ndarray):
        obj = object.__new__(cls)
        VectorSpace.__init__(obj, vec)
        return obj

    def vector(self) -> jnp.ndarray:
        return self._vec

    def dim(self) -> int:
        return self.DIM

    def retract(self, delta: jnp.ndarray):
        return type(self).from_vector(self._vec + jnp.asarray(delta))

    def local_coordinates(self, other) -> jnp.ndarray:
        return other.vector() - self._vec

    def equals(self, other, tol: float = 1e-9) -> bool:
        return type(other) is type(self) and bool(
            jnp.allclose(self._vec, other.vector(), atol=tol, rtol=0.0)
        )

    def __getitem__(self, i):
        return self._vec[i]

    def __repr__(self) -> str:
        coords = ", ".join(f"{float(c):.6g}" for c in self._vec)
        return f"{type(self).__name__}({coords})"

    # --- pytree protocol ---

    def tree_flatten(self):
        return (self._vec,), None

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj._vec = children[0]
        return obj


@register_pytree_node_class
class Point2(VectorSpace):
    """2D point, e.g. a pixel or a normalized image coordinate."""

    DIM = 2

    def __init__(self, x: float = 0.0, y: float = 0.0):
        super().__init__(jnp.array([x, y]))

    @property
    def x(self):
        return self._vec[0]

    @property
    def y(self):
        return self._vec[1]

    def __add__(self, other: "Point2") -> "Point2":
        if type(other) is not Point2:
            return NotImplemented
        return Point2.from_vector(self._vec + other.vector())

    def __sub__(self, other: "Point2") -> "Point2":
        if type(other) is not Point2:
            return NotImplemented
        return Point2.from_vector(self._vec - other.vector())


@register_pytree_node_class
class Point3(VectorSpace):
    """3D point."""

    DIM = 3

    def __init__(self, x: float = 0.0, y: float = 0.0, z: float = 0.0):
        super().__init__(jnp.array([x, y, z]))

    @property
    def x(self):
        return self._vec[0]

    @property
    def y(self):
        return self._vec[1]

    @property
    def z(self):
        return self._vec[2]

    def __add__(self, other: "Point3") -> "Point3":
        if type(other) is not Point3:
            return NotImplemented
        return Point3.from_vector(self._vec + other.vector())

    def __sub__(self, other: "Point3") -> "Point3":
        if type(other) is not Point3:
            return NotImplemented
        return Point3.from_vector(self._vec - other.vector())


@register_pytree_node_class
class Cal3_S2(VectorSpace):
    """
    Pinhole calibration with skew:

        K = [ fx  s  u0 ]
            [  0 fy  v0 ]
            [  0  0   1 ]

    The default is the identity calibration.
    """

    DIM = 5

    def __init__(
        self,
        fx: float = 1.0,
        fy: float = 1.0,
        s: float = 0.0,
        u0: float = 0.0,
        v0: float = 0.0,
    ):
        super().__init__(jnp.array([fx, fy, s, u0, v0]))

    @property
    def fx(self):
        return self._vec[0]

    @property
    def fy(self):
        return self._vec[1]

    @property
    def skew(self):
        return self._vec[2]

    @property
    def u0(self):
        return self._vec[3]

    @property
    def v0(self):
        return self._vec[4]

    def K(self) -> jnp.ndarray:
        fx, fy, s, u0, v0 = self._vec
        return jnp.array(
            [
                [fx, s, u0],
                [0.0, fy, v0],
                [0.0, 0.0, 1.0],
            ]
        )

    def uncalibrate(self, p: Point2) -> Point2:
        """Intrinsic coordinates -> pixel coordinates."""
        fx, fy, s, u0, v0 = self._vec
        x, y = p.vector()
        return Point2.from_vector(jnp.array([fx * x + s * y + u0, fy * y + v0]))

    def calibrate(self, uv: Point2) -> Point2:
        """Pixel coordinates -> intrinsic coordinates."""
        fx, fy, s, u0, v0 = self._vec
        u, v = uv.vector()
        y = (v - v0) / fy
        x = (u - u0 - s * y) / fx
        return Point2.from_vector(jnp.array([x, y]))


@register_pytree_node_class
class Pose3:
    """
    Rigid transform world_T_body, stored as (R, t).

    Construct with `Pose3(R, t)`, `Pose3.identity()` or
    `Pose3.from_vector([tx, ty, tz, wx, wy, wz])`.
    """

    DIM = 6

    def __init__(self, R: jnp.ndarray | None = None, t: jnp.ndarray | None = None):
        self.R = jnp.eye(3) if R is None else jnp.asarray(R, dtype=jnp.float64)
        self.t = jnp.zeros(3) if t is None else jnp.asarray(t, dtype=jnp.float64).reshape(3)

    @staticmethod
    def identity() -> "Pose3":
        return Pose3()

    @staticmethod
    def from_vector(v: jnp.ndarray) -> "Pose3":
        """Build from [tx, ty, tz, wx, wy, wz] (translation + axis-angle)."""
        t, w = pose_vec_to_rt(jnp.asarray(v, dtype=jnp.float64))
        return Pose3(so3_exp(w), t)

    @staticmethod
    def from_matrix(T: jnp.ndarray) -> "Pose3":
        T = jnp.asarray(T)
        return Pose3(T[:3, :3], T[:3, 3])

    def matrix(self) -> jnp.ndarray:
        T = jnp.eye(4, dtype=self.R.dtype)
        T = T.at[:3, :3].set(self.R)
        T = T.at[:3, 3].set(self.t)
        return T

    def dim(self) -> int:
        return self.DIM

    # --- group operations ---

    def inverse(self) -> "Pose3":
        return Pose3(self.R.T, -self.R.T @ self.t)

    def compose(self, other: "Pose3") -> "Pose3":
        return Pose3(self.R @ other.R, self.R @ other.t + self.t)

    def between(self, other: "Pose3") -> "Pose3":
        """self⁻¹ · other"""
        return Pose3(self.R.T @ other.R, self.R.T @ (other.t - self.t))

    def adjoint(self) -> jnp.ndarray:
        return se3_adjoint(self.R, self.t)

    def __mul__(self, other: "Pose3") -> "Pose3":
        return self.compose(other)

    # --- group actions ---

    def transform_from(self, p: Point3) -> Point3:
        """Body-frame point -> world frame: R p + t."""
        return Point3.from_vector(self.R @ p.vector() + self.t)

    def transform_to(self, p: Point3) -> Point3:
        """World-frame point -> body frame: Rᵀ (p - t)."""
        return Point3.from_vector(self.R.T @ (p.vector() - self.t))

    # --- manifold ---

    def retract(self, delta: jnp.ndarray) -> "Pose3":
        return self.compose(Pose3.from_matrix(se3_exp(delta)))

    def local_coordinates(self, other: "Pose3") -> jnp.ndarray:
        return se3_log(self.between(other).matrix())

    def equals(self, other, tol: float = 1e-9) -> bool:
        return (
            isinstance(other, Pose3)
            and bool(jnp.allclose(self.R, other.R, atol=tol, rtol=0.0))
            and bool(jnp.allclose(self.t, other.t, atol=tol, rtol=0.0))
        )

    def __repr__(self) -> str:
        return f"Pose3(R={self.R.tolist()}, t={self.t.tolist()})"

    # --- pytree protocol ---

    def tree_flatten(self):
        return (self.R, self.t), None

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj.R, obj.t = children
        return obj
