# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
SO(3) and SE(3) Lie-group operations for BAD-JIT.

This module implements the 3D Lie-group mathematics behind the `Pose3`
manifold type and the partial derivatives of the pose operations:

    • SO(3) exponential & logarithm maps
    • SE(3) exponential & logarithm maps (4×4 homogeneous matrices)
    • The SO(3) left Jacobian and its inverse
    • The SE(3) adjoint
    • Small-angle fallbacks for numerically stable evaluation near identity

Conventions
-----------
Twists are ordered translation first:

    ξ = [v_x, v_y, v_z, w_x, w_y, w_z]

and a 6D pose vector is [tx, ty, tz, wx, wy, wz] (translation plus
axis-angle rotation).

All functions are written in JAX, so they can be traced by `jax.jacfwd`
(see `expression.operations.AutodiffOperation`). Branches on the rotation
angle go through `jax.lax.cond` so that only the well-conditioned branch
contributes derivatives.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

SMALL_ANGLE_EPS = 1e-5
# The closed forms of J and J⁻¹ cancel catastrophically for small angles.
JACOBIAN_TAYLOR_EPS = 1e-3


def pose_vec_to_rt(v: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """
    Split a 6D pose vector into translation and rotation-vector (axis-angle).
    v: [tx, ty, tz, wx, wy, wz]
    """
    v = jnp.asarray(v)
    t = v[0:3]
    w = v[3:6]
    return t, w


def hat(v: jnp.ndarray) -> jnp.ndarray:
    """so(3) hat operator: R^3 -> 3x3 skew-symmetric matrix."""
    x, y, z = v[0], v[1], v[2]
    return jnp.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def vee(R: jnp.ndarray) -> jnp.ndarray:
    """
    vee: so(3) -> R^3, inverse of hat.
    Only the skew-symmetric part of R contributes.
    """
    return jnp.array([
        R[2, 1] - R[1, 2],
        R[0, 2] - R[2, 0],
        R[1, 0] - R[0, 1],
    ]) / 2.0


def so3_exp(w: jnp.ndarray) -> jnp.ndarray:
    """
    Exponential map from so(3) (rotation vector) to SO(3).

    Uses Rodrigues' formula with a second-order small-angle fallback.
    """
    w = jnp.asarray(w)
    theta = jnp.linalg.norm(w)
    I = jnp.eye(3)

    def small_angle() -> jnp.ndarray:
        W = hat(w)
        return I + W + 0.5 * (W @ W)

    def normal_angle() -> jnp.ndarray:
        k = w / theta
        K = hat(k)
        return I + jnp.sin(theta) * K + (1.0 - jnp.cos(theta)) * (K @ K)

    return jax.lax.cond(theta < SMALL_ANGLE_EPS, small_angle, normal_angle)


def so3_log(R: jnp.ndarray) -> jnp.ndarray:
    """
    Numerically stable logarithm map for SO(3).

    Handles:
      - small angles via first-order approximation
      - trace slightly outside [-1, 3] via clamping

    Returns w in R^3 such that Exp(w) ~ R.
    """
    R = jnp.asarray(R)
    trace = jnp.trace(R)
    cos_theta = jnp.clip((trace - 1.0) / 2.0, -1.0, 1.0)
    theta = jnp.arccos(cos_theta)

    def small_angle_case(_) -> jnp.ndarray:
        # R ~ I + hat(w)
        return vee(R - jnp.eye(3, dtype=R.dtype))

    def general_case(_) -> jnp.ndarray:
        #   w^ = (theta / (2 sin(theta))) * (R - R^T)
        factor = theta / (2.0 * jnp.sin(theta) + 1e-12)
        return factor * vee(R - R.T)

    return jax.lax.cond(
        theta < SMALL_ANGLE_EPS,
        small_angle_case,
        general_case,
        operand=None,
    )


def so3_left_jacobian(w: jnp.ndarray) -> jnp.ndarray:
    """
    Left Jacobian of SO(3):

        J(w) = I + (1 - cos θ)/θ² W + (θ - sin θ)/θ³ W²

    It maps the translational part of a twist to the translation of
    Exp(ξ): t = J(w) v.
    """
    w = jnp.asarray(w)
    theta = jnp.linalg.norm(w)
    I = jnp.eye(3)
    W = hat(w)
    W2 = W @ W

    def small_angle():
        t2 = jnp.dot(w, w)
        return I + (0.5 - t2 / 24.0) * W + (1.0 / 6.0 - t2 / 120.0) * W2

    def normal_angle():
        B = (1.0 - jnp.cos(theta)) / (theta * theta)
        C = (theta - jnp.sin(theta)) / (theta * theta * theta)
        return I + B * W + C * W2

    return jax.lax.cond(theta < JACOBIAN_TAYLOR_EPS, small_angle, normal_angle)


def so3_left_jacobian_inverse(w: jnp.ndarray) -> jnp.ndarray:
    """
    Inverse of `so3_left_jacobian`:

        J⁻¹(w) = I - ½ W + (1/θ²) (1 - θ sin θ / (2 (1 - cos θ))) W²
    """
    w = jnp.asarray(w)
    theta = jnp.linalg.norm(w)
    I = jnp.eye(3)
    W = hat(w)
    W2 = W @ W

    def small_angle():
        t2 = jnp.dot(w, w)
        return I - 0.5 * W + (1.0 / 12.0 + t2 / 720.0) * W2

    def normal_angle():
        D = (1.0 - theta * jnp.sin(theta) / (2.0 * (1.0 - jnp.cos(theta)))) / (theta * theta)
        return I - 0.5 * W + D * W2

    return jax.lax.cond(theta < JACOBIAN_TAYLOR_EPS, small_angle, normal_angle)


def se3_exp(xi: jnp.ndarray) -> jnp.ndarray:
    """
    Exponential map from se(3) -> SE(3).

    xi = [v_x, v_y, v_z, w_x, w_y, w_z]

    Returns the 4×4 homogeneous matrix

        T = [ Exp(w), J(w) v ]
            [   0   ,   1    ]
    """
    xi = jnp.asarray(xi)
    v = xi[:3]
    w = xi[3:]

    R = so3_exp(w)
    t = so3_left_jacobian(w) @ v

    T = jnp.eye(4, dtype=R.dtype)
    T = T.at[:3, :3].set(R)
    T = T.at[:3, 3].set(t)
    return T


def se3_log(T: jnp.ndarray) -> jnp.ndarray:
    """
    Logarithm map SE(3) -> se(3), inverse of `se3_exp`.

    Returns xi = [v, w] with w = Log(R) and v = J(w)⁻¹ t.
    """
    T = jnp.asarray(T)
    R = T[:3, :3]
    t = T[:3, 3]
    w = so3_log(R)
    v = so3_left_jacobian_inverse(w) @ t
    return jnp.concatenate([v, w])


def se3_adjoint(R: jnp.ndarray, t: jnp.ndarray) -> jnp.ndarray:
    """
    Adjoint of the transform (R, t) acting on twists [v, w]:

        Ad = [ R, hat(t) R ]
             [ 0,    R     ]

    so that T Exp(ξ) T⁻¹ = Exp(Ad ξ).
    """
    top = jnp.hstack([R, hat(t) @ R])
    bottom = jnp.hstack([jnp.zeros((3, 3), dtype=R.dtype), R])
    return jnp.vstack([top, bottom])
