# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Operation library: differentiable building blocks for expression graphs.

Each operation is defined by a forward function and its partial derivatives
(see `expression.operation.Operation`), and exposed as a function over
expressions that appends the corresponding node:

    transform_to(pose, point)     world point -> camera frame      Point3
    transform_from(pose, point)   camera point -> world frame      Point3
    rotate(pose, point)           R p                              Point3
    project(point)                (x/z, y/z)                       Point2
    uncalibrate(K, p)             intrinsic -> pixel coordinates   Point2
    subtract(p, q), add(p, q)     pointwise, Point2 or Point3
    compose(T1, T2)               T1 · T2                          Pose3
    between(T1, T2)               T1⁻¹ · T2                        Pose3

Pose tangent vectors are ordered [v, w] and pose perturbations are applied
on the right (T · Exp(ξ)), which gives the classical partials

    transform_to:   D_pose = [-I, hat(q)],        D_point = Rᵀ
    transform_from: D_pose = [R, -R hat(p)],      D_point = R
    compose:        D_1 = Ad(T2⁻¹),               D_2 = I
    between:        D_1 = -Ad(h⁻¹),               D_2 = I     (h = T1⁻¹ T2)

`rotate` is declared with `AutodiffOperation` and gets its partials from
`jax.jacfwd`.
"""

from __future__ import annotations

import jax.numpy as jnp

from bad_jit.core.errors import CheiralityError
from bad_jit.core.math3d import hat
from bad_jit.slam.manifold import Cal3_S2, Point2, Point3, Pose3, VectorSpace
from .expression import Expression, apply
from .operation import AutodiffOperation, Operation


# --- transform_to ---

def _transform_to(pose: Pose3, point: Point3) -> Point3:
    return pose.transform_to(point)


def _transform_to_partials(pose: Pose3, point: Point3):
    q = pose.transform_to(point).vector()
    d_pose = jnp.hstack([-jnp.eye(3), hat(q)])
    d_point = pose.R.T
    return d_pose, d_point


TRANSFORM_TO = Operation(
    "transform_to", 2, _transform_to, _transform_to_partials, out=Point3, arg_types=(Pose3, Point3)
)


def transform_to(pose, point) -> Expression:
    """Express a world-frame point in the frame of `pose`."""
    return apply(TRANSFORM_TO, pose, point)


# --- transform_from ---

def _transform_from(pose: Pose3, point: Point3) -> Point3:
    return pose.transform_from(point)


def _transform_from_partials(pose: Pose3, point: Point3):
    d_pose = jnp.hstack([pose.R, -pose.R @ hat(point.vector())])
    d_point = pose.R
    return d_pose, d_point


TRANSFORM_FROM = Operation(
    "transform_from",
    2,
    _transform_from,
    _transform_from_partials,
    out=Point3,
    arg_types=(Pose3, Point3),
)


def transform_from(pose, point) -> Expression:
    """Express a point given in the frame of `pose` in the world frame."""
    return apply(TRANSFORM_FROM, pose, point)


# --- rotate ---

ROTATE = AutodiffOperation(
    "rotate",
    2,
    lambda pose, point: Point3.from_vector(pose.R @ point.vector()),
    out=Point3,
    arg_types=(Pose3, Point3),
)


def rotate(pose, point) -> Expression:
    """Rotate a point by the rotation part of `pose`."""
    return apply(ROTATE, pose, point)


# --- project ---

def _check_depth(point: Point3) -> None:
    z = float(point.vector()[2])
    if z <= 0.0:
        raise CheiralityError(f"Cannot project point with depth {z}")


def _project(point: Point3) -> Point2:
    x, y, z = point.vector()
    return Point2.from_vector(jnp.array([x / z, y / z]))


def _project_partials(point: Point3):
    x, y, z = point.vector()
    d = 1.0 / z
    u, v = x * d, y * d
    return (
        jnp.array(
            [
                [d, 0.0, -u * d],
                [0.0, d, -v * d],
            ]
        ),
    )


PROJECT = Operation(
    "project",
    1,
    _project,
    _project_partials,
    out=Point2,
    arg_types=(Point3,),
    check=_check_depth,
)


def project(point) -> Expression:
    """Pinhole projection onto the normalized image plane z = 1."""
    return apply(PROJECT, point)


# --- uncalibrate ---

def _uncalibrate(K: Cal3_S2, p: Point2) -> Point2:
    return K.uncalibrate(p)


def _uncalibrate_partials(K: Cal3_S2, p: Point2):
    x, y = p.vector()
    d_cal = jnp.array(
        [
            [x, 0.0, y, 1.0, 0.0],
            [0.0, y, 0.0, 0.0, 1.0],
        ]
    )
    d_point = jnp.array(
        [
            [K.fx, K.skew],
            [0.0, K.fy],
        ]
    )
    return d_cal, d_point


UNCALIBRATE = Operation(
    "uncalibrate",
    2,
    _uncalibrate,
    _uncalibrate_partials,
    out=Point2,
    arg_types=(Cal3_S2, Point2),
)


def uncalibrate(K, p) -> Expression:
    """Map intrinsic image coordinates to pixels with calibration `K`."""
    return apply(UNCALIBRATE, K, p)


# --- subtract / add ---

def _same_point_type(p: VectorSpace, q: VectorSpace) -> None:
    if type(p) is not type(q):
        raise TypeError(f"Cannot combine {type(p).__name__} with {type(q).__name__}")


def _subtract(p: VectorSpace, q: VectorSpace) -> VectorSpace:
    _same_point_type(p, q)
    return type(p).from_vector(p.vector() - q.vector())


def _subtract_partials(p: VectorSpace, q: VectorSpace):
    I = jnp.eye(p.dim())
    return I, -I


def _add(p: VectorSpace, q: VectorSpace) -> VectorSpace:
    _same_point_type(p, q)
    return type(p).from_vector(p.vector() + q.vector())


def _add_partials(p: VectorSpace, q: VectorSpace):
    I = jnp.eye(p.dim())
    return I, I


SUBTRACT = Operation(
    "subtract", 2, _subtract, _subtract_partials, arg_types=(VectorSpace, VectorSpace)
)
ADD = Operation("add", 2, _add, _add_partials, arg_types=(VectorSpace, VectorSpace))


def subtract(p, q) -> Expression:
    """p - q for points of the same type."""
    return apply(SUBTRACT, p, q)


def add(p, q) -> Expression:
    """p + q for points of the same type."""
    return apply(ADD, p, q)


# --- compose / between ---

def _compose(a: Pose3, b: Pose3) -> Pose3:
    return a.compose(b)


def _compose_partials(a: Pose3, b: Pose3):
    return b.inverse().adjoint(), jnp.eye(6)


def _between(a: Pose3, b: Pose3) -> Pose3:
    return a.between(b)


def _between_partials(a: Pose3, b: Pose3):
    h = a.between(b)
    return -h.inverse().adjoint(), jnp.eye(6)


COMPOSE = Operation("compose", 2, _compose, _compose_partials, out=Pose3, arg_types=(Pose3, Pose3))
BETWEEN = Operation("between", 2, _between, _between_partials, out=Pose3, arg_types=(Pose3, Pose3))


def compose(a, b) -> Expression:
    """a · b"""
    return apply(COMPOSE, a, b)


def between(a, b) -> Expression:
    """a⁻¹ · b"""
    return apply(BETWEEN, a, b)
