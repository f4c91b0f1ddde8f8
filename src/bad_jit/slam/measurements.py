# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.
"""
Hand-differentiated measurement factors.

`GeneralSFMFactor` is the classical bundle-adjustment projection factor over
a camera pose, a 3D point and a calibration. It computes its residual and
all three Jacobian blocks in closed form, the way such factors were written
before expression graphs, and serves as the ground truth that an
`ExpressionFactor` built from

    uncalibrate(K, project(transform_to(pose, point)))

must reproduce.

With q = poseᵀ(point) = (x, y, z), d = 1/z and (u, v) = (x d, y d):

    D_pn/pose  = [ -d   0  u d |  u v    -(1+u²)   v ]
                 [  0  -d  v d |  1+v²   -u v     -u ]

    D_pn/point = [ d  0  -u d ] Rᵀ
                 [ 0  d  -v d ]

    D_uv/K     = [ u  0  v  1  0 ]
                 [ 0  v  0  0  1 ]

    D_uv/pn    = [ fx  s ]
                 [  0 fy ]

Pose columns follow the [v, w] tangent ordering of `Pose3`.
"""

from __future__ import annotations

from typing import List, Optional

import jax.numpy as jnp

from bad_jit.core.errors import CheiralityError
from bad_jit.core.types import Key
from bad_jit.core.values import Values
from bad_jit.linear.jacobian_factor import JacobianFactor, assemble
from .manifold import Cal3_S2, Point2, Point3, Pose3
from .noise import Gaussian, Unit


class GeneralSFMFactor:
    """
    Projection factor z ≈ K · π(poseᵀ point) with hand-written derivatives.

    Args:
        measured: measured pixel coordinates.
        model: noise model (None means identity weighting).
        pose_key, point_key, calibration_key: variable keys.
    """

    def __init__(
        self,
        measured: Point2,
        model: Optional[Gaussian],
        pose_key: Key,
        point_key: Key,
        calibration_key: Key,
    ):
        self.measured = measured
        self.model = model
        self.pose_key = pose_key
        self.point_key = point_key
        self.calibration_key = calibration_key
        self._whitener = model if model is not None else Unit.create(2)

    def keys(self) -> List[Key]:
        return sorted([self.pose_key, self.point_key, self.calibration_key])

    def dim(self) -> int:
        return 2

    def _camera_point(self, values: Values):
        pose: Pose3 = values.at(self.pose_key)
        point: Point3 = values.at(self.point_key)
        K: Cal3_S2 = values.at(self.calibration_key)
        q = pose.R.T @ (point.vector() - pose.t)
        if float(q[2]) <= 0.0:
            raise CheiralityError(f"Cannot project point with depth {float(q[2])}")
        return pose, K, q

    def unwhitened_error(self, values: Values) -> jnp.ndarray:
        _, K, q = self._camera_point(values)
        uv = K.K() @ (q / q[2])
        return uv[:2] - self.measured.vector()

    def error(self, values: Values) -> float:
        r = self._whitener.whiten(self.unwhitened_error(values))
        return 0.5 * float(jnp.dot(r, r))

    def linearize(self, values: Values) -> JacobianFactor:
        pose, K, q = self._camera_point(values)
        x, y, z = q
        d = 1.0 / z
        u, v = x * d, y * d
        fx, fy, s, u0, v0 = K.vector()

        D_pn_pose = jnp.array(
            [
                [-d, 0.0, u * d, u * v, -(1.0 + u * u), v],
                [0.0, -d, v * d, 1.0 + v * v, -u * v, -u],
            ]
        )
        D_pn_point = jnp.array(
            [
                [d, 0.0, -u * d],
                [0.0, d, -v * d],
            ]
        ) @ pose.R.T
        D_uv_pn = jnp.array(
            [
                [fx, s],
                [0.0, fy],
            ]
        )
        H_cal = jnp.array(
            [
                [u, 0.0, v, 1.0, 0.0],
                [0.0, v, 0.0, 0.0, 1.0],
            ]
        )

        uv = jnp.array([fx * u + s * v + u0, fy * v + v0])
        r = uv - self.measured.vector()

        W = self._whitener
        blocks = {
            self.pose_key: W.whiten_matrix(D_uv_pn @ D_pn_pose),
            self.point_key: W.whiten_matrix(D_uv_pn @ D_pn_point),
            self.calibration_key: W.whiten_matrix(H_cal),
        }
        dims = {self.pose_key: 6, self.point_key: 3, self.calibration_key: 5}
        return assemble(blocks, W.whiten(r), dims, model=self.model)
