# Copyright (c) 2025.
# This file is part of BAD-JIT, released under the MIT License.

import logging

import jax
import jax.numpy as jnp

from bad_jit.core.factor_graph import FactorGraph
from bad_jit.core.values import Values
from bad_jit.expression import ExpressionGraph, constant, leaf, project, transform_to, uncalibrate
from bad_jit.logging_config import get_logger
from bad_jit.optimization.solvers import GNConfig, gauss_newton
from bad_jit.slam.expression_factor import ExpressionFactor
from bad_jit.slam.manifold import Cal3_S2, Point3, Pose3
from bad_jit.slam.noise import Isotropic

logger = get_logger("bad_jit", level=logging.INFO)

NUM_POINTS = 12


def build_problem(seed: int = 0):
    """
    Two cameras one metre apart looking down +z at a cloud of points.

    Keys:
        1, 2            camera poses (Pose3)
        100 + j         landmarks (Point3)

    The calibration is known and enters every projection as a constant.
    Priors on both poses fix the gauge.
    """
    K = Cal3_S2(fx=500.0, fy=500.0, s=0.0, u0=320.0, v0=240.0)
    poses = {1: Pose3(), 2: Pose3.from_vector(jnp.array([1.0, 0.0, 0.0, 0.0, -0.05, 0.0]))}

    k_xy, k_z, k_noise = jax.random.split(jax.random.PRNGKey(seed), 3)
    xy = jax.random.uniform(k_xy, (NUM_POINTS, 2), minval=-2.0, maxval=2.0)
    z = jax.random.uniform(k_z, (NUM_POINTS,), minval=4.0, maxval=8.0)
    points = {100 + j: Point3(xy[j, 0], xy[j, 1], z[j]) for j in range(NUM_POINTS)}

    g = ExpressionGraph()
    K_expr = constant(g, K)
    pixel_noise = Isotropic.sigma(2, 1.0)

    fg = FactorGraph()
    fg.add(ExpressionFactor(poses[1], leaf(g, 1, Pose3), Isotropic.sigma(6, 1e-3)))
    fg.add(ExpressionFactor(poses[2], leaf(g, 2, Pose3), Isotropic.sigma(6, 1e-2)))

    truth = Values({**poses, **points})
    for pose_key in poses:
        x = leaf(g, pose_key, Pose3)
        for point_key in points:
            uv = uncalibrate(K_expr, project(transform_to(x, leaf(g, point_key, Point3))))
            fg.add(ExpressionFactor(uv.value(truth), uv, pixel_noise))

    # initial estimate: perturbed points and second pose
    deltas = {2: jnp.array([0.05, -0.03, 0.02, 0.01, 0.02, -0.01])}
    noise = 0.2 * jax.random.normal(k_noise, (NUM_POINTS, 3))
    for j, point_key in enumerate(points):
        deltas[point_key] = noise[j]
    initial = truth.retract(deltas)

    return fg, truth, initial


def main():
    fg, truth, initial = build_problem()
    logger.info("Graph: %d factors over %d variables", len(fg), len(fg.keys()))
    logger.info("Initial error: %.6e", fg.error(initial))

    result = gauss_newton(fg, initial, GNConfig(max_iters=20))
    logger.info("Final error:   %.6e", fg.error(result))

    for key in truth.keys():
        delta = truth.at(key).local_coordinates(result.at(key))
        logger.info("key %4d: |truth ⊖ estimate| = %.3e", key, float(jnp.linalg.norm(delta)))


if __name__ == "__main__":
    main()
