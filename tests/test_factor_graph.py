from __future__ import annotations

import jax.numpy as jnp
import pytest

from bad_jit.core.factor_graph import FactorGraph
from bad_jit.core.values import Values
from bad_jit.expression import (
    ExpressionGraph,
    between,
    constant,
    leaf,
    project,
    transform_to,
    uncalibrate,
)
from bad_jit.optimization.solvers import GNConfig, gauss_newton
from bad_jit.slam.expression_factor import ExpressionFactor
from bad_jit.slam.manifold import Cal3_S2, Point2, Point3, Pose3
from bad_jit.slam.measurements import GeneralSFMFactor
from bad_jit.slam.noise import Isotropic, Unit


def test_graph_keys_and_error(default_ba_values):
    """
    Two factors on overlapping keys:
      - projection expression on (1, 2, 3), measured (0, 1)  -> error 0.5
      - reference projection factor on (1, 2, 3), measured (2, 0) -> error 2.0
    """
    g = ExpressionGraph()
    uv = uncalibrate(leaf(g, 3, Cal3_S2), project(transform_to(leaf(g, 1, Pose3), leaf(g, 2, Point3))))

    fg = FactorGraph()
    fg.add(ExpressionFactor(Point2(0.0, 1.0), uv, Unit.create(2)))
    fg.add(GeneralSFMFactor(Point2(2.0, 0.0), Unit.create(2), 1, 2, 3))

    assert len(fg) == 2
    assert fg.keys() == [1, 2, 3]
    assert fg.dim() == 4
    assert fg.error(default_ba_values) == pytest.approx(2.5)

    linear = fg.linearize(default_ba_values)
    assert [f.keys for f in linear] == [(1, 2, 3), (1, 2, 3)]


def test_triangulation_from_two_fixed_cameras():
    """
    One unknown point seen by two known cameras one metre apart along x.
    Poses and calibration enter the expressions as constants, so the only
    variable is the point.
    """
    K = Cal3_S2(fx=300.0, fy=300.0, s=0.0, u0=160.0, v0=120.0)
    cameras = [Pose3(), Pose3(t=jnp.array([1.0, 0.0, 0.0]))]
    truth = Point3(0.3, -0.2, 5.0)

    g = ExpressionGraph()
    point = leaf(g, 10, Point3)
    fg = FactorGraph()
    for camera in cameras:
        uv = uncalibrate(constant(g, K), project(transform_to(constant(g, camera), point)))
        measured = uv.value(Values({10: truth}))
        fg.add(ExpressionFactor(measured, uv, Isotropic.sigma(2, 1.0)))

    assert fg.keys() == [10]

    values = Values({10: Point3(0.5, 0.1, 4.5)})
    result = gauss_newton(fg, values, GNConfig(max_iters=30))

    assert result.at(10).equals(truth, tol=1e-4)
    assert fg.error(result) == pytest.approx(0.0, abs=1e-8)
    # input assignment is untouched
    assert values.at(10).equals(Point3(0.5, 0.1, 4.5))


def test_pose_chain_with_prior():
    """
    Prior on pose 1 plus two identical relative-pose measurements:
    pose 2 = odom, pose 3 = odom · odom.
    """
    odom = Pose3.from_vector(jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.1]))
    model = Isotropic.sigma(6, 0.1)

    g = ExpressionGraph()
    x1, x2, x3 = (leaf(g, k, Pose3) for k in (1, 2, 3))

    fg = FactorGraph()
    fg.add(ExpressionFactor(Pose3(), x1, model))
    fg.add(ExpressionFactor(odom, between(x1, x2), model))
    fg.add(ExpressionFactor(odom, between(x2, x3), model))

    values = Values()
    values.insert(1, Pose3.from_vector(jnp.array([0.1, -0.1, 0.05, 0.02, -0.01, 0.03])))
    values.insert(2, Pose3.from_vector(jnp.array([0.8, 0.2, -0.1, 0.0, 0.05, 0.2])))
    values.insert(3, Pose3.from_vector(jnp.array([1.7, 0.4, 0.1, -0.03, 0.0, 0.1])))

    result = gauss_newton(fg, values, GNConfig(max_iters=50))

    assert result.at(1).equals(Pose3(), tol=1e-5)
    assert result.at(2).equals(odom, tol=1e-5)
    assert result.at(3).equals(odom.compose(odom), tol=1e-5)
