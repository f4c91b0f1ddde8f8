"""
Partial derivatives of the operation library against central differences.
"""

import jax
import jax.numpy as jnp
import pytest

from bad_jit.core.errors import CheiralityError
from bad_jit.core.math3d import hat
from bad_jit.core.numerical import numerical_derivative
from bad_jit.core.values import Values
from bad_jit.expression import ExpressionGraph, leaf, project
from bad_jit.expression.operation import AutodiffOperation
from bad_jit.expression.operations import (
    ADD,
    BETWEEN,
    COMPOSE,
    PROJECT,
    ROTATE,
    SUBTRACT,
    TRANSFORM_FROM,
    TRANSFORM_TO,
    UNCALIBRATE,
)
from bad_jit.slam.manifold import Cal3_S2, Point2, Point3, Pose3

from conftest import random_pose


def check_partials(op, args, assert_close):
    _, partials = op.evaluate(*args)
    assert len(partials) == len(args)
    for i, d in enumerate(partials):

        def f(x, i=i):
            perturbed = list(args)
            perturbed[i] = x
            return op.forward(*perturbed)

        assert_close(d, numerical_derivative(f, args[i]))


@pytest.fixture(params=[0, 1, 2])
def pose(request):
    return random_pose(jax.random.PRNGKey(10 + request.param), scale=0.8)


def test_transform_to_partials(pose, assert_jacobians_close):
    check_partials(TRANSFORM_TO, (pose, Point3(0.3, -1.2, 2.5)), assert_jacobians_close)


def test_transform_from_partials(pose, assert_jacobians_close):
    check_partials(TRANSFORM_FROM, (pose, Point3(-0.4, 0.7, 1.1)), assert_jacobians_close)


def test_rotate_partials(pose, assert_jacobians_close):
    p = Point3(1.0, 2.0, -0.5)
    check_partials(ROTATE, (pose, p), assert_jacobians_close)

    _, (d_pose, d_point) = ROTATE.evaluate(pose, p)
    expected_pose = jnp.hstack([jnp.zeros((3, 3)), -pose.R @ hat(p.vector())])
    assert jnp.allclose(d_pose, expected_pose, atol=1e-10)
    assert jnp.allclose(d_point, pose.R, atol=1e-10)


def test_autodiff_matches_handwritten_transform_to(pose):
    auto = AutodiffOperation(
        "transform_to_autodiff",
        2,
        lambda T, p: Point3.from_vector(T.R.T @ (p.vector() - T.t)),
        out=Point3,
    )
    p = Point3(0.5, 0.25, 3.0)
    value_a, partials_a = auto.evaluate(pose, p)
    value_h, partials_h = TRANSFORM_TO.evaluate(pose, p)
    assert value_a.equals(value_h)
    for a, h in zip(partials_a, partials_h):
        assert jnp.allclose(a, h, atol=1e-10)


def test_project_partials(assert_jacobians_close):
    check_partials(PROJECT, (Point3(0.3, -0.6, 2.0),), assert_jacobians_close)


def test_project_value():
    assert PROJECT(Point3(1.0, 2.0, 4.0)).equals(Point2(0.25, 0.5))


@pytest.mark.parametrize("z", [0.0, -1.0])
def test_project_behind_camera_raises(z):
    with pytest.raises(CheiralityError):
        PROJECT(Point3(0.1, 0.2, z))
    with pytest.raises(CheiralityError):
        PROJECT.evaluate(Point3(0.1, 0.2, z))


def test_project_forward_is_traceable(assert_jacobians_close):
    """The depth check runs outside `forward`, so jit and jacfwd can trace it."""
    uv = jax.jit(lambda v: PROJECT.forward(Point3.from_vector(v)).vector())(
        jnp.array([1.0, 2.0, 4.0])
    )
    assert jnp.allclose(uv, jnp.array([0.25, 0.5]))

    auto = AutodiffOperation("project_autodiff", 1, PROJECT.forward, out=Point2)
    p = Point3(0.3, -0.6, 2.0)
    _, (d_auto,) = auto.evaluate(p)
    _, (d_hand,) = PROJECT.evaluate(p)
    assert_jacobians_close(d_auto, d_hand)


def test_project_through_expression_checks_depth():
    g = ExpressionGraph()
    q = project(leaf(g, 1, Point3))
    behind = Values({1: Point3(0.0, 0.0, -2.0)})
    with pytest.raises(CheiralityError):
        q.value(behind)
    with pytest.raises(CheiralityError):
        q.value_and_jacobians(behind)


def test_uncalibrate_partials(assert_jacobians_close):
    K = Cal3_S2(fx=320.0, fy=300.0, s=0.5, u0=160.0, v0=120.0)
    check_partials(UNCALIBRATE, (K, Point2(0.2, -0.1)), assert_jacobians_close)


def test_uncalibrate_inverts_calibrate():
    K = Cal3_S2(fx=320.0, fy=300.0, s=0.5, u0=160.0, v0=120.0)
    uv = Point2(200.0, 80.0)
    assert K.uncalibrate(K.calibrate(uv)).equals(uv, tol=1e-9)


@pytest.mark.parametrize(
    "p, q",
    [
        (Point2(1.0, 2.0), Point2(0.5, -1.0)),
        (Point3(1.0, 2.0, 3.0), Point3(-1.0, 0.0, 4.0)),
    ],
)
def test_add_subtract_partials(p, q):
    n = p.dim()
    _, (da, db) = ADD.evaluate(p, q)
    assert jnp.array_equal(da, jnp.eye(n)) and jnp.array_equal(db, jnp.eye(n))
    _, (da, db) = SUBTRACT.evaluate(p, q)
    assert jnp.array_equal(da, jnp.eye(n)) and jnp.array_equal(db, -jnp.eye(n))
    assert SUBTRACT.forward(p, q).equals(type(p).from_vector(p.vector() - q.vector()))


def test_add_rejects_mixed_point_types():
    with pytest.raises(TypeError):
        ADD.forward(Point2(1.0, 2.0), Point3(1.0, 2.0, 3.0))


def test_compose_partials(pose, assert_jacobians_close):
    other = random_pose(jax.random.PRNGKey(99), scale=0.8)
    check_partials(COMPOSE, (pose, other), assert_jacobians_close)


def test_between_partials(pose, assert_jacobians_close):
    other = random_pose(jax.random.PRNGKey(77), scale=0.8)
    check_partials(BETWEEN, (pose, other), assert_jacobians_close)


def test_between_of_equal_poses_is_identity(pose):
    h = BETWEEN.forward(pose, pose)
    assert h.equals(Pose3(), tol=1e-9)
    _, (d1, d2) = BETWEEN.evaluate(pose, pose)
    assert jnp.allclose(d1, -jnp.eye(6), atol=1e-9)
    assert jnp.array_equal(d2, jnp.eye(6))


def test_result_types():
    assert TRANSFORM_TO.result_type(Pose3, Point3) is Point3
    assert PROJECT.result_type(Point3) is Point2
    assert SUBTRACT.result_type(Point2, Point2) is Point2
    with pytest.raises(TypeError):
        TRANSFORM_TO.result_type(Point3, Pose3)
    with pytest.raises(ValueError):
        PROJECT.result_type(Point3, Point3)
