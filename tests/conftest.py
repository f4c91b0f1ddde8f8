from __future__ import annotations

import jax
import jax.numpy as jnp
import pytest

from bad_jit.core.values import Values
from bad_jit.slam.manifold import Cal3_S2, Point3, Pose3


def random_pose(rng, scale: float = 0.5) -> Pose3:
    return Pose3.from_vector(scale * jax.random.normal(rng, (6,)))


def random_ba_values(seed: int) -> Values:
    """
    Random two-view style assignment:
      1 -> camera pose, 2 -> point in front of the camera, 3 -> calibration.
    """
    k_pose, k_xy, k_depth, k_cal = jax.random.split(jax.random.PRNGKey(seed), 4)
    pose = random_pose(k_pose)

    xy = jax.random.uniform(k_xy, (2,), minval=-1.0, maxval=1.0)
    depth = jax.random.uniform(k_depth, (), minval=2.0, maxval=4.0)
    point = pose.transform_from(Point3(xy[0], xy[1], depth))

    c = jax.random.uniform(k_cal, (5,), minval=-1.0, maxval=1.0)
    K = Cal3_S2(
        fx=300.0 + 20.0 * c[0],
        fy=310.0 + 20.0 * c[1],
        s=0.1 * c[2],
        u0=160.0 + 5.0 * c[3],
        v0=120.0 + 5.0 * c[4],
    )

    values = Values()
    values.insert(1, pose)
    values.insert(2, point)
    values.insert(3, K)
    return values


def _assert_jacobians_close(actual, expected, rtol: float = 1e-6):
    assert actual.shape == expected.shape
    scale = max(1.0, float(jnp.max(jnp.abs(expected))))
    assert jnp.allclose(actual, expected, rtol=rtol, atol=rtol * scale), (actual, expected)


@pytest.fixture
def assert_jacobians_close():
    """Relative comparison of an analytic and a numerical Jacobian."""
    return _assert_jacobians_close


@pytest.fixture
def default_ba_values() -> Values:
    """Identity pose, point (0, 0, 1), default calibration."""
    values = Values()
    values.insert(1, Pose3())
    values.insert(2, Point3(0.0, 0.0, 1.0))
    values.insert(3, Cal3_S2())
    return values


@pytest.fixture(params=[0, 1, 2, 3])
def ba_values(request) -> Values:
    """Random non-trivial assignments for keys 1 (Pose3), 2 (Point3), 3 (Cal3_S2)."""
    return random_ba_values(request.param)


@pytest.fixture
def rng():
    return jax.random.PRNGKey(42)
