import jax.numpy as jnp
import pytest

from bad_jit.core.errors import KeyNotFound
from bad_jit.core.values import Values
from bad_jit.slam.manifold import Point3, Pose3


def test_insert_and_lookup():
    values = Values()
    values.insert(1, Pose3())
    values.insert(2, Point3(0.0, 0.0, 1.0))

    assert values.exists(1)
    assert 2 in values
    assert values.keys() == [1, 2]
    assert values.at(2).equals(Point3(0.0, 0.0, 1.0))
    assert values.dim(1) == 6
    assert values.total_dim() == 9


def test_missing_key_raises_key_not_found():
    values = Values({1: Point3()})
    with pytest.raises(KeyNotFound) as info:
        values.at(7)
    assert info.value.key == 7
    assert isinstance(info.value, KeyError)


def test_duplicate_insert_is_rejected():
    values = Values({1: Point3()})
    with pytest.raises(ValueError):
        values.insert(1, Point3())


def test_update_requires_existing_key():
    values = Values({1: Point3()})
    values.update(1, Point3(1.0, 0.0, 0.0))
    assert values.at(1).equals(Point3(1.0, 0.0, 0.0))
    with pytest.raises(KeyNotFound):
        values.update(2, Point3())


def test_retract_returns_new_store():
    values = Values({1: Point3(1.0, 1.0, 1.0), 2: Pose3()})
    moved = values.retract({1: jnp.array([1.0, 0.0, -1.0])})

    assert moved.at(1).equals(Point3(2.0, 1.0, 0.0))
    assert moved.at(2).equals(Pose3())
    # original unchanged
    assert values.at(1).equals(Point3(1.0, 1.0, 1.0))


def test_local_coordinates_between_stores():
    values = Values({1: Point3(1.0, 1.0, 1.0), 2: Pose3()})
    delta = {1: jnp.array([0.5, 0.0, 0.0]), 2: jnp.array([0.0, 0.1, 0.0, 0.0, 0.0, 0.2])}
    moved = values.retract(delta)

    local = values.local_coordinates(moved)
    assert jnp.allclose(local[1], delta[1])
    assert jnp.allclose(local[2], delta[2], atol=1e-12)
    assert not values.equals(moved)
    assert values.equals(values.copy())
