import jax.numpy as jnp
import pytest

from bad_jit.core.errors import DimensionMismatch
from bad_jit.slam.noise import Diagonal, Gaussian, Isotropic, Unit


def test_isotropic_whitening_divides_by_sigma():
    model = Isotropic.sigma(2, 0.5)
    assert model.dim() == 2
    assert jnp.allclose(model.whiten(jnp.array([1.0, -2.0])), jnp.array([2.0, -4.0]))
    A = jnp.array([[1.0, 0.0, 2.0], [0.0, 1.0, -1.0]])
    assert jnp.allclose(model.whiten_matrix(A), 2.0 * A)


def test_diagonal_whitening_matches_sqrt_information():
    sigmas = jnp.array([0.1, 2.0, 0.5])
    model = Diagonal.sigmas(sigmas)
    full = Gaussian.sqrt_information(jnp.diag(1.0 / sigmas))
    v = jnp.array([1.0, 1.0, 1.0])
    assert jnp.allclose(model.whiten(v), full.whiten(v))
    assert model.equals(full)


def test_covariance_constructor():
    cov = jnp.array([[4.0, 1.0], [1.0, 2.0]])
    model = Gaussian.covariance(cov)
    R = model.R()
    assert jnp.allclose(R.T @ R, jnp.linalg.inv(cov), atol=1e-12)

    v = jnp.array([0.3, -1.2])
    expected = float(v @ jnp.linalg.inv(cov) @ v)
    assert model.squared_mahalanobis_distance(v) == pytest.approx(expected)


def test_unit_model_is_identity():
    model = Unit.create(3)
    v = jnp.array([1.0, 2.0, 3.0])
    assert jnp.array_equal(model.whiten(v), v)
    assert model.equals(Isotropic.sigma(3, 1.0))


def test_dimension_mismatch():
    model = Isotropic.sigma(2, 1.0)
    with pytest.raises(DimensionMismatch):
        model.whiten(jnp.zeros(3))
    with pytest.raises(DimensionMismatch):
        model.whiten_matrix(jnp.zeros((3, 6)))
    with pytest.raises(DimensionMismatch):
        Gaussian(jnp.zeros((2, 3)))


@pytest.mark.parametrize("cls", [Gaussian, Diagonal, Isotropic, Unit])
def test_matrix_constructors_build_full_models(cls):
    R = jnp.diag(jnp.array([2.0, 4.0]))
    model = cls.sqrt_information(R)
    assert type(model) is Gaussian
    assert model.dim() == 2
    assert jnp.allclose(model.R(), R)

    cov = 4.0 * jnp.eye(2)
    model = cls.covariance(cov)
    assert type(model) is Gaussian
    assert model.dim() == 2
    assert jnp.allclose(model.R(), 0.5 * jnp.eye(2), atol=1e-12)
    assert model.equals(Isotropic.sigma(2, 2.0))
