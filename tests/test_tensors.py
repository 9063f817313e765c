import jax.numpy as jnp
import numpy as np
import pytest

from stokesd.tensors import (
    DELTA,
    LEVI_CIVITA,
    RATE_INDEX,
    project_rank4,
    rank3_antisymmetric,
    rank3_from_scalars,
    rank4_from_scalars,
    to_rate_basis,
    to_stresslet_basis,
)


def rate_vector(e):
    """EV = (E11 - E33, 2 E12, 2 E13, 2 E23, E22 - E33) written out by hand."""
    return np.array([e[0, 0] - e[2, 2], 2 * e[0, 1], 2 * e[0, 2], 2 * e[1, 2], e[1, 1] - e[2, 2]])


class TestTensors:

    def test_constants_are_frozen(self):
        for constant in (DELTA, LEVI_CIVITA, RATE_INDEX):
            with pytest.raises(ValueError):
                constant[0] = 0

    def test_levi_civita(self):
        assert LEVI_CIVITA[0, 1, 2] == 1.0
        assert LEVI_CIVITA[2, 1, 0] == -1.0
        np.testing.assert_array_equal(LEVI_CIVITA, -np.swapaxes(LEVI_CIVITA, 0, 1))
        np.testing.assert_array_equal(np.einsum("ijk,ijk->", LEVI_CIVITA, LEVI_CIVITA), 6.0)

    def test_rate_basis_matches_linearization(self):
        rng = np.random.default_rng(3)
        t = rng.normal(size=(3, 3, 3))
        t = t + np.swapaxes(t, 1, 2)
        expected = np.stack([rate_vector(t[k]) for k in range(3)])
        np.testing.assert_allclose(to_rate_basis(t), expected, rtol=1e-14)

    def test_stresslet_basis_picks_components(self):
        t = np.arange(27.0).reshape(3, 3, 3)
        out = np.asarray(to_stresslet_basis(t))
        np.testing.assert_array_equal(out[:, 0], t[:, 0, 0])
        np.testing.assert_array_equal(out[:, 1], t[:, 0, 1])
        np.testing.assert_array_equal(out[:, 2], t[:, 0, 2])
        np.testing.assert_array_equal(out[:, 3], t[:, 1, 2])
        np.testing.assert_array_equal(out[:, 4], t[:, 1, 1])

    def test_rank3_is_symmetric_and_traceless(self):
        e = jnp.array([1.0, 2.0, 2.0]) / 3.0
        g = np.asarray(rank3_from_scalars(e, 0.7, -0.3))
        np.testing.assert_allclose(g, np.swapaxes(g, 1, 2), atol=1e-15)
        np.testing.assert_allclose(np.trace(g, axis1=1, axis2=2), 0.0, atol=1e-15)
        h = np.asarray(rank3_antisymmetric(e, 0.4))
        np.testing.assert_allclose(h, np.swapaxes(h, 1, 2), atol=1e-15)
        np.testing.assert_allclose(np.trace(h, axis1=1, axis2=2), 0.0, atol=1e-15)

    def test_rank4_symmetries(self):
        e = jnp.array([0.0, 0.6, 0.8])
        m = np.asarray(rank4_from_scalars(e, 1.1, 0.4, -0.2))
        np.testing.assert_allclose(m, np.transpose(m, (2, 3, 0, 1)), atol=1e-15)
        np.testing.assert_allclose(m, np.transpose(m, (1, 0, 2, 3)), atol=1e-15)
        m5 = np.asarray(project_rank4(m))
        assert m5.shape == (5, 5)
        np.testing.assert_allclose(m5, m5.T, atol=1e-14)
