import jax.numpy as jnp
import numpy as np
import pytest
from loguru import logger

from stokesd import OverlapError, SingularMatrixError, SolverFlags, StokesianDynamicsSolver, compute_velocities
from stokesd.backend import Backend
from stokesd.solver import _require_well_conditioned


class TestClassSolver:

    def test_two_spheres_far_apart(self):
        """Sphere 0 pulled along x drags sphere 1, 10 radii away, in the same direction."""
        positions = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])
        forces = np.zeros(12)
        forces[0] = 1.0
        u = compute_velocities(1.0, 2, positions, [1.0, 1.0], forces, 0.0, 0, 0, SolverFlags.DEFAULT)

        assert u.shape == (12,)
        np.testing.assert_allclose(u[0], 1.0 / (6 * np.pi), rtol=1e-2)
        assert u[6] > 0.0
        np.testing.assert_allclose(u[6], 1.0 / (4 * np.pi * 10.0), rtol=5e-2)
        others = np.delete(u, [0, 6])
        np.testing.assert_allclose(others, 0.0, atol=1e-12)

    def test_shapes_of_inputs(self):
        positions = np.array([[0.0, 0.0, 0.0], [3.0, 1.0, 0.0], [0.0, 4.0, 1.0]])
        forces = np.linspace(-1.0, 1.0, 18)
        solver = StokesianDynamicsSolver(1.0, 3)
        flat = solver.calc_vel(positions.ravel(), [1.0, 1.0, 1.0], forces)
        nested = solver.calc_vel(positions, np.ones(3), forces.reshape(3, 6))
        np.testing.assert_array_equal(flat, nested)

    def test_matrices_are_kept(self):
        solver = StokesianDynamicsSolver(1.0, 3)
        positions = np.array([[0.0, 0.0, 0.0], [3.0, 1.0, 0.0], [0.0, 4.0, 1.0]])
        solver.calc_vel(positions, np.ones(3), np.zeros(18))
        assert solver.zmuf.shape == (18, 18)
        assert solver.zmus.shape == (18, 15)
        assert solver.zmes.shape == (15, 15)
        assert solver.rfu.shape == (18, 18)
        assert solver.rfe.shape == (18, 15)
        assert solver.rse.shape == (15, 15)
        np.testing.assert_allclose(solver.rfu, np.asarray(solver.rfu).T, atol=1e-10)

    def test_repeated_calls_start_from_scratch(self):
        solver = StokesianDynamicsSolver(1.0, 2)
        forces = np.ones(12)
        first = solver.calc_vel([0.0, 0.0, 0.0, 3.0, 0.0, 0.0], [1.0, 1.0], forces)
        solver.calc_vel([0.0, 0.0, 0.0, 0.0, 5.0, 0.0], [1.0, 1.5], forces, flags=SolverFlags.ALL)
        again = solver.calc_vel([0.0, 0.0, 0.0, 3.0, 0.0, 0.0], [1.0, 1.0], forces)
        np.testing.assert_array_equal(first, again)

    def test_single_particle_with_all_stages(self):
        u = compute_velocities(2.0, 1, [1.0, 2.0, 3.0], [0.5], [0.0, 0.0, 1.0, 0.0, 0.0, 0.0], flags=SolverFlags.ALL)
        np.testing.assert_allclose(u[2], 1.0 / (6 * np.pi * 2.0 * 0.5), rtol=1e-12)

    def test_sequential_backend(self):
        positions = np.array([[0.0, 0.0, 0.0], [2.2, 0.0, 0.0], [0.0, 2.4, 0.0], [2.0, 2.0, 2.0]])
        forces = np.linspace(-1.0, 1.0, 24)
        parallel = compute_velocities(1.0, 4, positions, np.ones(4), forces, flags=SolverFlags.ALL)
        sequential = compute_velocities(
            1.0, 4, positions, np.ones(4), forces, flags=SolverFlags.ALL, backend=Backend.create("cpu", parallel=False)
        )
        np.testing.assert_allclose(parallel, sequential, rtol=1e-10, atol=1e-13)


class TestClassErrors:

    @pytest.mark.parametrize("dist", [2.0, 1.5, 0.0])
    def test_overlap(self, dist):
        """Touching, overlapping and coincident spheres are rejected."""
        positions = np.array([[0.0, 0.0, 0.0], [dist, 0.0, 0.0], [10.0, 0.0, 0.0]])
        with pytest.raises(OverlapError) as excinfo:
            compute_velocities(1.0, 3, positions, np.ones(3), np.zeros(18))
        assert excinfo.value.pairs == [(0, 1)]
        assert isinstance(excinfo.value, ValueError)

    def test_overlap_with_unequal_radii(self):
        positions = np.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0], [5.0, 2.9, 0.0]])
        with pytest.raises(OverlapError) as excinfo:
            compute_velocities(1.0, 3, positions, [1.0, 1.0, 2.0], np.zeros(18))
        assert excinfo.value.pairs == [(1, 2)]

    def test_singular_mobility(self):
        """Without self mobility a single sphere has no resistance to invert."""
        with pytest.raises(SingularMatrixError) as excinfo:
            compute_velocities(1.0, 1, np.zeros(3), [1.0], np.ones(6), flags=SolverFlags.PAIR_MOBILITY)
        assert excinfo.value.stage == "reduction"

    def test_ill_conditioned_mobility(self):
        """A finite but numerically singular matrix is rejected before it is inverted."""
        backend = Backend.create("cpu")
        nearly_singular = jnp.array([[1.0, 1.0], [1.0, 1.0 + 1e-15]])
        assert np.all(np.isfinite(np.asarray(backend.inverse(nearly_singular))))
        with pytest.raises(SingularMatrixError) as excinfo:
            _require_well_conditioned("reduction", backend, nearly_singular)
        assert excinfo.value.stage == "reduction"

        # Entries of very different size alone are not a reason to reject
        _require_well_conditioned("reduction", backend, jnp.diag(jnp.array([1.0, 1e-20, 1e12])))

    @pytest.mark.parametrize("radius", [1e-4, 1e4])
    def test_extreme_radii_are_well_conditioned(self, radius):
        positions = np.array([[0.0, 0.0, 0.0], [3.0 * radius, 0.0, 0.0], [0.0, 2.5 * radius, 0.5 * radius]])
        u = compute_velocities(1.0, 3, positions, np.full(3, radius), np.ones(18), flags=SolverFlags.ALL)
        assert np.all(np.isfinite(u))

    @pytest.mark.parametrize("viscosity", [0.0, -1.0, np.nan])
    def test_viscosity(self, viscosity):
        with pytest.raises(ValueError, match="viscosity"):
            StokesianDynamicsSolver(viscosity, 2)

    @pytest.mark.parametrize("num_particles", [0, -3, 2.5, True])
    def test_num_particles(self, num_particles):
        with pytest.raises(ValueError, match="num_particles"):
            StokesianDynamicsSolver(1.0, num_particles)

    @pytest.mark.parametrize(
        "positions, radii, forces, name",
        [
            (np.zeros(5), np.ones(2), np.zeros(12), "positions"),
            (np.arange(6.0), np.ones(3), np.zeros(12), "radii"),
            (np.arange(6.0), np.ones(2), np.zeros(11), "forces"),
            (np.arange(6.0), [1.0, -1.0], np.zeros(12), "radii"),
            (np.arange(6.0) * 5, [1.0, 0.0], np.zeros(12), "radii"),
            (np.array([0.0, 0.0, 0.0, np.nan, 0.0, 0.0]), np.ones(2), np.zeros(12), "positions"),
            (np.arange(6.0) * 5, np.ones(2), np.full(12, np.inf), "forces"),
        ],
    )
    def test_malformed_arrays(self, positions, radii, forces, name):
        solver = StokesianDynamicsSolver(1.0, 2)
        with pytest.raises(ValueError, match=name):
            solver.calc_vel(positions, radii, forces)

    @pytest.mark.parametrize(
        "offset, seed, name",
        [(-1, 0, "offset"), (0, -1, "seed"), (2**63, 0, "offset"), (0, 2**63, "seed"), (1.5, 0, "offset"), (0, True, "seed")],
    )
    def test_random_key(self, offset, seed, name):
        solver = StokesianDynamicsSolver(1.0, 1)
        with pytest.raises(ValueError, match=name):
            solver.calc_vel(np.zeros(3), [1.0], np.zeros(6), 0.1, offset, seed)

    def test_unknown_flags(self):
        solver = StokesianDynamicsSolver(1.0, 1)
        with pytest.raises(ValueError, match="flags"):
            solver.calc_vel(np.zeros(3), [1.0], np.zeros(6), flags=1 << 6)

    def test_near_contact_warning(self):
        messages = []
        handler = logger.add(messages.append, level="WARNING")
        try:
            compute_velocities(1.0, 2, [0.0, 0.0, 0.0, 2.05, 0.0, 0.0], [1.0, 1.0], np.zeros(12))
        finally:
            logger.remove(handler)
        assert any("near contact" in message for message in messages)
