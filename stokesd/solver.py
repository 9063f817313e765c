"""Velocities of suspended spheres from forces and torques, with hydrodynamic interactions.

Stages, run in this order at every call:

    1. pair geometry and overlap check
    2. grand mobility matrix (self and pair terms)
    3. inversion to the far-field resistance, Schur complement of the stresslets (FTS)
    4. lubrication corrections
    5. Brownian force from the Cholesky factor of the resistance
    6. U = R_FU^-1 (F + F_B)
"""

from typing import Optional

import jax.numpy as jnp
import numpy as np
from jax import Array, jit
from jax.typing import ArrayLike
from loguru import logger

from stokesd.backend import Backend
from stokesd.enums import SolverFlags
from stokesd.errors import OverlapError, SingularMatrixError
from stokesd.lubrication_tables import DEFAULT_TABLES, NEAR_CONTACT, LubricationTables
from stokesd.mobility import assemble_mobility
from stokesd.resistance import apply_lubrication, reduce_mobility
from stokesd.thermal import compute_random_force
from stokesd.utils import as_particle_array, compute_distinct_pairs, find_overlaps, pair_geometry

MAX_KEY = 2**63
# Largest accepted condition number of the diagonally scaled mobility, in units of 1/eps
MAX_CONDITION = 1e-2


@jit
def solve_velocities(rfu_inv: ArrayLike, rfe: ArrayLike, forces: ArrayLike, frnd: ArrayLike) -> Array:
    """Apply the inverse resistance to the external and Brownian forces."""
    # No ambient flow. A linear flow would enter as einf (rate of strain) and uinf = einf . r
    einf = jnp.zeros(rfe.shape[1], dtype=rfe.dtype)
    uinf = jnp.zeros(rfu_inv.shape[0], dtype=rfu_inv.dtype)
    return rfu_inv @ (forces + rfe @ einf + frnd) + uinf


def _check_key(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ValueError(f"'{name}' must be an integer, got {value!r}.")
    if not 0 <= int(value) < MAX_KEY:
        raise ValueError(f"'{name}' must be in [0, 2**63), got {value}.")
    return int(value)


def _require_finite(stage: str, *arrays: ArrayLike):
    if not all(bool(jnp.all(jnp.isfinite(a))) for a in arrays):
        logger.error(f"Non-finite values after stage '{stage}'")
        raise SingularMatrixError(stage)


def _require_well_conditioned(stage: str, backend: Backend, *matrices: ArrayLike):
    """Reject matrices whose inverse would be finite but meaningless."""
    for matrix in matrices:
        bound = MAX_CONDITION / np.finfo(matrix.dtype).eps
        condition = float(backend.condition_number(matrix))
        if not condition < bound:
            logger.error(f"Ill-conditioned matrix before stage '{stage}', condition number {condition:.3e}")
            raise SingularMatrixError(stage)


class StokesianDynamicsSolver:
    """Stokesian Dynamics of a fixed number of spheres in an unbounded fluid.

    The N-dependent matrices are owned by the instance. Each call starts from zeroed mobility
    matrices and rebinds the attributes to the result of every stage, so after a call they hold
    the matrices of the last configuration.

    Parameters
    ----------
    viscosity: (float)
        Fluid viscosity, positive
    num_particles: (int)
        Number of particles, at least 1
    backend: (Backend)
        Device, precision and map strategy, the default device in double precision if None
    tables: (LubricationTables)
        Tabulated lubrication functions, the built-in ones if None

    """

    def __init__(
        self,
        viscosity: float,
        num_particles: int,
        backend: Optional[Backend] = None,
        tables: Optional[LubricationTables] = None,
    ):
        if not np.isfinite(viscosity) or viscosity <= 0.0:
            raise ValueError(f"'viscosity' must be positive, got {viscosity}.")
        if isinstance(num_particles, bool) or not isinstance(num_particles, (int, np.integer)) or num_particles < 1:
            raise ValueError(f"'num_particles' must be a positive integer, got {num_particles!r}.")

        self.eta = float(viscosity)
        self.num_particles = int(num_particles)
        self.num_pairs = self.num_particles * (self.num_particles - 1) // 2
        self.backend = backend if backend is not None else Backend.create()
        self.tables = tables if tables is not None else DEFAULT_TABLES
        self.pairs = compute_distinct_pairs(self.num_particles)

        n = self.num_particles
        dtype = self.backend.dtype
        self.zmuf = jnp.zeros((6 * n, 6 * n), dtype=dtype)
        self.zmus = jnp.zeros((6 * n, 5 * n), dtype=dtype)
        self.zmes = jnp.zeros((5 * n, 5 * n), dtype=dtype)
        self.rfu = jnp.zeros((6 * n, 6 * n), dtype=dtype)
        self.rfe = jnp.zeros((6 * n, 5 * n), dtype=dtype)
        self.rse = jnp.zeros((5 * n, 5 * n), dtype=dtype)
        logger.debug(f"Solver for {n} particles ({self.num_pairs} pairs), viscosity {self.eta}")

    def calc_vel(
        self,
        positions: ArrayLike,
        radii: ArrayLike,
        forces: ArrayLike,
        sqrt_kt_dt: float = 0.0,
        offset: int = 0,
        seed: int = 0,
        flags: int = SolverFlags.DEFAULT,
    ) -> np.ndarray:
        """Compute translational and angular velocities of all particles.

        Parameters
        ----------
        positions: (float)
            Array (3N,) or (N,3) of particle positions
        radii: (float)
            Array (N,) of particle radii, positive
        forces: (float)
            Array (6N,) or (N,6) of external forces and torques, (F_x, F_y, F_z, T_x, T_y, T_z)
            per particle
        sqrt_kt_dt: (float)
            Thermal amplitude sqrt(kT/dt), no Brownian force if not positive
        offset: (int)
            Counter of the random stream, e.g. the time step
        seed: (int)
            Seed of the random stream
        flags: (int)
            Combination of SolverFlags selecting the active stages

        Returns
        -------
        velocities
            Array (6N,), (U_x, U_y, U_z, W_x, W_y, W_z) per particle

        Raises
        ------
        ValueError
            On malformed input
        OverlapError
            If two particles touch or overlap
        SingularMatrixError
            If a matrix inversion or factorization fails

        """
        n = self.num_particles
        positions = as_particle_array(positions, n, 3, "positions")
        radii = as_particle_array(radii, n, 1, "radii").ravel()
        forces = as_particle_array(forces, n, 6, "forces").ravel()
        if np.any(radii <= 0.0):
            raise ValueError("'radii' must be positive.")
        if not np.isfinite(sqrt_kt_dt):
            raise ValueError(f"'sqrt_kt_dt' must be finite, got {sqrt_kt_dt}.")
        offset = _check_key("offset", offset)
        seed = _check_key("seed", seed)
        if int(flags) & ~int(SolverFlags.ALL):
            raise ValueError(f"Unknown solver flags {int(flags)}.")
        flags = int(flags)
        fts = bool(flags & SolverFlags.FTS)

        backend = self.backend
        positions = backend.put(positions)
        radii = backend.put(radii)
        forces = backend.put(forces)

        # 1. geometry
        if self.num_pairs > 0:
            unit, dist, overlap = pair_geometry(positions, radii, self.pairs)
            if bool(jnp.any(overlap)):
                overlapping = find_overlaps(self.pairs, overlap)
                logger.error(f"{len(overlapping)} overlapping particle pair(s), first ones: {overlapping[:10]}")
                raise OverlapError(overlapping)
            if not flags & SolverFlags.LUBRICATION:
                a12 = 0.5 * (radii[self.pairs[0]] + radii[self.pairs[1]])
                n_close = int(jnp.sum(dist / a12 <= NEAR_CONTACT))
                if n_close:
                    logger.warning(f"{n_close} pair(s) in near contact while lubrication is disabled")
        else:
            unit = jnp.zeros((0, 3), dtype=backend.dtype)
            dist = jnp.zeros((0,), dtype=backend.dtype)

        # 2. mobility
        self.zmuf, self.zmus, self.zmes = assemble_mobility(
            n, radii, unit, dist, self.pairs, self.eta, flags, backend
        )
        logger.debug(f"Mobility assembled: zmuf {self.zmuf.shape}, zmus {self.zmus.shape}, zmes {self.zmes.shape}")

        # 3. far-field resistance
        _require_well_conditioned("reduction", backend, *((self.zmuf, self.zmes) if fts else (self.zmuf,)))
        self.rfu, self.rfe, self.rse = reduce_mobility(self.zmuf, self.zmus, self.zmes, fts, backend)
        _require_finite("reduction", self.rfu, self.rfe, self.rse)
        logger.debug("Mobility inverted" + (" with stresslet elimination" if fts else ""))

        # 4. lubrication
        if flags & SolverFlags.LUBRICATION and self.num_pairs > 0:
            self.rfu, self.rfe, self.rse = apply_lubrication(
                self.rfu, self.rfe, self.rse, unit, dist, self.pairs, radii, self.eta, flags, backend, self.tables
            )
            _require_finite("lubrication", self.rfu, self.rfe, self.rse)
            logger.debug("Lubrication corrections applied")

        # 5. Brownian force
        if sqrt_kt_dt > 0.0:
            rfu_inv, rfu_sqrt = backend.inverse_and_cholesky(self.rfu)
            _require_finite("cholesky", rfu_inv, rfu_sqrt)
            frnd = compute_random_force(rfu_sqrt, float(sqrt_kt_dt), offset, seed)
        else:
            rfu_inv = backend.inverse(self.rfu)
            _require_finite("inverse", rfu_inv)
            frnd = jnp.zeros(6 * n, dtype=backend.dtype)

        # 6. velocities
        velocities = solve_velocities(rfu_inv, self.rfe, forces, frnd)
        _require_finite("velocity", velocities)
        return np.asarray(velocities)


def compute_velocities(
    viscosity: float,
    num_particles: int,
    positions: ArrayLike,
    radii: ArrayLike,
    forces: ArrayLike,
    sqrt_kt_dt: float = 0.0,
    offset: int = 0,
    seed: int = 0,
    flags: int = SolverFlags.DEFAULT,
    backend: Optional[Backend] = None,
    tables: Optional[LubricationTables] = None,
) -> np.ndarray:
    """Compute the velocities of one configuration without keeping a solver around.

    See StokesianDynamicsSolver.calc_vel for the arguments.
    """
    solver = StokesianDynamicsSolver(viscosity, num_particles, backend=backend, tables=tables)
    return solver.calc_vel(positions, radii, forces, sqrt_kt_dt, offset, seed, flags)
