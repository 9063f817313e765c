"""Grand mobility matrix of spheres in an unbounded fluid.

The expressions follow Appendix A of

    Durlofsky, L., Brady, J.F. and Bossis, G., J. Fluid Mech. 180, 21-49 (1987)

(equivalently Kim, S. and Mifflin, R.T., Phys. Fluids 28, 2033 (1985)). Blocks are organized per
particle: 6 rows/columns (translation then rotation) in the force/velocity part and 5 in the
stresslet/rate-of-strain part.
"""

from functools import partial
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax import Array, jit
from jax.typing import ArrayLike

from stokesd.backend import Backend
from stokesd.enums import SolverFlags
from stokesd.tensors import (
    DELTA,
    LEVI_CIVITA,
    outer,
    project_rank4,
    rank3_antisymmetric,
    rank3_from_scalars,
    rank4_from_scalars,
    to_rate_basis,
)

# Self contributions, to be rescaled by the particle's non-dimensionalization
SELF_MUF = np.diag([1.0, 1.0, 1.0, 3.0 / 4.0, 3.0 / 4.0, 3.0 / 4.0])
SELF_MES = np.array(
    [
        [9.0 / 5.0, 0.0, 0.0, 0.0, 9.0 / 10.0],
        [0.0, 9.0 / 5.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 9.0 / 5.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 9.0 / 5.0, 0.0],
        [9.0 / 10.0, 0.0, 0.0, 0.0, 9.0 / 5.0],
    ]
)
SELF_MUF.flags.writeable = False
SELF_MES.flags.writeable = False


class MobilityFunctions(NamedTuple):
    """Far-field scalar mobility functions of a pair, equation (A 3)."""
    x12a: ArrayLike
    y12a: ArrayLike
    y12b: ArrayLike
    x12c: ArrayLike
    y12c: ArrayLike
    x12g: ArrayLike
    y12g: ArrayLike
    y12h: ArrayLike
    x12m: ArrayLike
    y12m: ArrayLike
    z12m: ArrayLike


def mobility_functions(dr_inv: ArrayLike) -> MobilityFunctions:
    """Evaluate the pair mobility functions for a non-dimensional inverse distance a/r."""
    dr_inv2 = dr_inv * dr_inv
    dr_inv3 = dr_inv2 * dr_inv
    dr_inv4 = dr_inv3 * dr_inv
    dr_inv5 = dr_inv4 * dr_inv
    return MobilityFunctions(
        x12a=3.0 / 2.0 * dr_inv - dr_inv3,
        y12a=3.0 / 4.0 * dr_inv + 1.0 / 2.0 * dr_inv3,
        y12b=-3.0 / 4.0 * dr_inv2,
        x12c=3.0 / 4.0 * dr_inv3,
        y12c=-3.0 / 8.0 * dr_inv3,
        x12g=9.0 / 4.0 * dr_inv2 - 18.0 / 5.0 * dr_inv4,
        y12g=6.0 / 5.0 * dr_inv4,
        y12h=-9.0 / 8.0 * dr_inv3,
        x12m=-9.0 / 2.0 * dr_inv3 + 54.0 / 5.0 * dr_inv5,
        y12m=9.0 / 4.0 * dr_inv3 - 36.0 / 5.0 * dr_inv5,
        z12m=9.0 / 5.0 * dr_inv5,
    )


def viscous_scales(radius: ArrayLike, eta: float) -> tuple[Array, Array, Array]:
    """Mobility non-dimensionalizations 1/(6 pi eta a^k) for k = 1, 2, 3."""
    visc1 = 1.0 / (6.0 * jnp.pi * eta * radius)
    visc2 = visc1 / radius
    visc3 = visc2 / radius
    return visc1, visc2, visc3


def self_mobility(radius: ArrayLike, eta: float) -> tuple[Array, Array]:
    """Diagonal blocks of one particle: Stokes law and its rotational and stresslet analogues.

    Returns
    -------
    muf (6,6), mes (5,5)

    """
    visc1, _, visc3 = viscous_scales(radius, eta)
    scale = jnp.concatenate([jnp.full(3, visc1), jnp.full(3, visc3)])
    return SELF_MUF * scale[:, None], visc3 * SELF_MES


def pair_mobility(
    e: ArrayLike, dist: ArrayLike, radius_i: ArrayLike, radius_j: ArrayLike, eta: float
) -> tuple[Array, Array, Array, Array]:
    """Off-diagonal blocks coupling particles i and j, equation (A 2).

    The non-dimensionalization uses the mean radius of the pair, which extends the equal-sphere
    expressions to spheres of different size.

    Parameters
    ----------
    e: (float)
        Array (3,) unit vector pointing from particle i to particle j
    dist: (float)
        Center-to-center distance
    radius_i, radius_j: (float)
        Radii of the two particles
    eta: (float)
        Fluid viscosity

    Returns
    -------
    muf_ij (6,6), mus_ij (6,5), mus_ji (6,5), mes_ij (5,5)
        muf_ij couples the velocities of i to the forces of j (muf_ji is its transpose),
        mus_ij couples the velocities of i to the stresslet of j, mes_ij the rates of strain
        of i to the stresslet of j (mes_ji is its transpose).

    """
    a12 = 0.5 * (radius_i + radius_j)
    visc1, visc2, visc3 = viscous_scales(a12, eta)
    f = mobility_functions(a12 / dist)

    ee = outer(e, e)
    eps_e = jnp.einsum("ijk,k->ij", LEVI_CIVITA, e)

    mob_a = f.x12a * ee + f.y12a * (DELTA - ee)
    mob_b = f.y12b * eps_e
    mob_c = f.x12c * ee + f.y12c * (DELTA - ee)

    muf_ij = jnp.block([[visc1 * mob_a, -visc2 * mob_b.T], [visc2 * mob_b, visc3 * mob_c]])

    mob_gt = to_rate_basis(-rank3_from_scalars(e, f.x12g, f.y12g))
    mob_ht = to_rate_basis(rank3_antisymmetric(e, f.y12h))

    # The exponents of visc2 (translation) and visc3 (rotation) are kept as they reproduce
    # reference results. Neither has been verified analytically for unequal spheres.
    mus_ij = jnp.concatenate([visc2 * mob_gt, visc3 * mob_ht], axis=0)
    mus_ji = jnp.concatenate([-visc2 * mob_gt, visc3 * mob_ht], axis=0)

    mob_m = project_rank4(rank4_from_scalars(e, f.x12m, f.y12m, f.z12m))
    mes_ij = visc3 * mob_m

    return muf_ij, mus_ij, mus_ji, mes_ij


def block_indices(particles: ArrayLike, width: int) -> Array:
    """Matrix rows/columns of the per-particle blocks, array (len(particles), width)."""
    return width * particles[:, None] + jnp.arange(width)[None, :]


@partial(jit, static_argnames=["num_particles", "flags", "backend"])
def assemble_mobility(
    num_particles: int,
    radii: ArrayLike,
    unit: ArrayLike,
    dist: ArrayLike,
    pairs: ArrayLike,
    eta: float,
    flags: int,
    backend: Backend,
) -> tuple[Array, Array, Array]:
    """Fill the grand mobility matrix from self and pair contributions.

    The matrices start from zero at every call. Self terms only touch the diagonal blocks and
    pair terms only the off-diagonal ones, so the two passes are independent. The stresslet
    blocks are only populated in the FTS formulation.

    Parameters
    ----------
    num_particles: (int)
        Number of particles
    radii: (float)
        Array (num_particles,) of particle radii
    unit: (float)
        Array (n_pairs,3) of unit vectors from the first to the second particle of each pair
    dist: (float)
        Array (n_pairs,) of center-to-center distances
    pairs: (int)
        Array (2,n_pairs) of particle indices
    eta: (float)
        Fluid viscosity
    flags: (int)
        Combination of SolverFlags
    backend: (Backend)
        Execution backend

    Returns
    -------
    zmuf (6N,6N), zmus (6N,5N), zmes (5N,5N)

    """
    fts = bool(flags & SolverFlags.FTS)
    zmuf = jnp.zeros((6 * num_particles, 6 * num_particles), dtype=backend.dtype)
    zmus = jnp.zeros((6 * num_particles, 5 * num_particles), dtype=backend.dtype)
    zmes = jnp.zeros((5 * num_particles, 5 * num_particles), dtype=backend.dtype)

    if flags & SolverFlags.SELF_MOBILITY:
        muf_self, mes_self = backend.map(partial(self_mobility, eta=eta), radii)
        rows6 = block_indices(jnp.arange(num_particles), 6)
        zmuf = zmuf.at[rows6[:, :, None], rows6[:, None, :]].set(muf_self)
        if fts:
            rows5 = block_indices(jnp.arange(num_particles), 5)
            zmes = zmes.at[rows5[:, :, None], rows5[:, None, :]].set(mes_self)

    n_pairs = pairs.shape[1]
    if (flags & SolverFlags.PAIR_MOBILITY) and n_pairs > 0:
        indices_i = pairs[0, :]
        indices_j = pairs[1, :]
        muf_ij, mus_ij, mus_ji, mes_ij = backend.map(
            partial(pair_mobility, eta=eta), unit, dist, radii[indices_i], radii[indices_j]
        )
        i6 = block_indices(indices_i, 6)
        j6 = block_indices(indices_j, 6)
        # The mirrored block is the exact transpose, so the matrix is symmetric bit for bit
        zmuf = zmuf.at[i6[:, :, None], j6[:, None, :]].set(muf_ij)
        zmuf = zmuf.at[j6[:, :, None], i6[:, None, :]].set(jnp.swapaxes(muf_ij, 1, 2))
        if fts:
            i5 = block_indices(indices_i, 5)
            j5 = block_indices(indices_j, 5)
            zmus = zmus.at[i6[:, :, None], j5[:, None, :]].set(mus_ij)
            zmus = zmus.at[j6[:, :, None], i5[:, None, :]].set(mus_ji)
            zmes = zmes.at[i5[:, :, None], j5[:, None, :]].set(mes_ij)
            zmes = zmes.at[j5[:, :, None], i5[:, None, :]].set(jnp.swapaxes(mes_ij, 1, 2))

    return zmuf, zmus, zmes
