"""Resistance matrices: reduction of the grand mobility matrix and lubrication corrections.

The far-field resistance is the inverse of the grand mobility matrix. Short-range lubrication
is then added pairwise following equation (2.18) and the paragraph above equation (2.18) of

    Durlofsky, L., Brady, J.F. and Bossis, G., J. Fluid Mech. 180, 21-49 (1987)

with the near-field functions of Jeffrey and Onishi (1984) and Jeffrey (1992).
"""

from functools import partial

import jax.numpy as jnp
from jax import Array, jit
from jax.typing import ArrayLike

from stokesd.backend import Backend
from stokesd.enums import SolverFlags
from stokesd.lubrication_tables import (
    LUBRICATION_CUTOFF,
    LubricationTables,
    lubrication_functions,
)
from stokesd.mobility import block_indices
from stokesd.tensors import (
    DELTA,
    LEVI_CIVITA,
    outer,
    project_rank4,
    rank3_antisymmetric,
    rank3_from_scalars,
    rank4_from_scalars,
    to_stresslet_basis,
)

__all__ = [
    "reduce_mobility",
    "lubrication_functions",
    "resistance_scales",
    "pair_lubrication",
    "apply_lubrication",
    "symmetrize_upper",
]


@partial(jit, static_argnames=["fts", "backend"])
def reduce_mobility(
    zmuf: ArrayLike, zmus: ArrayLike, zmes: ArrayLike, fts: bool, backend: Backend
) -> tuple[Array, Array, Array]:
    """Turn the grand mobility matrix into the far-field resistance matrices.

    The force/torque block is inverted. In the FTS formulation the stresslet degrees of freedom
    are then eliminated with a Schur complement:

        rsu = Mus^T R1
        rse = (Mes - rsu Mus)^-1
        rfe = -rsu^T rse
        rfu = R1 - rfe rsu

    Non-finite entries in the result mean that one of the inversions failed; detecting them is
    left to the caller.

    Returns
    -------
    rfu (6N,6N), rfe (6N,5N), rse (5N,5N)
        rfe and rse are zero when fts is False.

    """
    rfu = backend.inverse(zmuf)
    if not fts:
        return rfu, jnp.zeros_like(zmus), jnp.zeros_like(zmes)

    rsu = zmus.T @ rfu
    rse = backend.inverse(zmes - rsu @ zmus)
    rfe = -(rsu.T @ rse)
    rfu = rfu - rfe @ rsu
    return rfu, rfe, rse


def resistance_scales(radius: ArrayLike, eta: float) -> tuple[Array, Array, Array]:
    """Resistance dimensions 6 pi eta a^k for k = 1, 2, 3."""
    visc1 = 6.0 * jnp.pi * eta * radius
    visc2 = visc1 * radius
    visc3 = visc2 * radius
    return visc1, visc2, visc3


def pair_lubrication(
    e: ArrayLike,
    dist: ArrayLike,
    radius_i: ArrayLike,
    radius_j: ArrayLike,
    eta: float,
    tables: LubricationTables,
    fts: bool = True,
) -> tuple[Array, Array, Array]:
    """Lubrication corrections of one pair, in the layout (particle i, particle j).

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
    tables: (LubricationTables)
        Tabulated lubrication functions
    fts: (bool)
        Also compute the stresslet corrections

    Returns
    -------
    tabc (12,12), tght (12,10), tzm (10,10)
        Corrections to rfu, rfe and rse. Rows/columns are ordered (U_i, W_i, U_j, W_j) and
        (S_i, S_j). tght and tzm are zero when fts is False.

    """
    a12 = 0.5 * (radius_i + radius_j)
    f = lubrication_functions(dist / a12, tables)
    v11_1, v11_2, v11_3 = resistance_scales(radius_i, eta)
    v22_1, _, v22_3 = resistance_scales(radius_j, eta)
    v12_1, v12_2, v12_3 = resistance_scales(a12, eta)

    ee = outer(e, e)
    eps_e = jnp.einsum("ijk,k->ij", LEVI_CIVITA, e)

    a11 = (f.x11a - f.y11a) * ee + f.y11a * DELTA
    c11 = (f.x11c - f.y11c) * ee + f.y11c * DELTA
    a12_ = v12_1 * ((f.x12a - f.y12a) * ee + f.y12a * DELTA)
    c12 = v12_3 * ((f.x12c - f.y12c) * ee + f.y12c * DELTA)
    bt11 = -v11_2 * f.y11b * eps_e
    bt12 = v12_2 * f.y12b * eps_e

    # The (j, j) block reuses bt11 with the sign flipped, as for equal spheres
    t11 = jnp.block([[v11_1 * a11, bt11], [bt11.T, v11_3 * c11]])
    t22 = jnp.block([[v22_1 * a11, -bt11], [-bt11.T, v22_3 * c11]])
    t12 = jnp.block([[a12_, bt12], [bt12, c12]])
    tabc = jnp.block([[t11, t12], [t12.T, t22]])

    if not fts:
        return tabc, jnp.zeros((12, 10), dtype=tabc.dtype), jnp.zeros((10, 10), dtype=tabc.dtype)

    gt11 = v11_3 * to_stresslet_basis(rank3_from_scalars(e, f.x11g, f.y11g))
    gt21 = v12_3 * to_stresslet_basis(rank3_from_scalars(e, f.x12g, f.y12g))
    ht11 = v11_3 * to_stresslet_basis(rank3_antisymmetric(e, f.y11h))
    ht12 = v12_3 * to_stresslet_basis(rank3_antisymmetric(e, f.y12h))
    tght = jnp.block([[gt11, -gt21], [ht11, ht12], [gt21, -gt11], [ht12, ht11]])

    m = project_rank4(rank4_from_scalars(e, f.xm, f.ym, f.zm))
    m = symmetrize_upper(m)
    tzm = jnp.block([[v11_3 * m, v12_3 * m], [v12_3 * m, v22_3 * m]])

    return tabc, tght, tzm


def symmetrize_upper(matrix: ArrayLike) -> Array:
    """Mirror the upper triangle of a square matrix into its lower triangle."""
    return jnp.triu(matrix) + jnp.swapaxes(jnp.triu(matrix, 1), -1, -2)


@partial(jit, static_argnames=["flags", "backend"])
def apply_lubrication(
    rfu: ArrayLike,
    rfe: ArrayLike,
    rse: ArrayLike,
    unit: ArrayLike,
    dist: ArrayLike,
    pairs: ArrayLike,
    radii: ArrayLike,
    eta: float,
    flags: int,
    backend: Backend,
    tables: LubricationTables,
) -> tuple[Array, Array, Array]:
    """Add the lubrication corrections of all close pairs to the far-field resistance.

    Pairs with a non-dimensional distance r / a12 of 4 or more are skipped. Self (11 and 22)
    contributions are only added to the upper triangle of the diagonal blocks, the symmetric
    matrices are completed by mirroring afterwards. rfe has no symmetry and receives all four
    blocks of every pair.

    Parameters
    ----------
    rfu, rfe, rse: (float)
        Far-field resistance matrices (6N,6N), (6N,5N), (5N,5N)
    unit: (float)
        Array (n_pairs,3) of unit vectors from the first to the second particle of each pair
    dist: (float)
        Array (n_pairs,) of center-to-center distances
    pairs: (int)
        Array (2,n_pairs) of particle indices
    radii: (float)
        Array (num_particles,) of particle radii
    eta: (float)
        Fluid viscosity
    flags: (int)
        Combination of SolverFlags
    backend: (Backend)
        Execution backend
    tables: (LubricationTables)
        Tabulated lubrication functions

    Returns
    -------
    rfu, rfe, rse
        Corrected resistance matrices

    """
    fts = bool(flags & SolverFlags.FTS)
    indices_i = pairs[0, :]
    indices_j = pairs[1, :]
    radius_i = radii[indices_i]
    radius_j = radii[indices_j]
    close = dist / (0.5 * (radius_i + radius_j)) < LUBRICATION_CUTOFF

    tabc, tght, tzm = backend.map(
        partial(pair_lubrication, eta=eta, tables=tables, fts=fts), unit, dist, radius_i, radius_j
    )
    # jnp.where rather than a product: far pairs may evaluate to inf/nan
    tabc = jnp.where(close[:, None, None], tabc, 0.0)

    i6 = block_indices(indices_i, 6)
    j6 = block_indices(indices_j, 6)
    rfu = rfu.at[i6[:, :, None], i6[:, None, :]].add(jnp.triu(tabc[:, :6, :6]))
    rfu = rfu.at[j6[:, :, None], j6[:, None, :]].add(jnp.triu(tabc[:, 6:, 6:]))
    rfu = rfu.at[i6[:, :, None], j6[:, None, :]].add(tabc[:, :6, 6:])
    rfu = symmetrize_upper(rfu)

    if fts:
        tght = jnp.where(close[:, None, None], tght, 0.0)
        tzm = jnp.where(close[:, None, None], tzm, 0.0)
        i5 = block_indices(indices_i, 5)
        j5 = block_indices(indices_j, 5)
        rfe = rfe.at[i6[:, :, None], i5[:, None, :]].add(tght[:, :6, :5])
        rfe = rfe.at[j6[:, :, None], j5[:, None, :]].add(tght[:, 6:, 5:])
        rfe = rfe.at[i6[:, :, None], j5[:, None, :]].add(tght[:, :6, 5:])
        rfe = rfe.at[j6[:, :, None], i5[:, None, :]].add(tght[:, 6:, :5])

        rse = rse.at[i5[:, :, None], i5[:, None, :]].add(jnp.triu(tzm[:, :5, :5]))
        rse = rse.at[j5[:, :, None], j5[:, None, :]].add(jnp.triu(tzm[:, 5:, 5:]))
        rse = rse.at[i5[:, :, None], j5[:, None, :]].add(tzm[:, :5, 5:])
        rse = symmetrize_upper(rse)

    return rfu, rfe, rse
