"""Constant isotropic tensors and the linearization of symmetric traceless tensors.

The shear rate E and the stresslet S are symmetric and traceless, so they are stored as
5-component vectors:

    EV = (E_11 - E_33, 2 E_12, 2 E_13, 2 E_23, E_22 - E_33)
    SV = (S_11, S_12, S_13, S_23, S_22)

The weights below turn a rank-3 or rank-4 coupling tensor into the corresponding blocks of
the grand mobility/resistance matrices.
"""

import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


# Kronecker delta
DELTA = _frozen(np.eye(3))

# Levi-Civita symbol
LEVI_CIVITA = np.zeros((3, 3, 3))
for _i, _j, _k in ((0, 1, 2), (1, 2, 0), (2, 0, 1)):
    LEVI_CIVITA[_i, _j, _k] = 1.0
    LEVI_CIVITA[_i, _k, _j] = -1.0
LEVI_CIVITA = _frozen(LEVI_CIVITA)

# Index pairs (first row, second row) of the shear rate tensor entering each EV component.
# Diagonal pairs contribute E_aa - E_bb, off-diagonal pairs contribute 2 E_ab.
RATE_INDEX = _frozen(np.array([[0, 0, 0, 1, 1], [2, 1, 2, 2, 2]]))

# Index pairs of the stresslet tensor entering each SV component
STRESSLET_INDEX = _frozen(np.array([[0, 0, 0, 1, 1], [0, 1, 2, 2, 1]]))


def _rate_weights() -> np.ndarray:
    weights = np.zeros((5, 3, 3))
    for n in range(5):
        a, b = RATE_INDEX[:, n]
        if n in (0, 4):
            weights[n, a, a] = 1.0
            weights[n, b, b] = -1.0
        else:
            weights[n, a, b] = 2.0
    return _frozen(weights)


def _stresslet_weights() -> np.ndarray:
    weights = np.zeros((5, 3, 3))
    for n in range(5):
        a, b = STRESSLET_INDEX[:, n]
        weights[n, a, b] = 1.0
    return _frozen(weights)


RATE_WEIGHTS = _rate_weights()
STRESSLET_WEIGHTS = _stresslet_weights()


def outer(a: ArrayLike, b: ArrayLike) -> Array:
    """Outer product of two 3-vectors."""
    return jnp.einsum("i,j->ij", a, b)


def to_rate_basis(tensor: ArrayLike) -> Array:
    """Contract the last two indices of a rank-3 tensor t[k, i, j] with the EV linearization.

    Returns
    -------
    Array (3, 5)

    """
    return jnp.einsum("kij,nij->kn", tensor, RATE_WEIGHTS)


def to_stresslet_basis(tensor: ArrayLike) -> Array:
    """Pick the SV components out of the last two indices of a rank-3 tensor t[k, i, j].

    Returns
    -------
    Array (3, 5)

    """
    return jnp.einsum("kij,nij->kn", tensor, STRESSLET_WEIGHTS)


def project_rank4(tensor: ArrayLike) -> Array:
    """Linearize both index pairs of a rank-4 tensor m[i, j, k, l] with the EV weights.

    Returns
    -------
    Array (5, 5)

    """
    return jnp.einsum("nij,ijkl,pkl->np", RATE_WEIGHTS, tensor, RATE_WEIGHTS)


def rank3_from_scalars(e: ArrayLike, x: ArrayLike, y: ArrayLike) -> Array:
    """Rank-3 tensor g[k, i, j] built from the X and Y scalar functions of a pair.

        g_kij = x (e_i e_j - delta_ij / 3) e_k + y (e_i delta_jk + e_j delta_ik - 2 e_i e_j e_k)
    """
    ee = outer(e, e)
    return x * jnp.einsum("ij,k->kij", ee - DELTA / 3.0, e) + y * (
        jnp.einsum("i,jk->kij", e, DELTA)
        + jnp.einsum("j,ik->kij", e, DELTA)
        - 2.0 * jnp.einsum("ij,k->kij", ee, e)
    )


def rank3_antisymmetric(e: ArrayLike, y: ArrayLike) -> Array:
    """Rank-3 tensor h[k, i, j] coupling rotation to the rate of strain.

        h_kij = y (e_i e_l eps_jkl + e_j e_l eps_ikl)
    """
    ee = outer(e, e)
    return y * (
        jnp.einsum("il,jkl->kij", ee, LEVI_CIVITA) + jnp.einsum("jl,ikl->kij", ee, LEVI_CIVITA)
    )


def rank4_from_scalars(e: ArrayLike, x: ArrayLike, y: ArrayLike, z: ArrayLike) -> Array:
    """Rank-4 tensor m[i, j, k, l] built from the X, Y and Z scalar functions of a pair."""
    ee = outer(e, e)
    d = DELTA
    dev = ee - d / 3.0

    def prod(a, b, pattern):
        return jnp.einsum(pattern, a, b)

    x_part = 1.5 * x * prod(dev, dev, "ij,kl->ijkl")
    y_part = 0.5 * y * (
        prod(ee, d, "ik,jl->ijkl")
        + prod(ee, d, "jk,il->ijkl")
        + prod(ee, d, "il,jk->ijkl")
        + prod(ee, d, "jl,ik->ijkl")
        - 4.0 * prod(ee, ee, "ij,kl->ijkl")
    )
    z_part = 0.5 * z * (
        prod(d, d, "ik,jl->ijkl")
        + prod(d, d, "jk,il->ijkl")
        - prod(d, d, "ij,kl->ijkl")
        + prod(ee, d, "ij,kl->ijkl")
        + prod(ee, d, "kl,ij->ijkl")
        - prod(ee, d, "ik,jl->ijkl")
        - prod(ee, d, "jk,il->ijkl")
        - prod(ee, d, "il,jk->ijkl")
        - prod(ee, d, "jl,ik->ijkl")
        + prod(ee, ee, "ij,kl->ijkl")
    )
    return x_part + y_part + z_part
