import math
from functools import partial

import jax.numpy as jnp
import numpy as np
from jax import Array, jit
from jax.typing import ArrayLike
from loguru import logger


@partial(jit, static_argnums=[0])
def compute_distinct_pairs(num_particles: int) -> Array:
    """Generate the list of distinct pairs of particles, in lexicographic (i, j) order with i<j.

    Every pair stage uses this order, so that per-pair data align index for index.

    Parameters
    ----------
    num_particles: (int)
        Number of particles in the system.

    Returns
    -------
    pairs
        Array (2, num_particles*(num_particles-1)/2) of particle indices

    """
    return jnp.stack(jnp.triu_indices(num_particles, 1), axis=1).T


@jit
def pair_geometry(positions: ArrayLike, radii: ArrayLike, pairs: ArrayLike) -> tuple[Array, Array, Array]:
    """Compute unit separation vectors and center-to-center distances of all pairs.

    Overlapping pairs (distance <= sum of radii) get a NaN distance, which poisons any matrix
    element computed from it.

    Parameters
    ----------
    positions: (float)
        Array (num_particles,3) of particle positions
    radii: (float)
        Array (num_particles,) of particle radii
    pairs: (int)
        Array (2,n_pairs) of particle indices

    Returns
    -------
    unit, dist, overlap
        unit vectors (n_pairs,3) pointing from the first to the second particle, distances
        (n_pairs,) and the overlap mask (n_pairs,)

    """
    indices_i = pairs[0, :]
    indices_j = pairs[1, :]
    r = positions[indices_j, :] - positions[indices_i, :]
    dist = jnp.sqrt(jnp.sum(r * r, axis=1))
    unit = r / dist[:, None]
    overlap = dist <= radii[indices_i] + radii[indices_j]
    dist = jnp.where(overlap, jnp.nan, dist)
    return unit, dist, overlap


def find_overlaps(pairs: ArrayLike, overlap: ArrayLike) -> list[tuple[int, int]]:
    """Return the (i, j) indices of the pairs flagged as overlapping."""
    flagged = np.asarray(pairs)[:, np.asarray(overlap)]
    return [(int(i), int(j)) for i, j in flagged.T]


def as_particle_array(values: ArrayLike, num_particles: int, width: int, name: str) -> np.ndarray:
    """Reshape a flat (width*num_particles) or (num_particles, width) input and validate it.

    Raises
    ------
    ValueError
        If the size does not match or the input contains non-finite values.

    """
    array = np.asarray(values, dtype=float)
    if array.size != width * num_particles:
        raise ValueError(
            f"'{name}' must hold {width * num_particles} values ({width} per particle), got {array.size}."
        )
    array = array.reshape((num_particles, width))
    if not np.all(np.isfinite(array)):
        raise ValueError(f"'{name}' contains non-finite values.")
    return array


def simple_cubic_configuration(num_particles: int, spacing: float) -> np.ndarray:
    """Place particles on a simple cubic lattice centered on the origin.

    Parameters
    ----------
    num_particles: (int)
        Number of particles
    spacing: (float)
        Lattice constant (center-to-center distance of neighbors)

    Returns
    -------
    positions
        Array (num_particles,3)

    """
    side = math.ceil(round(num_particles ** (1.0 / 3.0), 12))
    grid = np.arange(side) * spacing
    lattice = np.stack(np.meshgrid(grid, grid, grid, indexing="ij"), axis=-1).reshape(-1, 3)
    positions = lattice[:num_particles]
    positions = positions - np.mean(positions, axis=0)
    logger.debug(f"Simple cubic configuration: {num_particles} particles, side {side}, spacing {spacing}")
    return positions
