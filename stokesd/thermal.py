"""Brownian forces consistent with the fluctuation-dissipation theorem.

The random force has zero mean and covariance 2 kT/dt R_FU, R_FU being the final resistance
matrix. It is obtained as L psi, with L the lower Cholesky factor of R_FU and psi a vector of
independent, uniformly distributed numbers of variance 2 kT/dt.
"""

from functools import partial

import jax
import jax.numpy as jnp
from jax import Array, jit, random
from jax.typing import ArrayLike


@partial(jit, static_argnames=["size", "dtype"])
def generate_uniform_array(seed: int, offset: int, size: int, dtype: type = jnp.float64) -> Array:
    """Draw size uniform numbers in [0, 1), keyed by (seed, offset, index).

    The generator is counter based: the key of seed is folded with the high and low 32 bit words
    of offset and then with the index of every entry. Equal (seed, offset) pairs always yield the
    same numbers and entry k does not depend on size, there is no key to carry between calls.

    Parameters
    ----------
    seed: (int)
        Seed of the random stream, 0 <= seed < 2**63
    offset: (int)
        Counter selecting a block of the stream (e.g. the time step), 0 <= offset < 2**63
    size: (int)
        Number of values to draw
    dtype: (type)
        Floating point type of the result

    Returns
    -------
    uniform
        Array (size,)

    """
    key = random.PRNGKey(seed)
    key = random.fold_in(key, jnp.right_shift(offset, 32))
    key = random.fold_in(key, jnp.bitwise_and(offset, 0xFFFFFFFF))
    keys = jax.vmap(partial(random.fold_in, key))(jnp.arange(size))
    return jax.vmap(lambda k: random.uniform(k, dtype=dtype))(keys)


def thermal_noise(seed: int, offset: int, size: int, sqrt_kt_dt: float, dtype: type = jnp.float64) -> Array:
    """Zero-mean noise with variance 2 kT/dt per entry.

    sqrt(12) (u - 1/2) has zero mean and unit variance for u uniform in [0, 1). A non-positive
    amplitude returns zeros without drawing any number.
    """
    if sqrt_kt_dt <= 0.0:
        return jnp.zeros(size, dtype=dtype)
    uniform = generate_uniform_array(seed, offset, size, dtype)
    return jnp.sqrt(2.0) * sqrt_kt_dt * jnp.sqrt(12.0) * (uniform - 0.5)


def compute_random_force(rfu_sqrt: ArrayLike, sqrt_kt_dt: float, offset: int, seed: int) -> Array:
    """Compute the Brownian force and torque on all particles.

    Parameters
    ----------
    rfu_sqrt: (float)
        Array (6N,6N), lower Cholesky factor of the resistance matrix
    sqrt_kt_dt: (float)
        Thermal amplitude sqrt(kT/dt), the random force is zero if not positive
    offset: (int)
        Counter of the random stream
    seed: (int)
        Seed of the random stream

    Returns
    -------
    frnd
        Array (6N,)

    """
    psi = thermal_noise(seed, offset, rfu_sqrt.shape[0], sqrt_kt_dt, rfu_sqrt.dtype)
    return rfu_sqrt @ psi
