"""Execution backend: device placement, per-index maps and dense linear algebra."""

from typing import Callable, NamedTuple, Optional

import jax
import jax.numpy as jnp
import jax.scipy as jscipy
from jax import Array, jit, lax
from jax.typing import ArrayLike
from loguru import logger


@jit
def inverse(matrix: ArrayLike) -> Array:
    """Invert a dense matrix.

    Singular input is not detected here, it shows up as non-finite entries in the result.
    """
    return jnp.linalg.inv(matrix)


@jit
def inverse_and_cholesky(matrix: ArrayLike) -> tuple[Array, Array]:
    """Compute the inverse and the lower Cholesky factor of a symmetric matrix.

    Both are obtained from the same factorization, matrix = L L^T.

    Parameters
    ----------
    matrix: (float)
        Symmetric positive definite array (n, n)

    Returns
    -------
    inverse, factor

    """
    factor = jnp.linalg.cholesky(matrix)
    identity = jnp.eye(matrix.shape[0], dtype=matrix.dtype)
    return jscipy.linalg.cho_solve((factor, True), identity), factor


@jit
def scaled_condition_number(matrix: ArrayLike) -> Array:
    """2-norm condition number of a matrix rescaled to a unit diagonal.

    The symmetric diagonal scaling removes the spread between the translational, rotational and
    stresslet entries, which depends on the particle radii only. A zero on the diagonal gives NaN.
    """
    scale = 1.0 / jnp.sqrt(jnp.abs(jnp.diagonal(matrix)))
    return jnp.linalg.cond(matrix * scale[:, None] * scale[None, :])


class Backend(NamedTuple):
    """Linear algebra and parallel-map capability the solver stages run on.

    The same kernels run on a CPU or an accelerator device, in any floating precision, and with
    the per-particle / per-pair bodies mapped either in parallel (vmap) or one index after the
    other (lax.map). Results do not depend on this choice.
    """
    device: jax.Device
    dtype: type = jnp.float64
    parallel: bool = True

    @classmethod
    def create(cls, platform: Optional[str] = None, dtype: type = jnp.float64, parallel: bool = True):
        """Pick the first device of the requested platform ("cpu", "gpu", ...), or the default one."""
        try:
            device = jax.devices(platform)[0] if platform else jax.devices()[0]
        except RuntimeError as e:
            raise ValueError(f"Unknown or unavailable platform '{platform}': {e}") from e
        logger.debug(f"Using device {device} ({jnp.dtype(dtype).name}, parallel={parallel})")
        return cls(device, dtype, parallel)

    def put(self, array: ArrayLike) -> Array:
        """Cast to the backend precision and place on the backend device."""
        return jax.device_put(jnp.asarray(array, dtype=self.dtype), self.device)

    def map(self, fn: Callable, *args: ArrayLike):
        """Apply fn to every index of the leading axis of args."""
        if self.parallel:
            return jax.vmap(fn)(*args)
        return lax.map(lambda xs: fn(*xs), args)

    def inverse(self, matrix: ArrayLike) -> Array:
        return inverse(matrix)

    def inverse_and_cholesky(self, matrix: ArrayLike) -> tuple[Array, Array]:
        return inverse_and_cholesky(matrix)

    def condition_number(self, matrix: ArrayLike) -> Array:
        return scaled_condition_number(matrix)
