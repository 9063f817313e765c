"""Stokesian Dynamics velocities for spherical particles in a viscous fluid."""

import jax

# The matrix inversions and the lubrication singularities need double precision
jax.config.update("jax_enable_x64", True)

from stokesd.enums import SolverFlags  # noqa: E402
from stokesd.errors import OverlapError, SingularMatrixError  # noqa: E402
from stokesd.solver import StokesianDynamicsSolver, compute_velocities  # noqa: E402

__all__ = [
    "OverlapError",
    "SingularMatrixError",
    "SolverFlags",
    "StokesianDynamicsSolver",
    "compute_velocities",
]
