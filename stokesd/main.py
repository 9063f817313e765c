import math
from pathlib import Path
from typing import Optional

import numpy as np
from jax.typing import ArrayLike
from loguru import logger
from tqdm import tqdm

from stokesd.backend import Backend
from stokesd.enums import SolverFlags
from stokesd.io_utils import save_array, write_xyz_trajectory
from stokesd.lubrication_tables import DEFAULT_TABLES, load_tables
from stokesd.solver import StokesianDynamicsSolver


def main(
    num_steps: int,
    writing_period: int,
    time_step: float,
    num_particles: int,
    positions: ArrayLike,
    radii: ArrayLike,
    viscosity: float,
    temperature: float,
    constant_applied_forces: ArrayLike,
    constant_applied_torques: ArrayLike,
    flags: int = SolverFlags.DEFAULT,
    seed: int = 0,
    offset: int = 0,
    store_velocity: bool = False,
    output: Optional[str] = None,
    platform: Optional[str] = None,
    parallel: bool = True,
    lubrication_table: Optional[Path] = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Integrate the particles' equations of motion forward in time with explicit Euler steps.

    Every step the velocities are recomputed for the current configuration and the positions
    are advanced by time_step * U. The random stream counter is offset + step, so that each step
    draws fresh Brownian forces while a run stays reproducible for a given seed.

    Parameters
    ----------
    num_steps: (int)
        Number of time steps
    writing_period: (int)
        Period (in steps) of storing the configuration
    time_step: (float)
        Time step
    num_particles: (int)
        Number of particles
    positions: (float)
        Array (num_particles,3) of initial positions
    radii: (float)
        Array (num_particles,) of particle radii
    viscosity: (float)
        Fluid viscosity
    temperature: (float)
        Thermal energy kT, no Brownian motion if zero
    constant_applied_forces: (float)
        Array (num_particles,3) of external forces
    constant_applied_torques: (float)
        Array (num_particles,3) of external torques
    flags: (int)
        Combination of SolverFlags
    seed: (int)
        Seed of the random stream
    offset: (int)
        Initial counter of the random stream
    store_velocity: (bool)
        Also store the velocities
    output: (str)
        Directory to write trajectory.npy (and velocities.npy) to, nothing is written if None
    platform: (str)
        Device platform ("cpu", "gpu", ...), the default one if None
    parallel: (bool)
        Map over particles and pairs in parallel (vmap) or sequentially
    lubrication_table: (Path)
        .npz file with tabulated lubrication functions, the built-in tables if None

    Returns
    -------
    trajectory, velocities
        Arrays (num_steps//writing_period, num_particles, 3) and (..., 6); velocities are zero
        unless store_velocity is set

    """
    if temperature < 0.0:
        raise ValueError(f"temperature must not be negative, got {temperature}")
    backend = Backend.create(platform, parallel=parallel)
    tables = load_tables(lubrication_table) if lubrication_table is not None else DEFAULT_TABLES
    solver = StokesianDynamicsSolver(viscosity, num_particles, backend=backend, tables=tables)

    positions = np.array(positions, dtype=float).reshape((num_particles, 3))
    radii = np.asarray(radii, dtype=float)
    forces = np.concatenate(
        [np.asarray(constant_applied_forces, dtype=float), np.asarray(constant_applied_torques, dtype=float)], axis=1
    )
    sqrt_kt_dt = math.sqrt(temperature / time_step)

    if output is not None:
        output = Path(output)
        output.mkdir(exist_ok=True, parents=True)

    n_frames = num_steps // writing_period
    trajectory = np.zeros((n_frames, num_particles, 3), float)
    velocities = np.zeros((n_frames, num_particles, 6), float)

    logger.info(
        f"Running {num_steps} steps of {num_particles} particles, dt = {time_step}, kT = {temperature},"
        f" flags = {SolverFlags(int(flags))!r}"
    )
    for step in tqdm(range(num_steps), mininterval=0.5):
        velocity = solver.calc_vel(positions, radii, forces, sqrt_kt_dt, offset + step, seed, flags)
        velocity = velocity.reshape((num_particles, 6))
        positions = positions + time_step * velocity[:, :3]

        if (step % writing_period) == 0 and step // writing_period < n_frames:
            if not np.all(np.isfinite(positions)):
                logger.error(f"Invalid particle positions at step {step}")
                raise ValueError("Invalid particles positions. Abort!")
            frame = step // writing_period
            trajectory[frame] = positions
            if output is not None:
                save_array(output, "trajectory", trajectory)
            if store_velocity:
                velocities[frame] = velocity
                if output is not None:
                    save_array(output, "velocities", velocities)

    if output is not None and n_frames > 0:
        write_xyz_trajectory(output / "trajectory.xyz", trajectory, radii)
    logger.info("Simulation finished")
    return trajectory, velocities
