"""
I/O utilities: logging setup and simulation output.
"""

import re
import sys
from pathlib import Path
from typing import Optional, Union

import numpy as np
from jax.typing import ArrayLike
from loguru import logger


# =============================================================================
# Logging Setup and Utilities
# =============================================================================

def _numbered_backups(path: Path) -> list[tuple[int, Path]]:
    """Backups name_<k>.ext of path, sorted by k."""
    pattern = re.compile(rf"{re.escape(path.stem)}_([0-9]+){re.escape(path.suffix)}")
    backups = []
    for candidate in path.parent.glob(f"{path.stem}_*{path.suffix}"):
        match = pattern.fullmatch(candidate.name)
        if match:
            backups.append((int(match.group(1)), candidate))
    return sorted(backups)


def get_next_log_file(base_path: str, max_backups: Optional[int] = 10) -> str:
    """Return base_path, moving an existing file of that name to the next numbered backup.

    Only the max_backups most recent backups are kept, all of them if max_backups is None.
    """
    path = Path(base_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        return base_path

    numbers = [k for k, _ in _numbered_backups(path)]
    backup = path.with_name(f"{path.stem}_{max(numbers, default=0) + 1}{path.suffix}")
    try:
        path.rename(backup)
    except OSError as e:
        logger.error(f"Failed to rotate log file: {e}")

    if max_backups is not None:
        backups = _numbered_backups(path)
        stale = backups[:-max_backups] if max_backups > 0 else backups
        for _, old_file in stale:
            try:
                old_file.unlink()
            except OSError as e:
                logger.error(f"Failed to remove old log backup {old_file}: {e}")
    return base_path


def setup_logging(output_dir: Optional[Union[str, Path]] = None,
                  debug_enabled: bool = False,
                  max_backups: int = 10):
    """Set up console handlers and (rotated) log files in output_dir, or ./logs."""
    log_dir = Path(output_dir) if output_dir else Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = str(log_dir / "stokesd.log")
    debug_file = str(log_dir / "debug.log")

    # Rotation problems are reported through the handlers that are still installed
    try:
        log_file = get_next_log_file(log_file, max_backups)
        if debug_enabled:
            debug_file = get_next_log_file(debug_file, max_backups)
    except OSError as e:
        logger.error(f"Failed to set up log rotation: {e}")
        return

    logger.remove()
    _setup_console_handlers()
    _setup_file_handlers(log_file, debug_file, debug_enabled)
    logger.info("Logging system initialized")


def _setup_console_handlers():
    # Clean format for info messages
    logger.add(
        sys.stdout,
        format="{message}",
        level="INFO",
        filter=lambda record: record["level"].name in ["INFO", "SUCCESS"]
    )

    # Detailed format for warnings and errors
    logger.add(
        sys.stderr,
        format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:{line} | {message}",
        level="WARNING",
        filter=lambda record: record["level"].name in ["WARNING", "ERROR", "CRITICAL"]
    )


def _setup_file_handlers(log_file: str, debug_file: str, debug_enabled: bool):
    file_format = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"

    logger.add(log_file, format=file_format, level="INFO", enqueue=True, catch=True)

    if debug_enabled:
        logger.add(debug_file, format=file_format, level="DEBUG", enqueue=True, catch=True)
        logger.debug("Debug logging enabled")


# =============================================================================
# Simulation output
# =============================================================================

def save_array(output: Union[str, Path], name: str, array: ArrayLike) -> Path:
    """Write an array to output/name.npy, creating the directory if needed."""
    output = Path(output)
    output.mkdir(parents=True, exist_ok=True)
    path = output / f"{name}.npy"
    np.save(path, np.asarray(array))
    logger.debug(f"Saved {name} {np.shape(array)} to {path}")
    return path


def write_xyz_trajectory(filename: Union[str, Path], trajectory: ArrayLike, radii: Optional[ArrayLike] = None):
    """Write a trajectory (n_frames, num_particles, 3) as an extended XYZ file.

    If radii are given they are written as a fifth column, which most viewers use as the
    particle size.
    """
    trajectory = np.asarray(trajectory)
    num_frames, num_particles, _ = trajectory.shape
    with open(filename, "w") as handle:
        for frame in range(num_frames):
            handle.write(f"{num_particles}\n")
            handle.write(f"Frame: {frame}\n")
            for i in range(num_particles):
                x, y, z = trajectory[frame, i]
                line = f"P {x} {y} {z}"
                if radii is not None:
                    line += f" {radii[i]}"
                handle.write(line + "\n")
    logger.debug(f"Wrote {num_frames} frames to {filename}")
