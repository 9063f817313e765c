"""Near-field lubrication functions of two spheres: asymptotic forms and interpolation tables.

All functions depend on the non-dimensional center-to-center distance s = r / a (a being the
mean radius of the pair). Below s = 2.1 the closed-form expansions in the gap xi = s - 2 are
used. Between 2.1 and the cutoff s = 4 the functions are linearly interpolated on two fixed
grids, a coarse one for the A, B and C functions and a finer one near contact for the G, H and
M functions. The grids and their index rules are fixed, tabulated values can be loaded from a
file with the same layout.
"""

from pathlib import Path
from typing import NamedTuple, Union

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike
from loguru import logger
from scipy.interpolate import CubicHermiteSpline

LUBRICATION_CUTOFF = 4.0  # Pairs further apart than this (in units of a) get no correction
NEAR_CONTACT = 2.1  # Asymptotic forms are used up to this distance

ABC_NAMES = ("x11a", "x12a", "y11a", "y12a", "y11b", "y12b", "x11c", "x12c", "y11c", "y12c")
GHM_NAMES = ("x11g", "x12g", "y11g", "y12g", "y11h", "y12h", "xm", "ym", "zm")

# Grid of the A, B and C functions: 2.10, 2.15, ..., 4.00
RS_ABC = np.round(2.1 + 0.05 * np.arange(39), 10)
# Grid of the G, H and M functions: 2.10, 2.11, ..., 2.19, then 2.20, 2.25, ..., 4.00
RS_GHM = np.round(np.concatenate([2.1 + 0.01 * np.arange(10), 2.2 + 0.05 * np.arange(37)]), 10)
RS_ABC.flags.writeable = False
RS_GHM.flags.writeable = False


class LubricationFunctions(NamedTuple):
    """Scalar resistance functions of a pair (11: self, 12: pair coupling)."""
    x11a: ArrayLike
    x12a: ArrayLike
    y11a: ArrayLike
    y12a: ArrayLike
    y11b: ArrayLike
    y12b: ArrayLike
    x11c: ArrayLike
    x12c: ArrayLike
    y11c: ArrayLike
    y12c: ArrayLike
    x11g: ArrayLike
    x12g: ArrayLike
    y11g: ArrayLike
    y12g: ArrayLike
    y11h: ArrayLike
    y12h: ArrayLike
    xm: ArrayLike
    ym: ArrayLike
    zm: ArrayLike


class LubricationTables(NamedTuple):
    """Tabulated lubrication functions.

    abc holds the A, B, C functions (ordered as ABC_NAMES) sampled on rs_abc, ghm the G, H, M
    functions (ordered as GHM_NAMES) sampled on rs_ghm.
    """
    rs_abc: ArrayLike
    rs_ghm: ArrayLike
    abc: ArrayLike
    ghm: ArrayLike


def near_contact_functions(xi: ArrayLike) -> LubricationFunctions:
    """Asymptotic lubrication functions for a small gap xi = s - 2.

    Leading singular terms in 1/xi, log(1/xi) and xi log(1/xi), plus fitted constant and linear
    terms. These are corrections on top of the far-field resistance, not the full two-sphere
    resistance functions.
    """
    xi1 = 1.0 / xi
    dlx = jnp.log(xi1)

    xdlx = xi * dlx
    dlx1 = dlx + xdlx

    csa1 = dlx / 6.0
    csa2 = xdlx / 6.0
    csa3 = dlx1 / 6.0
    csa4 = 0.25 * xi1 + 0.225 * dlx
    csa5 = dlx / 15.0

    # a, btilde and c terms for rfu
    x11a = csa4 - 1.23041 + 3.0 / 112.0 * xdlx + 1.8918 * xi
    x12a = -x11a + 0.00312 - 0.0011 * xi
    y11a = csa1 - 0.39394 + 0.95665 * xi
    y12a = -y11a + 0.00463606 - 0.007049 * xi

    y11b = -csa1 + 0.408286 - xdlx / 12.0 - 0.84055 * xi
    y12b = -y11b + 0.00230818 - 0.007508 * xi

    x11c = 0.0479 - csa2 + 0.12494 * xi
    x12c = -0.031031 + csa2 - 0.174476 * xi
    y11c = 4.0 * csa5 - 0.605434 + 94.0 / 375.0 * xdlx + 0.939139 * xi
    y12c = csa5 - 0.212032 + 31.0 / 375.0 * xdlx + 0.452843 * xi

    # g and h terms for rfe
    csg1 = csa4 + 39.0 / 280.0 * xdlx
    csg2 = dlx / 12.0 + xdlx / 24.0

    x11g = csg1 - 1.16897 + 1.47882 * xi
    x12g = -csg1 + 1.178967 - 1.480493 * xi
    y11g = csg2 - 0.2041 + 0.442226 * xi
    y12g = -csg2 + 0.216365 - 0.469830 * xi

    y11h = 0.5 * csa5 - 0.143777 + 137.0 / 1500.0 * xdlx + 0.264207 * xi
    y12h = 2.0 * csa5 - 0.298166 + 113.0 / 1500.0 * xdlx + 0.534123 * xi

    # m terms for rse
    xm = 1.0 / 3.0 * xi1 + 0.3 * dlx - 1.48163 + 0.335714 * xdlx + 1.413604 * xi
    ym = csa3 - 0.423489 + 0.827286 * xi
    zm = 0.0129151 - 0.042284 * xi

    return LubricationFunctions(
        x11a, x12a, y11a, y12a, y11b, y12b, x11c, x12c, y11c, y12c,
        x11g, x12g, y11g, y12g, y11h, y12h, xm, ym, zm,
    )


def build_bridge_tables() -> LubricationTables:
    """Tabulate the lubrication functions on the fixed grids without reference data.

    Each function is continued from the asymptotic form at s = 2.1 (matching value and slope)
    to zero value and slope at the cutoff with a cubic Hermite polynomial.
    """
    def stacked(s):
        return jnp.stack(near_contact_functions(s - 2.0))

    s0 = jnp.asarray(NEAR_CONTACT, dtype=jnp.float64)
    values = np.asarray(stacked(s0))
    slopes = np.asarray(jax.jacfwd(stacked)(s0))

    spline = CubicHermiteSpline(
        [NEAR_CONTACT, LUBRICATION_CUTOFF],
        np.stack([values, np.zeros_like(values)]),
        np.stack([slopes, np.zeros_like(slopes)]),
        axis=0,
    )
    n_abc = len(ABC_NAMES)
    abc = spline(RS_ABC).T[:n_abc]
    ghm = spline(RS_GHM).T[n_abc:]
    return _freeze(LubricationTables(RS_ABC, RS_GHM, abc, ghm))


def load_tables(path: Union[str, Path]) -> LubricationTables:
    """Load tabulated lubrication functions from a .npz file.

    The file must contain the grids 'rs_abc' and 'rs_ghm', identical to RS_ABC and RS_GHM, and
    one array per function named as in ABC_NAMES and GHM_NAMES.

    Raises
    ------
    ValueError
        If a function is missing or a grid does not match the fixed breakpoints.

    """
    with np.load(path) as data:
        missing = [name for name in ("rs_abc", "rs_ghm") + ABC_NAMES + GHM_NAMES if name not in data]
        if missing:
            raise ValueError(f"Lubrication table {path} lacks entries: {missing}")
        for key, grid in (("rs_abc", RS_ABC), ("rs_ghm", RS_GHM)):
            if data[key].shape != grid.shape or not np.allclose(data[key], grid, rtol=0.0, atol=1e-9):
                raise ValueError(f"Grid '{key}' in {path} does not match the fixed lubrication breakpoints.")
        abc = np.stack([np.asarray(data[name], dtype=float) for name in ABC_NAMES])
        ghm = np.stack([np.asarray(data[name], dtype=float) for name in GHM_NAMES])
    if abc.shape[1] != RS_ABC.size or ghm.shape[1] != RS_GHM.size:
        raise ValueError(f"Function samples in {path} do not match the grid sizes.")
    logger.info(f"Lubrication tables loaded from {path}")
    return _freeze(LubricationTables(RS_ABC, RS_GHM, abc, ghm))


def _freeze(tables: LubricationTables) -> LubricationTables:
    for array in tables:
        array.flags.writeable = False
    return tables


def interpolate_tables(s: ArrayLike, tables: LubricationTables) -> tuple[Array, Array]:
    """Linearly interpolate the tabulated functions at distances 2.1 < s < 4.

    The interval is chosen by the fixed index rules of the tables, not by a search, so that the
    breakpoints of the reference tables are reproduced exactly. Distances outside the tabulated
    range are clamped to the first or last interval.

    Returns
    -------
    abc (10, ...), ghm (9, ...)

    """
    rs_abc = jnp.asarray(tables.rs_abc)
    rs_ghm = jnp.asarray(tables.rs_ghm)
    abc = jnp.asarray(tables.abc)
    ghm = jnp.asarray(tables.ghm)

    ida = jnp.floor(20.0 * (s - 2.0)).astype(int)
    ib = jnp.clip(ida - 2, 0, rs_abc.shape[0] - 2)
    ia = ib + 1
    c1 = (s - rs_abc[ib]) / (rs_abc[ia] - rs_abc[ib])
    abc_values = (abc[:, ia] - abc[:, ib]) * c1 + abc[:, ib]

    ib = jnp.where(s < 2.2, jnp.floor(100.0 * (s - 2.0)).astype(int) - 10, ida + 6)
    ib = jnp.clip(ib, 0, rs_ghm.shape[0] - 2)
    ia = ib + 1
    cgh = (s - rs_ghm[ib]) / (rs_ghm[ia] - rs_ghm[ib])
    ghm_values = (ghm[:, ia] - ghm[:, ib]) * cgh + ghm[:, ib]

    return abc_values, ghm_values


def lubrication_functions(s: ArrayLike, tables: LubricationTables) -> LubricationFunctions:
    """Evaluate all lubrication functions at non-dimensional distance(s) s > 2."""
    near = near_contact_functions(s - 2.0)
    abc_values, ghm_values = interpolate_tables(s, tables)
    far = tuple(abc_values) + tuple(ghm_values)
    return LubricationFunctions(*(jnp.where(s <= NEAR_CONTACT, n, f) for n, f in zip(near, far)))


DEFAULT_TABLES = build_bridge_tables()
