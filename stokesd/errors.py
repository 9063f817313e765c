"""Errors raised by the velocity computation."""

import numpy as np


class OverlapError(ValueError):
    """Two or more particles overlap, so the hydrodynamic matrices are undefined.

    Attributes
    ----------
    pairs: (list)
        (i, j) index pairs of the overlapping particles
    """

    def __init__(self, pairs):
        self.pairs = [tuple(int(k) for k in pair) for pair in pairs]
        shown = ", ".join(f"({i}, {j})" for i, j in self.pairs[:10])
        more = "" if len(self.pairs) <= 10 else f" and {len(self.pairs) - 10} more"
        super().__init__(f"{len(self.pairs)} overlapping particle pair(s): {shown}{more}")


class SingularMatrixError(np.linalg.LinAlgError):
    """A matrix inversion or factorization of the current configuration failed."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Singular or non positive-definite matrix in stage '{stage}'. Abort!")
