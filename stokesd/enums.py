"""Enums for the solver stages"""

from enum import IntFlag


class SolverFlags(IntFlag):
    """Stages of the velocity computation.

    The flags can be combined with ``|`` to select which contributions enter the
    grand resistance matrix.
    """
    NONE = 0
    SELF_MOBILITY = 1 << 0   # Single-particle (Stokes law) mobility
    PAIR_MOBILITY = 1 << 1   # Far-field pair mobility
    LUBRICATION = 1 << 2     # Near-field lubrication corrections
    FTS = 1 << 3             # Force-torque-stresslet formulation
    DEFAULT = SELF_MOBILITY | PAIR_MOBILITY | FTS
    ALL = SELF_MOBILITY | PAIR_MOBILITY | LUBRICATION | FTS
