from pathlib import Path
from typing import NamedTuple, Optional

import numpy as np

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore  # noqa

from stokesd.enums import SolverFlags
from stokesd.utils import simple_cubic_configuration


class SdConfiguration:
    def __init__(self, general, initialization, physics, solver, seeds, output, start_configuration):
        self.general = general
        self.initialization = initialization
        self.physics = physics
        self.solver = solver
        self.seeds = seeds
        self.output = output
        self.start_configuration = start_configuration

    @classmethod
    def from_toml(cls, config_fp, start_configuration: Optional[Path] = None):
        with open(config_fp, "rb") as handle:
            config_data = tomllib.load(handle)
        if "general" not in config_data:
            raise ValueError(f"Configuration {config_fp} lacks the [general] section.")
        new_config = cls(
            General(**config_data.pop("general")),
            Initialization(**config_data.pop("initialization", {})),
            Physics(**config_data.pop("physics", {})),
            Solver(**config_data.pop("solver", {})),
            Seeds(**config_data.pop("seeds", {})),
            Output(**config_data.pop("output", {})),
            start_configuration,
        )
        if len(config_data) > 0:
            raise ValueError(f"Unknown configuration directive(s) detected: {list(config_data)}")
        return new_config

    @property
    def parameters(self):
        params = {}
        params.update(self.general.get_parameters())
        params.update(self.initialization.get_parameters(self.general.n_particles, self.start_configuration))
        n_particles = params["positions"].shape[0]
        params["num_particles"] = n_particles
        params.update(self.physics.get_parameters(n_particles))
        params.update(self.solver.get_parameters())
        params.update(self.seeds.get_parameters())
        params.update(self.output.get_parameters())
        return params


class General(NamedTuple):
    n_steps: int
    n_particles: Optional[int] = None
    dt: float = 0.01

    def get_parameters(self):
        if self.n_steps < 0:
            raise ValueError(f"n_steps must not be negative, got {self.n_steps}")
        if self.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        return {
            "num_steps": self.n_steps,
            "num_particles": self.n_particles,
            "time_step": self.dt,
        }


class Initialization(NamedTuple):
    position_source_type: str = "simple_cubic"
    spacing: float = 4.0
    radius: float = 1.0

    def get_parameters(self, n_particles, numpy_file=None):
        if self.position_source_type == "simple_cubic":
            if n_particles is None:
                raise ValueError(
                    "Please supply a number of particles or initial positions file"
                    " and set source_type to 'file'."
                )
            if numpy_file is not None:
                raise ValueError(
                    "Starting configuration was supplied while 'simple_cubic' "
                    "source_type was selected. Leave the starting configuration empty "
                    "or switch to 'file' source type."
                )
            positions = simple_cubic_configuration(n_particles, self.spacing)
        elif self.position_source_type == "file":
            if numpy_file is None:
                raise ValueError("Please supply the numpy file if using the source_type 'file'.")
            positions = np.load(numpy_file).reshape((-1, 3))
            if n_particles is not None and n_particles != positions.shape[0]:
                raise ValueError(
                    f"The initial position file holds {positions.shape[0]} particles,"
                    f" while n_particles is {n_particles}."
                )
        else:
            raise ValueError(f"Unknown source_type {self.position_source_type}")
        if self.radius <= 0.0:
            raise ValueError(f"radius must be positive, got {self.radius}")
        return {
            "positions": positions,
            "radii": np.full(positions.shape[0], float(self.radius)),
        }


class Vector(NamedTuple):
    x: float
    y: float
    z: float


class Physics(NamedTuple):
    viscosity: float = 1.0
    kT: float = 0.0
    constant_force: Vector = (0.0, 0.0, 0.0)
    constant_torque: Vector = (0.0, 0.0, 0.0)

    def get_parameters(self, n_particles):
        constant_forces = np.zeros((n_particles, 3))
        constant_forces[:, :] = self.constant_force
        constant_torques = np.zeros((n_particles, 3))
        constant_torques[:, :] = self.constant_torque
        return {
            "viscosity": self.viscosity,
            "temperature": self.kT,
            "constant_applied_forces": constant_forces,
            "constant_applied_torques": constant_torques,
        }


class Solver(NamedTuple):
    self_mobility: bool = True
    pair_mobility: bool = True
    lubrication: bool = False
    fts: bool = True
    platform: str = ""
    parallel: bool = True
    lubrication_table: str = ""

    @property
    def flags(self) -> SolverFlags:
        flags = SolverFlags.NONE
        for name in ("self_mobility", "pair_mobility", "lubrication", "fts"):
            if getattr(self, name):
                flags |= SolverFlags[name.upper()]
        return flags

    def get_parameters(self):
        return {
            "flags": self.flags,
            "platform": self.platform or None,
            "parallel": self.parallel,
            "lubrication_table": Path(self.lubrication_table) if self.lubrication_table else None,
        }


class Seeds(NamedTuple):
    seed: int = 9237412
    offset: int = 0

    def get_parameters(self):
        return dict(zip(self._fields, self))


class Output(NamedTuple):
    writing_period: int = 10
    store_velocity: bool = False

    def get_parameters(self):
        if self.writing_period < 1:
            raise ValueError(f"writing_period must be at least 1, got {self.writing_period}")
        return dict(zip(self._fields, self))
