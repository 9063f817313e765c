import numpy as np
import pytest

from stokesd import SolverFlags
from stokesd.__main__ import DEFAULT_CONFIG_FP
from stokesd.config import SdConfiguration, Solver

CONFIG = """
[general]
n_steps = 4
n_particles = 2
dt = 0.1

[initialization]
position_source_type = "simple_cubic"
spacing = 3.0
radius = 0.5

[physics]
viscosity = 2.0
kT = 0.01
constant_force = [0.0, 0.0, -1.0]

[solver]
lubrication = true
fts = false
platform = "cpu"

[seeds]
seed = 12
offset = 100

[output]
writing_period = 2
store_velocity = true
"""


def write_config(tmp_path, text=CONFIG):
    path = tmp_path / "config.toml"
    path.write_text(text)
    return path


class TestConfiguration:

    def test_default_configuration(self):
        params = SdConfiguration.from_toml(DEFAULT_CONFIG_FP).parameters
        assert params["positions"].shape == (8, 3)
        assert params["num_particles"] == 8
        assert params["flags"] == SolverFlags.ALL
        assert params["lubrication_table"] is None

    def test_parameters(self, tmp_path):
        params = SdConfiguration.from_toml(write_config(tmp_path)).parameters
        assert params["num_steps"] == 4
        assert params["time_step"] == 0.1
        assert params["num_particles"] == 2
        np.testing.assert_allclose(params["radii"], [0.5, 0.5])
        np.testing.assert_allclose(np.linalg.norm(params["positions"][1] - params["positions"][0]), 3.0)
        assert params["viscosity"] == 2.0
        assert params["temperature"] == 0.01
        np.testing.assert_allclose(params["constant_applied_forces"], [[0.0, 0.0, -1.0]] * 2)
        np.testing.assert_allclose(params["constant_applied_torques"], np.zeros((2, 3)))
        assert params["flags"] == SolverFlags.SELF_MOBILITY | SolverFlags.PAIR_MOBILITY | SolverFlags.LUBRICATION
        assert params["platform"] == "cpu"
        assert params["seed"] == 12
        assert params["offset"] == 100
        assert params["writing_period"] == 2
        assert params["store_velocity"] is True

    def test_positions_from_file(self, tmp_path):
        start = tmp_path / "start.npy"
        np.save(start, np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 4.0], [4.0, 0.0, 0.0]]))
        text = CONFIG.replace('"simple_cubic"', '"file"').replace("n_particles = 2\n", "")
        params = SdConfiguration.from_toml(write_config(tmp_path, text), start).parameters
        assert params["num_particles"] == 3
        assert params["positions"].shape == (3, 3)
        assert params["constant_applied_forces"].shape == (3, 3)

    def test_file_source_needs_a_file(self, tmp_path):
        text = CONFIG.replace('"simple_cubic"', '"file"')
        with pytest.raises(ValueError, match="numpy file"):
            SdConfiguration.from_toml(write_config(tmp_path, text)).parameters

    def test_unknown_section(self, tmp_path):
        with pytest.raises(ValueError, match="box"):
            SdConfiguration.from_toml(write_config(tmp_path, CONFIG + "\n[box]\nlx = 3\n"))

    def test_unknown_key(self, tmp_path):
        with pytest.raises(TypeError):
            SdConfiguration.from_toml(write_config(tmp_path, CONFIG.replace("dt = 0.1", "dt = 0.1\nshear = 1.0")))

    def test_unknown_source_type(self, tmp_path):
        text = CONFIG.replace('"simple_cubic"', '"random"')
        with pytest.raises(ValueError, match="source_type"):
            SdConfiguration.from_toml(write_config(tmp_path, text)).parameters

    def test_solver_flags(self):
        assert Solver().flags == SolverFlags.DEFAULT
        assert Solver(lubrication=True).flags == SolverFlags.ALL
        assert Solver(self_mobility=True, pair_mobility=False, fts=False).flags == SolverFlags.SELF_MOBILITY
