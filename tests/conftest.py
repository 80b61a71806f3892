"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from incflow.config import SimulationConfig
from incflow.core.clock import SimulationClock
from incflow.core.level_state import LevelStateArena
from incflow.fluid.boundary import BoundaryFiller

CHANNEL_BOUNDARY = {
    "xlo": {"type": "periodic"}, "xhi": {"type": "periodic"},
    "ylo": {"type": "no_slip_wall"}, "yhi": {"type": "no_slip_wall"},
    "zlo": {"type": "periodic"}, "zhi": {"type": "periodic"},
}

WALLED_BOUNDARY = {
    face: {"type": "no_slip_wall"} for face in ("xlo", "xhi", "ylo", "yhi", "zlo", "zhi")
}


@pytest.fixture
def n_cell():
    """Small grid for fast unit tests."""
    return [8, 8, 8]


@pytest.fixture
def sample_config_dict(n_cell):
    """Minimal valid periodic SimulationConfig as a dictionary."""
    return {
        "grid": {"n_cell": list(n_cell)},
        "time": {"max_step": 5},
        "fluid": {"fluid_model": "newtonian", "mu": 0.01},
    }


@pytest.fixture
def small_config(sample_config_dict):
    """Small periodic SimulationConfig for fast unit tests."""
    return SimulationConfig(**sample_config_dict)


@pytest.fixture
def channel_config():
    """Plane channel: periodic in x and z, no-slip walls at the y faces."""
    return SimulationConfig(
        grid={"n_cell": [4, 8, 2]},
        boundary=CHANNEL_BOUNDARY,
        time={"max_step": 5},
        fluid={"fluid_model": "newtonian", "mu": 1.0},
    )


@pytest.fixture
def refined_config():
    """8^3 periodic base grid with one refined block in the middle."""
    return SimulationConfig(
        grid={"n_cell": [8, 8, 8]},
        amr={"max_level": 1, "ref_ratio": 2, "refine_boxes": [{"lo": [2, 2, 2], "hi": [5, 5, 5]}]},
        time={"max_step": 5},
        fluid={"fluid_model": "newtonian", "mu": 0.01},
    )


@pytest.fixture
def scenario_config():
    """rho = 1, eta = 0.1, u = (1, 0, 0) on a dx = dy = dz = 0.1 grid, cfl = 0.5."""
    return SimulationConfig(
        grid={"n_cell": [10, 10, 10]},
        time={"cfl": 0.5, "stop_time": 100.0},
        fluid={"fluid_model": "newtonian", "mu": 0.1},
        initial_condition={"type": "uniform", "velocity": [1.0, 0.0, 0.0]},
    )


def build_state(config: SimulationConfig):
    """Return (arena, clock, boundary) for a configuration."""
    arena = LevelStateArena.from_config(config)
    clock = SimulationClock.for_levels(len(arena))
    boundary = BoundaryFiller(arena, config.boundary)
    return arena, clock, boundary


@pytest.fixture
def make_state():
    """Factory fixture: config -> (arena, clock, boundary)."""
    return build_state
