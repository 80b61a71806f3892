"""Named configuration presets for standard incompressible-flow problems.

Each preset is a dictionary that can be unpacked into SimulationConfig(**preset).
Presets provide well-understood starting points for:
- Tutorial / quick-start (small grid, fast)
- Taylor-Green vortex decay
- Pressure-driven and gravity-driven channel flow (run to steady state)
- Viscoplastic (Bingham) channel flow
- Double shear layer roll-up
- Taylor-Green vortex with a statically refined centre

Usage:
    from incflow.presets import get_preset, list_presets
    config = SimulationConfig(**get_preset("tutorial"))
"""

from __future__ import annotations

import copy
from typing import Any

from incflow.constants import g_n

_PERIODIC = {"type": "periodic"}
_WALL = {"type": "no_slip_wall"}

_CHANNEL_BOUNDARY = {
    "xlo": _PERIODIC, "xhi": _PERIODIC,
    "ylo": _WALL, "yhi": _WALL,
    "zlo": _PERIODIC, "zhi": _PERIODIC,
}

_PRESETS: dict[str, dict[str, Any]] = {
    "tutorial": {
        "_meta": {
            "description": "Minimal 8^3 periodic Taylor-Green vortex for quick tests",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [8, 8, 8]},
        "time": {"max_step": 10, "cfl": 0.5},
        "fluid": {"fluid_model": "newtonian", "mu": 0.01},
        "initial_condition": {"type": "taylor_green", "velocity": [1.0, 0.0, 0.0]},
    },
    "taylor_green": {
        "_meta": {
            "description": "32^3 periodic Taylor-Green vortex decay, Re = 100",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [32, 32, 32]},
        "time": {"stop_time": 1.0, "cfl": 0.5},
        "fluid": {"fluid_model": "newtonian", "mu": 0.01},
        "initial_condition": {"type": "taylor_green", "velocity": [1.0, 0.0, 0.0]},
        "output": {"plot_per": 0.1},
    },
    "poiseuille": {
        "_meta": {
            "description": "Pressure-driven plane channel flow run to steady state",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [8, 16, 4]},
        "boundary": _CHANNEL_BOUNDARY,
        "time": {"steady_state": True, "steady_state_tol": 1e-5, "max_step": 5000},
        "physics": {"delp": [1.0, 0.0, 0.0]},
        "fluid": {"fluid_model": "newtonian", "mu": 1.0},
        "initial_condition": {"type": "uniform"},
    },
    "gravity_channel": {
        "_meta": {
            "description": "Gravity-driven plane channel flow run to steady state",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [8, 16, 4]},
        "boundary": _CHANNEL_BOUNDARY,
        "time": {"steady_state": True, "steady_state_tol": 1e-5, "max_step": 5000},
        "physics": {"gravity": [g_n, 0.0, 0.0]},
        "fluid": {"fluid_model": "newtonian", "mu": 10.0},
        "initial_condition": {"type": "uniform"},
    },
    "bingham_channel": {
        "_meta": {
            "description": "Pressure-driven Bingham plastic channel flow with a plug region",
            "fluid": "bingham",
        },
        "grid": {"n_cell": [8, 32, 4]},
        "boundary": _CHANNEL_BOUNDARY,
        "time": {"steady_state": True, "steady_state_tol": 1e-5, "max_step": 10000},
        "physics": {"delp": [1.0, 0.0, 0.0]},
        "fluid": {"fluid_model": "bingham", "mu": 1.0, "tau_0": 0.1, "papa_reg": 1e-2},
        "initial_condition": {"type": "channel", "velocity": [0.05, 0.0, 0.0]},
    },
    "shear_layer": {
        "_meta": {
            "description": "Doubly periodic double shear layer roll-up (quasi-2D)",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [64, 64, 4]},
        "time": {"stop_time": 1.0, "cfl": 0.5},
        "fluid": {"fluid_model": "newtonian", "mu": 1e-4},
        "initial_condition": {"type": "double_shear_layer", "velocity": [1.0, 0.0, 0.0]},
        "output": {"plot_per": 0.2},
    },
    "refined_taylor_green": {
        "_meta": {
            "description": "16^3 Taylor-Green vortex with a refined central block",
            "fluid": "newtonian",
        },
        "grid": {"n_cell": [16, 16, 16]},
        "amr": {
            "max_level": 1,
            "ref_ratio": 2,
            "refine_boxes": [{"lo": [4, 4, 4], "hi": [11, 11, 11]}],
        },
        "time": {"max_step": 20, "cfl": 0.5},
        "fluid": {"fluid_model": "newtonian", "mu": 0.01},
        "initial_condition": {"type": "taylor_green", "velocity": [1.0, 0.0, 0.0]},
    },
}


def list_presets() -> list[dict[str, Any]]:
    """Return summary info for all available presets.

    Returns:
        List of dicts with keys: name, description, fluid, n_cell.
    """
    result = []
    for name, preset in _PRESETS.items():
        meta = preset.get("_meta", {})
        result.append({
            "name": name,
            "description": meta.get("description", ""),
            "fluid": meta.get("fluid", "newtonian"),
            "n_cell": preset["grid"]["n_cell"],
        })
    return result


def get_preset(name: str) -> dict[str, Any]:
    """Return a preset config dict (without _meta) suitable for SimulationConfig.

    Args:
        name: Preset name.

    Returns:
        Config dict ready for ``SimulationConfig(**preset)``.

    Raises:
        KeyError: If the preset name is not found.
    """
    if name not in _PRESETS:
        available = ", ".join(_PRESETS.keys())
        raise KeyError(f"Unknown preset '{name}'. Available: {available}")
    preset = copy.deepcopy(_PRESETS[name])
    preset.pop("_meta", None)
    return preset


def get_preset_names() -> list[str]:
    """Return list of all preset names."""
    return list(_PRESETS.keys())
