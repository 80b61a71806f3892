"""Checkpoint/restart support for incflow simulations.

Saves and loads the full per-level state (velocity, pressure, pressure
gradient, density, viscosity, background pressure) and the simulation
clock to HDF5 files.

Usage:
    # Save checkpoint
    save_checkpoint("chk00010.h5", arena, clock, config.to_json())

    # Load checkpoint
    data = load_checkpoint("chk00010.h5")
    clock = data["clock"]
    levels = data["levels"]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import h5py
import numpy as np

if TYPE_CHECKING:
    from incflow.core.clock import SimulationClock
    from incflow.core.level_state import LevelStateArena

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1

# Fields needed to restart; everything else is recomputed
CHECKPOINT_FIELDS = ("vel", "gp", "p", "p0", "ro", "eta")

_CLOCK_SCALARS = ("cur_time", "dt", "nstep", "last_plt", "last_chk")


def save_checkpoint(
    filename: str,
    arena: LevelStateArena,
    clock: SimulationClock,
    config_json: str | None = None,
) -> None:
    """Save full simulation state to an HDF5 checkpoint file.

    Args:
        filename: Output HDF5 file path.
        arena: Level storage; padded arrays are written including ghosts.
        clock: Simulation clock.
        config_json: JSON string of the simulation config (for reference).
    """
    logger.info(
        "Saving checkpoint to %s at t=%.4e s, step=%d", filename, clock.cur_time, clock.nstep
    )

    with h5py.File(filename, "w") as f:
        f.attrs["checkpoint_version"] = CHECKPOINT_VERSION
        f.attrs["finest_level"] = arena.finest_level
        for key in _CLOCK_SCALARS:
            f.attrs[key] = getattr(clock, key)
        if config_json is not None:
            f.attrs["config_json"] = config_json

        for level in arena:
            grp = f.create_group(f"level_{level.level}")
            grp.attrs["n_cell"] = np.asarray(level.n_cell)
            grp.attrs["lo"] = np.asarray(level.lo)
            grp.attrs["dx"] = np.asarray(level.dx)
            for name in CHECKPOINT_FIELDS:
                grp.create_dataset(name, data=getattr(level, name))

    logger.info("Checkpoint saved: %s", filename)


def load_checkpoint(filename: str) -> dict[str, Any]:
    """Load simulation state from an HDF5 checkpoint file.

    Args:
        filename: Input HDF5 file path.

    Returns:
        Dictionary with keys:
            - "clock": dict of clock scalars (cur_time, dt, nstep, ...)
            - "levels": list of per-level dicts with "n_cell", "lo" and the
              checkpointed arrays
            - "config_json": str or None (config for reference)
    """
    logger.info("Loading checkpoint from %s", filename)

    with h5py.File(filename, "r") as f:
        version = int(f.attrs["checkpoint_version"])
        if version != CHECKPOINT_VERSION:
            raise ValueError(f"unsupported checkpoint version {version} in {filename}")

        clock = {key: f.attrs[key].item() for key in _CLOCK_SCALARS}
        config_json = str(f.attrs["config_json"]) if "config_json" in f.attrs else None

        levels = []
        for lev in range(int(f.attrs["finest_level"]) + 1):
            grp = f[f"level_{lev}"]
            data: dict[str, Any] = {
                "n_cell": tuple(int(n) for n in grp.attrs["n_cell"]),
                "lo": tuple(int(i) for i in grp.attrs["lo"]),
            }
            for name in CHECKPOINT_FIELDS:
                data[name] = np.array(grp[name])
            levels.append(data)

    logger.info(
        "Checkpoint loaded: t=%.4e s, step=%d, levels=%d",
        clock["cur_time"], clock["nstep"], len(levels),
    )

    return {"clock": clock, "levels": levels, "config_json": config_json}
