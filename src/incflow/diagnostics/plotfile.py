"""HDF5 plot files for visualisation.

One file per output time, one group per level holding interior-only
datasets for the variables enabled in ``PlotVariables``:

    vel        (3, nx, ny, nz)   velocity
    gradp      (3, nx, ny, nz)   pressure gradient
    rho        (nx, ny, nz)      density
    p          (nx, ny, nz)      perturbational pressure
    eta        (nx, ny, nz)      effective viscosity
    vort       (nx, ny, nz)      vorticity magnitude
    strainrate (nx, ny, nz)      strain-rate magnitude
    divu       (nx, ny, nz)      velocity divergence
    vfrac      (nx, ny, nz)      volume fraction
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import h5py
import numpy as np

if TYPE_CHECKING:
    from incflow.config import PlotVariables
    from incflow.core.level_state import LevelData, LevelStateArena

logger = logging.getLogger(__name__)

# plot variable -> LevelData attribute
_SOURCES = {
    "vel": "vel",
    "gradp": "gp",
    "rho": "ro",
    "p": "p",
    "eta": "eta",
    "vort": "vort",
    "strainrate": "strainrate",
    "divu": "divu",
    "vfrac": "vfrac",
}


def plot_variable_names(plot_vars: PlotVariables) -> list[str]:
    """Names of the enabled plot variables, in file order."""
    return [name for name in _SOURCES if getattr(plot_vars, name)]


def _plot_data(level: LevelData, name: str) -> np.ndarray:
    arr = getattr(level, _SOURCES[name])
    if name == "vfrac":
        return arr
    return level.interior(arr)


def write_plotfile(
    filename: str,
    arena: LevelStateArena,
    time: float,
    nstep: int,
    plot_vars: PlotVariables,
) -> list[str]:
    """Write the enabled variables of every level to ``filename``.

    Returns:
        Names of the variables written.
    """
    names = plot_variable_names(plot_vars)
    with h5py.File(filename, "w") as f:
        f.attrs["time"] = time
        f.attrs["nstep"] = nstep
        f.attrs["finest_level"] = arena.finest_level
        f.attrs["variables"] = np.array(names, dtype="S")
        for level in arena:
            grp = f.create_group(f"level_{level.level}")
            grp.attrs["n_cell"] = np.asarray(level.n_cell)
            grp.attrs["lo"] = np.asarray(level.lo)
            grp.attrs["dx"] = np.asarray(level.dx)
            grp.attrs["prob_lo"] = np.asarray(level.prob_lo)
            grp.attrs["ref_ratio"] = level.ref_ratio
            grp.create_dataset("covered", data=level.covered)
            for name in names:
                grp.create_dataset(name, data=_plot_data(level, name), compression="gzip")

    logger.info("Wrote plot file %s (t=%.4e, step=%d, vars=%s)", filename, time, nstep, names)
    return names
