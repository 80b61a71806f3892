"""Initial velocity, density, viscosity and pressure fields.

Shaped profiles use coordinates normalised to the unit cube,
``s = (x - prob_lo) / L``, and take their amplitude from the first
component of ``initial_condition.velocity`` (1 when it is zero).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from incflow.config import SimulationConfig
    from incflow.core.level_state import LevelData

logger = logging.getLogger(__name__)


def _normalised_coordinates(level: LevelData, lengths) -> list[np.ndarray]:
    coords = [(level.cell_centers(d) - level.prob_lo[d]) / lengths[d] for d in range(3)]
    return np.meshgrid(*coords, indexing="ij")


def _uniform(level, ic, lengths) -> np.ndarray:
    vel = np.empty((3, *level.n_cell))
    for d in range(3):
        vel[d] = ic.velocity[d]
    return vel


def _taylor_green(level, ic, lengths) -> np.ndarray:
    amp = ic.velocity[0] or 1.0
    x, y, z = (2.0 * np.pi * s for s in _normalised_coordinates(level, lengths))
    return np.stack([
        amp * np.sin(x) * np.cos(y) * np.cos(z),
        -amp * np.cos(x) * np.sin(y) * np.cos(z),
        np.zeros_like(x),
    ])


def _double_shear_layer(level, ic, lengths) -> np.ndarray:
    amp = ic.velocity[0] or 1.0
    x, y, _ = _normalised_coordinates(level, lengths)
    return np.stack([
        amp * np.tanh(30.0 * (0.25 - np.abs(y - 0.5))),
        amp * 0.05 * np.sin(2.0 * np.pi * x),
        np.zeros_like(x),
    ])


def _channel(level, ic, lengths) -> np.ndarray:
    """Plane Poiseuille profile in x between walls at the y faces, mean velocity ``amp``."""
    amp = ic.velocity[0] or 1.0
    _, y, _ = _normalised_coordinates(level, lengths)
    return np.stack([6.0 * amp * y * (1.0 - y), np.zeros_like(y), np.zeros_like(y)])


_PROFILES = {
    "uniform": _uniform,
    "taylor_green": _taylor_green,
    "double_shear_layer": _double_shear_layer,
    "channel": _channel,
}


def init_fluid(level: LevelData, config: SimulationConfig) -> None:
    """Fill density, viscosity, pressure and velocity on one level."""
    ic = config.initial_condition
    try:
        profile = _PROFILES[ic.type]
    except KeyError:
        raise ValueError(
            f"Unknown initial condition '{ic.type}'. Available: {sorted(_PROFILES)}"
        ) from None

    level.ro[...] = config.physics.ro_0
    level.eta[...] = config.fluid.effective_viscosity(np.zeros(level.eta.shape))
    level.p[...] = ic.pressure
    level.gp[...] = 0.0
    level.interior(level.vel)[...] = profile(level, ic, config.grid.lengths)
    logger.debug("Initialised level %d with '%s' profile", level.level, ic.type)


def set_background_pressure(level: LevelData, gp0) -> None:
    """Fill the background pressure p0 = gp0 . x on the interior of one level."""
    x, y, z = np.meshgrid(*(level.cell_centers(d) for d in range(3)), indexing="ij")
    level.interior(level.p0)[...] = gp0[0] * x + gp0[1] * y + gp0[2] * z
