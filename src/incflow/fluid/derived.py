"""Derived kinematic quantities and the effective-viscosity update.

All derivatives are second-order central differences evaluated on the
interior of a ghost-filled velocity field.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from incflow.core.bases import BoundaryFillerBase
    from incflow.core.level_state import LevelData, LevelStateArena
    from incflow.fluid.rheology import Rheology

logger = logging.getLogger(__name__)


def central_gradient(level: LevelData, field: np.ndarray, direction: int) -> np.ndarray:
    """d(field)/dx_direction on the interior of a padded scalar array."""
    g = level.nghost
    hi = [slice(g, g + n) for n in level.n_cell]
    lo = list(hi)
    hi[direction] = slice(g + 1, g + 1 + level.n_cell[direction])
    lo[direction] = slice(g - 1, g - 1 + level.n_cell[direction])
    return (field[tuple(hi)] - field[tuple(lo)]) / (2.0 * level.dx[direction])


def velocity_gradient(level: LevelData, vel: np.ndarray) -> np.ndarray:
    """Velocity gradient tensor ``grad[i, j] = d u_i / d x_j``, shape (3, 3, nx, ny, nz)."""
    return np.stack(
        [np.stack([central_gradient(level, vel[i], j) for j in range(3)]) for i in range(3)]
    )


def divergence(level: LevelData, vel: np.ndarray) -> np.ndarray:
    return sum(central_gradient(level, vel[d], d) for d in range(3))


def strain_rate_magnitude(grad: np.ndarray) -> np.ndarray:
    """sqrt(2 S:S) with S the symmetric part of the velocity gradient."""
    strain = 0.5 * (grad + grad.transpose(1, 0, 2, 3, 4))
    return np.sqrt(2.0 * np.sum(strain * strain, axis=(0, 1)))


def vorticity_magnitude(grad: np.ndarray) -> np.ndarray:
    wx = grad[2, 1] - grad[1, 2]
    wy = grad[0, 2] - grad[2, 0]
    wz = grad[1, 0] - grad[0, 1]
    return np.sqrt(wx * wx + wy * wy + wz * wz)


def update_derived_quantities(
    arena: LevelStateArena,
    boundary: BoundaryFillerBase,
    rheology: Rheology,
) -> None:
    """Refresh strain rate, vorticity, divergence and effective viscosity.

    Velocity ghost cells must already be filled.  The viscosity ghost
    cells are refreshed here so the diffusion solve can use them.
    """
    for lev, level in enumerate(arena):
        grad = velocity_gradient(level, level.vel)
        sr = strain_rate_magnitude(grad)
        level.interior(level.strainrate)[...] = sr
        level.interior(level.vort)[...] = vorticity_magnitude(grad)
        level.interior(level.divu)[...] = grad[0, 0] + grad[1, 1] + grad[2, 2]
        level.interior(level.eta)[...] = rheology.effective_viscosity(sr)
        boundary.fill_scalar_bc(lev, level.eta)

        if not np.all(np.isfinite(level.interior(level.eta))):
            logger.warning("Non-finite effective viscosity on level %d", lev)
