"""Explicit convective term -(u . grad) u with MC-limited upwind face states.

For every cell and direction the face-normal advection velocity is the
mean of the two adjacent cell velocities, and each velocity component is
reconstructed to the face with a monotonised-central (MC) limited slope
and upwinded.  The convective term is then evaluated in the form

    -(u . grad) q = -div(u_f q_f) + q div(u_f)

which vanishes identically for uniform flow.  Two ghost layers are
required by the reconstruction stencil.

References:
    van Leer B., J. Comput. Phys. 23, 276 (1977).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from incflow.core.bases import ConvectionOperatorBase

if TYPE_CHECKING:
    from incflow.core.level_state import LevelData

# ============================================================
# Reconstruction helpers
# ============================================================


@njit(cache=True)
def _mc_slope(q_m: float, q_0: float, q_p: float) -> float:
    """Monotonised-central limited slope (undivided)."""
    dl = q_0 - q_m
    dr = q_p - q_0
    if dl * dr <= 0.0:
        return 0.0
    dc = 0.5 * (q_p - q_m)
    mag = min(2.0 * abs(dl), 2.0 * abs(dr), abs(dc))
    return mag if dc > 0.0 else -mag


@njit(cache=True)
def _shifted(vel: np.ndarray, comp: int, i: int, j: int, k: int, d: int, off: int) -> float:
    """Value of ``vel[comp]`` displaced by ``off`` cells along direction ``d``."""
    if d == 0:
        return vel[comp, i + off, j, k]
    if d == 1:
        return vel[comp, i, j + off, k]
    return vel[comp, i, j, k + off]


@njit(cache=True)
def _face_flux_terms(
    vel: np.ndarray, comp: int, i: int, j: int, k: int, d: int, left: int
) -> tuple[float, float]:
    """Return (u_f * q_f, u_f) on the face whose left cell sits at offset ``left``."""
    u_f = 0.5 * (_shifted(vel, d, i, j, k, d, left) + _shifted(vel, d, i, j, k, d, left + 1))

    q_lm = _shifted(vel, comp, i, j, k, d, left - 1)
    q_l = _shifted(vel, comp, i, j, k, d, left)
    q_r = _shifted(vel, comp, i, j, k, d, left + 1)
    q_rp = _shifted(vel, comp, i, j, k, d, left + 2)

    q_left = q_l + 0.5 * _mc_slope(q_lm, q_l, q_r)
    q_right = q_r - 0.5 * _mc_slope(q_l, q_r, q_rp)

    if u_f > 0.0:
        q_f = q_left
    elif u_f < 0.0:
        q_f = q_right
    else:
        q_f = 0.5 * (q_left + q_right)
    return u_f * q_f, u_f


# ============================================================
# Convective term kernel
# ============================================================


@njit(cache=True)
def convective_term(
    vel: np.ndarray, ng: int, dx: float, dy: float, dz: float
) -> np.ndarray:
    """Compute -(u . grad) u on the interior of a ghost-filled velocity.

    Args:
        vel: Velocity, shape (3, nx + 2ng, ny + 2ng, nz + 2ng).
        ng: Ghost layers (>= 2).
        dx, dy, dz: Cell sizes [m].

    Returns:
        Convective term, shape (3, nx, ny, nz).
    """
    nx = vel.shape[1] - 2 * ng
    ny = vel.shape[2] - 2 * ng
    nz = vel.shape[3] - 2 * ng
    spacing = (dx, dy, dz)
    conv = np.zeros((3, nx, ny, nz))

    for c in range(3):
        for ii in range(nx):
            i = ii + ng
            for jj in range(ny):
                j = jj + ng
                for kk in range(nz):
                    k = kk + ng
                    q = vel[c, i, j, k]
                    acc = 0.0
                    for d in range(3):
                        flux_hi, u_hi = _face_flux_terms(vel, c, i, j, k, d, 0)
                        flux_lo, u_lo = _face_flux_terms(vel, c, i, j, k, d, -1)
                        acc += (flux_hi - flux_lo - q * (u_hi - u_lo)) / spacing[d]
                    conv[c, ii, jj, kk] = -acc
    return conv


class ConvectionOperator(ConvectionOperatorBase):
    """Default explicit convection operator."""

    def compute(self, level: LevelData, vel: np.ndarray, time: float) -> np.ndarray:
        if level.nghost < 2:
            raise ValueError("convection stencil needs at least 2 ghost cells")
        dx, dy, dz = level.dx
        return convective_term(np.ascontiguousarray(vel), level.nghost, dx, dy, dz)
