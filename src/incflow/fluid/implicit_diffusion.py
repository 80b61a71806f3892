"""Backward-Euler implicit viscous diffusion with ADI splitting.

Solves, component by component,

    (1 - dt / rho * div(eta grad)) u* = u

by dimension splitting (Alternating Direction Implicit): the 1D implicit
operator is applied along x, then y, then z.  Each 1D solve is a
tridiagonal system handled by the Thomas algorithm, or by the cyclic
Thomas algorithm (Sherman-Morrison correction) along periodic directions.
Every 1D operator is an M-matrix with unit-dominant diagonal, so the
update is unconditionally stable for any dt > 0.

Face viscosities are arithmetic means of the adjacent cell values
(including ghost cells).  Boundary rows use the ghost closure of the
boundary filler, ghost = a * interior + b, folded into the diagonal and
right-hand side.

All performance-critical kernels use ``@njit(cache=True)`` for Numba
JIT compilation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from incflow.core.bases import DiffusionSolverBase, SolverConvergenceError

if TYPE_CHECKING:
    from incflow.core.bases import BoundaryFillerBase
    from incflow.core.level_state import LevelData

logger = logging.getLogger(__name__)

# ============================================================
# Thomas algorithm for tridiagonal systems
# ============================================================


@njit(cache=True)
def _thomas_solve(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray,
) -> np.ndarray:
    """Solve a tridiagonal linear system using the Thomas algorithm.

    Solves  A x = rhs  where A is tridiagonal with bands:
        lower[i] = A[i, i-1]   for i = 1..n-1   (sub-diagonal)
        diag[i]  = A[i, i]     for i = 0..n-1   (main diagonal)
        upper[i] = A[i, i+1]   for i = 0..n-2   (super-diagonal)

    Args:
        lower: Sub-diagonal, length n. lower[0] is unused.
        diag:  Main diagonal, length n.
        upper: Super-diagonal, length n. upper[n-1] is unused.
        rhs:   Right-hand side vector, length n.

    Returns:
        Solution vector x, length n.
    """
    n = len(diag)
    c = np.empty(n)
    d = np.empty(n)

    c[0] = upper[0] / diag[0]
    d[0] = rhs[0] / diag[0]
    for i in range(1, n):
        denom = diag[i] - lower[i] * c[i - 1]
        c[i] = upper[i] / denom
        d[i] = (rhs[i] - lower[i] * d[i - 1]) / denom

    x = np.empty(n)
    x[n - 1] = d[n - 1]
    for i in range(n - 2, -1, -1):
        x[i] = d[i] - c[i] * x[i + 1]
    return x


@njit(cache=True)
def _cyclic_thomas_solve(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray,
) -> np.ndarray:
    """Solve a periodic tridiagonal system.

    Same band layout as :func:`_thomas_solve`, plus the wrap-around
    couplings A[0, n-1] = lower[0] and A[n-1, 0] = upper[n-1].  Systems of
    one or two unknowns are solved directly; longer ones use the
    Sherman-Morrison correction of a Thomas solve.
    """
    n = len(diag)
    if n == 1:
        return np.array([rhs[0] / (diag[0] + lower[0] + upper[0])])
    if n == 2:
        a00 = diag[0]
        a01 = lower[0] + upper[0]
        a10 = lower[1] + upper[1]
        a11 = diag[1]
        det = a00 * a11 - a01 * a10
        x = np.empty(2)
        x[0] = (rhs[0] * a11 - a01 * rhs[1]) / det
        x[1] = (a00 * rhs[1] - a10 * rhs[0]) / det
        return x

    alpha = upper[n - 1]  # A[n-1, 0]
    beta = lower[0]  # A[0, n-1]
    gamma = -diag[0]

    bb = diag.copy()
    bb[0] = diag[0] - gamma
    bb[n - 1] = diag[n - 1] - alpha * beta / gamma

    x = _thomas_solve(lower, bb, upper, rhs)

    u = np.zeros(n)
    u[0] = gamma
    u[n - 1] = alpha
    z = _thomas_solve(lower, bb, upper, u)

    fact = (x[0] + beta * x[n - 1] / gamma) / (1.0 + z[0] + beta * z[n - 1] / gamma)
    return x - fact * z


# ============================================================
# Backward-Euler 1D sweep
# ============================================================


@njit(cache=True)
def diffuse_sweep(
    q: np.ndarray,
    eta_ext: np.ndarray,
    ro: np.ndarray,
    dt: float,
    dx: float,
    a_lo: float,
    b_lo: np.ndarray,
    a_hi: float,
    b_hi: np.ndarray,
    periodic: bool,
) -> np.ndarray:
    """Implicit diffusion of every pencil along axis 0.

    Args:
        q: Interior values, shape (n, m1, m2).
        eta_ext: Viscosity with one ghost layer along axis 0, shape (n + 2, m1, m2).
        ro: Interior density, shape (n, m1, m2).
        dt: Timestep [s].
        dx: Cell size along axis 0 [m].
        a_lo, a_hi: Ghost closure coefficients on the two ends.
        b_lo, b_hi: Ghost closure offsets per pencil, shape (m1, m2).
        periodic: Wrap-around coupling instead of ghost closures.

    Returns:
        Updated values, shape (n, m1, m2).
    """
    n, m1, m2 = q.shape
    dx2 = dx * dx
    out = np.empty_like(q)
    lower = np.empty(n)
    diag = np.empty(n)
    upper = np.empty(n)
    rhs = np.empty(n)

    for j in range(m1):
        for k in range(m2):
            for i in range(n):
                eta_m = 0.5 * (eta_ext[i, j, k] + eta_ext[i + 1, j, k])
                eta_p = 0.5 * (eta_ext[i + 1, j, k] + eta_ext[i + 2, j, k])
                s_m = dt * eta_m / (ro[i, j, k] * dx2)
                s_p = dt * eta_p / (ro[i, j, k] * dx2)
                lower[i] = -s_m
                upper[i] = -s_p
                diag[i] = 1.0 + s_m + s_p
                rhs[i] = q[i, j, k]

            if periodic:
                x = _cyclic_thomas_solve(lower, diag, upper, rhs)
            else:
                # ghost = a * interior + b on both ends
                diag[0] += lower[0] * a_lo
                rhs[0] -= lower[0] * b_lo[j, k]
                lower[0] = 0.0
                diag[n - 1] += upper[n - 1] * a_hi
                rhs[n - 1] -= upper[n - 1] * b_hi[j, k]
                upper[n - 1] = 0.0
                x = _thomas_solve(lower, diag, upper, rhs)

            for i in range(n):
                out[i, j, k] = x[i]
    return out


# ============================================================
# 3D ADI viscous diffusion
# ============================================================


def _face_slab(level: LevelData, field: np.ndarray, direction: int, index: int) -> np.ndarray:
    """Slice of a padded scalar at padded ``index`` along ``direction``, interior elsewhere."""
    sl = list(level.valid)
    sl[direction] = index
    return field[tuple(sl)]


class DiffusionSolver(DiffusionSolverBase):
    """Default implicit viscous solver.

    Args:
        boundary: Boundary filler providing the ghost closures.
    """

    def __init__(self, boundary: BoundaryFillerBase) -> None:
        self.boundary = boundary

    def solve(
        self,
        level: LevelData,
        vel: np.ndarray,
        ro: np.ndarray,
        eta: np.ndarray,
        dt: float,
    ) -> np.ndarray:
        lev = level.level
        g = level.nghost
        ro_in = np.ascontiguousarray(level.interior(ro))
        result = level.interior(vel).copy()

        for comp in range(3):
            # Ghost offsets b = ghost - a * interior, fixed for all sweeps
            closures = []
            for d in range(3):
                n = level.n_cell[d]
                if self.boundary.is_periodic(lev, d):
                    empty = np.zeros(_face_slab(level, vel[comp], d, g).shape)
                    closures.append((0.0, empty, 0.0, empty, True))
                    continue
                a_lo = self.boundary.velocity_closure(lev, d, 0, comp)
                a_hi = self.boundary.velocity_closure(lev, d, 1, comp)
                b_lo = (
                    _face_slab(level, vel[comp], d, g - 1)
                    - a_lo * _face_slab(level, vel[comp], d, g)
                )
                b_hi = (
                    _face_slab(level, vel[comp], d, g + n)
                    - a_hi * _face_slab(level, vel[comp], d, g + n - 1)
                )
                closures.append((a_lo, b_lo, a_hi, b_hi, False))

            q = result[comp]
            for d in range(3):
                a_lo, b_lo, a_hi, b_hi, periodic = closures[d]
                ext = list(level.valid)
                ext[d] = slice(g - 1, g + level.n_cell[d] + 1)
                eta_ext = eta[tuple(ext)]

                q_new = diffuse_sweep(
                    np.ascontiguousarray(np.moveaxis(q, d, 0)),
                    np.ascontiguousarray(np.moveaxis(eta_ext, d, 0)),
                    np.ascontiguousarray(np.moveaxis(ro_in, d, 0)),
                    dt,
                    level.dx[d],
                    a_lo,
                    np.ascontiguousarray(b_lo),
                    a_hi,
                    np.ascontiguousarray(b_hi),
                    periodic,
                )
                q = np.moveaxis(q_new, 0, d)
            result[comp] = q

        if not np.all(np.isfinite(result)):
            raise SolverConvergenceError(
                f"implicit diffusion produced non-finite velocity on level {lev} (dt={dt:.3e})"
            )
        return result
