"""Cell-centred approximate projection onto divergence-free velocity fields.

Given an intermediate velocity u*, the previous pressure gradient gp and a
scale factor (dt during time stepping, 1 for the initial projection):

    u**  = u* + scale * gp / rho
    solve  div(grad(phi) / rho) = div(u**)
    u    = u** - grad(phi) / rho
    p    = phi / scale,   gp = grad(phi) / scale

The discrete divergence D is the central-difference operator acting on
ghost-filled velocity, split into a matrix part (with the linear part of
the boundary closure folded into the end rows) and a constant part coming
from prescribed boundary values.  The gradient is G = -D^T, so the
elliptic operator D R D^T (R = diag(1/rho)) is symmetric positive
semi-definite and the projected velocity is discretely divergence-free
to within the solver tolerance.

The system is solved with Jacobi-preconditioned conjugate gradients.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import cg

from incflow.core.bases import ProjectionSolverBase, SolverConvergenceError
from incflow.fluid.derived import divergence

if TYPE_CHECKING:
    from incflow.config import SolverConfig
    from incflow.core.bases import BoundaryFillerBase
    from incflow.core.level_state import LevelData

logger = logging.getLogger(__name__)


def difference_matrix_1d(
    n: int, h: float, periodic: bool, a_lo: float = 0.0, a_hi: float = 0.0
) -> sp.csr_matrix:
    """Central first-difference matrix along one direction.

    Args:
        n: Number of cells.
        h: Cell size [m].
        periodic: Wrap the stencil around instead of using ghost closures.
        a_lo, a_hi: Ghost closure coefficients (ghost = a * interior + b)
            of the face-normal velocity on the two ends.

    Returns:
        Sparse (n, n) matrix; duplicate entries are summed.
    """
    rows: list[int] = []
    cols: list[int] = []
    vals: list[float] = []
    inv = 1.0 / (2.0 * h)
    for i in range(n):
        for off, sign in ((1, 1.0), (-1, -1.0)):
            j = i + off
            if 0 <= j < n:
                rows.append(i)
                cols.append(j)
                vals.append(sign * inv)
            elif periodic:
                rows.append(i)
                cols.append(j % n)
                vals.append(sign * inv)
            elif j < 0:
                rows.append(0)
                cols.append(0)
                vals.append(-a_lo * inv)
            else:
                rows.append(n - 1)
                cols.append(n - 1)
                vals.append(a_hi * inv)
    return sp.coo_matrix((vals, (rows, cols)), shape=(n, n)).tocsr()


def _expand(op: sp.spmatrix, direction: int, shape: tuple[int, int, int]) -> sp.csr_matrix:
    """Lift a 1D operator to a C-ordered 3D grid of ``shape``."""
    mats = [sp.identity(n, format="csr") for n in shape]
    mats[direction] = op
    return sp.kron(mats[0], sp.kron(mats[1], mats[2])).tocsr()


class ProjectionSolver(ProjectionSolverBase):
    """Default projection solver.

    Args:
        boundary: Boundary filler providing ghost closures and refills.
        config: Conjugate-gradient tolerances and iteration cap.
    """

    def __init__(self, boundary: BoundaryFillerBase, config: SolverConfig) -> None:
        self.boundary = boundary
        self.config = config
        self._operators: dict[int, tuple[tuple, list[sp.csr_matrix]]] = {}

    def divergence_operators(self, level: LevelData) -> list[sp.csr_matrix]:
        """Per-direction divergence matrices of ``level`` (cached per patch)."""
        lev = level.level
        key = (level.n_cell, level.lo, level.dx)
        cached = self._operators.get(lev)
        if cached is not None and cached[0] == key:
            return cached[1]
        ops = []
        for d in range(3):
            periodic = self.boundary.is_periodic(lev, d)
            a_lo = 0.0 if periodic else self.boundary.normal_closure(lev, d, 0)
            a_hi = 0.0 if periodic else self.boundary.normal_closure(lev, d, 1)
            op = difference_matrix_1d(level.n_cell[d], level.dx[d], periodic, a_lo, a_hi)
            ops.append(_expand(op, d, level.n_cell))
        self._operators[lev] = (key, ops)
        return ops

    def project(
        self,
        level: LevelData,
        vel: np.ndarray,
        ro: np.ndarray,
        gp: np.ndarray,
        time: float,
        scale: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        lev = level.level
        shape = level.n_cell

        ustar = vel + scale * gp / ro[np.newaxis]
        self.boundary.fill_physical_bc(lev, ustar, time)
        rhs = divergence(level, ustar).ravel()

        ops = self.divergence_operators(level)
        inv_ro = 1.0 / level.interior(ro).ravel()
        R = sp.diags(inv_ro)

        if np.max(np.abs(rhs), initial=0.0) == 0.0:
            phi = np.zeros_like(rhs)
        else:
            A = ops[0] @ R @ ops[0].T
            for D in ops[1:]:
                A = A + D @ R @ D.T
            A = A.tocsr()
            diag = A.diagonal()
            M = sp.diags(np.where(diag > 0.0, 1.0 / np.where(diag > 0.0, diag, 1.0), 1.0))
            phi, info = cg(
                A,
                -rhs,
                rtol=self.config.projection_rtol,
                atol=self.config.projection_atol,
                maxiter=self.config.projection_maxiter,
                M=M,
            )
            if info != 0:
                raise SolverConvergenceError(
                    f"projection on level {lev} did not converge (cg info={info})"
                )

        grad_phi = np.stack([-(D.T @ phi).reshape(shape) for D in ops])
        u_new = level.interior(ustar) - grad_phi * inv_ro.reshape(shape)[np.newaxis]
        p_new = phi.reshape(shape) / scale
        gp_new = grad_phi / scale

        if not np.all(np.isfinite(u_new)):
            raise SolverConvergenceError(f"projection produced non-finite velocity on level {lev}")
        logger.debug(
            "Projection on level %d: max|rhs| = %.3e, scale = %.3e",
            lev, float(np.max(np.abs(rhs), initial=0.0)), scale,
        )
        return u_new, p_new, gp_new
