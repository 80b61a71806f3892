"""Ghost-cell filling for cell-centred fields on every refinement level.

Every non-periodic face fills its ghost layers from a mirror image of the
interior:

    ghost = a * mirror(interior) + b

with one ``(a, b)`` pair per face and velocity component:

    no_slip_wall        a = -1, b = 0
    slip_wall           a = -1 (normal component), +1 (tangential), b = 0
    mass_inflow         a = -1, b = 2 * u_in
    pressure_outflow    a = +1, b = 0
    coarse-fine face    a =  0, b = value injected from the parent level

so that the face value (mean of the first ghost and its mirror) equals the
prescribed wall or inflow velocity.  Periodic directions exchange halos by
modular indexing, which stays valid when a level has fewer interior cells
than ghost cells.

Directions are filled in x, y, z order over the full padded extent of the
other axes, so edge and corner ghosts end up filled as well.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from incflow.core.bases import BoundaryFillerBase
from incflow.core.level_state import SCALAR_FIELDS, VECTOR_FIELDS

if TYPE_CHECKING:
    from incflow.config import BoundaryConfig
    from incflow.core.level_state import LevelData, LevelStateArena

logger = logging.getLogger(__name__)

COARSE_FINE = "coarse_fine"


class BoundaryFiller(BoundaryFillerBase):
    """Boundary filler for the domain faces described by a ``BoundaryConfig``.

    Args:
        arena: Level storage (needed for coarse-fine injection).
        bc: Domain face boundary conditions.
    """

    def __init__(self, arena: LevelStateArena, bc: BoundaryConfig) -> None:
        self.arena = arena
        self.bc = bc

    # ------------------------------------------------------------------
    # Face classification
    # ------------------------------------------------------------------

    def is_periodic(self, lev: int, direction: int) -> bool:
        return self.bc.is_periodic(direction) and self.arena[lev].spans_domain(direction)

    def face_type(self, lev: int, direction: int, side: int) -> str:
        """BC type of the face ``side`` of level ``lev`` along ``direction``."""
        if self.is_periodic(lev, direction):
            return "periodic"
        level = self.arena[lev]
        if self.bc.is_periodic(direction) or not level.touches_domain(direction, side):
            return COARSE_FINE
        return self.bc.face(direction, side).type

    def _closure(
        self, lev: int, direction: int, side: int, component: int
    ) -> tuple[float, float | None]:
        """Return ``(a, b)`` for one velocity component; ``b`` is None for injection."""
        kind = self.face_type(lev, direction, side)
        if kind == "no_slip_wall":
            return -1.0, 0.0
        if kind == "slip_wall":
            return (-1.0 if component == direction else 1.0), 0.0
        if kind == "mass_inflow":
            u_in = self.bc.face(direction, side).velocity[component]
            return -1.0, 2.0 * u_in
        if kind == "pressure_outflow":
            return 1.0, 0.0
        if kind == COARSE_FINE:
            return 0.0, None
        raise ValueError(f"face {direction}/{side} of level {lev} is periodic")

    def velocity_closure(self, lev: int, direction: int, side: int, component: int) -> float:
        return self._closure(lev, direction, side, component)[0]

    def normal_closure(self, lev: int, direction: int, side: int) -> float:
        return self._closure(lev, direction, side, direction)[0]

    # ------------------------------------------------------------------
    # Filling
    # ------------------------------------------------------------------

    def fill_boundary(self, lev: int, field: np.ndarray) -> None:
        level = self.arena[lev]
        for d in range(3):
            if self.is_periodic(lev, d):
                _wrap(field, level, d)

    def fill_physical_bc(
        self, lev: int, vel: np.ndarray, time: float, extrap_dir_bcs: bool = False
    ) -> None:
        level = self.arena[lev]
        injected = self._injected(lev, vel)
        for d in range(3):
            if self.is_periodic(lev, d):
                _wrap(vel, level, d)
                continue
            for side in (0, 1):
                for comp in range(3):
                    a, b = self._closure(lev, d, side, comp)
                    if extrap_dir_bcs and a == -1.0:
                        a, b = 1.0, 0.0
                    src = None if injected is None else injected[comp]
                    _fill_face(vel[comp], level, d, side, a, b, src)

    def fill_scalar_bc(self, lev: int, field: np.ndarray) -> None:
        level = self.arena[lev]
        injected = self._injected(lev, field)
        comps = range(3) if field.ndim == 4 else (None,)
        for d in range(3):
            if self.is_periodic(lev, d):
                _wrap(field, level, d)
                continue
            for side in (0, 1):
                cf = self.face_type(lev, d, side) == COARSE_FINE and injected is not None
                for comp in comps:
                    target = field if comp is None else field[comp]
                    if cf:
                        src = injected if comp is None else injected[comp]
                        _fill_face(target, level, d, side, 0.0, None, src)
                    else:
                        _fill_face(target, level, d, side, 1.0, 0.0, None)

    # ------------------------------------------------------------------
    # Coarse-fine injection
    # ------------------------------------------------------------------

    def _parent_field(self, lev: int, field: np.ndarray) -> np.ndarray | None:
        """Find the parent-level array holding the same quantity as ``field``.

        Temporary vector arrays (e.g. an intermediate velocity inside a
        solver) are injected from the parent's velocity.
        """
        level = self.arena[lev]
        parent = self.arena[lev - 1]
        for name in VECTOR_FIELDS + SCALAR_FIELDS:
            if getattr(level, name) is field:
                return getattr(parent, name)
        if field.ndim == 4:
            return parent.vel
        return None

    def _injected(self, lev: int, field: np.ndarray) -> np.ndarray | None:
        """Piecewise-constant image of the parent field on this level's padded box."""
        if lev == 0:
            return None
        coarse_field = self._parent_field(lev, field)
        if coarse_field is None:
            return None
        fine = self.arena[lev]
        coarse = self.arena[lev - 1]
        r = fine.ref_ratio
        g = fine.nghost
        index = []
        for e in range(3):
            global_fine = fine.lo[e] + np.arange(fine.n_cell[e] + 2 * g) - g
            local_coarse = np.floor_divide(global_fine, r) - coarse.lo[e] + coarse.nghost
            index.append(np.clip(local_coarse, 0, coarse.n_cell[e] + 2 * coarse.nghost - 1))
        grid = np.ix_(*index)
        if coarse_field.ndim == 4:
            return coarse_field[(slice(None), *grid)]
        return coarse_field[grid]


# ============================================================
# Array helpers
# ============================================================


def _wrap(field: np.ndarray, level: LevelData, direction: int) -> None:
    """Periodic halo exchange along ``direction`` by modular indexing."""
    g = level.nghost
    n = level.n_cell[direction]
    axis = direction + field.ndim - 3
    idx = g + np.mod(np.arange(-g, n + g), n)
    field[...] = np.take(field, idx, axis=axis)


def _ghost_and_mirror(level: LevelData, direction: int, side: int) -> tuple[np.ndarray, np.ndarray]:
    """Padded indices of the ghost layers on one face and their interior mirrors."""
    g = level.nghost
    n = level.n_cell[direction]
    m = np.arange(1, g + 1)
    if side == 0:
        ghost = g - m
        mirror = np.minimum(g + m - 1, g + n - 1)
    else:
        ghost = g + n - 1 + m
        mirror = np.maximum(g + n - m, g)
    return ghost, mirror


def _fill_face(
    field: np.ndarray,
    level: LevelData,
    direction: int,
    side: int,
    a: float,
    b: float | None,
    injected: np.ndarray | None,
) -> None:
    """Apply ghost = a * mirror + b to one face of a padded scalar array.

    When ``b`` is None the additive term is taken from ``injected`` at the
    ghost locations (coarse-fine faces); without an injected source those
    faces fall back to zero-gradient extrapolation.
    """
    ghost, mirror = _ghost_and_mirror(level, direction, side)
    if b is None:
        if injected is None:
            a, b_val = 1.0, 0.0
        else:
            b_val = np.take(injected, ghost, axis=direction)
    else:
        b_val = b
    values = a * np.take(field, mirror, axis=direction) + b_val
    sl = [slice(None)] * 3
    sl[direction] = ghost
    field[tuple(sl)] = values
