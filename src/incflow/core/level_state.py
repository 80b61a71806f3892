"""Per-level field storage for a statically refined Cartesian hierarchy.

Level 0 covers the whole domain.  Each finer level is a single
rectangular patch nested inside its parent, refined by an integer ratio.
All fields are cell-centred and padded with ``nghost`` ghost cells on
every side:

    vector fields: (3, nx + 2g, ny + 2g, nz + 2g)
    scalar fields: (nx + 2g, ny + 2g, nz + 2g)

Cell centres of a level patch are located at

    x[i] = prob_lo + (lo + i + 0.5) * dx    for i = 0, ..., nx-1

where ``lo`` is the patch's lower corner in the level's global index space.

The ``LevelStateArena`` owns every level's fields; the time-stepping core
borrows them by level index for the duration of a step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Iterator

    from incflow.config import SimulationConfig

logger = logging.getLogger(__name__)

VECTOR_FIELDS = ("vel", "vel_old", "gp", "conv", "conv_old")
SCALAR_FIELDS = ("ro", "eta", "p", "p0", "strainrate", "vort", "divu")


@dataclass
class LevelData:
    """Field bundle and geometry of one refinement level.

    Attributes:
        level: Refinement level (0 = coarsest).
        n_cell: Interior cells of the patch per direction.
        lo: Lower patch corner in this level's global index space.
        domain_cells: Cells spanning the whole domain at this resolution.
        dx: Cell size per direction [m].
        prob_lo: Lower domain corner [m].
        nghost: Ghost cells on each side.
        ref_ratio: Refinement ratio relative to the parent (1 on level 0).
    """

    level: int
    n_cell: tuple[int, int, int]
    lo: tuple[int, int, int]
    domain_cells: tuple[int, int, int]
    dx: tuple[float, float, float]
    prob_lo: tuple[float, float, float] = (0.0, 0.0, 0.0)
    nghost: int = 2
    ref_ratio: int = 1

    vel: np.ndarray = field(init=False, repr=False)
    vel_old: np.ndarray = field(init=False, repr=False)
    gp: np.ndarray = field(init=False, repr=False)
    conv: np.ndarray = field(init=False, repr=False)
    conv_old: np.ndarray = field(init=False, repr=False)
    ro: np.ndarray = field(init=False, repr=False)
    eta: np.ndarray = field(init=False, repr=False)
    p: np.ndarray = field(init=False, repr=False)
    p0: np.ndarray = field(init=False, repr=False)
    strainrate: np.ndarray = field(init=False, repr=False)
    vort: np.ndarray = field(init=False, repr=False)
    divu: np.ndarray = field(init=False, repr=False)
    covered: np.ndarray = field(init=False, repr=False)
    vfrac: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        g = self.nghost
        padded = tuple(n + 2 * g for n in self.n_cell)
        for name in VECTOR_FIELDS:
            setattr(self, name, np.zeros((3, *padded)))
        for name in SCALAR_FIELDS:
            setattr(self, name, np.zeros(padded))
        self.covered = np.zeros(self.n_cell, dtype=bool)
        self.vfrac = np.ones(self.n_cell)

    # --- Geometry ---

    @property
    def valid(self) -> tuple[slice, slice, slice]:
        """Slices selecting interior cells of a padded scalar field."""
        g = self.nghost
        return tuple(slice(g, g + n) for n in self.n_cell)  # type: ignore[return-value]

    def interior(self, arr: np.ndarray) -> np.ndarray:
        """Return a view of the interior cells of a padded scalar or vector field."""
        if arr.ndim == 4:
            return arr[(slice(None), *self.valid)]
        return arr[self.valid]

    def cell_centers(self, direction: int) -> np.ndarray:
        """Cell-centre coordinates along ``direction`` [m]."""
        d = direction
        return self.prob_lo[d] + (self.lo[d] + np.arange(self.n_cell[d]) + 0.5) * self.dx[d]

    def touches_domain(self, direction: int, side: int) -> bool:
        """True when the patch face ``side`` (0 = lo, 1 = hi) lies on the domain boundary."""
        if side == 0:
            return self.lo[direction] == 0
        return self.lo[direction] + self.n_cell[direction] == self.domain_cells[direction]

    def spans_domain(self, direction: int) -> bool:
        return self.touches_domain(direction, 0) and self.touches_domain(direction, 1)

    # --- Reductions over uncovered cells ---

    @property
    def uncovered(self) -> np.ndarray:
        """Interior mask of cells neither covered by a finer level nor solid."""
        return ~self.covered & (self.vfrac > 0.0)

    def _values(self, arr: np.ndarray, comp: int | None) -> np.ndarray:
        data = self.interior(arr)
        if comp is not None:
            data = data[comp]
        if data.ndim == 4:
            return data[:, self.uncovered]
        return data[self.uncovered]

    def max_abs(self, arr: np.ndarray, comp: int | None = None) -> float:
        """Max-norm of ``arr`` (or one component of it) over uncovered cells."""
        return float(np.max(np.abs(self._values(arr, comp)), initial=0.0))

    def sum_abs(self, arr: np.ndarray, comp: int | None = None) -> float:
        """1-norm of ``arr`` (or one component of it) over uncovered cells."""
        return float(np.sum(np.abs(self._values(arr, comp))))

    def min_value(self, arr: np.ndarray) -> float:
        return float(np.min(self._values(arr, None), initial=np.inf))

    def max_value(self, arr: np.ndarray) -> float:
        return float(np.max(self._values(arr, None), initial=-np.inf))


class LevelStateArena:
    """Indexed collection of per-level field bundles.

    Args:
        nghost: Ghost-cell width shared by every field on every level.
    """

    def __init__(self, nghost: int = 2) -> None:
        self.nghost = nghost
        self._levels: list[LevelData] = []

    @classmethod
    def from_config(cls, config: SimulationConfig) -> LevelStateArena:
        """Allocate the base level and every statically refined level."""
        grid = config.grid
        arena = cls(nghost=grid.nghost)
        n_cell = tuple(grid.n_cell)
        arena.allocate_level(
            0,
            n_cell=n_cell,
            lo=(0, 0, 0),
            domain_cells=n_cell,
            dx=grid.dx,
            prob_lo=tuple(grid.prob_lo),
        )
        r = config.amr.ref_ratio
        for lev, box in enumerate(config.amr.refine_boxes, start=1):
            parent = arena[lev - 1]
            arena.allocate_level(
                lev,
                n_cell=tuple((box.hi[d] - box.lo[d] + 1) * r for d in range(3)),
                lo=tuple((parent.lo[d] + box.lo[d]) * r for d in range(3)),
                domain_cells=tuple(n * r for n in parent.domain_cells),
                dx=tuple(h / r for h in parent.dx),
                prob_lo=parent.prob_lo,
                ref_ratio=r,
            )
        return arena

    # --- Container protocol ---

    def __getitem__(self, lev: int) -> LevelData:
        return self._levels[lev]

    def __len__(self) -> int:
        return len(self._levels)

    def __iter__(self) -> Iterator[LevelData]:
        return iter(self._levels)

    @property
    def finest_level(self) -> int:
        return len(self._levels) - 1

    # --- Allocation ---

    def allocate_level(
        self,
        lev: int,
        n_cell: tuple[int, int, int],
        lo: tuple[int, int, int],
        domain_cells: tuple[int, int, int],
        dx: tuple[float, float, float],
        prob_lo: tuple[float, float, float] = (0.0, 0.0, 0.0),
        ref_ratio: int = 1,
    ) -> LevelData:
        """Allocate zeroed fields for level ``lev`` (the next level, or a replacement)."""
        if lev > len(self._levels):
            raise ValueError(f"cannot allocate level {lev} before level {len(self._levels)}")
        level = LevelData(
            level=lev,
            n_cell=tuple(n_cell),
            lo=tuple(lo),
            domain_cells=tuple(domain_cells),
            dx=tuple(dx),
            prob_lo=tuple(prob_lo),
            nghost=self.nghost,
            ref_ratio=ref_ratio,
        )
        if lev == len(self._levels):
            self._levels.append(level)
        else:
            self._levels[lev] = level
        self.update_covered_masks()
        logger.debug(
            "Allocated level %d: %dx%dx%d cells at lo=%s, dx=%s",
            lev, *level.n_cell, level.lo, level.dx,
        )
        return level

    def remake_level(self, lev: int, n_cell: tuple[int, int, int], lo: tuple[int, int, int]) -> LevelData:
        """Re-allocate level ``lev`` on a new patch, keeping its resolution."""
        old = self._levels[lev]
        return self.allocate_level(
            lev, n_cell, lo, old.domain_cells, old.dx, old.prob_lo, old.ref_ratio
        )

    def clear_level(self, lev: int) -> None:
        """Delete the finest level."""
        if lev != self.finest_level or lev == 0:
            raise ValueError(f"only the finest refined level can be cleared, got level {lev}")
        del self._levels[lev]
        self.update_covered_masks()

    def set_volume_fraction(self, lev: int, vfrac: np.ndarray) -> None:
        """Install externally computed volume fractions (0 = solid, 1 = fluid)."""
        level = self._levels[lev]
        if vfrac.shape != level.n_cell:
            raise ValueError(f"vfrac shape {vfrac.shape} != level shape {level.n_cell}")
        level.vfrac = np.clip(np.asarray(vfrac, dtype=np.float64), 0.0, 1.0)

    # --- Inter-level bookkeeping ---

    def _covered_region(self, lev: int) -> tuple[slice, slice, slice]:
        """Interior slices of level ``lev`` covered by level ``lev + 1``."""
        coarse = self._levels[lev]
        fine = self._levels[lev + 1]
        r = fine.ref_ratio
        return tuple(  # type: ignore[return-value]
            slice(fine.lo[d] // r - coarse.lo[d], (fine.lo[d] + fine.n_cell[d]) // r - coarse.lo[d])
            for d in range(3)
        )

    def update_covered_masks(self) -> None:
        for lev, level in enumerate(self._levels):
            level.covered[...] = False
            if lev < self.finest_level:
                level.covered[self._covered_region(lev)] = True

    def average_down(self, name: str) -> None:
        """Overwrite covered coarse cells with the volume-weighted mean of the fine cells.

        Args:
            name: Field attribute to restrict (e.g. ``"vel"``).
        """
        for lev in range(self.finest_level, 0, -1):
            fine = self._levels[lev]
            coarse = self._levels[lev - 1]
            r = fine.ref_ratio
            nc = tuple(n // r for n in fine.n_cell)
            blocks = (nc[0], r, nc[1], r, nc[2], r)

            weight = fine.vfrac.reshape(blocks).sum(axis=(1, 3, 5))
            safe = np.where(weight > 0.0, weight, 1.0)

            fine_data = fine.interior(getattr(fine, name))
            coarse_data = coarse.interior(getattr(coarse, name))
            region = self._covered_region(lev - 1)
            if fine_data.ndim == 4:
                for comp in range(3):
                    summed = (fine_data[comp] * fine.vfrac).reshape(blocks).sum(axis=(1, 3, 5))
                    coarse_data[comp][region] = np.where(
                        weight > 0.0, summed / safe, coarse_data[comp][region]
                    )
            else:
                summed = (fine_data * fine.vfrac).reshape(blocks).sum(axis=(1, 3, 5))
                coarse_data[region] = np.where(weight > 0.0, summed / safe, coarse_data[region])
