"""Core abstract base classes and shared data structures.

Defines the interface contracts between the time-stepping core and its
collaborators:
- ``StepResult``: per-step scalar report for the run driver
- ``BoundaryFillerBase``: ghost-cell and physical boundary refresh
- ``ConvectionOperatorBase``: explicit advective term
- ``DiffusionSolverBase``: implicit viscous update
- ``ProjectionSolverBase``: elliptic pressure projection
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from incflow.core.level_state import LevelData, LevelStateArena


class SolverConvergenceError(RuntimeError):
    """Raised when an implicit or elliptic solve fails; fatal for the step."""


@dataclass
class StepResult:
    """Result of a single simulation timestep.

    Attributes:
        time: Simulation time after this step [s].
        step: Step number after this step.
        dt: Timestep size used [s].
        max_vel: Largest velocity magnitude component over all levels [m/s].
        max_divu: Largest |div u| over all levels after the step [1/s].
        steady: True when the steady-state criteria were met.
        finished: True when a termination criterion was reached.
    """

    time: float = 0.0
    step: int = 0
    dt: float = 0.0
    max_vel: float = 0.0
    max_divu: float = 0.0
    steady: bool = False
    finished: bool = False


class BoundaryFillerBase(ABC):
    """Ghost-cell exchange and boundary-value refresh."""

    @abstractmethod
    def fill_boundary(self, lev: int, field: np.ndarray) -> None:
        """Exchange periodic halos of ``field`` on level ``lev`` in place."""

    @abstractmethod
    def fill_physical_bc(
        self, lev: int, vel: np.ndarray, time: float, extrap_dir_bcs: bool = False
    ) -> None:
        """Fill all velocity ghost cells on level ``lev`` at ``time`` in place."""

    @abstractmethod
    def fill_scalar_bc(self, lev: int, field: np.ndarray) -> None:
        """Fill all ghost cells of a cell-centred scalar (or vector) field in place."""

    @abstractmethod
    def normal_closure(self, lev: int, direction: int, side: int) -> float:
        """Coefficient ``a`` in ghost = a * mirror + b for the face-normal velocity."""

    @abstractmethod
    def velocity_closure(self, lev: int, direction: int, side: int, component: int) -> float:
        """Coefficient ``a`` in ghost = a * mirror + b for one velocity component."""

    @abstractmethod
    def is_periodic(self, lev: int, direction: int) -> bool:
        """True when level ``lev`` wraps around in ``direction``."""

    def fill_velocity_bc(
        self, arena: LevelStateArena, time: float, extrap_dir_bcs: bool = False
    ) -> None:
        """Fill velocity ghost cells on every level, coarse to fine."""
        for lev, level in enumerate(arena):
            self.fill_physical_bc(lev, level.vel, time, extrap_dir_bcs)

    def fill_scalar_bcs(self, arena: LevelStateArena) -> None:
        """Fill density and viscosity ghost cells on every level, coarse to fine."""
        for lev, level in enumerate(arena):
            self.fill_scalar_bc(lev, level.ro)
            self.fill_scalar_bc(lev, level.eta)


class ConvectionOperatorBase(ABC):
    """Explicit advective term ``-(u . grad) u``."""

    @abstractmethod
    def compute(self, level: LevelData, vel: np.ndarray, time: float) -> np.ndarray:
        """Return the interior convective term, shape ``(3, nx, ny, nz)``.

        Args:
            level: Level geometry.
            vel: Ghost-filled velocity on that level.
            time: Time at which ``vel`` is valid [s].
        """


class DiffusionSolverBase(ABC):
    """Implicit viscous update."""

    @abstractmethod
    def solve(
        self,
        level: LevelData,
        vel: np.ndarray,
        ro: np.ndarray,
        eta: np.ndarray,
        dt: float,
    ) -> np.ndarray:
        """Return the interior velocity after one implicit diffusion step.

        Raises:
            SolverConvergenceError: If the solve fails.
        """


class ProjectionSolverBase(ABC):
    """Elliptic projection onto the discretely divergence-free subspace."""

    @abstractmethod
    def project(
        self,
        level: LevelData,
        vel: np.ndarray,
        ro: np.ndarray,
        gp: np.ndarray,
        time: float,
        scale: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Project ``vel`` and return interior ``(vel, p, gp)``.

        ``scale`` relates the projection variable to pressure: ``p = phi / scale``.

        Raises:
            SolverConvergenceError: If the elliptic solve fails.
        """
