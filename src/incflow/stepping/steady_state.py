"""Steady-state convergence test.

A level is converged when, for its worst velocity component, either

    max|u^{n+1} - u^n| < tol * dt                   (rate of change)
    sum|u^{n+1} - u^n| / sum|u^n| < tol             (relative change)

holds, with the relative change taken as zero when the baseline
sum|u^n| is at most 1e-15.  The run is steady only when every level is
converged, and never during the first two steps so that an exactly zero
initial field is not mistaken for a converged one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from incflow.constants import baseline_floor

if TYPE_CHECKING:
    from incflow.core.bases import BoundaryFillerBase
    from incflow.core.clock import SimulationClock
    from incflow.core.level_state import LevelData, LevelStateArena

logger = logging.getLogger(__name__)


def level_changes(level: LevelData) -> tuple[float, float]:
    """Return ``(max_change, max_relchange)`` over the three velocity components."""
    diff = level.vel - level.vel_old
    max_change = 0.0
    max_relchange = 0.0
    for comp in range(3):
        max_change = max(max_change, level.max_abs(diff, comp))
        norm1_diff = level.sum_abs(diff, comp)
        norm1_old = level.sum_abs(level.vel_old, comp)
        relchange = norm1_diff / norm1_old if norm1_old > baseline_floor else 0.0
        max_relchange = max(max_relchange, relchange)
    return max_change, max_relchange


class SteadyStateMonitor:
    """Signals termination once the velocity stops changing."""

    def __init__(
        self,
        arena: LevelStateArena,
        clock: SimulationClock,
        boundary: BoundaryFillerBase,
        tol: float,
    ) -> None:
        self.arena = arena
        self.clock = clock
        self.boundary = boundary
        self.tol = tol

    def steady_state_reached(self) -> bool:
        self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)

        dt = self.clock.dt
        reached = True
        for lev, level in enumerate(self.arena):
            max_change, max_relchange = level_changes(level)
            rate_ok = max_change < self.tol * dt
            relative_ok = max_relchange < self.tol
            reached = reached and (rate_ok or relative_ok)
            logger.info(
                "Steady state check level %d: ||u-uo||/||uo|| = %.6e, du/dt = %.6e",
                lev, max_relchange, max_change / dt if dt > 0.0 else np.inf,
            )

        if self.clock.nstep < 2:
            return False
        return reached
