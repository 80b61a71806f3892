"""Adaptive step-size selection from a combined stability bound.

The bound follows Kang, Fedkiw & Liu, "A Boundary Condition Capturing
Method for Multiphase Incompressible Flow", J. Sci. Comput. 15 (2000):

    dt = 2 * cfl / (C + V + sqrt((C + V)^2 + 4 F))

    C = max(|u|/dx, |v|/dy, |w|/dz)                        convection
    V = 2 * (eta_max / rho_min) * (1/dx^2 + 1/dy^2 + 1/dz^2) diffusion
    F = sum_d |g_d - |gp0_d|| / dx_d                        body forces

The convective term uses the maximum over directions rather than the sum.
After the raw bound a fixed sequence of guards is applied; later guards
may undo earlier reductions, so their order matters.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from incflow.constants import eps

if TYPE_CHECKING:
    from incflow.config import SimulationConfig
    from incflow.core.clock import SimulationClock
    from incflow.core.level_state import LevelStateArena

logger = logging.getLogger(__name__)


@dataclass
class StabilityBounds:
    """Inverse time scales entering the combined stability bound [1/s]."""

    conv_cfl: float
    diff_cfl: float
    forc_cfl: float

    @property
    def comb_cfl(self) -> float:
        cd = self.conv_cfl + self.diff_cfl
        return cd + math.sqrt(cd * cd + 4.0 * self.forc_cfl)


class TimeStepController:
    """Computes ``clock.dt`` from the current field extrema.

    Args:
        arena: Level storage (read only).
        clock: Simulation clock; ``dt`` is overwritten by :meth:`compute_dt`.
        config: Validated simulation configuration.
    """

    def __init__(
        self, arena: LevelStateArena, clock: SimulationClock, config: SimulationConfig
    ) -> None:
        self.arena = arena
        self.clock = clock
        self.time_config = config.time
        self.plot_per = config.output.plot_per
        self.gravity = tuple(config.physics.gravity)
        self.gp0 = config.physics.background_pressure_gradient(config.grid.lengths)

    def stability_bounds(self) -> StabilityBounds:
        """Reduce field extrema over all levels and form the three bounds."""
        umax = [0.0, 0.0, 0.0]
        romin = math.inf
        etamax = 0.0
        for level in self.arena:
            for d in range(3):
                umax[d] = max(umax[d], level.max_abs(level.vel, d))
            romin = min(romin, level.min_value(level.ro))
            etamax = max(etamax, level.max_value(level.eta))

        inv_dx = [1.0 / h for h in self.arena[self.arena.finest_level].dx]

        conv_cfl = max(umax[d] * inv_dx[d] for d in range(3))
        diff_cfl = 2.0 * etamax / romin * sum(i * i for i in inv_dx)
        forc_cfl = sum(abs(self.gravity[d] - abs(self.gp0[d])) * inv_dx[d] for d in range(3))
        return StabilityBounds(conv_cfl, diff_cfl, forc_cfl)

    def _halved(self) -> float:
        """Half the previous step, or ``dt_init`` before any valid step exists."""
        if self.clock.has_valid_dt:
            return 0.5 * self.clock.dt
        return self.time_config.dt_init

    def compute_dt(self, initial: bool) -> None:
        """Set ``clock.dt`` for the next step.

        Args:
            initial: Scale the bound by 0.1 for the first step, before the
                derived quantities have settled.
        """
        clock = self.clock
        bounds = self.stability_bounds()
        comb_cfl = bounds.comb_cfl

        if comb_cfl <= eps:
            # All-zero field without forcing
            dt_new = self._halved()
        else:
            dt_new = 2.0 * self.time_config.cfl / comb_cfl
            if initial:
                dt_new *= 0.1

        if clock.has_valid_dt and clock.last_plt != clock.nstep:
            dt_new = min(dt_new, 1.1 * clock.dt)

        pp = self.plot_per
        if pp is not None and pp > 0.0:
            cur = clock.cur_time
            last = math.trunc((cur + eps) / pp)
            if math.trunc((cur + dt_new + eps) / pp) > last:
                # land on the next multiple even if the step spans several
                dt_new = (last + 1) * pp - cur

        stop_time = self.time_config.stop_time
        if not self.time_config.steady_state and stop_time is not None and stop_time > 0.0:
            if clock.cur_time + dt_new > stop_time:
                dt_new = stop_time - clock.cur_time

        if dt_new < eps:
            dt_new = self._halved()

        fixed_dt = self.time_config.fixed_dt
        if fixed_dt is not None:
            if dt_new < fixed_dt:
                logger.warning(
                    "fixed_dt does not satisfy the CFL condition: "
                    "max dt by CFL = %.6e, fixed dt specified = %.6e",
                    dt_new, fixed_dt,
                )
            clock.dt = fixed_dt
        else:
            clock.dt = dt_new

        logger.debug(
            "compute_dt: conv_cfl=%.4e diff_cfl=%.4e forc_cfl=%.4e -> dt=%.6e",
            bounds.conv_cfl, bounds.diff_cfl, bounds.forc_cfl, clock.dt,
        )
