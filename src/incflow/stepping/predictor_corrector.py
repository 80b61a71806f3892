"""Second-order predictor-corrector projection step.

Both stages share the same structure:

    1. explicit convective term (old state in the predictor, predicted
       state in the corrector)
    2. derived-quantity update (strain rate, effective viscosity)
    3. explicit update: predictor  u = u^n + dt * conv^n
                        corrector  u = u^n + dt/2 * (conv^n + conv^pred)
       plus gravity
    4. lagged pressure gradient applied as a momentum source:
       u = (rho * u - dt * (gp + gp0)) / rho
    5. velocity ghost refresh at the new time
    6. implicit diffusion  (1 - dt / rho div(eta grad)) u* = u
    7. projection at the new time with scale = dt
    8. velocity ghost refresh

Solver failures raised by the diffusion or projection collaborators
propagate unchanged; no stage is retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from incflow.fluid.derived import update_derived_quantities

if TYPE_CHECKING:
    from incflow.config import SimulationConfig
    from incflow.core.bases import (
        BoundaryFillerBase,
        ConvectionOperatorBase,
        DiffusionSolverBase,
        ProjectionSolverBase,
    )
    from incflow.core.clock import SimulationClock
    from incflow.core.level_state import LevelData, LevelStateArena

logger = logging.getLogger(__name__)


class PredictorCorrectorIntegrator:
    """Advances every level by one step of size ``clock.dt``."""

    def __init__(
        self,
        arena: LevelStateArena,
        clock: SimulationClock,
        boundary: BoundaryFillerBase,
        convection: ConvectionOperatorBase,
        diffusion: DiffusionSolverBase,
        projection: ProjectionSolverBase,
        config: SimulationConfig,
    ) -> None:
        self.arena = arena
        self.clock = clock
        self.boundary = boundary
        self.convection = convection
        self.diffusion = diffusion
        self.projection = projection
        self.rheology = config.fluid
        self.gravity = np.asarray(config.physics.gravity, dtype=np.float64)
        self.gp0 = np.asarray(
            config.physics.background_pressure_gradient(config.grid.lengths), dtype=np.float64
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def apply_predictor(self) -> None:
        dt = self.clock.dt
        new_time = self.clock.new_time

        for level in self.arena:
            level.interior(level.conv_old)[...] = self.convection.compute(
                level, level.vel_old, self.clock.cur_time
            )

        update_derived_quantities(self.arena, self.boundary, self.rheology)

        for level in self.arena:
            level.interior(level.vel)[...] += dt * level.interior(level.conv_old)
            self._add_forcing(level, dt)

        self._implicit_stage(new_time, dt)

    def apply_corrector(self) -> None:
        dt = self.clock.dt
        new_time = self.clock.new_time

        for level in self.arena:
            level.interior(level.conv)[...] = self.convection.compute(level, level.vel, new_time)

        update_derived_quantities(self.arena, self.boundary, self.rheology)

        for level in self.arena:
            level.interior(level.vel)[...] = (
                level.interior(level.vel_old)
                + 0.5 * dt * level.interior(level.conv)
                + 0.5 * dt * level.interior(level.conv_old)
            )
            self._add_forcing(level, dt)

        self._implicit_stage(new_time, dt)

    def apply_projection(self, time: float, scale: float) -> None:
        """Project the velocity on every level, coarse to fine, and update p and gp."""
        for lev, level in enumerate(self.arena):
            vel, p, gp = self.projection.project(
                level, level.vel, level.ro, level.gp, time, scale
            )
            level.interior(level.vel)[...] = vel
            level.interior(level.p)[...] = p
            level.interior(level.gp)[...] = gp
            self.boundary.fill_scalar_bc(lev, level.p)
            self.boundary.fill_scalar_bc(lev, level.gp)

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def initial_projection(self) -> None:
        """Make the initial velocity divergence-free; p and gp are reset to zero."""
        logger.info("Initial projection")
        self.apply_projection(self.clock.cur_time, 1.0)
        self.clock.nstep = 0
        for level in self.arena:
            level.p[...] = 0.0
            level.gp[...] = 0.0

    def initial_iterations(self, iterations: int) -> None:
        """Repeat the predictor from the initial state to find a consistent pressure.

        ``clock.dt`` must already hold the initial step size.  The velocity
        is restored after every iteration; only p and gp carry over.
        """
        logger.info("Doing initial pressure iterations with dt = %.6e", self.clock.dt)
        self.boundary.fill_scalar_bcs(self.arena)
        self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)
        for level in self.arena:
            level.vel_old[...] = level.vel

        for it in range(iterations):
            logger.debug("Initial iteration %d", it)
            self.apply_predictor()
            for level in self.arena:
                level.vel[...] = level.vel_old
            self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add_forcing(self, level: LevelData, dt: float) -> None:
        vel = level.interior(level.vel)
        ro = level.interior(level.ro)
        gp = level.interior(level.gp)
        for d in range(3):
            vel[d] += dt * self.gravity[d]
            # momentum source, so scale by density before adding
            vel[d] = (vel[d] * ro - dt * (gp[d] + self.gp0[d])) / ro

    def _implicit_stage(self, new_time: float, dt: float) -> None:
        self.boundary.fill_velocity_bc(self.arena, new_time)
        for level in self.arena:
            level.interior(level.vel)[...] = self.diffusion.solve(
                level, level.vel, level.ro, level.eta, dt
            )
        self.apply_projection(new_time, dt)
        self.boundary.fill_velocity_bc(self.arena, new_time)
