"""Simulation engine: orchestrates the incflow time loop.

Wires together: config -> level arena -> boundary filler -> convection /
diffusion / projection -> step-size controller -> predictor-corrector
integrator -> steady-state monitor -> plot files and checkpoints.

Each step:
1. Fill density, viscosity and velocity ghost cells at the current time
2. Compute the step size
3. Copy the velocity to the old-time slot
4. Predictor and corrector stages
5. Restrict fine-level data onto the covered coarse cells
6. Advance the clock, write output, test for termination
"""

from __future__ import annotations

import logging
import math
import time as wall_time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from incflow.core.bases import StepResult
from incflow.core.clock import SimulationClock
from incflow.core.level_state import LevelStateArena
from incflow.diagnostics.checkpoint import load_checkpoint, save_checkpoint
from incflow.diagnostics.plotfile import write_plotfile
from incflow.fluid.boundary import BoundaryFiller
from incflow.fluid.convection import ConvectionOperator
from incflow.fluid.derived import update_derived_quantities
from incflow.fluid.implicit_diffusion import DiffusionSolver
from incflow.fluid.initial_conditions import init_fluid, set_background_pressure
from incflow.fluid.projection import ProjectionSolver
from incflow.stepping.predictor_corrector import PredictorCorrectorIntegrator
from incflow.stepping.steady_state import SteadyStateMonitor
from incflow.stepping.timestep import TimeStepController

if TYPE_CHECKING:
    from incflow.config import SimulationConfig
    from incflow.core.bases import (
        ConvectionOperatorBase,
        DiffusionSolverBase,
        ProjectionSolverBase,
    )

logger = logging.getLogger(__name__)

# Fields restricted from fine to coarse levels after every step
_AVERAGED_FIELDS = ("vel", "gp", "p", "eta")


class SimulationEngine:
    """Incompressible flow simulation engine.

    Args:
        config: Validated SimulationConfig.
        convection: Replacement convection operator (default: MC-limited upwind).
        diffusion: Replacement implicit diffusion solver (default: ADI).
        projection: Replacement projection solver (default: sparse CG).
    """

    def __init__(
        self,
        config: SimulationConfig,
        *,
        convection: ConvectionOperatorBase | None = None,
        diffusion: DiffusionSolverBase | None = None,
        projection: ProjectionSolverBase | None = None,
    ) -> None:
        self.config = config
        self.arena = LevelStateArena.from_config(config)
        self.clock = SimulationClock.for_levels(len(self.arena))
        self.boundary = BoundaryFiller(self.arena, config.boundary)

        self.convection = convection or ConvectionOperator()
        self.diffusion = diffusion or DiffusionSolver(self.boundary)
        self.projection = projection or ProjectionSolver(self.boundary, config.solver)

        self.controller = TimeStepController(self.arena, self.clock, config)
        self.integrator = PredictorCorrectorIntegrator(
            self.arena,
            self.clock,
            self.boundary,
            self.convection,
            self.diffusion,
            self.projection,
            config,
        )
        self.monitor = SteadyStateMonitor(
            self.arena, self.clock, self.boundary, config.time.steady_state_tol
        )

        self.output_dir = Path(config.output.output_dir)
        self.steady = False
        self._initialized = False

        logger.info(
            "Engine: %d level(s), base grid %s, %s",
            len(self.arena), tuple(config.grid.n_cell), config.fluid.describe(),
        )

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def init_data(self) -> None:
        """Fill initial conditions, project them and iterate for a consistent pressure."""
        cfg = self.config
        gp0 = cfg.physics.background_pressure_gradient(cfg.grid.lengths)
        for level in self.arena:
            init_fluid(level, cfg)
            set_background_pressure(level, gp0)
        self.arena.average_down("vel")

        self.boundary.fill_scalar_bcs(self.arena)
        self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)
        update_derived_quantities(self.arena, self.boundary, cfg.fluid)

        if cfg.time.do_initial_proj:
            self.integrator.initial_projection()
            self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)

        if cfg.time.initial_iterations > 0:
            self.controller.compute_dt(initial=True)
            self.integrator.initial_iterations(cfg.time.initial_iterations)

        self._initialized = True
        self.print_max_values(self.clock.cur_time)

    # ------------------------------------------------------------------
    # Single-step interface
    # ------------------------------------------------------------------

    def advance(self) -> None:
        """Advance every level by one step; the clock is not moved past it."""
        t_start = wall_time.monotonic()
        clock = self.clock

        self.boundary.fill_scalar_bcs(self.arena)
        self.boundary.fill_velocity_bc(self.arena, clock.cur_time)

        self.controller.compute_dt(initial=False)
        clock.begin_step()

        logger.info(
            "Step %d: from old_time %.6e to new time %.6e with dt = %.6e",
            clock.nstep + 1, clock.cur_time, clock.new_time, clock.dt,
        )

        for level in self.arena:
            level.vel_old[...] = level.vel

        self.integrator.apply_predictor()
        self.integrator.apply_corrector()

        if self.arena.finest_level > 0:
            for name in _AVERAGED_FIELDS:
                self.arena.average_down(name)
            self.boundary.fill_velocity_bc(self.arena, clock.new_time)

        self.print_max_values(clock.new_time)
        logger.info("Time per step %.4f s", wall_time.monotonic() - t_start)

    def step(self) -> StepResult:
        """Run one step, write any due output and evaluate the termination criteria."""
        if not self._initialized:
            self.init_data()

        self.advance()
        self.clock.end_step()
        self._write_due_output()

        if self.config.time.steady_state:
            self.steady = self.monitor.steady_state_reached()

        return self._make_step_result(finished=self.is_finished())

    def is_finished(self) -> bool:
        tc = self.config.time
        clock = self.clock
        if tc.steady_state and self.steady:
            return True
        if tc.stop_time is not None and clock.cur_time >= tc.stop_time - 1.0e-3 * clock.dt:
            return True
        return tc.max_step is not None and clock.nstep >= tc.max_step

    def _make_step_result(self, *, finished: bool) -> StepResult:
        max_vel = max(level.max_abs(level.vel) for level in self.arena)
        max_divu = max(level.max_abs(level.divu) for level in self.arena)
        if not math.isfinite(max_vel):
            logger.warning("Non-finite velocity after step %d", self.clock.nstep)
        return StepResult(
            time=self.clock.cur_time,
            step=self.clock.nstep,
            dt=self.clock.dt,
            max_vel=max_vel,
            max_divu=max_divu,
            steady=self.steady,
            finished=finished,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _plot_due(self) -> bool:
        out = self.config.output
        clock = self.clock
        if out.plot_int is not None and clock.nstep % out.plot_int == 0:
            return True
        if out.plot_per is None:
            return False
        # a multiple of plot_per was reached or crossed during the last step
        pp = out.plot_per
        slack = 1.0e-9 * pp
        before = math.trunc((clock.cur_time - clock.dt + slack) / pp)
        return math.trunc((clock.cur_time + slack) / pp) > before

    def _write_due_output(self) -> None:
        out = self.config.output
        if self._plot_due():
            self.write_plotfile()
        if out.check_int is not None and self.clock.nstep % out.check_int == 0:
            self.save_checkpoint()

    @property
    def plot_enabled(self) -> bool:
        out = self.config.output
        return out.plot_int is not None or out.plot_per is not None

    def write_plotfile(self, filename: str | Path | None = None) -> Path:
        """Write a plot file (default: ``<output_dir>/<plot_file><nstep>.h5``)."""
        path = Path(filename) if filename is not None else (
            self.output_dir / f"{self.config.output.plot_file}{self.clock.nstep:05d}.h5"
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        write_plotfile(
            str(path), self.arena, self.clock.cur_time, self.clock.nstep,
            self.config.output.plot_vars,
        )
        self.clock.last_plt = self.clock.nstep
        return path

    def save_checkpoint(self, filename: str | Path | None = None) -> Path:
        """Save a checkpoint (default: ``<output_dir>/<check_file><nstep>.h5``)."""
        path = Path(filename) if filename is not None else (
            self.output_dir / f"{self.config.output.check_file}{self.clock.nstep:05d}.h5"
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        self.clock.last_chk = self.clock.nstep
        save_checkpoint(str(path), self.arena, self.clock, self.config.model_dump_json())
        return path

    def load_from_checkpoint(self, filename: str | Path) -> None:
        """Restore state from a checkpoint; the initial projection is skipped."""
        data = load_checkpoint(str(filename))
        levels = data["levels"]
        if len(levels) != len(self.arena):
            raise ValueError(
                f"checkpoint has {len(levels)} levels, configuration has {len(self.arena)}"
            )

        for lev, saved in enumerate(levels):
            level = self.arena[lev]
            if saved["n_cell"] != level.n_cell or saved["lo"] != level.lo:
                level = self.arena.remake_level(lev, saved["n_cell"], saved["lo"])
            for name in ("vel", "gp", "p", "p0", "ro", "eta"):
                getattr(level, name)[...] = saved[name]

        for key, value in data["clock"].items():
            setattr(self.clock, key, value)
        self.clock.resize(len(self.arena))

        self.boundary.fill_scalar_bcs(self.arena)
        self.boundary.fill_velocity_bc(self.arena, self.clock.cur_time)
        update_derived_quantities(self.arena, self.boundary, self.config.fluid)
        self._initialized = True

        logger.info(
            "Restored from checkpoint: t=%.4e s, step=%d, dt=%.4e",
            self.clock.cur_time, self.clock.nstep, self.clock.dt,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_field_snapshot(self, lev: int = 0) -> dict[str, np.ndarray]:
        """Return copies of the interior fields of one level."""
        level = self.arena[lev]
        names = ("vel", "gp", "p", "p0", "ro", "eta", "strainrate", "vort", "divu")
        return {name: level.interior(getattr(level, name)).copy() for name in names}

    def print_max_values(self, time: float) -> None:
        """Log the max-norm of velocity, pressure gradient and pressure on every level."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        for level in self.arena:
            logger.debug(
                "Level %d at t=%.6e: max(|u|, |v|, |w|) = (%.4e, %.4e, %.4e), "
                "max(|gp|) = (%.4e, %.4e, %.4e), max|p| = %.4e",
                level.level, time,
                *(level.max_abs(level.vel, d) for d in range(3)),
                *(level.max_abs(level.gp, d) for d in range(3)),
                level.max_abs(level.p),
            )

    # ------------------------------------------------------------------
    # Batch run (uses step() internally)
    # ------------------------------------------------------------------

    def run(self, max_steps: int | None = None) -> dict[str, Any]:
        """Execute the simulation loop.

        Args:
            max_steps: Stop after this many steps of this call (None = run to
                the configured termination criterion).

        Returns:
            Dictionary with summary statistics.
        """
        t_wall_start = wall_time.monotonic()

        if not self._initialized:
            self.init_data()
            if self.plot_enabled:
                self.write_plotfile()

        logger.info(
            "Starting simulation at t=%.4e s, step=%d", self.clock.cur_time, self.clock.nstep
        )

        taken = 0
        result = self._make_step_result(finished=self.is_finished())
        while not result.finished and (max_steps is None or taken < max_steps):
            result = self.step()
            taken += 1

        if self.plot_enabled and self.clock.last_plt != self.clock.nstep:
            self.write_plotfile()
        if self.config.output.check_int is not None and self.clock.last_chk != self.clock.nstep:
            self.save_checkpoint()

        t_wall = wall_time.monotonic() - t_wall_start
        summary = {
            "steps": self.clock.nstep,
            "steps_this_run": taken,
            "sim_time": self.clock.cur_time,
            "dt": self.clock.dt,
            "wall_time_s": t_wall,
            "steady": self.steady,
            "max_vel": result.max_vel,
            "finished": result.finished,
        }

        logger.info(
            "Simulation complete: %d steps in %.2f s (%.1f steps/s), t=%.4e, steady=%s",
            taken, t_wall, taken / max(t_wall, 1e-10), self.clock.cur_time, self.steady,
        )
        return summary
