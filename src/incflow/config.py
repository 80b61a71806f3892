"""Pydantic v2 configuration system for incflow simulations.

Provides validated, typed configuration with submodels for the grid,
boundaries, refinement, time stepping, physics, rheology, solvers,
initial conditions and output.  Cross-field consistency is checked here
at load time; the time-stepping core assumes validated inputs.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from incflow.fluid.rheology import Newtonian, Rheology

_FACES = ("xlo", "xhi", "ylo", "yhi", "zlo", "zhi")

BCType = Literal["periodic", "no_slip_wall", "slip_wall", "mass_inflow", "pressure_outflow"]


class GridConfig(BaseModel):
    """Base-level Cartesian grid."""

    n_cell: list[int] = Field(..., min_length=3, max_length=3, description="Base grid (nx, ny, nz)")
    prob_lo: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Lower domain corner [m]",
    )
    prob_hi: list[float] = Field(
        default_factory=lambda: [1.0, 1.0, 1.0], min_length=3, max_length=3,
        description="Upper domain corner [m]",
    )
    nghost: int = Field(2, ge=2, le=8, description="Ghost cells on each side of every field")

    @model_validator(mode="after")
    def validate_extent(self) -> GridConfig:
        if any(n <= 0 for n in self.n_cell):
            raise ValueError("n_cell values must be positive integers")
        if any(hi <= lo for lo, hi in zip(self.prob_lo, self.prob_hi)):
            raise ValueError("prob_hi must exceed prob_lo in every direction")
        return self

    @property
    def lengths(self) -> tuple[float, float, float]:
        return tuple(hi - lo for lo, hi in zip(self.prob_lo, self.prob_hi))  # type: ignore[return-value]

    @property
    def dx(self) -> tuple[float, float, float]:
        """Base-level cell size per direction [m]."""
        return tuple(L / n for L, n in zip(self.lengths, self.n_cell))  # type: ignore[return-value]


class FaceBC(BaseModel):
    """Boundary condition on one domain face."""

    type: BCType = Field("periodic", description="Boundary condition type")
    velocity: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Prescribed velocity for mass_inflow faces [m/s]",
    )


class BoundaryConfig(BaseModel):
    """Domain boundary conditions, one per face."""

    xlo: FaceBC = Field(default_factory=FaceBC)
    xhi: FaceBC = Field(default_factory=FaceBC)
    ylo: FaceBC = Field(default_factory=FaceBC)
    yhi: FaceBC = Field(default_factory=FaceBC)
    zlo: FaceBC = Field(default_factory=FaceBC)
    zhi: FaceBC = Field(default_factory=FaceBC)

    @model_validator(mode="after")
    def check_periodic_pairs(self) -> BoundaryConfig:
        for d, axis in enumerate("xyz"):
            lo, hi = self.face(d, 0), self.face(d, 1)
            if (lo.type == "periodic") != (hi.type == "periodic"):
                raise ValueError(
                    f"{axis}lo and {axis}hi must both be periodic or both non-periodic"
                )
        return self

    def face(self, direction: int, side: int) -> FaceBC:
        """Return the FaceBC for ``direction`` (0-2) and ``side`` (0 = lo, 1 = hi)."""
        return getattr(self, _FACES[2 * direction + side])

    def is_periodic(self, direction: int) -> bool:
        return self.face(direction, 0).type == "periodic"


class RefineBox(BaseModel):
    """Refined region, given as inclusive cell indices local to the parent patch."""

    lo: list[int] = Field(..., min_length=3, max_length=3)
    hi: list[int] = Field(..., min_length=3, max_length=3)

    @model_validator(mode="after")
    def check_order(self) -> RefineBox:
        if any(h < lo for lo, h in zip(self.lo, self.hi)):
            raise ValueError("refine box hi must be >= lo in every direction")
        return self


class AMRConfig(BaseModel):
    """Static block-structured refinement.

    Attributes:
        max_level: Number of refined levels above the base level.
        ref_ratio: Integer refinement ratio between successive levels.
        refine_boxes: One box per refined level, in the parent patch's local
            index space (level 1 boxes index the base grid directly).
    """

    max_level: int = Field(0, ge=0, le=4)
    ref_ratio: int = Field(2, ge=2, le=4)
    refine_boxes: list[RefineBox] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_boxes(self) -> AMRConfig:
        if len(self.refine_boxes) != self.max_level:
            raise ValueError(
                f"need exactly one refine box per refined level: max_level={self.max_level}, "
                f"got {len(self.refine_boxes)} boxes"
            )
        return self


class TimeSteppingConfig(BaseModel):
    """Time-step control and run termination."""

    cfl: float = Field(0.5, gt=0, le=1.0, description="Stability safety factor")
    fixed_dt: float | None = Field(None, gt=0, description="Fixed step size (disables adaptivity)")
    dt_init: float = Field(
        1e-2, gt=0,
        description="Step used when the stability bound degenerates before any valid step exists",
    )
    stop_time: float | None = Field(None, gt=0, description="Final simulation time [s]")
    max_step: int | None = Field(None, ge=0, description="Maximum number of steps")
    steady_state: bool = Field(False, description="Run until steady state is reached")
    steady_state_tol: float = Field(1e-5, gt=0, description="Steady-state tolerance")
    do_initial_proj: bool = Field(True, description="Project the initial velocity field")
    initial_iterations: int = Field(3, ge=0, description="Initial pressure iterations")

    @model_validator(mode="after")
    def check_termination(self) -> TimeSteppingConfig:
        if not self.steady_state and self.stop_time is None and self.max_step is None:
            raise ValueError(
                "no termination criterion: set stop_time, max_step or steady_state"
            )
        return self


class PhysicsConfig(BaseModel):
    """Body forces and reference density."""

    gravity: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Gravitational acceleration [m/s^2]",
    )
    gp0: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Background pressure gradient [Pa/m]",
    )
    delp: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Pressure drop across the domain [Pa] (sets gp0 = -delp / L)",
    )
    ro_0: float = Field(1.0, gt=0, description="Reference density [kg/m^3]")

    @model_validator(mode="after")
    def check_pressure_drive(self) -> PhysicsConfig:
        for d in range(3):
            if self.gp0[d] != 0.0 and self.delp[d] != 0.0:
                raise ValueError(f"set either gp0 or delp along direction {d}, not both")
        return self

    def background_pressure_gradient(
        self, lengths: tuple[float, float, float]
    ) -> tuple[float, float, float]:
        """Return gp0 including the contribution of any imposed pressure drop."""
        return tuple(  # type: ignore[return-value]
            self.gp0[d] - self.delp[d] / lengths[d] for d in range(3)
        )


class SolverConfig(BaseModel):
    """Linear solver controls for the projection."""

    projection_rtol: float = Field(1e-11, gt=0, lt=1, description="Relative CG tolerance")
    projection_atol: float = Field(1e-14, ge=0, description="Absolute CG tolerance")
    projection_maxiter: int = Field(2000, ge=1, description="Maximum CG iterations")


class InitialConditionConfig(BaseModel):
    """Initial velocity/pressure field."""

    type: Literal["uniform", "taylor_green", "double_shear_layer", "channel"] = "uniform"
    velocity: list[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3,
        description="Uniform velocity, or peak velocity for shaped profiles [m/s]",
    )
    pressure: float = Field(0.0, description="Initial pressure [Pa]")


class PlotVariables(BaseModel):
    """Which fields to write to plot files."""

    vel: bool = True
    gradp: bool = False
    rho: bool = False
    p: bool = False
    eta: bool = True
    vort: bool = True
    strainrate: bool = True
    divu: bool = False
    vfrac: bool = True


class OutputConfig(BaseModel):
    """Plot-file and checkpoint output."""

    output_dir: str = Field(".", description="Directory for plot files and checkpoints")
    plot_file: str = Field("plt", description="Plot file prefix")
    plot_int: int | None = Field(None, gt=0, description="Steps between plot files")
    plot_per: float | None = Field(None, gt=0, description="Simulation time between plot files")
    check_file: str = Field("chk", description="Checkpoint prefix")
    check_int: int | None = Field(None, gt=0, description="Steps between checkpoints")
    plot_vars: PlotVariables = Field(default_factory=PlotVariables)


class SimulationConfig(BaseModel):
    """Top-level simulation configuration."""

    grid: GridConfig
    boundary: BoundaryConfig = Field(default_factory=BoundaryConfig)
    amr: AMRConfig = Field(default_factory=AMRConfig)
    time: TimeSteppingConfig
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    fluid: Rheology = Field(default_factory=Newtonian)
    solver: SolverConfig = Field(default_factory=SolverConfig)
    initial_condition: InitialConditionConfig = Field(default_factory=InitialConditionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @model_validator(mode="after")
    def validate_refinement(self) -> SimulationConfig:
        shape = list(self.grid.n_cell)
        for lev, box in enumerate(self.amr.refine_boxes, start=1):
            for d in range(3):
                if box.lo[d] < 0 or box.hi[d] >= shape[d]:
                    raise ValueError(
                        f"refine box for level {lev} exceeds its parent level "
                        f"(direction {d}, parent has {shape[d]} cells)"
                    )
            shape = [(box.hi[d] - box.lo[d] + 1) * self.amr.ref_ratio for d in range(3)]
        return self

    # --- I/O helpers ---

    @classmethod
    def from_file(cls, path: str | Path) -> SimulationConfig:
        """Load configuration from a JSON file."""
        path = Path(path)
        with path.open() as f:
            data = json.load(f)
        return cls(**data)

    def to_json(self, path: str | Path | None = None) -> str:
        """Serialize to JSON string, optionally writing to file."""
        out = self.model_dump_json(indent=2)
        if path is not None:
            Path(path).write_text(out)
        return out
