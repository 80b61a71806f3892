"""Simulation clock: time, step size and step counter bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SimulationClock:
    """Process-wide time state, updated only at step boundaries.

    Attributes:
        cur_time: Time of the last completed step [s].
        dt: Step size; negative until the first step size is computed.
        nstep: Number of completed steps.
        t_old: Per-level old time of the step in progress [s]. Kept for
            drivers and I/O; boundary fills use :attr:`new_time`.
        t_new: Per-level new time of the step in progress [s].
        last_plt: Step at which the last plot file was written (-1 = none).
        last_chk: Step at which the last checkpoint was written (-1 = none).
    """

    cur_time: float = 0.0
    dt: float = -1.0
    nstep: int = 0
    t_old: list[float] = field(default_factory=list)
    t_new: list[float] = field(default_factory=list)
    last_plt: int = -1
    last_chk: int = -1

    @classmethod
    def for_levels(cls, nlevels: int) -> SimulationClock:
        return cls(t_old=[0.0] * nlevels, t_new=[0.0] * nlevels)

    @property
    def has_valid_dt(self) -> bool:
        return self.dt > 0.0

    @property
    def new_time(self) -> float:
        """Time at the end of the step in progress."""
        return self.cur_time + self.dt

    def resize(self, nlevels: int) -> None:
        """Match the per-level time arrays to ``nlevels`` levels."""
        self.t_old = (self.t_old + [self.cur_time] * nlevels)[:nlevels]
        self.t_new = (self.t_new + [self.cur_time] * nlevels)[:nlevels]

    def begin_step(self) -> None:
        """Set t_old/t_new so that t_new - t_old == dt on every level."""
        for lev in range(len(self.t_old)):
            self.t_old[lev] = self.cur_time
            self.t_new[lev] = self.cur_time + self.dt

    def end_step(self) -> None:
        """Advance the clock past the completed step."""
        self.cur_time += self.dt
        self.nstep += 1
