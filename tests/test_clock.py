"""Tests for the simulation clock."""

from __future__ import annotations

import pytest

from incflow.core.clock import SimulationClock
from incflow.engine import SimulationEngine


class TestSimulationClock:
    def test_begin_step_sets_level_times(self):
        clock = SimulationClock.for_levels(3)
        clock.cur_time = 0.25
        clock.dt = 0.05
        clock.begin_step()
        for lev in range(3):
            assert clock.t_old[lev] == 0.25
            assert clock.t_new[lev] - clock.t_old[lev] == pytest.approx(0.05)

    def test_level_times_follow_changing_dt(self):
        clock = SimulationClock.for_levels(2)
        clock.dt = 0.1
        clock.begin_step()
        clock.end_step()
        clock.dt = 0.03
        clock.begin_step()
        assert clock.nstep == 1
        assert clock.t_old == [pytest.approx(0.1)] * 2
        assert clock.t_new == [pytest.approx(0.13)] * 2

    def test_resize_pads_with_current_time(self):
        clock = SimulationClock.for_levels(1)
        clock.cur_time = 2.0
        clock.resize(3)
        assert clock.t_old == [0.0, 2.0, 2.0]
        clock.resize(1)
        assert len(clock.t_new) == 1

    def test_no_valid_dt_before_first_step(self):
        clock = SimulationClock()
        assert not clock.has_valid_dt
        clock.dt = 1e-3
        assert clock.has_valid_dt
        assert clock.new_time == pytest.approx(1e-3)


class TestEngineClock:
    def test_every_level_steps_by_dt(self, refined_config):
        engine = SimulationEngine(refined_config)
        result = engine.step()
        clock = engine.clock
        assert len(clock.t_old) == 2
        for lev in range(2):
            assert clock.t_new[lev] - clock.t_old[lev] == pytest.approx(result.dt)
            assert clock.t_new[lev] == pytest.approx(clock.cur_time)
