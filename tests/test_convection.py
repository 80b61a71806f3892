"""Tests for the explicit convective term and the derived kinematic fields."""

from __future__ import annotations

import numpy as np
import pytest

from incflow.config import SimulationConfig
from incflow.core.level_state import LevelData
from incflow.fluid.convection import ConvectionOperator, _mc_slope
from incflow.fluid.derived import divergence, update_derived_quantities
from incflow.fluid.rheology import Bingham

from conftest import build_state


def _padded_coords(level, direction):
    g = level.nghost
    n = level.n_cell[direction]
    return level.prob_lo[direction] + (level.lo[direction] + np.arange(-g, n + g) + 0.5) * level.dx[direction]


class TestSlopeLimiter:
    def test_monotone_data(self):
        assert _mc_slope(0.0, 1.0, 2.0) == pytest.approx(1.0)

    def test_extremum_gives_zero(self):
        assert _mc_slope(0.0, 1.0, 0.0) == 0.0

    def test_limited_by_twice_one_sided(self):
        # Central slope 5 clipped to 2 * |q_0 - q_m| = 1
        assert _mc_slope(0.0, 0.5, 10.0) == pytest.approx(1.0)
        assert _mc_slope(10.0, 9.5, 0.0) == pytest.approx(-1.0)


class TestConvectiveTerm:
    def test_uniform_flow_has_no_convection(self, small_config, make_state):
        arena, _, boundary = make_state(small_config)
        level = arena[0]
        level.vel[0] = 1.5
        level.vel[2] = -0.25
        conv = ConvectionOperator().compute(level, level.vel, 0.0)
        assert conv.shape == (3, 8, 8, 8)
        np.testing.assert_allclose(conv, 0.0, atol=1e-13)

    def test_advected_sine_wave(self, make_state):
        cfg = SimulationConfig(grid={"n_cell": [64, 4, 4]}, time={"max_step": 1})
        arena, _, boundary = make_state(cfg)
        level = arena[0]
        x = level.cell_centers(0)
        level.interior(level.vel)[0] = 1.0
        level.interior(level.vel)[1] = np.sin(2 * np.pi * x)[:, None, None]
        boundary.fill_physical_bc(0, level.vel, 0.0)

        conv = ConvectionOperator().compute(level, level.vel, 0.0)
        expected = -2 * np.pi * np.cos(2 * np.pi * x)
        np.testing.assert_allclose(conv[1, :, 1, 1], expected, atol=0.5)
        np.testing.assert_allclose(conv[0], 0.0, atol=1e-12)

    def test_requires_two_ghost_layers(self):
        level = LevelData(
            level=0, n_cell=(4, 4, 4), lo=(0, 0, 0), domain_cells=(4, 4, 4),
            dx=(0.25, 0.25, 0.25), nghost=1,
        )
        with pytest.raises(ValueError, match="ghost"):
            ConvectionOperator().compute(level, level.vel, 0.0)


class TestDerivedQuantities:
    def test_simple_shear(self, small_config, make_state):
        arena, _, boundary = make_state(small_config)
        level = arena[0]
        y = _padded_coords(level, 1)
        level.vel[0] = y[None, :, None]

        rheology = Bingham(mu=1.0, tau_0=0.5, papa_reg=0.1)
        update_derived_quantities(arena, boundary, rheology)

        np.testing.assert_allclose(level.interior(level.strainrate), 1.0)
        np.testing.assert_allclose(level.interior(level.vort), 1.0)
        np.testing.assert_allclose(level.interior(level.divu), 0.0, atol=1e-12)
        np.testing.assert_allclose(
            level.interior(level.eta), rheology.effective_viscosity(np.array(1.0))
        )
        # Viscosity halo refreshed for the diffusion solve
        assert np.all(level.eta > 0.0)

    def test_divergence_of_linear_field(self, small_config, make_state):
        arena, _, _ = make_state(small_config)
        level = arena[0]
        level.vel[0] = 2.0 * _padded_coords(level, 0)[:, None, None]
        level.vel[2] = -0.5 * _padded_coords(level, 2)[None, None, :]
        np.testing.assert_allclose(divergence(level, level.vel), 1.5)
