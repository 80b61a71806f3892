"""Tests for the pydantic configuration layer.

Test categories:
1. Defaults and derived geometry
2. Load-time rejection of inconsistent inputs
3. JSON round trip
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from incflow.config import (
    BoundaryConfig,
    PhysicsConfig,
    SimulationConfig,
    TimeSteppingConfig,
)
from incflow.fluid.rheology import Newtonian

# ============================================================
# Defaults
# ============================================================


class TestDefaults:
    """Defaults and derived quantities of a minimal configuration."""

    def test_minimal_config(self, small_config):
        assert small_config.time.cfl == 0.5
        assert small_config.grid.nghost == 2
        assert small_config.amr.max_level == 0
        assert isinstance(small_config.fluid, Newtonian)

    def test_cell_size(self):
        cfg = SimulationConfig(
            grid={"n_cell": [10, 20, 5], "prob_hi": [1.0, 2.0, 0.5]},
            time={"max_step": 1},
        )
        assert cfg.grid.dx == pytest.approx((0.1, 0.1, 0.1))
        assert cfg.grid.lengths == pytest.approx((1.0, 2.0, 0.5))

    def test_boundaries_default_periodic(self):
        bc = BoundaryConfig()
        assert all(bc.is_periodic(d) for d in range(3))
        assert bc.face(1, 1).type == "periodic"

    def test_background_gradient_from_pressure_drop(self):
        physics = PhysicsConfig(delp=[2.0, 0.0, 0.0], gp0=[0.0, 0.5, 0.0])
        gp0 = physics.background_pressure_gradient((4.0, 1.0, 1.0))
        assert gp0 == pytest.approx((-0.5, 0.5, 0.0))


# ============================================================
# Validation
# ============================================================


class TestValidation:
    """Inconsistent configurations are rejected at load time."""

    @pytest.mark.parametrize("cfl", [0.0, -0.5, 1.5])
    def test_bad_cfl(self, cfl):
        with pytest.raises(ValidationError):
            TimeSteppingConfig(cfl=cfl, max_step=1)

    def test_non_positive_fixed_dt(self):
        with pytest.raises(ValidationError):
            TimeSteppingConfig(fixed_dt=0.0, max_step=1)

    def test_non_positive_plot_per(self, sample_config_dict):
        sample_config_dict["output"] = {"plot_per": 0.0}
        with pytest.raises(ValidationError):
            SimulationConfig(**sample_config_dict)

    def test_no_termination_criterion(self):
        with pytest.raises(ValidationError, match="termination"):
            TimeSteppingConfig()

    def test_steady_state_is_a_termination_criterion(self):
        assert TimeSteppingConfig(steady_state=True).stop_time is None

    def test_unpaired_periodic_faces(self):
        with pytest.raises(ValidationError, match="periodic"):
            BoundaryConfig(xlo={"type": "no_slip_wall"})

    def test_gp0_and_delp_in_same_direction(self):
        with pytest.raises(ValidationError, match="gp0 or delp"):
            PhysicsConfig(gp0=[1.0, 0.0, 0.0], delp=[1.0, 0.0, 0.0])

    def test_refine_box_count_must_match_levels(self, sample_config_dict):
        sample_config_dict["amr"] = {"max_level": 2, "refine_boxes": [{"lo": [0, 0, 0], "hi": [3, 3, 3]}]}
        with pytest.raises(ValidationError, match="refine box"):
            SimulationConfig(**sample_config_dict)

    def test_refine_box_outside_parent(self, sample_config_dict):
        sample_config_dict["amr"] = {"max_level": 1, "refine_boxes": [{"lo": [4, 4, 4], "hi": [8, 5, 5]}]}
        with pytest.raises(ValidationError, match="exceeds"):
            SimulationConfig(**sample_config_dict)

    def test_nested_refine_box_checked_against_fine_parent(self, sample_config_dict):
        # Level 1 patch has 8 cells per direction, so index 8 is outside it
        sample_config_dict["amr"] = {
            "max_level": 2,
            "refine_boxes": [
                {"lo": [2, 2, 2], "hi": [5, 5, 5]},
                {"lo": [0, 0, 0], "hi": [8, 3, 3]},
            ],
        }
        with pytest.raises(ValidationError, match="level 2"):
            SimulationConfig(**sample_config_dict)

    def test_inverted_refine_box(self):
        with pytest.raises(ValidationError):
            SimulationConfig(
                grid={"n_cell": [8, 8, 8]},
                amr={"max_level": 1, "refine_boxes": [{"lo": [4, 4, 4], "hi": [3, 5, 5]}]},
                time={"max_step": 1},
            )

    def test_nghost_below_two(self):
        with pytest.raises(ValidationError):
            SimulationConfig(grid={"n_cell": [8, 8, 8], "nghost": 1}, time={"max_step": 1})

    def test_inverted_domain(self):
        with pytest.raises(ValidationError, match="prob_hi"):
            SimulationConfig(
                grid={"n_cell": [8, 8, 8], "prob_lo": [0.0, 1.0, 0.0], "prob_hi": [1.0, 1.0, 1.0]},
                time={"max_step": 1},
            )


# ============================================================
# JSON I/O
# ============================================================


class TestJSON:
    def test_file_round_trip(self, tmp_path, refined_config):
        path = tmp_path / "config.json"
        refined_config.to_json(path)
        loaded = SimulationConfig.from_file(path)
        assert loaded == refined_config

    def test_rheology_variant_survives_round_trip(self, tmp_path, sample_config_dict):
        sample_config_dict["fluid"] = {"fluid_model": "hb", "mu": 2.0, "n": 0.5, "tau_0": 1.0, "papa_reg": 0.1}
        cfg = SimulationConfig(**sample_config_dict)
        path = tmp_path / "hb.json"
        cfg.to_json(path)
        assert SimulationConfig.from_file(path).fluid.fluid_model == "hb"
