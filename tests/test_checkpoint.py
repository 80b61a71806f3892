"""Tests for HDF5 checkpoints and plot files."""

from __future__ import annotations

import h5py
import numpy as np
import pytest

from incflow.config import PlotVariables
from incflow.core.clock import SimulationClock
from incflow.core.level_state import LevelStateArena
from incflow.diagnostics.checkpoint import (
    CHECKPOINT_FIELDS,
    load_checkpoint,
    save_checkpoint,
)
from incflow.diagnostics.plotfile import plot_variable_names, write_plotfile


@pytest.fixture
def filled_arena(refined_config):
    arena = LevelStateArena.from_config(refined_config)
    rng = np.random.default_rng(7)
    for level in arena:
        for name in CHECKPOINT_FIELDS:
            arr = getattr(level, name)
            arr[...] = rng.standard_normal(arr.shape)
    return arena


class TestCheckpoint:
    def test_round_trip(self, tmp_path, filled_arena):
        clock = SimulationClock(cur_time=0.25, dt=0.01, nstep=25, last_plt=20, last_chk=-1)
        path = tmp_path / "chk.h5"
        save_checkpoint(str(path), filled_arena, clock, '{"grid": {}}')

        data = load_checkpoint(str(path))
        assert data["clock"] == {
            "cur_time": 0.25, "dt": 0.01, "nstep": 25, "last_plt": 20, "last_chk": -1,
        }
        assert data["config_json"] == '{"grid": {}}'
        assert len(data["levels"]) == 2
        fine = data["levels"][1]
        assert fine["n_cell"] == (8, 8, 8)
        assert fine["lo"] == (4, 4, 4)
        for name in CHECKPOINT_FIELDS:
            np.testing.assert_array_equal(fine[name], getattr(filled_arena[1], name))

    def test_without_config(self, tmp_path, filled_arena):
        path = tmp_path / "chk.h5"
        save_checkpoint(str(path), filled_arena, SimulationClock.for_levels(2))
        assert load_checkpoint(str(path))["config_json"] is None

    def test_version_mismatch(self, tmp_path, filled_arena):
        path = tmp_path / "chk.h5"
        save_checkpoint(str(path), filled_arena, SimulationClock.for_levels(2))
        with h5py.File(path, "a") as f:
            f.attrs["checkpoint_version"] = 99
        with pytest.raises(ValueError, match="version 99"):
            load_checkpoint(str(path))


class TestPlotfile:
    def test_default_variables(self):
        assert plot_variable_names(PlotVariables()) == ["vel", "eta", "vort", "strainrate", "vfrac"]

    def test_all_variables(self):
        names = plot_variable_names(PlotVariables(gradp=True, rho=True, p=True, divu=True))
        assert names == [
            "vel", "gradp", "rho", "p", "eta", "vort", "strainrate", "divu", "vfrac",
        ]

    def test_written_interior_data(self, tmp_path, filled_arena):
        path = tmp_path / "plt00003.h5"
        plot_vars = PlotVariables(vel=True, p=True, eta=False, vort=False, strainrate=False)
        names = write_plotfile(str(path), filled_arena, 0.5, 3, plot_vars)
        assert names == ["vel", "p", "vfrac"]

        with h5py.File(path, "r") as f:
            assert f.attrs["time"] == 0.5
            assert int(f.attrs["nstep"]) == 3
            assert [v.decode() for v in f.attrs["variables"]] == names
            coarse = f["level_0"]
            assert coarse["vel"].shape == (3, 8, 8, 8)
            np.testing.assert_array_equal(
                coarse["p"][...], filled_arena[0].interior(filled_arena[0].p)
            )
            assert coarse["covered"][...].sum() == 64
            assert "eta" not in coarse
            np.testing.assert_array_equal(f["level_1"].attrs["lo"], [4, 4, 4])
            assert int(f["level_1"].attrs["ref_ratio"]) == 2
