"""Tests for the implicit viscous diffusion solver.

Test categories:
1. Tridiagonal kernels against dense solves
2. Backward-Euler decay of periodic Fourier modes
3. Wall closures and failure reporting
"""

from __future__ import annotations

import numpy as np
import pytest

from incflow.config import SimulationConfig
from incflow.core.bases import SolverConvergenceError
from incflow.fluid.implicit_diffusion import (
    DiffusionSolver,
    _cyclic_thomas_solve,
    _thomas_solve,
)


def _random_bands(n, seed):
    rng = np.random.default_rng(seed)
    lower = -rng.uniform(0.1, 1.0, n)
    upper = -rng.uniform(0.1, 1.0, n)
    diag = 1.0 - lower - upper + rng.uniform(0.0, 0.5, n)
    rhs = rng.standard_normal(n)
    return lower, diag, upper, rhs


def _dense(lower, diag, upper, cyclic):
    n = len(diag)
    A = np.diag(diag.copy())
    for i in range(1, n):
        A[i, i - 1] += lower[i]
    for i in range(n - 1):
        A[i, i + 1] += upper[i]
    if cyclic:
        A[0, n - 1] += lower[0]
        A[n - 1, 0] += upper[n - 1]
    return A


class TestTridiagonalKernels:
    @pytest.mark.parametrize("n", [1, 2, 5, 17])
    def test_thomas_matches_dense(self, n):
        lower, diag, upper, rhs = _random_bands(n, seed=n)
        x = _thomas_solve(lower, diag, upper, rhs)
        np.testing.assert_allclose(_dense(lower, diag, upper, False) @ x, rhs, atol=1e-12)

    @pytest.mark.parametrize("n", [1, 2, 3, 5, 17])
    def test_cyclic_matches_dense(self, n):
        lower, diag, upper, rhs = _random_bands(n, seed=100 + n)
        x = _cyclic_thomas_solve(lower, diag, upper, rhs)
        np.testing.assert_allclose(_dense(lower, diag, upper, True) @ x, rhs, atol=1e-12)


def _prepared_level(config, make_state, eta=1.0, ro=1.0):
    arena, clock, boundary = make_state(config)
    level = arena[0]
    level.eta[...] = eta
    level.ro[...] = ro
    return level, boundary


class TestBackwardEuler:
    def test_uniform_field_unchanged(self, small_config, make_state):
        level, boundary = _prepared_level(small_config, make_state)
        level.interior(level.vel)[...] = 0.7
        boundary.fill_physical_bc(0, level.vel, 0.0)
        out = DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, 10.0)
        np.testing.assert_allclose(out, 0.7, rtol=1e-9)

    def test_periodic_mode_decay(self, make_state):
        cfg = SimulationConfig(grid={"n_cell": [16, 2, 2]}, time={"max_step": 1})
        level, boundary = _prepared_level(cfg, make_state, eta=0.5, ro=2.0)
        x = level.cell_centers(0)
        level.interior(level.vel)[2] = np.sin(2 * np.pi * x)[:, None, None]
        boundary.fill_physical_bc(0, level.vel, 0.0)

        dt, nu, h = 0.1, 0.25, level.dx[0]
        out = DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, dt)

        lam = dt * nu * (2.0 - 2.0 * np.cos(2 * np.pi * h)) / h**2
        expected = np.sin(2 * np.pi * x) / (1.0 + lam)
        np.testing.assert_allclose(out[2, :, 0, 0], expected, atol=1e-10)
        np.testing.assert_allclose(out[0], 0.0, atol=1e-14)

    def test_returns_copy(self, small_config, make_state):
        level, boundary = _prepared_level(small_config, make_state)
        level.interior(level.vel)[0] = 1.0
        out = DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, 0.1)
        out[...] = 0.0
        assert level.interior(level.vel)[0, 0, 0, 0] == 1.0


class TestWallClosures:
    def test_no_slip_channel_matches_dense(self, channel_config, make_state):
        level, boundary = _prepared_level(channel_config, make_state, eta=1.0, ro=1.0)
        level.interior(level.vel)[0] = 1.0
        boundary.fill_physical_bc(0, level.vel, 0.0)

        dt = 0.01
        out = DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, dt)

        n = level.n_cell[1]
        s = dt / level.dx[1] ** 2
        A = np.diag(np.full(n, 1.0 + 2.0 * s)) - s * np.eye(n, k=1) - s * np.eye(n, k=-1)
        A[0, 0] += s
        A[-1, -1] += s
        expected = np.linalg.solve(A, np.ones(n))

        np.testing.assert_allclose(out[0, 0, :, 0], expected, rtol=1e-10)
        # Profile is uniform along the periodic directions
        np.testing.assert_allclose(out[0], out[0, :1, :, :1] * np.ones_like(out[0]))
        assert np.all((out[0] > 0.0) & (out[0] < 1.0))

    def test_inflow_wall_value(self, make_state):
        cfg = SimulationConfig(
            grid={"n_cell": [8, 2, 2]},
            boundary={
                "xlo": {"type": "mass_inflow", "velocity": [1.0, 0.0, 0.0]},
                "xhi": {"type": "pressure_outflow"},
            },
            time={"max_step": 1},
        )
        level, boundary = _prepared_level(cfg, make_state)
        boundary.fill_physical_bc(0, level.vel, 0.0)
        out = DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, 1.0)
        # Momentum diffuses in from the inflow face and decays downstream
        profile = out[0, :, 0, 0]
        assert profile[0] > 0.0
        assert np.all(np.diff(profile) < 0.0)

    def test_non_finite_viscosity_raises(self, small_config, make_state):
        level, boundary = _prepared_level(small_config, make_state, eta=np.nan)
        with pytest.raises(SolverConvergenceError, match="non-finite"):
            DiffusionSolver(boundary).solve(level, level.vel, level.ro, level.eta, 0.1)
