"""Tests for the path generators."""

import math

import numpy as np
import pytest

from optengine import (
    BrownianMotion,
    CorrelatedGBM,
    GarchDiffusion,
    GeometricBrownianMotion,
    InvalidParameter,
)

S0, T = 100.0, 1.0


class TestGBM:
    def test_shape_and_first_row(self):
        paths = GeometricBrownianMotion(0.05, 0.2).simulate(S0, T, 12, 1000, seed=1)
        assert paths.shape == (13, 1000)
        assert np.all(paths[0] == S0)
        assert np.all(paths > 0)

    def test_terminal_mean(self):
        gbm = GeometricBrownianMotion(0.05, 0.2)
        ST = gbm.simulate(S0, T, 1, 200_000, seed=7)[-1]
        se = ST.std(ddof=1) / math.sqrt(ST.size)
        assert abs(ST.mean() - gbm.expected_terminal(S0, T)) < 4 * se

    def test_antithetic_doubles_paths(self):
        paths = GeometricBrownianMotion(0.05, 0.2).simulate(S0, T, 4, 500, antithetic=True, seed=3)
        assert paths.shape == (5, 1000)
        # mirrored log increments cancel around the drift
        log_ret = np.log(paths[-1] / S0)
        drift = (0.05 - 0.5 * 0.04) * T
        assert np.allclose(log_ret[:500] + log_ret[500:], 2 * drift)

    def test_same_seed_same_paths(self):
        gbm = GeometricBrownianMotion(0.05, 0.2)
        a = gbm.simulate(S0, T, 5, 100, seed=11)
        b = gbm.simulate(S0, T, 5, 100, seed=11)
        assert np.array_equal(a, b)

    def test_zero_vol_is_deterministic(self):
        paths = GeometricBrownianMotion(0.05, 0.0).simulate(S0, T, 4, 10, seed=0)
        assert np.allclose(paths[-1], S0 * math.exp(0.05))

    def test_bad_inputs(self):
        with pytest.raises(InvalidParameter):
            GeometricBrownianMotion(0.05, -0.2)
        with pytest.raises(InvalidParameter):
            GeometricBrownianMotion(0.05, 0.2).simulate(S0, T, 0, 10)


class TestBrownianMotion:
    def test_terminal_distribution(self):
        bm = BrownianMotion(mu=2.0, sigma=10.0)
        ST = bm.simulate(S0, T, 10, 100_000, seed=5)[-1]
        assert abs(ST.mean() - 102.0) < 0.2
        assert abs(ST.std() - 10.0) < 0.2


class TestGarch:
    def test_constant_variance_reduces_to_gbm(self):
        # kappa = 1 pins sigma_t^2 to theta every step
        garch = GarchDiffusion(mu=0.05, sigma0=0.2, kappa=1.0, theta=0.04, lam=0.5)
        gbm = GeometricBrownianMotion(0.05, 0.2)
        Z = np.random.default_rng(2).standard_normal((20, 50))
        assert np.allclose(garch.paths(S0, T, Z), gbm.paths(S0, T, Z))

    def test_martingale_terminal_mean(self):
        garch = GarchDiffusion(mu=0.03, sigma0=0.3, kappa=0.1, theta=0.04, lam=0.2)
        ST = garch.simulate(S0, T, 50, 100_000, seed=9)[-1]
        se = ST.std(ddof=1) / math.sqrt(ST.size)
        assert abs(ST.mean() - garch.expected_terminal(S0, T)) < 4 * se

    def test_bad_parameters(self):
        with pytest.raises(InvalidParameter):
            GarchDiffusion(mu=0.05, sigma0=0.2, kappa=1.5, theta=0.04, lam=0.5)
        with pytest.raises(InvalidParameter):
            GarchDiffusion(mu=0.05, sigma0=-0.2, kappa=0.5, theta=0.04, lam=0.5)


class TestCorrelatedGBM:
    COV = np.array([[0.04, 0.042], [0.042, 0.09]])  # rho = 0.7

    def test_shape(self):
        proc = CorrelatedGBM([0.05, 0.05], self.COV)
        paths = proc.simulate([100.0, 50.0], T, 3, 200, seed=1)
        assert paths.shape == (2, 4, 200)
        assert np.all(paths[0, 0] == 100.0)
        assert np.all(paths[1, 0] == 50.0)

    def test_sample_correlation(self):
        proc = CorrelatedGBM([0.05, 0.05], self.COV)
        paths = proc.simulate([100.0, 50.0], T, 1, 100_000, seed=4)
        log_ret = np.log(paths[:, -1] / paths[:, 0])
        assert abs(np.corrcoef(log_ret)[0, 1] - 0.7) < 0.01
        assert abs(log_ret[1].std() - 0.3) < 0.005

    def test_not_psd_rejected_before_simulation(self):
        bad = np.array([[0.04, 0.1], [0.1, 0.04]])
        with pytest.raises(InvalidParameter):
            CorrelatedGBM([0.05, 0.05], bad)

    def test_shape_mismatch(self):
        with pytest.raises(InvalidParameter):
            CorrelatedGBM([0.05, 0.05, 0.05], self.COV)
