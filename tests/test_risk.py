"""Tests for bump-and-reprice Greeks."""

import pytest

from optengine import (
    CALL,
    PUT,
    AnalyticEngine,
    BinomialEngine,
    UnsupportedProduct,
    barrier_option,
    bs_greeks,
    european_option,
    numerical_greeks,
    spread_option,
)

ENGINE = AnalyticEngine()


class TestNumericalGreeks:
    @pytest.mark.parametrize("kind", [CALL, PUT])
    def test_matches_closed_form(self, kind):
        opt = european_option(100, 100, 1.0, 0.05, 0.2, q=0.01, kind=kind)
        num = numerical_greeks(ENGINE.price, opt)
        ref = bs_greeks(100, 100, 1.0, 0.05, 0.01, 0.2, kind)
        assert abs(num["delta"] - ref["delta"]) < 1e-3
        assert abs(num["gamma"] - ref["gamma"]) < 1e-3
        assert abs(num["vega"] - ref["vega"]) / ref["vega"] < 1e-3
        assert abs(num["theta"] - ref["theta"]) < 5e-2
        assert abs(num["rho"] - ref["rho"]) < 5e-2

    def test_any_engine(self):
        opt = european_option(100, 100, 1.0, 0.05, 0.2)
        g = numerical_greeks(BinomialEngine(steps=400).price, opt)
        assert abs(g["delta"] - bs_greeks(100, 100, 1.0, 0.05, 0.0, 0.2)["delta"]) < 1e-2

    def test_barrier_bumps_keep_boundary_consistent(self):
        opt = barrier_option(100, 100, 1.0, 0.05, 0.2, barrier=80.0)
        g = ENGINE.greeks(opt)
        assert 0.0 < g["delta"] < 1.0
        assert g["vega"] < bs_greeks(100, 100, 1.0, 0.05, 0.0, 0.2)["vega"]

    def test_zero_vol_uses_one_sided_vega(self):
        opt = european_option(100, 100, 1.0, 0.05, 0.0)
        g = numerical_greeks(ENGINE.price, opt)
        assert g["vega"] >= 0.0

    def test_expiring_theta_is_zero(self):
        opt = european_option(100, 100, 1.0 / 730.0, 0.05, 0.2)
        assert numerical_greeks(ENGINE.price, opt)["theta"] == 0.0

    def test_multi_asset_rejected(self):
        p = spread_option((100, 95), (0.2, 0.3), 0.4, 0.0, 1.0, 0.05)
        with pytest.raises(UnsupportedProduct):
            numerical_greeks(ENGINE.price, p)
