"""Tests for market parameters, payoffs, boundary conditions and products."""

import dataclasses

import numpy as np
import pytest

from optengine import (
    CALL,
    PUT,
    AnalyticType,
    AsianPayoff,
    BarrierPayoff,
    CashOrNothingPayoff,
    CustomPayoff,
    DiscountedPayoffBoundary,
    ExerciseRule,
    FloatingLookbackPayoff,
    InvalidParameter,
    KnockOutBoundary,
    MarketParams,
    MultiAssetParams,
    Product,
    SpreadPayoff,
    VanillaPayoff,
    american_option,
    barrier_option,
    basket_option,
    european_option,
    exotic_option,
    spread_option,
)

MKT = MarketParams(S0=100.0, T=1.0, r=0.05, sigma=0.2)


class TestMarketParams:
    @pytest.mark.parametrize("kwargs", [
        dict(S0=0.0, T=1.0, r=0.05, sigma=0.2),
        dict(S0=-1.0, T=1.0, r=0.05, sigma=0.2),
        dict(S0=100.0, T=-0.5, r=0.05, sigma=0.2),
        dict(S0=100.0, T=1.0, r=0.05, sigma=-0.1),
        dict(S0=100.0, T=1.0, r=float("nan"), sigma=0.2),
        dict(S0=float("inf"), T=1.0, r=0.05, sigma=0.2),
    ])
    def test_invalid_rejected(self, kwargs):
        with pytest.raises(InvalidParameter):
            MarketParams(**kwargs)

    def test_negative_rate_and_carry_allowed(self):
        m = MarketParams(S0=100.0, T=1.0, r=-0.01, sigma=0.2, q=-0.02)
        assert m.forward() == pytest.approx(100.0 * np.exp(0.01))

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            MKT.S0 = 90.0

    def test_invalid_is_value_error(self):
        with pytest.raises(ValueError):
            MarketParams(S0=100.0, T=1.0, r=0.05, sigma=-0.2)


class TestMultiAssetParams:
    def test_covariance(self):
        m = MultiAssetParams((100, 90), (0.2, 0.3), ((1.0, 0.5), (0.5, 1.0)), 1.0, 0.05)
        assert np.allclose(m.covariance, [[0.04, 0.03], [0.03, 0.09]])
        assert m.q == (0.0, 0.0)
        assert m.n_assets == 2

    @pytest.mark.parametrize("corr", [
        ((1.0, 0.5), (0.4, 1.0)),
        ((0.9, 0.5), (0.5, 1.0)),
        ((1.0, 1.5), (1.5, 1.0)),
        ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)),
    ])
    def test_bad_correlation(self, corr):
        with pytest.raises(InvalidParameter):
            MultiAssetParams((100, 90), (0.2, 0.3), corr, 1.0, 0.05)

    def test_length_mismatch(self):
        with pytest.raises(InvalidParameter):
            MultiAssetParams((100, 90), (0.2,), ((1.0, 0.0), (0.0, 1.0)), 1.0, 0.05)


class TestPayoffs:
    def test_vanilla(self):
        S = np.array([80.0, 100.0, 120.0])
        assert np.allclose(VanillaPayoff(100, CALL)(S), [0, 0, 20])
        assert np.allclose(VanillaPayoff(100, PUT)(S), [20, 0, 0])
        assert VanillaPayoff(100, CALL).tag is AnalyticType.VANILLA_CALL

    @pytest.mark.parametrize("factory", [
        lambda: VanillaPayoff(-1.0),
        lambda: VanillaPayoff(100, "straddle"),
        lambda: CashOrNothingPayoff(100, payout=-1.0),
        lambda: BarrierPayoff(100, 90, "sideways-and-out"),
        lambda: BarrierPayoff(100, 0.0, "down-and-out"),
        lambda: AsianPayoff(100, average="harmonic"),
        lambda: AsianPayoff(100, n_fixings=0),
        lambda: FloatingLookbackPayoff(extremum=-5.0),
    ])
    def test_invalid_payoffs(self, factory):
        with pytest.raises(InvalidParameter):
            factory()

    def test_cash_or_nothing(self):
        p = CashOrNothingPayoff(100, payout=10.0, kind=CALL)
        assert np.allclose(p(np.array([99.0, 101.0])), [0.0, 10.0])

    def test_barrier_path_payoff(self):
        p = BarrierPayoff(100, 90, "down-and-out", CALL)
        paths = np.array([[100.0, 100.0], [85.0, 105.0], [110.0, 110.0]])
        assert np.allclose(p.path_payoff(paths), [0.0, 10.0])
        knock_in = BarrierPayoff(100, 90, "down-and-in", CALL)
        assert np.allclose(knock_in.path_payoff(paths), [10.0, 0.0])
        assert p.tag is AnalyticType.DOWN_AND_OUT_CALL
        assert p.path_dependent

    def test_lookback_path_payoff(self):
        paths = np.array([[100.0], [90.0], [120.0], [110.0]])
        assert FloatingLookbackPayoff(CALL).path_payoff(paths)[0] == pytest.approx(20.0)
        assert FloatingLookbackPayoff(PUT).path_payoff(paths)[0] == pytest.approx(10.0)
        seen = FloatingLookbackPayoff(CALL, extremum=80.0)
        assert seen.path_payoff(paths)[0] == pytest.approx(30.0)

    def test_asian_fixings(self):
        paths = np.vstack([np.full(2, 100.0), np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0], [7.0, 8.0]])])
        p = AsianPayoff(0.0, CALL, n_fixings=2)
        assert np.allclose(p.fixings(paths), [[3.0, 4.0], [7.0, 8.0]])
        assert np.allclose(p.path_payoff(paths), [5.0, 6.0])
        with pytest.raises(InvalidParameter):
            AsianPayoff(0.0, CALL, n_fixings=3).fixings(paths)

    def test_spread_tag(self):
        assert SpreadPayoff(0.0, CALL).tag is AnalyticType.EXCHANGE
        assert SpreadPayoff(5.0, CALL).tag is None
        S = np.array([[110.0, 90.0], [100.0, 100.0]])
        assert np.allclose(SpreadPayoff(5.0)(S), [5.0, 0.0])

    def test_custom_untagged(self):
        straddle = CustomPayoff(lambda S: np.abs(S - 100.0))
        assert straddle.tag is None
        assert not straddle.path_dependent
        assert np.allclose(straddle(np.array([90.0, 115.0])), [10.0, 15.0])


class TestBoundary:
    def test_discounted_payoff_edges(self):
        bc = DiscountedPayoffBoundary(VanillaPayoff(100, CALL), 0.05, 0.0)
        assert bc.lower(1.0, 1.0) == 0.0
        # deep ITM call edge: S - K e^{-r tau}
        assert bc.upper(1.0, 400.0) == pytest.approx(400.0 - 100.0 * np.exp(-0.05))

    def test_knock_out_pins_barrier(self):
        bc = KnockOutBoundary(VanillaPayoff(100, CALL), 80.0, "down", 0.05, 0.0)
        assert bc.grid_bounds(40.0, 250.0) == (80.0, 250.0)
        assert bc.lower(0.5, 80.0) == 0.0
        assert np.allclose(bc.terminal(np.array([80.0, 120.0])), [0.0, 20.0])
        assert bc.encodes_path

    def test_bad_direction(self):
        with pytest.raises(InvalidParameter):
            KnockOutBoundary(VanillaPayoff(100), 80.0, "left", 0.05, 0.0)


class TestProduct:
    def test_default_boundary(self):
        p = european_option(100, 100, 1.0, 0.05, 0.2)
        assert isinstance(p.boundary, DiscountedPayoffBoundary)
        b = barrier_option(100, 100, 1.0, 0.05, 0.2, barrier=80.0)
        assert isinstance(b.boundary, KnockOutBoundary)
        assert b.boundary.barrier == 80.0

    def test_with_market_rebuilds_derived_boundary(self):
        p = european_option(100, 100, 1.0, 0.05, 0.2)
        bumped = p.with_market(r=0.07)
        assert bumped.market.r == 0.07
        assert bumped.boundary.r == 0.07
        assert p.market.r == 0.05

    def test_with_market_keeps_explicit_boundary(self):
        bc = DiscountedPayoffBoundary(VanillaPayoff(100), 0.01, 0.0)
        p = Product(MKT, VanillaPayoff(100), boundary=bc)
        assert p.with_market(S0=110.0).boundary is bc

    def test_asset_count_mismatch(self):
        with pytest.raises(InvalidParameter):
            Product(MKT, SpreadPayoff(0.0))

    def test_exercise_rule(self):
        am = american_option(100, 100, 1.0, 0.05, 0.2, kind=PUT)
        assert am.exercise is ExerciseRule.AMERICAN
        flags = am.exercise.should_exercise(np.array([5.0, 1.0]), np.array([4.0, 2.0]))
        assert flags.tolist() == [True, False]
        eu = ExerciseRule.EUROPEAN.should_exercise(np.array([5.0]), np.array([4.0]))
        assert not eu.any()

    def test_intrinsic(self):
        assert european_option(110, 100, 1.0, 0.05, 0.2).intrinsic() == pytest.approx(10.0)
        assert spread_option((110, 100), (0.2, 0.2), 0.3, 0.0, 1.0, 0.05).intrinsic() == pytest.approx(10.0)

    def test_exotic_wraps_callable(self):
        p = exotic_option(MKT, lambda S: np.abs(S - 100.0))
        assert isinstance(p.payoff, CustomPayoff)
        assert p.payoff.tag is None

    def test_basket_weights_match_assets(self):
        with pytest.raises(InvalidParameter):
            basket_option((100, 100, 100), (0.2, 0.2, 0.2),
                          np.eye(3), (0.5, 0.5), 100, 1.0, 0.05)
