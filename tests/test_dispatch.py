"""Tests for engine configs and the uniform Pricer entry point."""

import math

import pytest

from optengine import (
    CALL,
    PUT,
    AnalyticConfig,
    AnalyticEngine,
    BinomialConfig,
    BinomialEngine,
    GarchDiffusion,
    InvalidParameter,
    MonteCarloConfig,
    MonteCarloEngine,
    PDEConfig,
    PDEEngine,
    Pricer,
    Scheme,
    UnsupportedProduct,
    american_option,
    build_engine,
    engine_config_from_dict,
    european_option,
    price,
)

CALL_OPT = european_option(100, 100, 1.0, 0.05, 0.2, kind=CALL)

CONFIGS = {
    "analytic": AnalyticConfig(),
    "binomial": BinomialConfig(steps=800),
    "mc": MonteCarloConfig(paths=200_000, seed=42, antithetic=True, control_variate=True),
    "pde": PDEConfig(spot_steps=200, time_steps=600),
}


class TestBuildEngine:
    @pytest.mark.parametrize("config,cls", [
        (AnalyticConfig(), AnalyticEngine),
        (BinomialConfig(), BinomialEngine),
        (MonteCarloConfig(), MonteCarloEngine),
        (PDEConfig(), PDEEngine),
    ])
    def test_one_engine_per_config(self, config, cls):
        assert isinstance(build_engine(config), cls)

    def test_unknown_config(self):
        with pytest.raises(InvalidParameter):
            build_engine({"method": "analytic"})


class TestPricer:
    @pytest.mark.parametrize("label", sorted(CONFIGS))
    def test_reference_scenario(self, label):
        assert abs(Pricer(CONFIGS[label]).price(CALL_OPT) - 10.4506) < 0.01

    def test_module_level_price(self):
        assert price(CALL_OPT, AnalyticConfig()) == Pricer(AnalyticConfig()).price(CALL_OPT)

    def test_method_names(self):
        names = {label: Pricer(cfg).method for label, cfg in CONFIGS.items()}
        assert names == {"analytic": "analytic", "binomial": "binomial",
                         "mc": "monte_carlo", "pde": "pde"}

    def test_stderr_only_for_monte_carlo(self):
        _, se = Pricer(CONFIGS["mc"]).price_with_stderr(CALL_OPT)
        assert 0.0 < se < 0.02
        with pytest.raises(UnsupportedProduct):
            Pricer(AnalyticConfig()).price_with_stderr(CALL_OPT)

    def test_greeks_shape(self):
        analytic = Pricer(AnalyticConfig()).greeks(CALL_OPT)
        lattice = Pricer(BinomialConfig(steps=300)).greeks(CALL_OPT)
        grid = Pricer(PDEConfig(spot_steps=200, time_steps=200)).greeks(CALL_OPT)
        assert set(analytic) == set(lattice) == {"delta", "gamma", "vega", "theta", "rho"}
        assert set(grid) == {"delta", "gamma", "theta"}
        for g in (lattice, grid):
            assert abs(g["delta"] - analytic["delta"]) < 1e-2

    def test_american_across_engines(self):
        am = american_option(100, 100, 1.0, 0.05, 0.2, kind=PUT)
        eu = european_option(100, 100, 1.0, 0.05, 0.2, kind=PUT)
        for cfg in (BinomialConfig(steps=500), PDEConfig(spot_steps=200, time_steps=200)):
            pricer = Pricer(cfg)
            assert pricer.price(am) >= pricer.price(eu)
        for cfg in (AnalyticConfig(), MonteCarloConfig(paths=1_000)):
            with pytest.raises(UnsupportedProduct):
                Pricer(cfg).price(am)


class TestDegenerateAcrossEngines:
    @pytest.mark.parametrize("label", sorted(CONFIGS))
    @pytest.mark.parametrize("kind,S0,expected", [(CALL, 110.0, 10.0), (PUT, 90.0, 10.0),
                                                  (CALL, 90.0, 0.0)])
    def test_expiry_is_intrinsic(self, label, kind, S0, expected):
        p = european_option(S0, 100, 0.0, 0.05, 0.2, kind=kind)
        assert Pricer(CONFIGS[label]).price(p) == expected

    @pytest.mark.parametrize("label", sorted(CONFIGS))
    def test_zero_vol_is_discounted_forward_payoff(self, label):
        p = european_option(100, 95, 2.0, 0.03, 0.0, q=0.01)
        expected = math.exp(-0.06) * (100.0 * math.exp(0.04) - 95.0)
        assert Pricer(CONFIGS[label]).price(p) == pytest.approx(expected, rel=1e-9)


class TestConfigFromDict:
    def test_each_method(self):
        assert isinstance(engine_config_from_dict({"method": "analytic"}), AnalyticConfig)
        b = engine_config_from_dict({"method": "binomial", "steps": 400, "richardson": True})
        assert b == BinomialConfig(steps=400, richardson=True)
        p = engine_config_from_dict({"method": "pde", "scheme": "implicit"})
        assert p.scheme is Scheme.IMPLICIT

    def test_process_from_mapping(self):
        cfg = engine_config_from_dict({
            "method": "mc", "paths": 1000, "steps": 10, "seed": 7,
            "process": {"type": "garch", "mu": 0.05, "sigma0": 0.2,
                        "kappa": 0.1, "theta": 0.04, "lam": 0.2},
        })
        assert isinstance(cfg.process, GarchDiffusion)
        assert cfg.process.kappa == 0.1

    @pytest.mark.parametrize("data", [
        {},
        {"method": "trinomial"},
        {"method": "binomial", "depth": 10},
        {"method": "binomial", "steps": -5},
        {"method": "mc", "process": {"type": "heston"}},
    ])
    def test_rejected(self, data):
        with pytest.raises(InvalidParameter):
            engine_config_from_dict(data)
