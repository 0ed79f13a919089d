"""Tests for cross-engine validation and convergence analysis."""

import math

from optengine import (
    CALL,
    AnalyticConfig,
    BinomialConfig,
    MonteCarloConfig,
    PDEConfig,
    bs_price,
    cross_validate,
    convergence_analysis,
    european_option,
)

OPT = european_option(100, 100, 1.0, 0.05, 0.2, kind=CALL)
BS = bs_price(100, 100, 1.0, 0.05, 0.0, 0.2, CALL)


class TestCrossValidate:
    def test_all_engines_agree(self):
        res = cross_validate(OPT, {
            "analytic": AnalyticConfig(),
            "crr": BinomialConfig(steps=500),
            "mc": MonteCarloConfig(paths=100_000, seed=42, antithetic=True, control_variate=True),
            "cn": PDEConfig(spot_steps=200, time_steps=200),
        })
        assert res["reference"] == BS
        assert res["analytic"] == BS
        price, se = res["mc"]
        assert se > 0.0 and abs(price - BS) < 4 * se
        assert res["max_discrepancy"] < 5e-2

    def test_explicit_reference(self):
        res = cross_validate(OPT, {"crr": BinomialConfig(steps=100)}, reference=10.0)
        assert res["max_discrepancy"] == abs(res["crr"] - 10.0)

    def test_no_configs(self):
        assert cross_validate(OPT, {})["max_discrepancy"] == 0.0


class TestConvergence:
    def test_binomial_first_order(self):
        res = convergence_analysis(OPT, lambda n: BinomialConfig(steps=n), [50, 100, 200, 400])
        assert res["params"] == [50, 100, 200, 400]
        assert res["errors"][-1] < res["errors"][0]
        assert 0.5 < res["order"] < 1.5

    def test_pde_refinement(self):
        res = convergence_analysis(
            OPT, lambda n: PDEConfig(spot_steps=n, time_steps=n), [50, 100, 200], reference=BS,
        )
        assert res["errors"][-1] < res["errors"][0]
        assert not math.isnan(res["order"])
