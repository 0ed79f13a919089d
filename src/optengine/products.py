"""Product constructors.

Each constructor validates its inputs (through :class:`MarketParams` and
the payoff classes) and returns an immutable :class:`Product`.
"""

from __future__ import annotations

from typing import Callable, Optional

from .boundary import BoundaryCondition
from .core import CALL, ExerciseRule, MarketParams, MultiAssetParams, Product
from .payoffs import (
    AsianPayoff,
    BarrierPayoff,
    BasketPayoff,
    CustomPayoff,
    FloatingLookbackPayoff,
    MaxCallPayoff,
    Payoff,
    SpreadPayoff,
    VanillaPayoff,
)

__all__ = [
    "european_option",
    "american_option",
    "barrier_option",
    "lookback_option",
    "asian_option",
    "spread_option",
    "basket_option",
    "max_call_option",
    "exotic_option",
]


def european_option(S0: float, K: float, T: float, r: float, sigma: float,
                    q: float = 0.0, kind: str = CALL) -> Product:
    """Plain European call or put."""
    return Product(MarketParams(S0, T, r, sigma, q), VanillaPayoff(K, kind))


def american_option(S0: float, K: float, T: float, r: float, sigma: float,
                    q: float = 0.0, kind: str = CALL) -> Product:
    """Vanilla option exercisable at any lattice/grid step."""
    return Product(MarketParams(S0, T, r, sigma, q), VanillaPayoff(K, kind),
                   ExerciseRule.AMERICAN)


def barrier_option(S0: float, K: float, T: float, r: float, sigma: float,
                   barrier: float, barrier_type: str = "down-and-out",
                   q: float = 0.0, kind: str = CALL) -> Product:
    """European single-barrier option, no rebate.

    Knock-out products get a :class:`KnockOutBoundary` placing the barrier
    on a grid edge; knock-in products are priced by the analytic and Monte
    Carlo engines only.
    """
    return Product(MarketParams(S0, T, r, sigma, q),
                   BarrierPayoff(K, barrier, barrier_type, kind))


def lookback_option(S0: float, T: float, r: float, sigma: float, q: float = 0.0,
                    kind: str = CALL, extremum: Optional[float] = None) -> Product:
    """Floating-strike lookback."""
    return Product(MarketParams(S0, T, r, sigma, q), FloatingLookbackPayoff(kind, extremum))


def asian_option(S0: float, K: float, T: float, r: float, sigma: float,
                 q: float = 0.0, kind: str = CALL, average: str = "arithmetic",
                 n_fixings: Optional[int] = None) -> Product:
    """Fixed-strike average-price option."""
    return Product(MarketParams(S0, T, r, sigma, q),
                   AsianPayoff(K, kind, average, n_fixings))


def spread_option(S0, sigma, rho: float, K: float, T: float, r: float,
                  q=(0.0, 0.0), kind: str = CALL) -> Product:
    """Two-asset spread option on ``S1 - S2``; ``K = 0`` gives the exchange option."""
    market = MultiAssetParams(S0, sigma, ((1.0, rho), (rho, 1.0)), T, r, q)
    return Product(market, SpreadPayoff(K, kind))


def basket_option(S0, sigma, corr, weights, K: float, T: float, r: float,
                  q=(), kind: str = CALL) -> Product:
    """Weighted basket call or put."""
    return Product(MultiAssetParams(S0, sigma, corr, T, r, q), BasketPayoff(weights, K, kind))


def max_call_option(S0, sigma, rho: float, K: float, T: float, r: float,
                    q=(0.0, 0.0)) -> Product:
    """Call on the maximum of two assets."""
    market = MultiAssetParams(S0, sigma, ((1.0, rho), (rho, 1.0)), T, r, q)
    return Product(market, MaxCallPayoff(K))


def exotic_option(market, payoff, exercise: ExerciseRule = ExerciseRule.EUROPEAN,
                  boundary: Optional[BoundaryCondition] = None,
                  *, path_func: Optional[Callable] = None) -> Product:
    """Generic product from any payoff.

    *payoff* may be a :class:`Payoff` or a plain vectorised callable, which
    is wrapped in an untagged :class:`CustomPayoff`.
    """
    if not isinstance(payoff, Payoff):
        payoff = CustomPayoff(payoff, path_func, market.n_assets)
    return Product(market, payoff, exercise, boundary)
