# payoffs.py
# Payoff functions shared by every engine.
#
# ``payoff(S)`` evaluates on terminal spots (scalar or array; multi-asset
# payoffs take S of shape (n_assets, ...)).  ``path_payoff(paths)`` evaluates
# on simulated paths from ``processes.py``; the default reads the terminal
# row, path-dependent payoffs override it with their own path statistic.

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .boundary import DiscountedPayoffBoundary, KnockOutBoundary
from .core import CALL, PUT
from .errors import InvalidParameter

__all__ = [
    "AnalyticType",
    "ControlVariate",
    "Payoff",
    "VanillaPayoff",
    "CashOrNothingPayoff",
    "AssetOrNothingPayoff",
    "BarrierPayoff",
    "FloatingLookbackPayoff",
    "AsianPayoff",
    "SpreadPayoff",
    "BasketPayoff",
    "MaxCallPayoff",
    "CustomPayoff",
]

BARRIER_TYPES = ("up-and-out", "up-and-in", "down-and-out", "down-and-in")


class AnalyticType(str, Enum):
    """Closed-form category read by the analytic engine's registry."""

    VANILLA_CALL = "vanilla_call"
    VANILLA_PUT = "vanilla_put"
    CASH_OR_NOTHING_CALL = "cash_or_nothing_call"
    CASH_OR_NOTHING_PUT = "cash_or_nothing_put"
    ASSET_OR_NOTHING_CALL = "asset_or_nothing_call"
    ASSET_OR_NOTHING_PUT = "asset_or_nothing_put"
    DOWN_AND_OUT_CALL = "down_and_out_call"
    DOWN_AND_IN_CALL = "down_and_in_call"
    UP_AND_OUT_CALL = "up_and_out_call"
    UP_AND_IN_CALL = "up_and_in_call"
    DOWN_AND_OUT_PUT = "down_and_out_put"
    DOWN_AND_IN_PUT = "down_and_in_put"
    UP_AND_OUT_PUT = "up_and_out_put"
    UP_AND_IN_PUT = "up_and_in_put"
    GEOMETRIC_ASIAN_CALL = "geometric_asian_call"
    GEOMETRIC_ASIAN_PUT = "geometric_asian_put"
    EXCHANGE = "exchange"
    CALL_ON_MAX = "call_on_max"
    FLOATING_LOOKBACK_CALL = "floating_lookback_call"
    FLOATING_LOOKBACK_PUT = "floating_lookback_put"


@dataclass(frozen=True)
class ControlVariate:
    """Control quantity Y(paths) with known undiscounted expectation."""
    values: Callable[[np.ndarray], np.ndarray]
    expectation: float


def _check_kind(kind: str) -> str:
    kind = str(kind).lower()
    if kind not in (CALL, PUT):
        raise InvalidParameter(f"kind must be 'call' or 'put', got {kind!r}")
    return kind


def _check_strike(K: float) -> float:
    if not K >= 0:
        raise InvalidParameter(f"strike must be non-negative, got {K}")
    return float(K)


def _terminal(paths: np.ndarray) -> np.ndarray:
    return paths[..., -1, :]


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class Payoff(ABC):
    """Option payoff.  Subclasses are immutable after construction."""

    tag: Optional[AnalyticType] = None
    path_dependent: bool = False
    n_assets: int = 1

    @abstractmethod
    def __call__(self, S):
        """Payoff on terminal spot(s)."""

    def path_payoff(self, paths: np.ndarray) -> np.ndarray:
        return self(_terminal(paths))

    def default_boundary(self, market):
        if market.n_assets > 1:
            return None
        return DiscountedPayoffBoundary(self, market.r, market.q)

    def control_variate(self, market, process, n_steps: int) -> Optional[ControlVariate]:
        """Terminal spot (summed across assets) as control, when E[S_T] is known."""
        expected = process.expected_terminal(market.S0, market.T)
        if expected is None:
            return None
        if self.n_assets > 1:
            return ControlVariate(
                lambda paths: _terminal(paths).sum(axis=0), float(np.sum(expected))
            )
        return ControlVariate(_terminal, float(expected))

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{type(self).__name__}({fields})"


# ---------------------------------------------------------------------------
# Terminal payoffs
# ---------------------------------------------------------------------------
class VanillaPayoff(Payoff):
    def __init__(self, strike: float, kind: str = CALL):
        self.strike = _check_strike(strike)
        self.kind = _check_kind(kind)
        self.tag = AnalyticType.VANILLA_CALL if self.kind == CALL else AnalyticType.VANILLA_PUT

    def __call__(self, S):
        if self.kind == CALL:
            return np.maximum(S - self.strike, 0.0)
        return np.maximum(self.strike - S, 0.0)


class CashOrNothingPayoff(Payoff):
    """Pays *payout* if the option finishes in the money."""

    def __init__(self, strike: float, payout: float = 1.0, kind: str = CALL):
        self.strike = _check_strike(strike)
        self.kind = _check_kind(kind)
        if payout < 0:
            raise InvalidParameter(f"payout must be non-negative, got {payout}")
        self.payout = float(payout)
        self.tag = (AnalyticType.CASH_OR_NOTHING_CALL if self.kind == CALL
                    else AnalyticType.CASH_OR_NOTHING_PUT)

    def __call__(self, S):
        itm = S > self.strike if self.kind == CALL else S < self.strike
        return np.where(itm, self.payout, 0.0)


class AssetOrNothingPayoff(Payoff):
    """Delivers the asset if the option finishes in the money."""

    def __init__(self, strike: float, kind: str = CALL):
        self.strike = _check_strike(strike)
        self.kind = _check_kind(kind)
        self.tag = (AnalyticType.ASSET_OR_NOTHING_CALL if self.kind == CALL
                    else AnalyticType.ASSET_OR_NOTHING_PUT)

    def __call__(self, S):
        itm = S > self.strike if self.kind == CALL else S < self.strike
        return np.where(itm, S, 0.0)


# ---------------------------------------------------------------------------
# Path-dependent payoffs
# ---------------------------------------------------------------------------
class BarrierPayoff(Payoff):
    """Vanilla payoff switched on/off by a discretely monitored barrier.

    Every simulated spot (t=0 row included) is a monitoring point.  On a
    single spot, ``payoff(S)`` treats S as the only observation.
    """

    path_dependent = True

    def __init__(self, strike: float, barrier: float, barrier_type: str, kind: str = CALL):
        if barrier_type not in BARRIER_TYPES:
            raise InvalidParameter(
                f"barrier_type must be one of {BARRIER_TYPES}, got {barrier_type!r}"
            )
        if not barrier > 0:
            raise InvalidParameter(f"barrier must be positive, got {barrier}")
        self.vanilla = VanillaPayoff(strike, kind)
        self.strike = self.vanilla.strike
        self.kind = self.vanilla.kind
        self.barrier = float(barrier)
        self.barrier_type = barrier_type
        self.tag = AnalyticType(f"{barrier_type.replace('-', '_')}_{self.kind}")

    @property
    def direction(self) -> str:
        return "up" if self.barrier_type.startswith("up") else "down"

    @property
    def knock_in(self) -> bool:
        return self.barrier_type.endswith("in")

    def _breached(self, S):
        return S >= self.barrier if self.direction == "up" else S <= self.barrier

    def _apply(self, crossed, ST):
        alive = crossed if self.knock_in else ~crossed
        return np.where(alive, self.vanilla(ST), 0.0)

    def __call__(self, S):
        S = np.asarray(S, dtype=float)
        return self._apply(self._breached(S), S)

    def path_payoff(self, paths):
        crossed = np.any(self._breached(paths), axis=0)
        return self._apply(crossed, paths[-1])

    def default_boundary(self, market):
        if self.knock_in:
            return DiscountedPayoffBoundary(self.vanilla, market.r, market.q)
        return KnockOutBoundary(self.vanilla, self.barrier, self.direction, market.r, market.q)


class FloatingLookbackPayoff(Payoff):
    """Floating-strike lookback: call ``S_T - min S``, put ``max S - S_T``.

    *extremum* is the running minimum (call) or maximum (put) already
    observed before today, if any.
    """

    path_dependent = True

    def __init__(self, kind: str = CALL, extremum: Optional[float] = None):
        self.kind = _check_kind(kind)
        if extremum is not None and not extremum > 0:
            raise InvalidParameter(f"extremum must be positive, got {extremum}")
        self.extremum = extremum
        self.tag = (AnalyticType.FLOATING_LOOKBACK_CALL if self.kind == CALL
                    else AnalyticType.FLOATING_LOOKBACK_PUT)

    def _payoff(self, ST, lo, hi):
        if self.kind == CALL:
            if self.extremum is not None:
                lo = np.minimum(lo, self.extremum)
            return ST - lo
        if self.extremum is not None:
            hi = np.maximum(hi, self.extremum)
        return hi - ST

    def __call__(self, S):
        S = np.asarray(S, dtype=float)
        return self._payoff(S, S, S)

    def path_payoff(self, paths):
        return self._payoff(paths[-1], paths.min(axis=0), paths.max(axis=0))


class AsianPayoff(Payoff):
    """Fixed-strike average-price option.

    The average runs over the monitoring dates after inception.  With
    ``n_fixings=None`` every simulation step is a fixing (and the closed
    form uses the continuous-monitoring limit); otherwise the simulation
    step count must be a multiple of ``n_fixings``.
    """

    path_dependent = True

    def __init__(self, strike: float, kind: str = CALL, average: str = "arithmetic",
                 n_fixings: Optional[int] = None):
        self.strike = _check_strike(strike)
        self.kind = _check_kind(kind)
        if average not in ("arithmetic", "geometric"):
            raise InvalidParameter(f"average must be 'arithmetic' or 'geometric', got {average!r}")
        if n_fixings is not None and n_fixings <= 0:
            raise InvalidParameter(f"n_fixings must be positive, got {n_fixings}")
        self.average = average
        self.n_fixings = n_fixings
        self.vanilla = VanillaPayoff(strike, kind)
        if average == "geometric":
            self.tag = (AnalyticType.GEOMETRIC_ASIAN_CALL if self.kind == CALL
                        else AnalyticType.GEOMETRIC_ASIAN_PUT)

    def fixings(self, paths: np.ndarray) -> np.ndarray:
        n_steps = paths.shape[0] - 1
        if self.n_fixings is None:
            return paths[1:]
        if n_steps % self.n_fixings:
            raise InvalidParameter(
                f"n_steps={n_steps} is not a multiple of n_fixings={self.n_fixings}"
            )
        return paths[n_steps // self.n_fixings::n_steps // self.n_fixings]

    def _mean(self, fixings, average):
        if average == "geometric":
            return np.exp(np.log(fixings).mean(axis=0))
        return fixings.mean(axis=0)

    def __call__(self, S):
        return self.vanilla(S)

    def path_payoff(self, paths):
        return self.vanilla(self._mean(self.fixings(paths), self.average))

    def control_variate(self, market, process, n_steps):
        from .analytic import geometric_asian_price
        from .processes import GeometricBrownianMotion

        if self.average != "arithmetic" or not isinstance(process, GeometricBrownianMotion):
            return super().control_variate(market, process, n_steps)

        n = self.n_fixings or n_steps
        q = market.r - process.mu
        price = geometric_asian_price(market.S0, self.strike, market.T, market.r, q,
                                      process.sigma, n, self.kind)
        return ControlVariate(
            lambda paths: self.vanilla(self._mean(self.fixings(paths), "geometric")),
            price / market.discount(),
        )


# ---------------------------------------------------------------------------
# Multi-asset payoffs
# ---------------------------------------------------------------------------
class SpreadPayoff(Payoff):
    """``max(S1 - S2 - K, 0)`` (call) or ``max(K - (S1 - S2), 0)`` (put).

    A zero-strike call is the exchange option.
    """

    n_assets = 2

    def __init__(self, strike: float = 0.0, kind: str = CALL):
        self.strike = _check_strike(strike)
        self.kind = _check_kind(kind)
        if self.strike == 0.0 and self.kind == CALL:
            self.tag = AnalyticType.EXCHANGE

    def __call__(self, S):
        spread = S[0] - S[1]
        if self.kind == CALL:
            return np.maximum(spread - self.strike, 0.0)
        return np.maximum(self.strike - spread, 0.0)


class BasketPayoff(Payoff):
    """Call or put on a weighted basket ``sum_i w_i S_i``."""

    def __init__(self, weights, strike: float, kind: str = CALL):
        self.weights = np.asarray(weights, dtype=float)
        if self.weights.ndim != 1 or self.weights.size < 2:
            raise InvalidParameter("basket needs a 1-D vector of at least two weights.")
        self.n_assets = self.weights.size
        self.vanilla = VanillaPayoff(strike, kind)
        self.strike = self.vanilla.strike
        self.kind = self.vanilla.kind

    def __call__(self, S):
        return self.vanilla(np.tensordot(self.weights, S, axes=1))


class MaxCallPayoff(Payoff):
    """Call on the maximum of two assets."""

    n_assets = 2
    tag = AnalyticType.CALL_ON_MAX

    def __init__(self, strike: float):
        self.strike = _check_strike(strike)

    def __call__(self, S):
        return np.maximum(np.maximum(S[0], S[1]) - self.strike, 0.0)


# ---------------------------------------------------------------------------
# Generic exotic
# ---------------------------------------------------------------------------
class CustomPayoff(Payoff):
    """Wraps a user function.  Untagged, so only numerical engines price it.

    Parameters
    ----------
    func : callable
        Vectorised ``func(S) -> values`` on terminal spots.
    path_func : callable, optional
        ``path_func(paths) -> values``; marks the payoff path dependent.
    n_assets : int
        Number of underlyings ``func`` expects.
    """

    def __init__(self, func: Callable, path_func: Optional[Callable] = None, n_assets: int = 1):
        if n_assets < 1:
            raise InvalidParameter(f"n_assets must be positive, got {n_assets}")
        self.func = func
        self.path_func = path_func
        self.n_assets = n_assets
        self.path_dependent = path_func is not None

    def __call__(self, S):
        return np.asarray(self.func(S), dtype=float)

    def path_payoff(self, paths):
        if self.path_func is None:
            return super().path_payoff(paths)
        return np.asarray(self.path_func(paths), dtype=float)
