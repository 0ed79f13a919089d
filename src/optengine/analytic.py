"""Closed-form (Black-Scholes family) pricing engine.

The engine holds a registry mapping :class:`AnalyticType` tags to
:class:`Calculator` objects.  A product is priced by reading its payoff's
tag and handing it to the registered calculator; untagged payoffs and
American exercise are rejected with :class:`UnsupportedProduct`.

The module-level formula functions are plain scalar functions and are
reused elsewhere (binomial smoothing, Asian control variates).
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from scipy.optimize import brentq

from .core import CALL, PUT, Engine, MarketParams, Product
from .errors import ConvergenceFailure, InvalidParameter, UnsupportedProduct
from .payoffs import AnalyticType
from .risk import numerical_greeks
from .stats import bivariate_norm_cdf, d1_d2, norm_cdf, norm_logcdf, norm_pdf

logger = logging.getLogger(__name__)

__all__ = [
    "bs_price",
    "bs_greeks",
    "binary_price",
    "barrier_price",
    "geometric_asian_price",
    "margrabe_price",
    "max_call_price",
    "lookback_price",
    "Calculator",
    "VanillaCalculator",
    "BinaryCalculator",
    "BarrierCalculator",
    "GeometricAsianCalculator",
    "ExchangeCalculator",
    "MaxCallCalculator",
    "LookbackCalculator",
    "AnalyticEngine",
]


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------

def _black(F: float, K: float, df: float, stdev: float, kind: str) -> float:
    """Black formula on a forward; ``stdev = sigma * sqrt(T)`` may be zero."""
    phi = 1.0 if kind == CALL else -1.0
    if stdev == 0.0 or K == 0.0:
        return df * max(phi * (F - K), 0.0)
    d1 = (math.log(F / K) + 0.5 * stdev * stdev) / stdev
    d2 = d1 - stdev
    return df * phi * (F * norm_cdf(phi * d1) - K * norm_cdf(phi * d2))


def bs_price(S: float, K: float, T: float, r: float, q: float, sigma: float,
             kind: str = CALL) -> float:
    """Black-Scholes price with continuous dividend yield.

    ``T = 0`` returns the intrinsic value, ``sigma = 0`` the discounted
    payoff of the forward.
    """
    if T == 0.0:
        return max(S - K, 0.0) if kind == CALL else max(K - S, 0.0)
    F = S * math.exp((r - q) * T)
    return float(_black(F, K, math.exp(-r * T), sigma * math.sqrt(T), kind))


def bs_greeks(S: float, K: float, T: float, r: float, q: float, sigma: float,
              kind: str = CALL) -> dict[str, float]:
    """Closed-form Greeks; vega is dPrice/dSigma, theta is dPrice/dt per year.

    Requires ``T > 0``, ``sigma > 0`` and ``K > 0``.
    """
    d1, d2 = d1_d2(S, K, T, r, q, sigma)
    srt = sigma * math.sqrt(T)
    n_d1 = norm_pdf(d1)
    disc_r = math.exp(-r * T)
    disc_q = math.exp(-q * T)

    # Common
    gamma = disc_q * n_d1 / (S * srt)
    vega = S * disc_q * n_d1 * math.sqrt(T)

    if kind == CALL:
        delta = disc_q * norm_cdf(d1)
        theta = (-S * disc_q * n_d1 * sigma / (2 * math.sqrt(T))
                 - r * K * disc_r * norm_cdf(d2)
                 + q * S * disc_q * norm_cdf(d1))
        rho = K * T * disc_r * norm_cdf(d2)
    else:
        delta = disc_q * (norm_cdf(d1) - 1.0)
        theta = (-S * disc_q * n_d1 * sigma / (2 * math.sqrt(T))
                 + r * K * disc_r * norm_cdf(-d2)
                 - q * S * disc_q * norm_cdf(-d1))
        rho = -K * T * disc_r * norm_cdf(-d2)

    return {k: float(v) for k, v in
            {"delta": delta, "gamma": gamma, "vega": vega, "theta": theta, "rho": rho}.items()}


def binary_price(S: float, K: float, T: float, r: float, q: float, sigma: float,
                 kind: str = CALL, *, payout: Optional[float] = 1.0) -> float:
    """Cash-or-nothing (``payout`` given) or asset-or-nothing (``payout=None``)."""
    itm = (S > K) if kind == CALL else (S < K)
    if T == 0.0:
        return (S if payout is None else payout) if itm else 0.0

    df = math.exp(-r * T)
    F = S * math.exp((r - q) * T)
    stdev = sigma * math.sqrt(T)
    phi = 1.0 if kind == CALL else -1.0
    if stdev == 0.0 or K == 0.0:
        fwd_itm = (F > K) if kind == CALL else (F < K)
        if not fwd_itm:
            return 0.0
        return df * (F if payout is None else payout)

    d1 = (math.log(F / K) + 0.5 * stdev * stdev) / stdev
    d2 = d1 - stdev
    if payout is None:
        return float(df * F * norm_cdf(phi * d1))
    return float(df * payout * norm_cdf(phi * d2))


# Reiner-Rubinstein building blocks: (kind, type, K > H) -> signed A..D mix
_BARRIER_TABLE = {
    (CALL, "down-and-out", True): {"A": 1, "C": -1},
    (CALL, "down-and-out", False): {"B": 1, "D": -1},
    (CALL, "down-and-in", True): {"C": 1},
    (CALL, "down-and-in", False): {"A": 1, "B": -1, "D": 1},
    (CALL, "up-and-out", True): {},
    (CALL, "up-and-out", False): {"A": 1, "B": -1, "C": 1, "D": -1},
    (CALL, "up-and-in", True): {"A": 1},
    (CALL, "up-and-in", False): {"B": 1, "C": -1, "D": 1},
    (PUT, "down-and-out", True): {"A": 1, "B": -1, "C": 1, "D": -1},
    (PUT, "down-and-out", False): {},
    (PUT, "down-and-in", True): {"B": 1, "C": -1, "D": 1},
    (PUT, "down-and-in", False): {"A": 1},
    (PUT, "up-and-out", True): {"B": 1, "D": -1},
    (PUT, "up-and-out", False): {"A": 1, "C": -1},
    (PUT, "up-and-in", True): {"A": 1, "B": -1, "D": 1},
    (PUT, "up-and-in", False): {"C": 1},
}


def barrier_price(S: float, K: float, H: float, T: float, r: float, q: float,
                  sigma: float, barrier_type: str, kind: str = CALL) -> float:
    """Continuously monitored single-barrier option without rebate.

    Parameters
    ----------
    S, K, H : float
        Spot, strike (``> 0``) and barrier.
    T, r, q, sigma : float
        Market parameters.
    barrier_type : str
        ``"up-and-out"``, ``"up-and-in"``, ``"down-and-out"`` or
        ``"down-and-in"``.
    kind : ``"call"`` or ``"put"``

    Returns
    -------
    float
    """
    up = barrier_type.startswith("up")
    knock_in = barrier_type.endswith("in")
    breached = S >= H if up else S <= H
    if breached:
        return bs_price(S, K, T, r, q, sigma, kind) if knock_in else 0.0

    if T == 0.0 or sigma == 0.0:
        # deterministic path is monotone between S and its forward
        F = S * math.exp((r - q) * T)
        crossed = max(S, F) >= H if up else min(S, F) <= H
        alive = crossed if knock_in else not crossed
        return bs_price(S, K, T, r, q, 0.0, kind) if alive else 0.0

    phi = 1.0 if kind == CALL else -1.0
    eta = -1.0 if up else 1.0
    b = r - q
    srt = sigma * math.sqrt(T)
    mu = (b - 0.5 * sigma * sigma) / (sigma * sigma)
    shift = (1.0 + mu) * srt

    x1 = math.log(S / K) / srt + shift
    x2 = math.log(S / H) / srt + shift
    y1 = math.log(H * H / (S * K)) / srt + shift
    y2 = math.log(H / S) / srt + shift

    cq = S * math.exp((b - r) * T)
    cr = K * math.exp(-r * T)
    hs = H / S
    hs_s = hs ** (2.0 * (mu + 1.0))
    hs_k = hs ** (2.0 * mu)

    terms = {
        "A": phi * cq * norm_cdf(phi * x1) - phi * cr * norm_cdf(phi * (x1 - srt)),
        "B": phi * cq * norm_cdf(phi * x2) - phi * cr * norm_cdf(phi * (x2 - srt)),
        "C": (phi * cq * hs_s * norm_cdf(eta * y1)
              - phi * cr * hs_k * norm_cdf(eta * (y1 - srt))),
        "D": (phi * cq * hs_s * norm_cdf(eta * y2)
              - phi * cr * hs_k * norm_cdf(eta * (y2 - srt))),
    }
    mix = _BARRIER_TABLE[(kind, barrier_type, K > H)]
    return float(max(sum(w * terms[name] for name, w in mix.items()), 0.0))


def geometric_asian_price(S: float, K: float, T: float, r: float, q: float,
                          sigma: float, n_fixings: Optional[int] = None,
                          kind: str = CALL) -> float:
    """Geometric average-price option.

    Discrete monitoring at ``T/n, 2T/n, ..., T`` when *n_fixings* is given,
    continuous monitoring otherwise.  The geometric average is lognormal,
    so the price is a Black formula on its forward.
    """
    if T == 0.0:
        return max(S - K, 0.0) if kind == CALL else max(K - S, 0.0)
    nu = r - q - 0.5 * sigma * sigma
    if n_fixings is None:
        log_mean = 0.5 * nu * T
        var = sigma * sigma * T / 3.0
    else:
        N = float(n_fixings)
        dt = T / N
        a = N * (N + 1.0) * (2.0 * N + 1.0) / 6.0
        log_mean = 0.5 * (N + 1.0) * nu * dt
        var = sigma * sigma * a * dt / (N * N)
    F_G = S * math.exp(log_mean + 0.5 * var)
    return float(_black(F_G, K, math.exp(-r * T), math.sqrt(var), kind))


def margrabe_price(S1: float, S2: float, T: float, sigma1: float, sigma2: float,
                   rho: float, q1: float = 0.0, q2: float = 0.0) -> float:
    """Option to exchange asset 2 for asset 1, ``max(S1 - S2, 0)`` at T."""
    P1 = S1 * math.exp(-q1 * T)
    P2 = S2 * math.exp(-q2 * T)
    var = max(sigma1 * sigma1 + sigma2 * sigma2 - 2.0 * rho * sigma1 * sigma2, 0.0)
    return float(_black(P1, P2, 1.0, math.sqrt(var * T), CALL))


def max_call_price(S1: float, S2: float, K: float, T: float, r: float,
                   sigma1: float, sigma2: float, rho: float,
                   q1: float = 0.0, q2: float = 0.0) -> float:
    """Call on the maximum of two assets (Stulz 1982)."""
    if T == 0.0:
        return max(max(S1, S2) - K, 0.0)
    df = math.exp(-r * T)
    if K == 0.0:
        return S2 * math.exp(-q2 * T) + margrabe_price(S1, S2, T, sigma1, sigma2, rho, q1, q2)
    if sigma1 == 0.0 and sigma2 == 0.0:
        F1 = S1 * math.exp((r - q1) * T)
        F2 = S2 * math.exp((r - q2) * T)
        return df * max(max(F1, F2) - K, 0.0)

    sigma = math.sqrt(max(sigma1 ** 2 + sigma2 ** 2 - 2.0 * rho * sigma1 * sigma2, 0.0))
    if sigma1 == 0.0 or sigma2 == 0.0 or sigma == 0.0:
        raise UnsupportedProduct("call-on-max closed form needs non-degenerate volatilities")

    sqT = math.sqrt(T)
    b1, b2 = r - q1, r - q2
    d = (math.log(S1 / S2) + (b1 - b2 + 0.5 * sigma * sigma) * T) / (sigma * sqT)
    y1 = (math.log(S1 / K) + (b1 + 0.5 * sigma1 ** 2) * T) / (sigma1 * sqT)
    y2 = (math.log(S2 / K) + (b2 + 0.5 * sigma2 ** 2) * T) / (sigma2 * sqT)
    rho1 = (sigma1 - rho * sigma2) / sigma
    rho2 = (sigma2 - rho * sigma1) / sigma

    return float(
        S1 * math.exp(-q1 * T) * bivariate_norm_cdf(y1, d, rho1)
        + S2 * math.exp(-q2 * T) * bivariate_norm_cdf(y2, -d + sigma * sqT, rho2)
        - K * df * (1.0 - bivariate_norm_cdf(-y1 + sigma1 * sqT, -y2 + sigma2 * sqT, rho))
    )


def lookback_price(S: float, T: float, r: float, q: float, sigma: float,
                   extremum: Optional[float] = None, kind: str = CALL) -> float:
    """Floating-strike lookback, continuous monitoring (Goldman-Sosin-Gatto).

    *extremum* is the running minimum (call) or maximum (put) seen so far;
    today's spot always counts, so ``None`` prices a fresh contract.
    """
    if kind == CALL:
        ext = S if extremum is None else min(extremum, S)
    else:
        ext = S if extremum is None else max(extremum, S)
    if T == 0.0:
        return S - ext if kind == CALL else ext - S

    b = r - q
    df = math.exp(-r * T)
    if sigma == 0.0:
        F = S * math.exp(b * T)
        return df * (F - min(ext, F)) if kind == CALL else df * (max(ext, F) - F)

    phi = 1.0 if kind == CALL else -1.0
    srt = sigma * math.sqrt(T)
    x = math.log(S / ext)
    d = (x + (b + 0.5 * sigma * sigma) * T) / srt
    value = phi * (S * math.exp(-q * T) * norm_cdf(phi * d)
                   - ext * df * norm_cdf(phi * (d - srt)))

    # value of the running extremum beyond today's spot
    if abs(b) < 1e-8:
        extra = srt * norm_pdf(d) - phi * (x + 0.5 * sigma * sigma * T) * norm_cdf(-phi * d)
    else:
        reflected = math.exp(-2.0 * b * x / (sigma * sigma)
                             + norm_logcdf(phi * (2.0 * b * T / srt - d)))
        extra = phi * sigma * sigma / (2.0 * b) * (reflected - math.exp(b * T) * norm_cdf(-phi * d))
    return float(value + S * df * extra)


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------

class Calculator(ABC):
    """Closed form for one family of payoff tags."""

    tags: tuple[AnalyticType, ...] = ()

    @abstractmethod
    def price(self, product: Product) -> float:
        """Closed-form value of *product*."""

    def greeks(self, product: Product) -> dict[str, float]:
        return numerical_greeks(self.price, product)


class VanillaCalculator(Calculator):
    tags = (AnalyticType.VANILLA_CALL, AnalyticType.VANILLA_PUT)

    def price(self, product):
        m, p = product.market, product.payoff
        return bs_price(m.S0, p.strike, m.T, m.r, m.q, m.sigma, p.kind)

    def greeks(self, product):
        m, p = product.market, product.payoff
        if m.T > 0 and m.sigma > 0 and p.strike > 0:
            return bs_greeks(m.S0, p.strike, m.T, m.r, m.q, m.sigma, p.kind)
        return super().greeks(product)


class BinaryCalculator(Calculator):
    tags = (
        AnalyticType.CASH_OR_NOTHING_CALL, AnalyticType.CASH_OR_NOTHING_PUT,
        AnalyticType.ASSET_OR_NOTHING_CALL, AnalyticType.ASSET_OR_NOTHING_PUT,
    )

    def price(self, product):
        m, p = product.market, product.payoff
        payout = getattr(p, "payout", None)
        return binary_price(m.S0, p.strike, m.T, m.r, m.q, m.sigma, p.kind, payout=payout)


class BarrierCalculator(Calculator):
    tags = (
        AnalyticType.DOWN_AND_OUT_CALL, AnalyticType.DOWN_AND_IN_CALL,
        AnalyticType.UP_AND_OUT_CALL, AnalyticType.UP_AND_IN_CALL,
        AnalyticType.DOWN_AND_OUT_PUT, AnalyticType.DOWN_AND_IN_PUT,
        AnalyticType.UP_AND_OUT_PUT, AnalyticType.UP_AND_IN_PUT,
    )

    def price(self, product):
        m, p = product.market, product.payoff
        if p.strike == 0.0:
            raise UnsupportedProduct("barrier closed form needs a positive strike")
        return barrier_price(m.S0, p.strike, p.barrier, m.T, m.r, m.q, m.sigma,
                             p.barrier_type, p.kind)


class GeometricAsianCalculator(Calculator):
    tags = (AnalyticType.GEOMETRIC_ASIAN_CALL, AnalyticType.GEOMETRIC_ASIAN_PUT)

    def price(self, product):
        m, p = product.market, product.payoff
        return geometric_asian_price(m.S0, p.strike, m.T, m.r, m.q, m.sigma,
                                     p.n_fixings, p.kind)


class ExchangeCalculator(Calculator):
    tags = (AnalyticType.EXCHANGE,)

    def price(self, product):
        m = product.market
        (S1, S2), (s1, s2), (q1, q2) = m.S0, m.sigma, m.q
        return margrabe_price(S1, S2, m.T, s1, s2, m.corr[0][1], q1, q2)


class MaxCallCalculator(Calculator):
    tags = (AnalyticType.CALL_ON_MAX,)

    def price(self, product):
        m = product.market
        (S1, S2), (s1, s2), (q1, q2) = m.S0, m.sigma, m.q
        return max_call_price(S1, S2, product.payoff.strike, m.T, m.r,
                              s1, s2, m.corr[0][1], q1, q2)


class LookbackCalculator(Calculator):
    tags = (AnalyticType.FLOATING_LOOKBACK_CALL, AnalyticType.FLOATING_LOOKBACK_PUT)

    def price(self, product):
        m, p = product.market, product.payoff
        return lookback_price(m.S0, m.T, m.r, m.q, m.sigma, p.extremum, p.kind)


def default_calculators() -> list[Calculator]:
    return [
        VanillaCalculator(),
        BinaryCalculator(),
        BarrierCalculator(),
        GeometricAsianCalculator(),
        ExchangeCalculator(),
        MaxCallCalculator(),
        LookbackCalculator(),
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class AnalyticEngine(Engine):
    """Dispatches tagged payoffs to registered closed-form calculators.

    Parameters
    ----------
    calculators : iterable of Calculator, optional
        Registered in addition to the defaults.  A tag already taken raises
        :class:`InvalidParameter`.
    include_defaults : bool
        Start from the built-in calculators (default True).
    """

    name = "analytic"

    def __init__(self, calculators: Optional[Iterable[Calculator]] = None,
                 *, include_defaults: bool = True):
        self._registry: dict[AnalyticType, Calculator] = {}
        for calc in (default_calculators() if include_defaults else []):
            self.register(calc)
        for calc in calculators or ():
            self.register(calc)

    # -- registry -----------------------------------------------------------

    def register(self, calculator: Calculator) -> None:
        if not calculator.tags:
            raise InvalidParameter(f"{type(calculator).__name__} declares no tags")
        taken = [t for t in calculator.tags if t in self._registry]
        if taken:
            raise InvalidParameter(
                f"calculator already registered for {', '.join(t.value for t in taken)}"
            )
        for tag in calculator.tags:
            self._registry[AnalyticType(tag)] = calculator
        logger.debug("registered %s for %s", type(calculator).__name__,
                     [t.value for t in calculator.tags])

    def unregister(self, tag: AnalyticType) -> Calculator:
        try:
            return self._registry.pop(AnalyticType(tag))
        except KeyError:
            raise InvalidParameter(f"no calculator registered for {tag}") from None

    def calculator_for(self, tag: Optional[AnalyticType]) -> Calculator:
        if tag is None:
            raise UnsupportedProduct("payoff has no closed-form tag")
        try:
            return self._registry[tag]
        except KeyError:
            raise UnsupportedProduct(f"no calculator registered for {tag.value}") from None

    @property
    def tags(self) -> list[AnalyticType]:
        return list(self._registry)

    # -- pricing ------------------------------------------------------------

    def _calculator(self, product: Product) -> Calculator:
        if product.exercise.is_american:
            raise UnsupportedProduct("analytic engine prices European exercise only")
        return self.calculator_for(product.payoff.tag)

    def price(self, product: Product) -> float:
        calc = self._calculator(product)
        value = float(calc.price(product))
        logger.debug("analytic %s -> %.10f", product.payoff.tag.value, value)
        return value

    def greeks(self, product: Product) -> dict[str, float]:
        return self._calculator(product).greeks(product)

    def implied_vol(
        self,
        product: Product,
        target_price: float,
        *,
        tol: float = 1e-8,
        maxiter: int = 100,
        bracket: tuple[float, float] = (1e-6, 5.0),
    ) -> float:
        """Brent root find on sigma inside *bracket*."""
        if not isinstance(product.market, MarketParams):
            raise UnsupportedProduct("implied volatility needs a single-asset product")
        if product.market.T == 0.0:
            raise ConvergenceFailure("no time value at T=0, volatility is undetermined")
        calc = self._calculator(product)

        def f(sig):
            return calc.price(product.with_market(sigma=sig)) - target_price

        a, b = bracket
        fa, fb = f(a), f(b)
        if fa * fb > 0:
            if fa > 0:
                raise ConvergenceFailure(
                    f"target {target_price} is below the price at sigma={a} "
                    "(no-arbitrage lower bound)"
                )
            raise ConvergenceFailure(f"no sign change of price - target on [{a}, {b}]")

        root, res = brentq(f, a, b, xtol=tol, maxiter=maxiter, full_output=True, disp=False)
        if not res.converged:
            raise ConvergenceFailure(
                f"implied vol did not converge in {maxiter} iterations ({res.flag})"
            )
        return float(root)
