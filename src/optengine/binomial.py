"""Cox-Ross-Rubinstein binomial lattice engine."""

from __future__ import annotations

import logging
from math import exp, sqrt
from typing import Optional

import numpy as np

from .analytic import AnalyticEngine
from .config import BinomialConfig
from .core import Engine, Product
from .errors import InvalidParameter, UnsupportedProduct
from .risk import numerical_greeks

logger = logging.getLogger(__name__)

__all__ = ["BinomialEngine"]


class BinomialEngine(Engine):
    """Recombining CRR tree over any single-asset terminal payoff.

    Supports European and American exercise, optional Black-Scholes
    smoothing of the last step and Richardson extrapolation
    ``2 P(N) - P(N/2)``.
    """

    name = "binomial"

    def __init__(self, config: Optional[BinomialConfig] = None, **kwargs):
        self.config = config if config is not None else BinomialConfig(**kwargs)
        self._analytic = AnalyticEngine() if self.config.smoothing else None
        logger.debug("binomial engine %s", self.config)

    # ------------------------------------------------------------------
    def _check(self, product: Product) -> None:
        if product.is_multi_asset:
            raise UnsupportedProduct("binomial engine prices single-asset products only")
        if product.payoff.path_dependent:
            raise UnsupportedProduct(
                f"{type(product.payoff).__name__} is path dependent; use Monte Carlo"
            )
        if self._analytic is not None:
            self._analytic.calculator_for(product.payoff.tag)

    def _deterministic(self, product: Product, N: int) -> float:
        """sigma = 0: the spot follows its forward, only discounting remains."""
        m = product.market
        t = np.linspace(0.0, m.T, N + 1)
        values = np.exp(-m.r * t) * product.payoff(m.S0 * np.exp((m.r - m.q) * t))
        if product.exercise.is_american:
            return float(values.max())
        return float(values[-1])

    def _lattice(self, product: Product, N: int) -> list[np.ndarray]:
        """Backward induction; returns the first three layers ``[V0, V1, V2]``."""
        m, payoff, exercise = product.market, product.payoff, product.exercise
        dt = m.T / N
        u = exp(m.sigma * sqrt(dt))
        d = 1.0 / u
        disc = exp(-m.r * dt)
        p = (exp((m.r - m.q) * dt) - d) / (u - d)
        if not (0.0 <= p <= 1.0):
            raise InvalidParameter(
                f"risk-neutral probability p={p:.6f} outside [0, 1]; increase steps"
            )

        def spots(k):
            j = np.arange(k + 1)
            return m.S0 * u ** (2 * j - k)

        # Payoff at maturity
        V = np.asarray(payoff(spots(N)), dtype=float)
        start = N - 1

        if self._analytic is not None:
            # layer N-1 from the continuous one-step value
            calc = self._analytic.calculator_for(payoff.tag)
            S_k = spots(N - 1)
            V = np.array([calc.price(product.with_market(S0=float(s), T=dt)) for s in S_k])
            if exercise.is_american:
                V = np.maximum(V, payoff(S_k))
            start = N - 2

        layers: list[Optional[np.ndarray]] = [None, None, None]
        if start + 1 <= 2:
            layers[start + 1] = V.copy()

        for k in range(start, -1, -1):
            V = disc * (p * V[1:] + (1.0 - p) * V[:-1])
            if exercise.is_american:
                ex = np.asarray(payoff(spots(k)), dtype=float)
                V = np.where(exercise.should_exercise(ex, V), ex, V)
            if k <= 2:
                layers[k] = V.copy()

        return layers

    # ------------------------------------------------------------------
    def price(self, product: Product) -> float:
        self._check(product)
        m = product.market
        N = self.config.steps
        if m.T == 0.0:
            return product.intrinsic()
        if m.sigma == 0.0:
            return self._deterministic(product, N)

        value = float(self._lattice(product, N)[0][0])
        if self.config.richardson:
            coarse = float(self._lattice(product, N // 2)[0][0])
            value = 2.0 * value - coarse
        logger.debug("binomial N=%d -> %.10f", N, value)
        return value

    def delta_gamma(self, product: Product) -> tuple[float, float]:
        """Delta and gamma read off lattice layers 1 and 2."""
        self._check(product)
        m = product.market
        N = self.config.steps
        if m.T == 0.0 or m.sigma == 0.0 or N < 3:
            g = numerical_greeks(self.price, product)
            return g["delta"], g["gamma"]

        _, V1, V2 = self._lattice(product, N)
        u = exp(m.sigma * sqrt(m.T / N))
        S0 = m.S0
        delta = (V1[1] - V1[0]) / (S0 * u - S0 / u)
        up = (V2[2] - V2[1]) / (S0 * u * u - S0)
        dn = (V2[1] - V2[0]) / (S0 - S0 / (u * u))
        gamma = (up - dn) / (0.5 * (S0 * u * u - S0 / (u * u)))
        return float(delta), float(gamma)
