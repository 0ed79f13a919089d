"""Uniform pricing entry point.

:class:`Pricer` turns one :data:`EngineConfig` into exactly one engine at
construction and forwards ``price`` / ``greeks`` / ``price_with_stderr``
to it, so product code never depends on a concrete engine.
"""

from __future__ import annotations

import logging

from .analytic import AnalyticEngine
from .binomial import BinomialEngine
from .config import AnalyticConfig, BinomialConfig, EngineConfig, MonteCarloConfig, PDEConfig
from .core import Engine, Product
from .errors import InvalidParameter, UnsupportedProduct
from .monte_carlo import MonteCarloEngine
from .pde import PDEEngine
from .risk import numerical_greeks

logger = logging.getLogger(__name__)

__all__ = ["Pricer", "build_engine", "price"]


def build_engine(config: EngineConfig) -> Engine:
    """Construct the engine selected by *config*."""
    if isinstance(config, AnalyticConfig):
        return AnalyticEngine(config.calculators, include_defaults=config.include_defaults)
    if isinstance(config, BinomialConfig):
        return BinomialEngine(config)
    if isinstance(config, MonteCarloConfig):
        return MonteCarloEngine(config)
    if isinstance(config, PDEConfig):
        return PDEEngine(config)
    raise InvalidParameter(f"unknown engine config {type(config).__name__}")


class Pricer:
    """Engine-agnostic pricer.

    Usage::

        Pricer(BinomialConfig(steps=800)).price(european_option(100, 100, 1.0, 0.05, 0.2))
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.engine = build_engine(config)

    @property
    def method(self) -> str:
        return self.engine.name

    def price(self, product: Product) -> float:
        return self.engine.price(product)

    def greeks(self, product: Product) -> dict[str, float]:
        """Engine-native Greeks where available, bump-and-reprice otherwise."""
        engine = self.engine
        if isinstance(engine, (AnalyticEngine, PDEEngine)):
            return engine.greeks(product)
        if isinstance(engine, BinomialEngine):
            g = numerical_greeks(engine.price, product)
            g["delta"], g["gamma"] = engine.delta_gamma(product)
            return g
        return numerical_greeks(engine.price, product)

    def price_with_stderr(self, product: Product) -> tuple[float, float]:
        if not isinstance(self.engine, MonteCarloEngine):
            raise UnsupportedProduct(f"{self.method} engine does not report a standard error")
        return self.engine.price_with_stderr(product)

    def __repr__(self):
        return f"Pricer({self.config!r})"


def price(product: Product, config: EngineConfig) -> float:
    """One-shot convenience: ``Pricer(config).price(product)``."""
    return Pricer(config).price(product)
