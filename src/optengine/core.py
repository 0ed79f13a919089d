"""Market data, exercise rules and the product/engine pair.

A :class:`Product` bundles market parameters, a payoff, an exercise rule
and the boundary condition the PDE engine solves against; every engine
implements :class:`Engine`.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

import numpy as np

from .errors import InvalidParameter

if TYPE_CHECKING:
    from .boundary import BoundaryCondition
    from .payoffs import Payoff

CALL = "call"
PUT = "put"

__all__ = [
    "CALL",
    "PUT",
    "ExerciseRule",
    "MarketParams",
    "MultiAssetParams",
    "Product",
    "Engine",
]


# ---------------------------------------------------------------------------
# Exercise rules
# ---------------------------------------------------------------------------
class ExerciseRule(str, Enum):
    """When the holder may exercise."""

    EUROPEAN = "european"
    AMERICAN = "american"

    @property
    def is_american(self) -> bool:
        return self is ExerciseRule.AMERICAN

    def should_exercise(self, intrinsic, continuation):
        """Vectorised early-exercise decision at an intermediate step."""
        if not self.is_american:
            return np.zeros(np.shape(intrinsic), dtype=bool)
        return np.asarray(intrinsic) > np.asarray(continuation)


# ---------------------------------------------------------------------------
# Market parameters
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MarketParams:
    """Single-asset market state shared by every engine.

    Parameters
    ----------
    S0 : float
        Spot, must be positive.
    T : float
        Time to maturity in years, ``>= 0``.
    r : float
        Continuous risk-free rate (may be negative).
    sigma : float
        Volatility, ``>= 0``.
    q : float
        Continuous dividend yield / cost of carry (may be negative).
    """
    S0: float
    T: float
    r: float
    sigma: float
    q: float = 0.0

    n_assets = 1

    def __post_init__(self):
        for name in ("S0", "T", "r", "sigma", "q"):
            if not math.isfinite(getattr(self, name)):
                raise InvalidParameter(f"{name} must be finite, got {getattr(self, name)}")
        if self.S0 <= 0:
            raise InvalidParameter(f"S0 must be positive, got {self.S0}")
        if self.T < 0:
            raise InvalidParameter(f"T must be non-negative, got {self.T}")
        if self.sigma < 0:
            raise InvalidParameter(f"sigma must be non-negative, got {self.sigma}")

    def discount(self, t: Optional[float] = None) -> float:
        return math.exp(-self.r * (self.T if t is None else t))

    def forward(self, t: Optional[float] = None) -> float:
        return self.S0 * math.exp((self.r - self.q) * (self.T if t is None else t))


@dataclass(frozen=True)
class MultiAssetParams:
    """Market state for basket / spread products.

    ``corr`` is the correlation matrix of log returns; the covariance is
    built from it and the per-asset vols.
    """
    S0: tuple
    sigma: tuple
    corr: tuple
    T: float
    r: float
    q: tuple = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "S0", tuple(float(s) for s in self.S0))
        object.__setattr__(self, "sigma", tuple(float(s) for s in self.sigma))
        object.__setattr__(self, "corr", tuple(tuple(float(x) for x in row) for row in self.corr))
        q = tuple(float(x) for x in self.q) if self.q else (0.0,) * len(self.S0)
        object.__setattr__(self, "q", q)

        n = len(self.S0)
        if n < 2:
            raise InvalidParameter("multi-asset products need at least two assets.")
        if len(self.sigma) != n or len(self.q) != n:
            raise InvalidParameter("S0, sigma and q must have the same length.")
        if any(s <= 0 for s in self.S0):
            raise InvalidParameter(f"S0 must be positive, got {self.S0}")
        if any(s < 0 for s in self.sigma):
            raise InvalidParameter(f"sigma must be non-negative, got {self.sigma}")
        if self.T < 0:
            raise InvalidParameter(f"T must be non-negative, got {self.T}")

        C = np.asarray(self.corr)
        if C.shape != (n, n):
            raise InvalidParameter(f"corr must be {n}x{n}, got shape {C.shape}")
        if not np.allclose(C, C.T):
            raise InvalidParameter("corr must be symmetric.")
        if not np.allclose(np.diag(C), 1.0):
            raise InvalidParameter("corr must have a unit diagonal.")
        if np.any(np.abs(C) > 1.0):
            raise InvalidParameter("correlations must lie in [-1, 1].")

    @property
    def n_assets(self) -> int:
        return len(self.S0)

    @property
    def covariance(self) -> np.ndarray:
        s = np.asarray(self.sigma)
        return np.asarray(self.corr) * np.outer(s, s)

    def discount(self, t: Optional[float] = None) -> float:
        return math.exp(-self.r * (self.T if t is None else t))


Market = Union[MarketParams, MultiAssetParams]


# ---------------------------------------------------------------------------
# Product
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Product:
    """An option: market parameters + payoff + exercise rule + boundary.

    When *boundary* is omitted it is derived from the payoff.  Build
    products through the constructors in :mod:`optengine.products`.
    """
    market: Market
    payoff: "Payoff"
    exercise: ExerciseRule = ExerciseRule.EUROPEAN
    boundary: Optional["BoundaryCondition"] = None
    _derived_boundary: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.market, (MarketParams, MultiAssetParams)):
            raise InvalidParameter(f"unsupported market type {type(self.market).__name__}")
        object.__setattr__(self, "exercise", ExerciseRule(self.exercise))
        if self.payoff.n_assets != self.market.n_assets:
            raise InvalidParameter(
                f"payoff expects {self.payoff.n_assets} asset(s), "
                f"market has {self.market.n_assets}"
            )
        if self.boundary is None:
            object.__setattr__(self, "boundary", self.payoff.default_boundary(self.market))
            object.__setattr__(self, "_derived_boundary", True)

    @property
    def is_multi_asset(self) -> bool:
        return self.market.n_assets > 1

    def with_market(self, **changes) -> "Product":
        """Copy with bumped market fields; a derived boundary is rebuilt."""
        market = replace(self.market, **changes)
        boundary = None if self._derived_boundary else self.boundary
        return Product(market, self.payoff, self.exercise, boundary)

    def intrinsic(self) -> float:
        """Payoff at today's spot."""
        return float(self.payoff(np.asarray(self.market.S0, dtype=float)))


# ---------------------------------------------------------------------------
# Engine contract
# ---------------------------------------------------------------------------
class Engine(ABC):
    """Uniform pricing contract shared by all engines."""

    name: str = "engine"

    @abstractmethod
    def price(self, product: Product) -> float:
        """Present value of *product*."""
