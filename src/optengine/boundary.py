"""Boundary conditions seeding the finite-difference grid.

``tau`` is always the time remaining to maturity, so ``tau = 0`` is the
terminal layer.  Conditions are immutable and shared read-only by the PDE
engine.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from .errors import InvalidParameter

__all__ = [
    "BoundaryCondition",
    "DiscountedPayoffBoundary",
    "KnockOutBoundary",
]


class BoundaryCondition(ABC):
    """Lower / upper edge values and terminal layer of a PDE grid."""

    #: True when the edges themselves carry the path dependence of the
    #: payoff (a knock-out barrier placed on a grid edge).
    encodes_path: bool = False

    @abstractmethod
    def lower(self, tau: float, S_min: float) -> float:
        """Value on the lower spot edge with *tau* years left."""

    @abstractmethod
    def upper(self, tau: float, S_max: float) -> float:
        """Value on the upper spot edge with *tau* years left."""

    @abstractmethod
    def terminal(self, S: np.ndarray) -> np.ndarray:
        """Value at maturity on the spot grid."""

    def grid_bounds(self, S_min: float, S_max: float) -> tuple[float, float]:
        """Let the condition move a grid edge; identity by default."""
        return S_min, S_max


class DiscountedPayoffBoundary(BoundaryCondition):
    """Far-field edges valued as the discounted payoff of the forward.

    ``V(S, tau) ≈ e^{-r tau} payoff(S e^{(r-q) tau})``, which is exact for
    linear payoffs and the right asymptote for vanilla and digital payoffs
    deep in or out of the money.
    """

    def __init__(self, payoff: Callable, r: float, q: float):
        self.payoff = payoff
        self.r = r
        self.q = q

    def _edge(self, tau: float, S: float) -> float:
        F = S * math.exp((self.r - self.q) * tau)
        return math.exp(-self.r * tau) * float(self.payoff(np.asarray(F)))

    def lower(self, tau, S_min):
        return self._edge(tau, S_min)

    def upper(self, tau, S_max):
        return self._edge(tau, S_max)

    def terminal(self, S):
        return np.asarray(self.payoff(S), dtype=float)


class KnockOutBoundary(DiscountedPayoffBoundary):
    """Knock-out barrier pinned to one grid edge, value zero on it.

    Parameters
    ----------
    payoff : callable
        Payoff received if the barrier is never touched.
    barrier : float
        Barrier level.
    direction : ``"up"`` or ``"down"``
    """

    encodes_path = True

    def __init__(self, payoff: Callable, barrier: float, direction: str, r: float, q: float):
        if barrier <= 0:
            raise InvalidParameter(f"barrier must be positive, got {barrier}")
        if direction not in ("up", "down"):
            raise InvalidParameter(f"direction must be 'up' or 'down', got {direction!r}")
        super().__init__(payoff, r, q)
        self.barrier = float(barrier)
        self.direction = direction

    def lower(self, tau, S_min):
        if self.direction == "down":
            return 0.0
        return self._edge(tau, S_min)

    def upper(self, tau, S_max):
        if self.direction == "up":
            return 0.0
        return self._edge(tau, S_max)

    def terminal(self, S):
        S = np.asarray(S, dtype=float)
        V = np.asarray(self.payoff(S), dtype=float)
        knocked = S <= self.barrier if self.direction == "down" else S >= self.barrier
        return np.where(knocked, 0.0, V)

    def grid_bounds(self, S_min, S_max):
        if self.direction == "down":
            return self.barrier, S_max
        return S_min, self.barrier
