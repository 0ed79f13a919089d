# processes.py
# Path generators consumed by the Monte Carlo engine.
#
# A process never draws randomness itself inside ``paths``: it maps a block
# of standard-normal innovations Z of shape (n_steps, n_paths) to simulated
# paths of shape (n_steps+1, n_paths) including the t=0 row with S0.
# Multi-asset processes take Z of shape (n_assets, n_steps, n_paths) and
# return (n_assets, n_steps+1, n_paths).  Keeping the innovations outside
# lets the engine mirror them for antithetic variates and seed them per
# chunk.

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from .core import MarketParams, MultiAssetParams
from .errors import InvalidParameter
from .stats import cholesky

__all__ = [
    "StochasticProcess",
    "BrownianMotion",
    "GeometricBrownianMotion",
    "GarchDiffusion",
    "CorrelatedGBM",
]


def _rng(seed: Optional[int]):
    return np.random.default_rng(seed)


def _time_step(T: float, n_steps: int) -> float:
    if n_steps <= 0:
        raise InvalidParameter("n_steps must be positive.")
    return T / n_steps


class StochasticProcess(ABC):
    """Parameterised path generator.  Instances are immutable."""

    n_assets: int = 1

    @abstractmethod
    def paths(self, S0, T: float, Z: np.ndarray) -> np.ndarray:
        """Map innovations *Z* to simulated paths over ``[0, T]``."""

    def expected_terminal(self, S0, T: float):
        """E[S_T] under the process, or None when there is no closed form."""
        return None

    def innovation_shape(self, n_steps: int, n_paths: int) -> tuple[int, ...]:
        return (n_steps, n_paths)

    def simulate(
        self, S0, T: float, n_steps: int, n_paths: int,
        *, antithetic: bool = False, seed: Optional[int] = None,
    ) -> np.ndarray:
        """Draw innovations and return paths.  Antithetic doubles the path count."""
        if n_steps <= 0 or n_paths <= 0:
            raise InvalidParameter("n_steps and n_paths must be positive.")
        Z = _rng(seed).standard_normal(self.innovation_shape(n_steps, n_paths))
        if antithetic:
            Z = np.concatenate([Z, -Z], axis=-1)
        return self.paths(S0, T, Z)


# -----------------------------
# 1) Arithmetic Brownian motion
# -----------------------------
class BrownianMotion(StochasticProcess):
    """dS = mu dt + sigma dW (normal, not lognormal)."""

    def __init__(self, mu: float, sigma: float):
        if sigma < 0:
            raise InvalidParameter(f"sigma must be non-negative, got {sigma}")
        self.mu = float(mu)
        self.sigma = float(sigma)

    def paths(self, S0, T, Z):
        dt = _time_step(T, Z.shape[0])
        increments = self.mu * dt + self.sigma * math.sqrt(dt) * Z
        S = S0 + np.cumsum(increments, axis=0)
        return np.vstack([np.full((1, Z.shape[1]), float(S0)), S])

    def expected_terminal(self, S0, T):
        return S0 + self.mu * T


# -----------------------------
# 2) Geometric Brownian Motion
# -----------------------------
class GeometricBrownianMotion(StochasticProcess):
    """
    Exact-discretization GBM:
        S_{t+dt} = S_t * exp((mu - 0.5*sigma^2) dt + sigma * sqrt(dt) * Z)
    Under Q, mu = r - q.
    """

    def __init__(self, mu: float, sigma: float):
        if sigma < 0:
            raise InvalidParameter(f"sigma must be non-negative, got {sigma}")
        self.mu = float(mu)
        self.sigma = float(sigma)

    @classmethod
    def risk_neutral(cls, market: MarketParams) -> "GeometricBrownianMotion":
        return cls(market.r - market.q, market.sigma)

    def paths(self, S0, T, Z):
        dt = _time_step(T, Z.shape[0])
        drift = (self.mu - 0.5 * self.sigma * self.sigma) * dt
        vol = self.sigma * math.sqrt(dt)
        log_paths = np.cumsum(drift + vol * Z, axis=0)
        S = S0 * np.exp(log_paths)
        return np.vstack([np.full((1, Z.shape[1]), float(S0)), S])

    def expected_terminal(self, S0, T):
        return S0 * math.exp(self.mu * T)


# ------------------------------------
# 3) GARCH(1,1)-driven lognormal diffusion
# ------------------------------------
class GarchDiffusion(StochasticProcess):
    """
    Lognormal diffusion whose variance follows a GARCH(1,1) recursion:
        y_t       = sigma_t * Z_t
        ln S     += (mu - 0.5*sigma_t^2) dt + sqrt(dt) * y_t
        sigma^2  <- a + b*y_t^2 + c*sigma_t^2
    with a = kappa*theta, b = (1-kappa)*lam, c = (1-kappa)*(1-lam).
    ``theta`` is the long-run (annualised) variance, ``kappa`` the speed of
    reversion to it and ``lam`` the weight on the latest squared shock.
    """

    def __init__(self, mu: float, sigma0: float, kappa: float, theta: float, lam: float):
        if sigma0 < 0 or theta < 0:
            raise InvalidParameter("sigma0 and theta must be non-negative.")
        if not (0.0 <= kappa <= 1.0 and 0.0 <= lam <= 1.0):
            raise InvalidParameter("kappa and lam must lie in [0, 1].")
        self.mu = float(mu)
        self.sigma0 = float(sigma0)
        self.kappa = float(kappa)
        self.theta = float(theta)
        self.lam = float(lam)

    def paths(self, S0, T, Z):
        n_steps, n_paths = Z.shape
        dt = _time_step(T, n_steps)
        a = self.kappa * self.theta
        b = (1.0 - self.kappa) * self.lam
        c = (1.0 - self.kappa) * (1.0 - self.lam)
        sdt = math.sqrt(dt)

        log_S = np.full(n_paths, math.log(S0))
        sigma = np.full(n_paths, self.sigma0)
        out = np.empty((n_steps + 1, n_paths))
        out[0] = S0
        for k in range(n_steps):
            y = sigma * Z[k]
            log_S = log_S + (self.mu - 0.5 * sigma * sigma) * dt + sdt * y
            sigma = np.sqrt(a + b * y * y + c * sigma * sigma)
            out[k + 1] = np.exp(log_S)
        return out

    def expected_terminal(self, S0, T):
        # each step is a martingale increment given sigma_t
        return S0 * math.exp(self.mu * T)


# ------------------------------------
# 4) Correlated multi-asset GBM
# ------------------------------------
class CorrelatedGBM(StochasticProcess):
    """Multi-asset GBM with innovations correlated through ``cholesky(cov)``.

    Parameters
    ----------
    mu : array-like, shape (n_assets,)
        Drift per asset (``r - q_i`` under Q).
    cov : array-like, shape (n_assets, n_assets)
        Annualised covariance of log returns.  Must be positive
        semi-definite; otherwise :class:`InvalidParameter` is raised here,
        before any path is generated.
    """

    def __init__(self, mu, cov):
        self.mu = np.asarray(mu, dtype=float)
        self.cov = np.asarray(cov, dtype=float)
        if self.cov.shape != (self.mu.size, self.mu.size):
            raise InvalidParameter("cov must be (n_assets, n_assets) matching mu.")
        self.chol = cholesky(self.cov)
        self.n_assets = self.mu.size

    @classmethod
    def risk_neutral(cls, market: MultiAssetParams) -> "CorrelatedGBM":
        return cls(market.r - np.asarray(market.q), market.covariance)

    def innovation_shape(self, n_steps, n_paths):
        return (self.n_assets, n_steps, n_paths)

    def paths(self, S0, T, Z):
        S0 = np.asarray(S0, dtype=float)
        dt = _time_step(T, Z.shape[1])
        W = np.einsum("ij,jkl->ikl", self.chol, Z)
        drift = ((self.mu - 0.5 * np.diag(self.cov)) * dt)[:, None, None]
        log_paths = np.cumsum(drift + math.sqrt(dt) * W, axis=1)
        S = S0[:, None, None] * np.exp(log_paths)
        first = np.broadcast_to(S0[:, None, None], (self.n_assets, 1, Z.shape[2]))
        return np.concatenate([first, S], axis=1)

    def expected_terminal(self, S0, T):
        return np.asarray(S0, dtype=float) * np.exp(self.mu * T)
