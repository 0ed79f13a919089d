"""θ-scheme finite differences for the Black-Scholes equation.

Works on a uniform grid in ``x = ln S`` where, with constant volatility,

    V_t + sigma^2/2 V_xx + (r - q - sigma^2/2) V_x - r V = 0

has constant coefficients.  Every time step is therefore one tridiagonal
solve (none for the explicit scheme).  ``theta = 0, 1/2, 1`` give the
explicit, Crank-Nicolson and fully implicit schemes; Rannacher start-up
replaces the first few Crank-Nicolson steps by implicit ones to damp the
oscillations a kinked or discontinuous payoff triggers.

Everything product specific comes from the :class:`BoundaryCondition`:
the maturity layer, the Dirichlet edge rows, and optionally a pinned edge
(a knock-out barrier).

See Duffy, *Finite Difference Methods in Financial Engineering* (2006) and
Rannacher, Numer. Math. 43 (1984).
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from .boundary import BoundaryCondition
from .config import PDEConfig
from .core import Engine, Product
from .errors import NumericalInstability, UnsupportedProduct
from .risk import numerical_greeks

logger = logging.getLogger(__name__)

__all__ = ["PDEEngine", "thomas_solve"]

PIVOT_TOL = 1e-12


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def thomas_solve(
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    d: np.ndarray,
) -> np.ndarray:
    """Tridiagonal solve by forward elimination and back substitution.

    ``a`` is the sub-diagonal (``a[0]`` ignored), ``b`` the diagonal, ``c``
    the super-diagonal (``c[-1]`` ignored) and ``d`` the right-hand side,
    all of length N.  Raises :class:`NumericalInstability` on a pivot
    smaller than ``PIVOT_TOL`` in absolute value.
    """
    n = len(b)
    c_star = np.zeros(n)
    d_star = np.empty(n)
    pivot = b[0]
    for i in range(n):
        if i:
            pivot = b[i] - a[i] * c_star[i - 1]
        if abs(pivot) < PIVOT_TOL:
            raise NumericalInstability(f"zero pivot at row {i} of tridiagonal system")
        if i < n - 1:
            c_star[i] = c[i] / pivot
        d_star[i] = (d[i] - (a[i] * d_star[i - 1] if i else 0.0)) / pivot

    x = d_star
    for i in range(n - 2, -1, -1):
        x[i] -= c_star[i] * x[i + 1]
    return x


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PDEEngine(Engine):
    """θ-scheme solver over any single-asset product with a boundary condition."""

    name = "pde"

    def __init__(self, config: Optional[PDEConfig] = None, **kwargs):
        self.config = config if config is not None else PDEConfig(**kwargs)
        logger.debug("pde engine %s", self.config)

    # ------------------------------------------------------------------
    def _setup(self, product: Product) -> tuple[BoundaryCondition, bool]:
        if product.is_multi_asset:
            raise UnsupportedProduct("PDE engine prices single-asset products only")
        boundary = self.config.boundary or product.boundary
        if product.payoff.path_dependent and not boundary.encodes_path:
            raise UnsupportedProduct(
                f"{type(product.payoff).__name__} is path dependent and its boundary "
                "condition does not encode it"
            )
        american = self.config.american
        if american is None:
            american = product.exercise.is_american
        return boundary, american

    def _bounds(self, product: Product, boundary: BoundaryCondition) -> tuple[float, float]:
        m = product.market
        x_range = self.config.S_max_mult * m.sigma * math.sqrt(m.T)
        return boundary.grid_bounds(m.S0 * math.exp(-x_range), m.S0 * math.exp(x_range))

    def _time_steps(self, product: Product, dx: float) -> int:
        """Configured step count, refined if the explicit bound is violated."""
        m, cfg = product.market, self.config
        n_t = cfg.time_steps
        if cfg.scheme.theta > 0.0:
            return n_t
        drift = abs(m.r - m.q - 0.5 * m.sigma * m.sigma)
        if drift * dx > m.sigma * m.sigma:
            # off-diagonal weights go negative; more time steps cannot restore monotonicity
            raise NumericalInstability(
                f"explicit scheme is convection dominated: |r - q - sigma^2/2| dx = "
                f"{drift * dx:.3e} > sigma^2 = {m.sigma * m.sigma:.3e}; "
                "use an implicit scheme or more spot steps"
            )
        dt_max = 1.0 / (m.sigma * m.sigma / (dx * dx) + max(m.r, 0.0))
        dt = m.T / n_t
        if dt <= dt_max:
            return n_t
        needed = math.ceil(m.T / dt_max)
        if not cfg.enforce_stability:
            raise NumericalInstability(
                f"explicit scheme unstable: dt={dt:.3e} > {dt_max:.3e}; "
                f"need at least {needed} time steps"
            )
        logger.info("explicit scheme: raising time steps %d -> %d for stability", n_t, needed)
        return needed

    def _deterministic(self, product: Product, boundary: BoundaryCondition,
                       american: bool) -> float:
        """sigma = 0: the spot rides its forward; read values along that path."""
        m = product.market
        t = np.linspace(0.0, m.T, self.config.time_steps + 1)
        S_t = m.S0 * np.exp((m.r - m.q) * t)
        disc = np.exp(-m.r * t)
        lo, hi = boundary.grid_bounds(0.0, math.inf)
        breach = np.flatnonzero((S_t <= lo) | (S_t >= hi))
        stop = breach[0] if breach.size else len(t) - 1

        if breach.size:
            k = stop
            edge = (boundary.lower(m.T - t[k], lo) if S_t[k] <= lo
                    else boundary.upper(m.T - t[k], hi))
            value = disc[k] * edge
        else:
            value = disc[-1] * float(boundary.terminal(S_t[-1:])[0])
        if american:
            early = disc[:stop + 1] * np.asarray(product.payoff(S_t[:stop + 1]), dtype=float)
            value = max(value, float(early.max()))
        return float(value)

    # ------------------------------------------------------------------
    # Core θ-scheme
    # ------------------------------------------------------------------
    def _fd_solve(
        self,
        product: Product,
        boundary: BoundaryCondition,
        american: bool,
        x_grid: np.ndarray,
        n_t: int,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Backward θ-scheme; returns ``(V_at_t0, V_at_t_dt)``."""
        m, cfg = product.market, self.config
        N_S = len(x_grid) - 1
        dx = x_grid[1] - x_grid[0]
        dt = m.T / n_t
        S = np.exp(x_grid)

        # maturity layer
        V = np.asarray(boundary.terminal(S), dtype=float)
        intrinsic = np.asarray(product.payoff(S), dtype=float) if american else None
        V_at_dt = V

        # L V_j = alpha (V_{j-1} - 2V_j + V_{j+1}) + beta (V_{j+1} - V_{j-1}) - r V_j
        alpha = 0.5 * m.sigma ** 2 / dx ** 2
        beta = (m.r - m.q - 0.5 * m.sigma ** 2) / (2.0 * dx)
        a_L = alpha - beta
        b_L = -2.0 * alpha - m.r
        c_L = alpha + beta
        M = N_S - 1

        for step in range(1, n_t + 1):
            tau = step * dt  # time to expiry of the new layer
            theta = 1.0 if step <= cfg.damping_steps else cfg.scheme.theta

            # Dirichlet edges
            bc_left = boundary.lower(tau, S[0])
            bc_right = boundary.upper(tau, S[-1])

            # explicit part on the interior nodes
            e = (1.0 - theta) * dt
            rhs = (1.0 + e * b_L) * V[1:N_S] + e * a_L * V[:N_S - 1] + e * c_L * V[2:]
            # boundary terms of the implicit part move to the RHS
            rhs[0] += theta * dt * a_L * bc_left
            rhs[-1] += theta * dt * c_L * bc_right

            if theta == 0.0:
                V_int = rhs
            else:
                # LHS matrix: I - theta * dt * L
                V_int = thomas_solve(
                    np.full(M, -theta * dt * a_L),
                    np.full(M, 1.0 - theta * dt * b_L),
                    np.full(M, -theta * dt * c_L),
                    rhs,
                )

            V_new = np.empty(N_S + 1)
            V_new[0] = bc_left
            V_new[1:N_S] = V_int
            V_new[N_S] = bc_right

            # early exercise floor
            if american:
                V_new = np.maximum(V_new, intrinsic)

            if not np.all(np.isfinite(V_new)):
                raise NumericalInstability(f"non-finite grid values at time step {step}")

            if step == n_t - 1:
                V_at_dt = V_new
            V = V_new

        return V, V_at_dt

    def _grid(self, product: Product, lo: float, hi: float) -> tuple[np.ndarray, int]:
        x_grid = np.linspace(math.log(lo), math.log(hi), self.config.spot_steps + 1)
        n_t = self._time_steps(product, x_grid[1] - x_grid[0])
        return x_grid, n_t

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def price(self, product: Product) -> float:
        boundary, american = self._setup(product)
        m = product.market
        if m.T == 0.0:
            return product.intrinsic()
        if m.sigma == 0.0:
            return self._deterministic(product, boundary, american)

        lo, hi = self._bounds(product, boundary)
        if m.S0 <= lo:
            return float(boundary.lower(m.T, lo))
        if m.S0 >= hi:
            return float(boundary.upper(m.T, hi))

        x_grid, n_t = self._grid(product, lo, hi)
        V, _ = self._fd_solve(product, boundary, american, x_grid, n_t)
        value = float(np.interp(math.log(m.S0), x_grid, V))
        logger.debug("pde %s %dx%d -> %.10f", self.config.scheme.value,
                     self.config.spot_steps, n_t, value)
        return value

    def greeks(self, product: Product) -> dict[str, float]:
        """Delta, gamma and theta read off the solved grid.

        Delta and gamma come from central differences around ``ln S0``;
        theta from the first two time layers.
        """
        boundary, american = self._setup(product)
        m = product.market
        lo, hi = self._bounds(product, boundary) if m.T > 0 and m.sigma > 0 else (0.0, 0.0)
        if m.T == 0.0 or m.sigma == 0.0 or not lo < m.S0 < hi:
            g = numerical_greeks(self.price, product)
            return {k: g[k] for k in ("delta", "gamma", "theta")}

        x_grid, n_t = self._grid(product, lo, hi)
        V_0, V_dt = self._fd_solve(product, boundary, american, x_grid, n_t)
        dx = x_grid[1] - x_grid[0]
        dt = m.T / n_t

        x0 = math.log(m.S0)
        j = int(np.argmin(np.abs(x_grid - x0)))
        j = max(1, min(j, len(x_grid) - 2))

        dVdx = (V_0[j + 1] - V_0[j - 1]) / (2.0 * dx)
        d2Vdx2 = (V_0[j + 1] - 2.0 * V_0[j] + V_0[j - 1]) / dx ** 2

        # Chain rule:  delta = (1/S) dV/dx,  gamma = (1/S²)(d²V/dx² − dV/dx)
        S_j = math.exp(x_grid[j])
        delta = dVdx / S_j
        gamma = (d2Vdx2 - dVdx) / S_j ** 2

        theta = (float(np.interp(x0, x_grid, V_dt)) - float(np.interp(x0, x_grid, V_0))) / dt
        return {"delta": float(delta), "gamma": float(gamma), "theta": theta}
