"""Bump-and-reprice sensitivities.

Works with the ``price`` method of any engine: the product is rebuilt
with shifted market fields (its derived boundary condition follows) and
repriced.  Engines and calculators without native Greeks fall back to
:func:`numerical_greeks`.
"""

from __future__ import annotations

from typing import Callable

from .core import Product
from .errors import UnsupportedProduct

__all__ = ["numerical_greeks"]

ONE_DAY = 1.0 / 365.0


def _central(pricer_func, product: Product, field: str, h: float) -> tuple[float, float]:
    base = getattr(product.market, field)
    up = pricer_func(product.with_market(**{field: base + h}))
    down = pricer_func(product.with_market(**{field: base - h}))
    return up, down


def numerical_greeks(
    pricer_func: Callable[[Product], float],
    product: Product,
    *,
    bump_pct: float = 0.01,
) -> dict[str, float]:
    """Delta, gamma, vega, theta and rho of a single-asset product.

    Parameters
    ----------
    pricer_func : callable
        ``pricer_func(product) -> float``, e.g. ``engine.price``.
    product : Product
    bump_pct : float
        Spot and vol shifts are ``bump_pct`` of their level; the rate
        shift is ``bump_pct`` in absolute terms.

    Returns
    -------
    dict[str, float]
        Theta is the change over one calendar day, annualised, and is zero
        when less than a day remains.  At (near) zero volatility vega is a
        forward difference.
    """
    if product.is_multi_asset:
        raise UnsupportedProduct("numerical Greeks are defined for single-asset products only")

    m = product.market
    base = pricer_func(product)

    h_S = bump_pct * m.S0
    S_up, S_dn = _central(pricer_func, product, "S0", h_S)

    h_v = max(bump_pct * m.sigma, 1e-4)
    if m.sigma > h_v:
        v_up, v_dn = _central(pricer_func, product, "sigma", h_v)
        vega = (v_up - v_dn) / (2.0 * h_v)
    else:
        vega = (pricer_func(product.with_market(sigma=m.sigma + h_v)) - base) / h_v

    theta = 0.0
    if m.T > ONE_DAY:
        theta = (pricer_func(product.with_market(T=m.T - ONE_DAY)) - base) / ONE_DAY

    r_up, r_dn = _central(pricer_func, product, "r", bump_pct)

    greeks = {
        "delta": (S_up - S_dn) / (2.0 * h_S),
        "gamma": (S_up - 2.0 * base + S_dn) / (h_S * h_S),
        "vega": vega,
        "theta": theta,
        "rho": (r_up - r_dn) / (2.0 * bump_pct),
    }
    return {k: float(v) for k, v in greeks.items()}
