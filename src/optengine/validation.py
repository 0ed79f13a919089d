"""Cross-engine checks for a single product.

:func:`cross_validate` prices one product under several engine configs
and reports how far each lands from a reference; :func:`convergence_analysis`
sweeps one engine's resolution and fits the empirical order of convergence.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Optional

import numpy as np

from .config import AnalyticConfig, EngineConfig, MonteCarloConfig
from .core import Product
from .dispatch import Pricer

__all__ = ["cross_validate", "convergence_analysis"]


def _analytic_reference(product: Product) -> float:
    return Pricer(AnalyticConfig()).price(product)


def _fit_order(resolutions: list[int], errors: list[float]) -> float:
    """Slope of ``-log(error)`` against ``log(n)``; NaN with fewer than two points."""
    pts = [(n, e) for n, e in zip(resolutions, errors) if e > 0]
    if len(pts) < 2:
        return float("nan")
    n, e = np.log(np.array(pts, dtype=float)).T
    slope, _ = np.polyfit(n, e, 1)
    return -float(slope)


def cross_validate(
    product: Product,
    configs: Mapping[str, EngineConfig],
    *,
    reference: Optional[float] = None,
) -> dict:
    """Price *product* once per labelled config.

    Returns a dict keyed by label (Monte Carlo entries are
    ``(price, stderr)`` pairs) plus ``"reference"`` (analytic price unless
    given) and ``"max_discrepancy"`` over all labels.
    """
    ref = _analytic_reference(product) if reference is None else reference

    out: dict = {}
    worst = 0.0
    for label, cfg in configs.items():
        pricer = Pricer(cfg)
        if isinstance(cfg, MonteCarloConfig):
            out[label] = pricer.price_with_stderr(product)
            value = out[label][0]
        else:
            value = out[label] = pricer.price(product)
        worst = max(worst, abs(value - ref))

    out["reference"] = ref
    out["max_discrepancy"] = worst
    return out


def convergence_analysis(
    product: Product,
    make_config: Callable[[int], EngineConfig],
    param_values: Iterable[int],
    *,
    reference: Optional[float] = None,
) -> dict:
    """Error of one engine as its resolution grows.

    Parameters
    ----------
    make_config : callable
        ``n -> EngineConfig``, e.g. ``lambda n: BinomialConfig(steps=n)``.
    param_values : iterable of int
        Resolutions to try, coarse to fine.
    reference : float, optional
        Defaults to the analytic price.

    Returns
    -------
    dict
        ``params``, ``prices``, ``errors`` and the fitted ``order``.
    """
    params = [int(n) for n in param_values]
    ref = _analytic_reference(product) if reference is None else reference
    prices = [float(Pricer(make_config(n)).price(product)) for n in params]
    errors = [abs(p - ref) for p in prices]
    return {"params": params, "prices": prices, "errors": errors,
            "order": _fit_order(params, errors)}
