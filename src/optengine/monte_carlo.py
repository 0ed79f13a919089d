# monte_carlo.py
# Monte Carlo engine over any payoff / process pair.
#
# Paths are simulated in a fixed partition of chunks.  Chunk i always draws
# from child i of SeedSequence(seed), so a seeded run is bit-reproducible
# whatever the worker count.  Each chunk returns sufficient statistics only
# (no path storage survives the chunk); they are combined with math.fsum,
# which is exactly rounded and therefore independent of summation order.

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Optional

import numpy as np

from .config import MonteCarloConfig
from .core import Engine, MarketParams, Product
from .errors import InvalidParameter, UnsupportedProduct
from .payoffs import ControlVariate
from .processes import CorrelatedGBM, GeometricBrownianMotion, StochasticProcess

logger = logging.getLogger(__name__)

__all__ = ["MonteCarloEngine"]


# ---- helper: one simulation chunk -> sufficient statistics ----

def _mc_chunk_sumstats(
    n: int,
    seed: np.random.SeedSequence,
    *,
    product: Product,
    process: StochasticProcess,
    n_steps: int,
    antithetic: bool,
    control: Optional[ControlVariate],
):
    """
    Simulate `n` paths, compute discounted payoff X and discounted control Y.
    With antithetic sampling the sample is the average over each mirrored
    pair, so n/2 samples come back.  Returns
        n_eff, sumX, sumX2, sumY, sumY2, sumXY
    """
    rng = np.random.default_rng(seed)
    m = product.market
    df = m.discount()
    n_base = n // 2 if antithetic else n

    Z = rng.standard_normal(process.innovation_shape(n_steps, n_base))

    def evaluate(innovations):
        paths = process.paths(m.S0, m.T, innovations)
        X = df * np.asarray(product.payoff.path_payoff(paths), dtype=float)
        Y = df * np.asarray(control.values(paths), dtype=float) if control else np.zeros_like(X)
        return X, Y

    X, Y = evaluate(Z)
    if antithetic:
        Xa, Ya = evaluate(-Z)
        X = 0.5 * (X + Xa)
        Y = 0.5 * (Y + Ya)

    return (
        X.size,
        float(X.sum()),
        float((X * X).sum()),
        float(Y.sum()),
        float((Y * Y).sum()),
        float((X * Y).sum()),
    )


def _aggregate_stats(stats_list):
    n = sum(s[0] for s in stats_list)
    return (n,) + tuple(math.fsum(s[i] for s in stats_list) for i in range(1, 6))


def _plan_chunks(n_paths: int, chunk_size: int) -> list[int]:
    chunks = []
    remaining = n_paths
    while remaining > 0:
        m = min(chunk_size, remaining)
        chunks.append(m)
        remaining -= m
    return chunks


class MonteCarloEngine(Engine):
    """Path-simulation engine with antithetic and control variates.

    The process comes from the config or, when omitted, is the risk-neutral
    GBM (single asset) or Cholesky-correlated GBM (multi-asset) implied by
    the product's market parameters.
    """

    name = "monte_carlo"

    def __init__(self, config: Optional[MonteCarloConfig] = None, **kwargs):
        self.config = config if config is not None else MonteCarloConfig(**kwargs)
        logger.debug("monte carlo engine %s", self.config)

    def _process(self, product: Product) -> StochasticProcess:
        process = self.config.process
        if process is None:
            if isinstance(product.market, MarketParams):
                process = GeometricBrownianMotion.risk_neutral(product.market)
            else:
                process = CorrelatedGBM.risk_neutral(product.market)
        if process.n_assets != product.market.n_assets:
            raise InvalidParameter(
                f"process simulates {process.n_assets} asset(s), "
                f"product needs {product.market.n_assets}"
            )
        return process

    def price(self, product: Product) -> float:
        return self.price_with_stderr(product)[0]

    def price_with_stderr(self, product: Product) -> tuple[float, float]:
        """Return ``(price, standard_error)``."""
        if product.exercise.is_american:
            raise UnsupportedProduct("Monte Carlo engine prices European exercise only")

        cfg = self.config
        m = product.market
        if m.T == 0.0:
            return product.intrinsic(), 0.0

        process = self._process(product)
        control = None
        if cfg.control_variate:
            control = product.payoff.control_variate(m, process, cfg.steps)
            if control is None:
                logger.warning("no control variate available for %s under %s; running plain",
                               type(product.payoff).__name__, type(process).__name__)

        chunks = _plan_chunks(cfg.paths, cfg.chunk_size)
        seeds = np.random.SeedSequence(cfg.seed).spawn(len(chunks))
        work = partial(
            _mc_chunk_sumstats,
            product=product, process=process, n_steps=cfg.steps,
            antithetic=cfg.antithetic, control=control,
        )

        # serial or threaded execution, results kept in chunk order
        if cfg.n_workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=cfg.n_workers) as ex:
                stats_list = list(ex.map(work, chunks, seeds))
        else:
            stats_list = [work(n, ss) for n, ss in zip(chunks, seeds)]

        n, sumX, sumX2, sumY, sumY2, sumXY = _aggregate_stats(stats_list)

        # plain estimator
        meanX = sumX / n
        varX = max(0.0, (sumX2 - n * meanX * meanX) / (n - 1))
        price, var = meanX, varX

        if control is not None:
            # c_hat = Cov(X,Y)/Var(Y)
            meanY = sumY / n
            varY = max(0.0, (sumY2 - n * meanY * meanY) / (n - 1))
            covXY = (sumXY - n * meanX * meanY) / (n - 1)
            # a control with no spread beyond rounding carries no information
            degenerate = varY <= 1e-12 * max(meanY * meanY, 1.0)
            c_hat = 0.0 if degenerate else covXY / varY

            EY = m.discount() * control.expectation
            price = meanX - c_hat * (meanY - EY)
            var = max(0.0, varX - 2.0 * c_hat * covXY + c_hat * c_hat * varY)

        se = math.sqrt(var / n)
        logger.debug("monte carlo %d samples -> %.10f (se %.3e)", n, price, se)
        return float(price), float(se)
