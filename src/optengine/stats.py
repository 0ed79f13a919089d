"""Pure math primitives used by the engines.

Normal distribution functions are thin wrappers around :mod:`scipy.stats`
so that both scalars and numpy arrays are accepted.  The Cholesky
factorisation accepts positive *semi*-definite matrices (perfectly
correlated assets) and rejects anything with a negative pivot.
"""

from __future__ import annotations

import math

import numpy as np
from scipy.integrate import quad
from scipy.stats import norm

from .errors import InvalidParameter

__all__ = [
    "norm_cdf",
    "norm_pdf",
    "norm_logcdf",
    "bivariate_norm_cdf",
    "cholesky",
    "d1_d2",
]


def norm_cdf(x):
    """Standard normal CDF, scalar or array."""
    return norm.cdf(x)


def norm_pdf(x):
    """Standard normal PDF, scalar or array."""
    return norm.pdf(x)


def norm_logcdf(x):
    return norm.logcdf(x)


def bivariate_norm_cdf(a: float, b: float, rho: float) -> float:
    """P(X <= a, Y <= b) for standard normals with correlation *rho*.

    Parameters
    ----------
    a, b : float
        Upper integration limits (``±inf`` allowed).
    rho : float
        Correlation in [-1, 1].

    Returns
    -------
    float
    """
    if not -1.0 <= rho <= 1.0:
        raise InvalidParameter(f"rho must lie in [-1, 1], got {rho}")
    if a == -math.inf or b == -math.inf:
        return 0.0
    if a == math.inf:
        return float(norm.cdf(b))
    if b == math.inf:
        return float(norm.cdf(a))

    # Degenerate correlations collapse to one-dimensional expressions
    if rho == 1.0:
        return float(norm.cdf(min(a, b)))
    if rho == -1.0:
        return float(max(norm.cdf(a) + norm.cdf(b) - 1.0, 0.0))

    # integrate the conditional CDF of Y given X = x against the density of X;
    # the density is below 1e-30 past x = 12
    a = min(a, 12.0)
    s = math.sqrt(1.0 - rho * rho)
    value, _ = quad(lambda x: norm.pdf(x) * norm.cdf((b - rho * x) / s),
                    -math.inf, a, epsabs=1e-12, epsrel=1e-10, limit=200)
    return float(min(max(value, 0.0), 1.0))


def cholesky(cov, *, tol: float = 1e-10) -> np.ndarray:
    """Lower-triangular ``L`` with ``L @ L.T == cov`` for a PSD matrix.

    Zero pivots are accepted (the matching column of ``L`` is zero) as long
    as the remaining entries of that column vanish too.  A pivot below
    ``-tol`` (scaled by the largest diagonal entry) means the matrix is not
    positive semi-definite and raises :class:`InvalidParameter`.
    """
    A = np.asarray(cov, dtype=float)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise InvalidParameter(f"covariance must be square, got shape {A.shape}")
    if not np.allclose(A, A.T, atol=tol):
        raise InvalidParameter("covariance must be symmetric")

    n = A.shape[0]
    eps = tol * max(1.0, float(np.max(np.abs(np.diag(A)))) if n else 1.0)
    L = np.zeros_like(A)
    for j in range(n):
        pivot = A[j, j] - L[j, :j] @ L[j, :j]
        col = A[j + 1:, j] - L[j + 1:, :j] @ L[j, :j]
        if pivot < -eps:
            raise InvalidParameter(
                f"covariance is not positive semi-definite (pivot {pivot:.3e} at row {j})"
            )
        if pivot <= eps:
            if np.any(np.abs(col) > math.sqrt(eps)):
                raise InvalidParameter(
                    f"covariance is not positive semi-definite (zero pivot at row {j})"
                )
            continue
        L[j, j] = math.sqrt(pivot)
        L[j + 1:, j] = col / L[j, j]
    return L


def d1_d2(S, K, T: float, r: float, q: float, sigma: float):
    """Black-Scholes ``d1, d2``; requires ``T > 0`` and ``sigma > 0``."""
    srt = sigma * np.sqrt(T)
    d1 = (np.log(S / K) + (r - q + 0.5 * sigma * sigma) * T) / srt
    return d1, d1 - srt
