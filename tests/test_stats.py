"""Tests for the math primitives."""

import math

import numpy as np
import pytest

from optengine import InvalidParameter
from optengine.stats import bivariate_norm_cdf, cholesky, d1_d2, norm_cdf, norm_pdf


class TestNormal:
    def test_cdf_symmetry(self):
        assert norm_cdf(0.0) == pytest.approx(0.5)
        x = np.linspace(-3, 3, 13)
        assert np.allclose(norm_cdf(x) + norm_cdf(-x), 1.0)

    def test_pdf_peak(self):
        assert norm_pdf(0.0) == pytest.approx(1.0 / math.sqrt(2.0 * math.pi))


class TestBivariate:
    def test_independent(self):
        assert bivariate_norm_cdf(0.0, 0.0, 0.0) == pytest.approx(0.25, abs=1e-4)

    def test_orthant_probability(self):
        # P(X<0, Y<0) = 1/4 + arcsin(rho) / (2 pi)
        rho = 0.5
        expected = 0.25 + math.asin(rho) / (2.0 * math.pi)
        assert bivariate_norm_cdf(0.0, 0.0, rho) == pytest.approx(expected, abs=1e-4)

    def test_degenerate_correlations(self):
        assert bivariate_norm_cdf(0.3, -0.2, 1.0) == pytest.approx(norm_cdf(-0.2))
        assert bivariate_norm_cdf(0.3, 0.1, -1.0) == pytest.approx(norm_cdf(0.3) + norm_cdf(0.1) - 1.0)
        assert bivariate_norm_cdf(-0.5, -0.5, -1.0) == 0.0

    def test_infinite_limits(self):
        assert bivariate_norm_cdf(math.inf, 0.4, 0.3) == pytest.approx(norm_cdf(0.4))
        assert bivariate_norm_cdf(0.4, -math.inf, 0.3) == 0.0

    def test_rho_out_of_range(self):
        with pytest.raises(InvalidParameter):
            bivariate_norm_cdf(0.0, 0.0, 1.5)


class TestCholesky:
    def test_reconstructs_matrix(self):
        A = np.array([[0.04, 0.006, 0.0], [0.006, 0.09, -0.012], [0.0, -0.012, 0.0625]])
        L = cholesky(A)
        assert np.allclose(np.triu(L, 1), 0.0)
        assert np.allclose(L @ L.T, A)

    def test_semidefinite_accepted(self):
        A = np.array([[1.0, 1.0], [1.0, 1.0]])
        L = cholesky(A)
        assert np.allclose(L @ L.T, A)

    def test_not_psd_rejected(self):
        with pytest.raises(InvalidParameter):
            cholesky([[1.0, 2.0], [2.0, 1.0]])

    def test_asymmetric_rejected(self):
        with pytest.raises(InvalidParameter):
            cholesky([[1.0, 0.5], [0.1, 1.0]])

    def test_non_square_rejected(self):
        with pytest.raises(InvalidParameter):
            cholesky(np.ones((2, 3)))


def test_d1_d2():
    d1, d2 = d1_d2(100.0, 100.0, 1.0, 0.05, 0.0, 0.2)
    assert d1 == pytest.approx(0.35)
    assert d2 == pytest.approx(0.15)
