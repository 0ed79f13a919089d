"""Error taxonomy shared by every engine.

All errors derive from :class:`PricingError` so callers can catch the whole
family at the boundary of a pricing call.  ``InvalidParameter`` is also a
``ValueError`` and ``NumericalInstability`` an ``ArithmeticError``, which
keeps ``except ValueError`` call sites working.
"""

from __future__ import annotations

__all__ = [
    "PricingError",
    "InvalidParameter",
    "UnsupportedProduct",
    "ConvergenceFailure",
    "NumericalInstability",
]


class PricingError(Exception):
    """Base class for all optengine errors."""


class InvalidParameter(PricingError, ValueError):
    """A constructor or engine received an out-of-domain value."""


class UnsupportedProduct(PricingError):
    """The engine has no handling path for this product/payoff combination."""


class ConvergenceFailure(PricingError):
    """An iterative routine lost its bracket or exhausted its iteration budget."""


class NumericalInstability(PricingError, ArithmeticError):
    """Degenerate pivot in a linear solve, or a violated stability bound."""
