# optengine: multi-method option pricing engine
# Public API

# Errors
from .errors import (
    PricingError, InvalidParameter, UnsupportedProduct,
    ConvergenceFailure, NumericalInstability,
)

# Data model
from .core import CALL, PUT, ExerciseRule, MarketParams, MultiAssetParams, Product, Engine
from .payoffs import (
    AnalyticType, Payoff, VanillaPayoff, CashOrNothingPayoff, AssetOrNothingPayoff,
    BarrierPayoff, FloatingLookbackPayoff, AsianPayoff, SpreadPayoff, BasketPayoff,
    MaxCallPayoff, CustomPayoff,
)
from .boundary import BoundaryCondition, DiscountedPayoffBoundary, KnockOutBoundary
from .products import (
    european_option, american_option, barrier_option, lookback_option, asian_option,
    spread_option, basket_option, max_call_option, exotic_option,
)

# Stochastic processes
from .processes import (
    StochasticProcess, BrownianMotion, GeometricBrownianMotion, GarchDiffusion, CorrelatedGBM,
)

# Engines
from .analytic import AnalyticEngine, Calculator, bs_price, bs_greeks
from .binomial import BinomialEngine
from .monte_carlo import MonteCarloEngine
from .pde import PDEEngine

# Configuration & dispatch
from .config import (
    Scheme, AnalyticConfig, BinomialConfig, MonteCarloConfig, PDEConfig,
    EngineConfig, engine_config_from_dict,
)
from .dispatch import Pricer, build_engine, price

# Risk & validation
from .risk import numerical_greeks
from .validation import cross_validate, convergence_analysis

__all__ = [
    # Errors
    "PricingError", "InvalidParameter", "UnsupportedProduct",
    "ConvergenceFailure", "NumericalInstability",
    # Data model
    "CALL", "PUT", "ExerciseRule", "MarketParams", "MultiAssetParams", "Product", "Engine",
    "AnalyticType", "Payoff", "VanillaPayoff", "CashOrNothingPayoff", "AssetOrNothingPayoff",
    "BarrierPayoff", "FloatingLookbackPayoff", "AsianPayoff", "SpreadPayoff", "BasketPayoff",
    "MaxCallPayoff", "CustomPayoff",
    "BoundaryCondition", "DiscountedPayoffBoundary", "KnockOutBoundary",
    "european_option", "american_option", "barrier_option", "lookback_option",
    "asian_option", "spread_option", "basket_option", "max_call_option", "exotic_option",
    # Processes
    "StochasticProcess", "BrownianMotion", "GeometricBrownianMotion", "GarchDiffusion",
    "CorrelatedGBM",
    # Engines
    "AnalyticEngine", "Calculator", "bs_price", "bs_greeks",
    "BinomialEngine", "MonteCarloEngine", "PDEEngine",
    # Configuration & dispatch
    "Scheme", "AnalyticConfig", "BinomialConfig", "MonteCarloConfig", "PDEConfig",
    "EngineConfig", "engine_config_from_dict",
    "Pricer", "build_engine", "price",
    # Risk & validation
    "numerical_greeks", "cross_validate", "convergence_analysis",
]

__version__ = "0.1.0"
