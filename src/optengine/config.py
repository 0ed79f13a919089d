"""Engine configurations.

One frozen dataclass per engine kind; together they form the closed
:data:`EngineConfig` union consumed by :class:`optengine.dispatch.Pricer`.
Every config validates itself at construction so a bad step or path count
fails before any pricing call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union

from .boundary import BoundaryCondition
from .errors import InvalidParameter
from .processes import (
    BrownianMotion,
    GarchDiffusion,
    GeometricBrownianMotion,
    StochasticProcess,
)

__all__ = [
    "Scheme",
    "AnalyticConfig",
    "BinomialConfig",
    "MonteCarloConfig",
    "PDEConfig",
    "EngineConfig",
    "engine_config_from_dict",
]


def _positive_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")


class Scheme(str, Enum):
    """Finite-difference time stepping; ``theta`` weights the implicit part."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"
    CRANK_NICOLSON = "crank_nicolson"

    @property
    def theta(self) -> float:
        return {"explicit": 0.0, "implicit": 1.0, "crank_nicolson": 0.5}[self.value]


@dataclass(frozen=True)
class AnalyticConfig:
    """Closed-form engine; *calculators* are registered on top of the defaults."""
    calculators: tuple = ()
    include_defaults: bool = True


@dataclass(frozen=True)
class BinomialConfig:
    """CRR lattice.

    Parameters
    ----------
    steps : int
        Lattice depth N.
    smoothing : bool
        Replace the last lattice step by the analytic one-step value.
    richardson : bool
        Return ``2 P(N) - P(N/2)``; needs an even N.
    """
    steps: int = 500
    smoothing: bool = False
    richardson: bool = False

    def __post_init__(self):
        _positive_int("steps", self.steps)
        if self.richardson and self.steps % 2:
            raise InvalidParameter(f"richardson extrapolation needs an even step count, got {self.steps}")


@dataclass(frozen=True)
class MonteCarloConfig:
    """Path simulation.

    Parameters
    ----------
    paths : int
        Total simulated paths (antithetic pairs count twice).
    steps : int
        Time steps per path.
    process : StochasticProcess, optional
        Defaults to risk-neutral GBM built from the product.
    antithetic, control_variate : bool
        Variance reduction toggles.
    seed : int, optional
        Base seed; ``None`` draws OS entropy.
    chunk_size : int
        Paths per independent random stream.  Results depend on it, not on
        *n_workers*.
    n_workers : int
        Threads used to simulate chunks.
    """
    paths: int = 100_000
    steps: int = 1
    process: Optional[StochasticProcess] = None
    antithetic: bool = False
    control_variate: bool = False
    seed: Optional[int] = None
    chunk_size: int = 50_000
    n_workers: int = 1

    def __post_init__(self):
        _positive_int("paths", self.paths)
        _positive_int("steps", self.steps)
        _positive_int("chunk_size", self.chunk_size)
        _positive_int("n_workers", self.n_workers)
        if self.antithetic and (self.paths % 2 or self.chunk_size % 2):
            raise InvalidParameter("antithetic sampling needs even paths and chunk_size.")
        samples = self.paths // 2 if self.antithetic else self.paths
        if samples < 2:
            raise InvalidParameter(
                f"need at least 2 independent samples for a standard error, got {samples}"
            )
        if self.seed is not None and (not isinstance(self.seed, int) or self.seed < 0):
            raise InvalidParameter(f"seed must be a non-negative integer, got {self.seed!r}")
        if self.process is not None and not isinstance(self.process, StochasticProcess):
            raise InvalidParameter(f"process must be a StochasticProcess, got {self.process!r}")


@dataclass(frozen=True)
class PDEConfig:
    """θ-scheme finite differences on a log-spot grid.

    ``american=None`` follows the product's exercise rule; ``boundary=None``
    uses the product's boundary condition.
    """
    spot_steps: int = 200
    time_steps: int = 200
    scheme: Scheme = Scheme.CRANK_NICOLSON
    american: Optional[bool] = None
    boundary: Optional[BoundaryCondition] = None
    S_max_mult: float = 4.0
    damping_steps: int = 0
    enforce_stability: bool = True

    def __post_init__(self):
        _positive_int("spot_steps", self.spot_steps)
        _positive_int("time_steps", self.time_steps)
        if self.spot_steps < 2:
            raise InvalidParameter("spot_steps must be at least 2.")
        try:
            object.__setattr__(self, "scheme", Scheme(self.scheme))
        except ValueError:
            raise InvalidParameter(f"unknown scheme {self.scheme!r}") from None
        if not self.S_max_mult > 0:
            raise InvalidParameter(f"S_max_mult must be positive, got {self.S_max_mult}")
        if isinstance(self.damping_steps, bool) or not 0 <= self.damping_steps <= self.time_steps:
            raise InvalidParameter(
                f"damping_steps must lie in [0, time_steps], got {self.damping_steps}"
            )


EngineConfig = Union[AnalyticConfig, BinomialConfig, MonteCarloConfig, PDEConfig]


_PROCESSES = {
    "gbm": GeometricBrownianMotion,
    "brownian": BrownianMotion,
    "garch": GarchDiffusion,
}

_CONFIGS = {
    "analytic": AnalyticConfig,
    "binomial": BinomialConfig,
    "mc": MonteCarloConfig,
    "monte_carlo": MonteCarloConfig,
    "pde": PDEConfig,
}


def engine_config_from_dict(data: Mapping[str, Any]) -> EngineConfig:
    """Build a config from a plain mapping, e.g. a parsed JSON file.

    ``{"method": "mc", "paths": 200000, "seed": 7,
    "process": {"type": "garch", "mu": 0.05, "sigma0": 0.2, ...}}``
    """
    data = dict(data)
    method = data.pop("method", None)
    try:
        cls = _CONFIGS[method]
    except KeyError:
        raise InvalidParameter(
            f"method must be one of {sorted(_CONFIGS)}, got {method!r}"
        ) from None

    proc = data.get("process")
    if isinstance(proc, Mapping):
        proc = dict(proc)
        kind = proc.pop("type", "gbm")
        if kind not in _PROCESSES:
            raise InvalidParameter(f"process type must be one of {sorted(_PROCESSES)}, got {kind!r}")
        data["process"] = _PROCESSES[kind](**proc)

    try:
        return cls(**data)
    except TypeError as exc:
        raise InvalidParameter(f"bad {method} config: {exc}") from exc
