"""Leverage-adjusted Sharpe maximization via a deterministic Nelder-Mead simplex."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from time import perf_counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import OptimizerConfig
from .constraints import WeightBounds, WeightVector, repair_weights

logger = logging.getLogger(__name__)

Objective = Callable[[np.ndarray], float]


class LeveragedSharpeObjective:
    """Negative Sharpe ratio of the leverage-scaled portfolio.

    Points are renormalized to sum to one before scoring. Any point whose
    normalized weights leave the tolerance band of the weight bounds, or whose
    leveraged volatility is not positive, scores ``+inf``.
    """

    def __init__(
        self,
        mean_returns: Sequence[float],
        covariance: Sequence[Sequence[float]],
        config: OptimizerConfig,
    ) -> None:
        mu = np.asarray(mean_returns, dtype=float).reshape(-1)
        cov = np.asarray(covariance, dtype=float)
        n = mu.size
        if n == 0:
            raise ValueError("at least one asset is required")
        if cov.shape != (n, n):
            raise ValueError(f"covariance shape {cov.shape} does not match {n} assets")
        if not np.all(np.isfinite(mu)) or not np.all(np.isfinite(cov)):
            raise ValueError("mean returns and covariance must be finite")
        self.mean_returns = mu
        self.covariance = cov
        self.config = config
        self.bounds = WeightBounds(config.min_weight, config.max_weight, config.bound_tolerance)
        self.evaluations = 0

    @property
    def dimension(self) -> int:
        return int(self.mean_returns.size)

    def portfolio_metrics(self, weights: np.ndarray) -> Tuple[float, float]:
        """Annualized (return, volatility) of normalized ``weights`` before leverage."""

        days = self.config.trading_days
        ret = float(weights @ self.mean_returns) * days
        var = float(weights @ self.covariance @ weights)
        vol = math.sqrt(max(var, 0.0)) * math.sqrt(days)
        return ret, vol

    def __call__(self, point: np.ndarray) -> float:
        self.evaluations += 1
        w = np.asarray(point, dtype=float)
        total = float(w.sum())
        if not total > 0.0:
            return math.inf
        w = w / total
        if not self.bounds.admits(w):
            return math.inf
        ret, vol = self.portfolio_metrics(w)
        lev_ret = ret * self.config.leverage
        lev_vol = vol * self.config.leverage
        if not lev_vol > 0.0:
            return math.inf
        value = -(lev_ret - self.config.risk_free_rate) / lev_vol
        return value if math.isfinite(value) else math.inf


@dataclass(frozen=True)
class Vertex:
    point: Tuple[float, ...]
    value: float

    @classmethod
    def evaluate(cls, point: np.ndarray, objective: Objective) -> "Vertex":
        arr = np.asarray(point, dtype=float)
        return cls(tuple(arr.tolist()), float(objective(arr)))

    def array(self) -> np.ndarray:
        return np.asarray(self.point, dtype=float)


@dataclass(frozen=True)
class Simplex:
    """Ordered set of ``n + 1`` vertices, best (lowest value) first.

    Every transition returns a new simplex; ordering is re-established on
    construction with a stable sort so ties keep their previous order.
    """

    vertices: Tuple[Vertex, ...]

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.vertices, key=lambda v: v.value))
        object.__setattr__(self, "vertices", ordered)

    @classmethod
    def initial(cls, n: int, objective: Objective, config: OptimizerConfig) -> "Simplex":
        base = np.full(n, 1.0 / n)
        vertices = [Vertex.evaluate(base, objective)]
        for i in range(n):
            point = base.copy()
            point[i] = min(config.max_weight, point[i] + config.perturbation)
            point = point / point.sum()
            vertices.append(Vertex.evaluate(point, objective))
        return cls(tuple(vertices))

    @property
    def best(self) -> Vertex:
        return self.vertices[0]

    @property
    def worst(self) -> Vertex:
        return self.vertices[-1]

    @property
    def second_worst(self) -> Vertex:
        return self.vertices[-2]

    def spread(self) -> float:
        # inf - inf yields nan, which never satisfies the tolerance test
        return self.worst.value - self.best.value

    def centroid(self) -> np.ndarray:
        points = np.asarray([v.point for v in self.vertices[:-1]], dtype=float)
        return points.mean(axis=0)

    def replace_worst(self, vertex: Vertex) -> "Simplex":
        return Simplex(self.vertices[:-1] + (vertex,))

    def reflect(self, objective: Objective, config: OptimizerConfig) -> Vertex:
        c = self.centroid()
        point = c + config.reflection * (c - self.worst.array())
        return Vertex.evaluate(np.clip(point, config.clamp_low, config.clamp_high), objective)

    def expand(self, reflected: Vertex, objective: Objective, config: OptimizerConfig) -> Vertex:
        c = self.centroid()
        point = c + config.expansion * (reflected.array() - c)
        return Vertex.evaluate(np.clip(point, config.clamp_low, config.clamp_high), objective)

    def contract(self, objective: Objective, config: OptimizerConfig) -> Vertex:
        c = self.centroid()
        point = c + config.contraction * (self.worst.array() - c)
        return Vertex.evaluate(point, objective)

    def shrink(self, objective: Objective, config: OptimizerConfig) -> "Simplex":
        best = self.best.array()
        moved = [self.best]
        for vertex in self.vertices[1:]:
            point = best + config.shrink * (vertex.array() - best)
            moved.append(Vertex.evaluate(point, objective))
        return Simplex(tuple(moved))


def _step(simplex: Simplex, objective: Objective, config: OptimizerConfig) -> Simplex:
    reflected = simplex.reflect(objective, config)
    if reflected.value < simplex.best.value:
        expanded = simplex.expand(reflected, objective, config)
        chosen = expanded if expanded.value < reflected.value else reflected
        return simplex.replace_worst(chosen)
    if reflected.value < simplex.second_worst.value:
        return simplex.replace_worst(reflected)
    contracted = simplex.contract(objective, config)
    if contracted.value < simplex.worst.value:
        return simplex.replace_worst(contracted)
    return simplex.shrink(objective, config)


def nelder_mead(
    objective: Objective, n: int, config: OptimizerConfig
) -> Tuple[Simplex, int, bool]:
    """Run the simplex search; returns the final simplex, iterations and convergence flag."""

    simplex = Simplex.initial(n, objective, config)
    iterations = 0
    converged = False
    for iterations in range(config.max_iter):
        if simplex.spread() < config.tolerance:
            converged = True
            break
        simplex = _step(simplex, objective, config)
    else:
        iterations = config.max_iter
    return simplex, iterations, converged


@dataclass(frozen=True)
class OptimizationResult:
    symbols: Tuple[str, ...]
    weights: WeightVector
    sharpe_ratio: float
    objective: float
    iterations: int
    converged: bool
    runtime: float = 0.0
    raw_point: Tuple[float, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbols", tuple(self.symbols))
        if not isinstance(self.weights, WeightVector):
            object.__setattr__(self, "weights", WeightVector(self.weights))

    @property
    def feasible(self) -> bool:
        return math.isfinite(self.objective)

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbols": list(self.symbols),
            "weights": self.weights.to_dict(),
            "sharpe_ratio": float(self.sharpe_ratio),
            "objective": float(self.objective),
            "iterations": int(self.iterations),
            "converged": bool(self.converged),
            "feasible": self.feasible,
            "runtime": float(self.runtime),
        }


def optimize_portfolio(
    symbols: Sequence[str],
    mean_returns: Sequence[float],
    covariance: Sequence[Sequence[float]],
    config: Optional[OptimizerConfig] = None,
) -> OptimizationResult:
    """Find weights maximizing the leveraged Sharpe ratio inside the weight box.

    The search never raises on an infeasible weight band: the least-bad vertex
    is repaired and returned with ``objective == inf`` so callers can fall
    back to static weights (see :attr:`OptimizationResult.feasible`).
    """

    cfg = config or OptimizerConfig()
    names: List[str] = [str(s) for s in symbols]
    if len(set(names)) != len(names):
        raise ValueError("symbols must be unique")
    objective = LeveragedSharpeObjective(mean_returns, covariance, cfg)
    if objective.dimension != len(names):
        raise ValueError("symbols and mean_returns must have the same length")

    bounds = WeightBounds(cfg.min_weight, cfg.max_weight, cfg.bound_tolerance)
    if not bounds.is_satisfiable(len(names)):
        logger.warning(
            "No %d-asset weight vector inside [%.4f, %.4f] sums to one",
            len(names),
            cfg.min_weight,
            cfg.max_weight,
        )

    start = perf_counter()
    simplex, iterations, converged = nelder_mead(objective, len(names), cfg)
    best = simplex.best
    repaired = repair_weights(
        best.point, bounds, passes=cfg.repair_passes, decimals=cfg.decimals
    )
    runtime = perf_counter() - start

    if not math.isfinite(best.value):
        logger.warning(
            "Every simplex vertex is infeasible after %d iterations; returning the least-bad vertex",
            iterations,
        )
    logger.debug(
        "Simplex finished after %d iterations (%d evaluations, converged=%s, sharpe=%.4f)",
        iterations,
        objective.evaluations,
        converged,
        -best.value,
    )

    return OptimizationResult(
        symbols=tuple(names),
        weights=WeightVector.from_array(names, repaired),
        sharpe_ratio=-best.value,
        objective=best.value,
        iterations=iterations,
        converged=converged,
        runtime=runtime,
        raw_point=best.point,
    )


__all__ = [
    "LeveragedSharpeObjective",
    "OptimizationResult",
    "Simplex",
    "Vertex",
    "nelder_mead",
    "optimize_portfolio",
]
