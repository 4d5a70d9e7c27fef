"""Metaparameters for the rebalancing engine and the simplex optimizer."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class OptimizerConfig:
    """Configuration container for :func:`leverage_rebalancer.optimizer.optimize_portfolio`."""

    leverage: float = 2.0
    risk_free_rate: float = 0.02
    min_weight: float = 0.05
    max_weight: float = 0.4
    trading_days: int = 252
    max_iter: int = 1000
    tolerance: float = 1e-8
    perturbation: float = 0.05
    reflection: float = 1.0
    expansion: float = 2.0
    contraction: float = 0.5
    shrink: float = 0.5
    clamp_low: float = 0.01
    clamp_high: float = 0.99
    bound_tolerance: float = 1e-3
    repair_passes: int = 20
    decimals: int = 4

    def __post_init__(self) -> None:
        if self.leverage <= 0.0:
            raise ValueError("leverage must be positive")
        if not (0.0 <= self.min_weight <= self.max_weight <= 1.0):
            raise ValueError("weights must satisfy 0 <= min_weight <= max_weight <= 1")
        if self.trading_days <= 0:
            raise ValueError("trading_days must be positive")
        if self.max_iter <= 0:
            raise ValueError("max_iter must be positive")
        if self.tolerance < 0.0:
            raise ValueError("tolerance must be non-negative")
        if self.perturbation < 0.0:
            raise ValueError("perturbation must be non-negative")
        if self.reflection <= 0.0 or self.expansion <= 1.0:
            raise ValueError("reflection must be positive and expansion greater than one")
        if not (0.0 < self.contraction < 1.0) or not (0.0 < self.shrink < 1.0):
            raise ValueError("contraction and shrink must lie in (0, 1)")
        if not (0.0 <= self.clamp_low < self.clamp_high <= 1.0):
            raise ValueError("clamp bounds must satisfy 0 <= clamp_low < clamp_high <= 1")
        if self.bound_tolerance < 0.0:
            raise ValueError("bound_tolerance must be non-negative")
        if self.repair_passes < 0:
            raise ValueError("repair_passes must be non-negative")
        if self.decimals < 0:
            raise ValueError("decimals must be non-negative")


@dataclass(frozen=True)
class RebalanceConfig:
    """Complete configuration surface of the rebalancing engine.

    Every threshold used by the signal engine, the exposure sizer and the
    dynamic re-optimization is read from this object; the engine functions keep
    no defaults of their own.
    """

    leverage: float = 2.0
    min_leverage: float = 1.5
    max_leverage: float = 2.5
    max_weight: float = 0.4
    min_weight: float = 0.05
    drawdown_redeploy_threshold: float = 0.12
    weight_deviation_threshold: float = 0.05
    volatility_lookback_days: int = 63
    volatility_redeploy_threshold: float = 0.18
    gradual_deploy_factor: float = 0.5
    mean_return_shrinkage: float = 0.6
    risk_free_rate: float = 0.02
    yearly_trading_days: int = 252
    use_dynamic_sharpe_rebalance: bool = True
    min_periods_for_reoptimization: int = 6
    min_aligned_observations: int = 20
    min_history_points: int = 30

    def __post_init__(self) -> None:
        if not isinstance(self.use_dynamic_sharpe_rebalance, bool):
            raise TypeError("use_dynamic_sharpe_rebalance must be a bool")
        if self.leverage <= 0.0:
            raise ValueError("leverage must be positive")
        if self.min_leverage < 0.0:
            raise ValueError("min_leverage must be non-negative")
        if self.min_leverage > self.leverage:
            raise ValueError("min_leverage must not exceed leverage")
        if self.max_leverage < self.leverage:
            raise ValueError("max_leverage must not be below leverage")
        if not (0.0 <= self.min_weight <= self.max_weight <= 1.0):
            raise ValueError("weights must satisfy 0 <= min_weight <= max_weight <= 1")
        if self.drawdown_redeploy_threshold < 0.0:
            raise ValueError("drawdown_redeploy_threshold must be non-negative")
        if self.weight_deviation_threshold < 0.0:
            raise ValueError("weight_deviation_threshold must be non-negative")
        if self.volatility_lookback_days < 1:
            raise ValueError("volatility_lookback_days must be at least 1")
        if self.volatility_redeploy_threshold < 0.0:
            raise ValueError("volatility_redeploy_threshold must be non-negative")
        if not (0.0 <= self.gradual_deploy_factor <= 1.0):
            raise ValueError("gradual_deploy_factor must lie in [0, 1]")
        if not (0.0 <= self.mean_return_shrinkage <= 1.0):
            raise ValueError("mean_return_shrinkage must lie in [0, 1]")
        if self.yearly_trading_days < 1:
            raise ValueError("yearly_trading_days must be at least 1")
        if self.min_periods_for_reoptimization < 1:
            raise ValueError("min_periods_for_reoptimization must be at least 1")
        if self.min_aligned_observations < 2:
            raise ValueError("min_aligned_observations must be at least 2")
        if self.min_history_points < 2:
            raise ValueError("min_history_points must be at least 2")

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "RebalanceConfig":
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(str(key) for key in overrides if key not in known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        base = asdict(cls())
        base.update(overrides)
        return cls(**base)

    def optimizer_config(self, **overrides: Any) -> OptimizerConfig:
        """Project the optimizer-relevant fields into an :class:`OptimizerConfig`."""

        params: Dict[str, Any] = dict(
            leverage=self.leverage,
            risk_free_rate=self.risk_free_rate,
            min_weight=self.min_weight,
            max_weight=self.max_weight,
            trading_days=self.yearly_trading_days,
        )
        params.update(overrides)
        return OptimizerConfig(**params)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["OptimizerConfig", "RebalanceConfig"]
