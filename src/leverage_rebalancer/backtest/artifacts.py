"""File artifacts written after a backtest run."""

from __future__ import annotations

import argparse
import csv
import json
import math
import subprocess
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, TextIO

import pandas as pd

from .. import __version__
from .engine import BacktestResult

SCHEMA_VERSION = "1.0.0"

_REBALANCE_HEADER = [
    "date",
    "period",
    "equity",
    "contribution",
    "pnl",
    "target_exposure",
    "leverage",
    "borrow",
    "deploy_fraction",
    "drawdown",
    "weight_deviation",
    "realized_volatility",
    "drawdown_triggered",
    "weight_deviation_triggered",
    "volatility_triggered",
    "dynamic",
    "trades",
]

_METRIC_KEYS = [
    "final_equity",
    "final_exposure",
    "final_leverage",
    "total_contributions",
    "total_return",
    "max_drawdown",
    "ann_return",
    "ann_vol",
    "sharpe",
    "rebalances",
    "dynamic_reoptimizations",
    "deploy_triggers",
    "leverage_status",
    "extra_contribution",
    "reborrow_value",
]


def _strict_json(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {str(k): _strict_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_strict_json(v) for v in value]
    return value


class RebalanceLog:
    """JSON Lines sink for the engine's per-period rebalance records.

    Instances are passed as ``rebalance_callback``. Every record is flushed
    as it arrives so an interrupted run keeps the periods already processed.
    Non-finite floats are written as ``null``.
    """

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.records = 0
        self._handle: TextIO = path.open("w", encoding="utf-8")

    def __call__(self, record: Mapping[str, Any]) -> None:
        self._handle.write(json.dumps(_strict_json(record), sort_keys=True))
        self._handle.write("\n")
        self._handle.flush()
        self.records += 1

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> "RebalanceLog":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def write_equity(path: Path, result: BacktestResult) -> None:
    frame = pd.DataFrame(
        {
            "date": [p.date.isoformat() for p in result.daily_series],
            "equity": [p.equity for p in result.daily_series],
            "exposure": [p.exposure for p in result.daily_series],
            "drawdown": [p.drawdown for p in result.daily_series],
        },
        columns=["date", "equity", "exposure", "drawdown"],
    )
    frame.to_csv(path, index=False)


def write_weights(path: Path, result: BacktestResult) -> None:
    symbols: List[str] = []
    for event in result.events:
        symbols.extend(s for s in event.weights if s not in symbols)
    rows = [
        [event.date.isoformat(), *event.weights.as_array(symbols).tolist()]
        for event in result.events
    ]
    pd.DataFrame(rows, columns=["date", *symbols]).to_csv(path, index=False)


def _trade_summary(event: Any) -> str:
    return ";".join(
        f"{t.action}:{t.symbol}:{t.delta_quantity:.4f}" for t in event.trades if t.action != "HOLD"
    )


def write_rebalance_report(path: Path, result: BacktestResult) -> None:
    with path.open("w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=_REBALANCE_HEADER)
        writer.writeheader()
        for event in result.events:
            sig = event.signals
            writer.writerow(
                {
                    "date": event.date.isoformat(),
                    "period": event.period,
                    "equity": event.equity,
                    "contribution": event.contribution,
                    "pnl": event.pnl,
                    "target_exposure": event.target_exposure,
                    "leverage": event.leverage,
                    "borrow": event.borrow,
                    "deploy_fraction": sig.deploy_fraction,
                    "drawdown": sig.drawdown,
                    "weight_deviation": sig.weight_deviation,
                    "realized_volatility": sig.realized_volatility,
                    "drawdown_triggered": sig.drawdown_triggered,
                    "weight_deviation_triggered": sig.weight_deviation_triggered,
                    "volatility_triggered": sig.volatility_triggered,
                    "dynamic": event.dynamic,
                    "trades": _trade_summary(event),
                }
            )


def write_metrics(path: Path, metrics: Mapping[str, Any]) -> None:
    with path.open("w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(["metric", "value"])
        for key in _METRIC_KEYS:
            writer.writerow([key, metrics.get(key)])


def write_drawdowns(path: Path, events: Iterable[Mapping[str, Any]]) -> None:
    header = ["peak", "trough", "recovery", "depth", "length"]
    with path.open("w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=header)
        writer.writeheader()
        for event in events:
            writer.writerow({key: event.get(key) for key in header})


def _manifest_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Command-line arguments as JSON-safe values, paths rendered as strings."""

    def convert(value: Any) -> Any:
        if isinstance(value, Path):
            return str(value)
        if isinstance(value, (list, tuple)):
            return [convert(item) for item in value]
        return value

    return {key: convert(value) for key, value in sorted(vars(args).items())}


def _resolve_git_sha() -> Optional[str]:
    try:
        sha = (
            subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
            .decode("utf-8")
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return sha or None


def write_run_manifest(
    out_dir: Path,
    args: argparse.Namespace,
    config_path: Optional[Path],
    resolved: Mapping[str, Any],
    warnings: Sequence[str] = (),
) -> None:
    manifest: Dict[str, Any] = {
        "args": _manifest_args(args),
        "schema_version": SCHEMA_VERSION,
        "package_version": __version__,
        "python_version": sys.version,
        "created": datetime.now(UTC).isoformat(),
        "resolved_config": dict(resolved),
    }
    if config_path is not None:
        manifest["config_path"] = str(config_path)
    if warnings:
        manifest["warnings"] = list(warnings)
    git_sha = _resolve_git_sha()
    if git_sha:
        manifest["git_sha"] = git_sha
    (out_dir / "run_config.json").write_text(
        json.dumps(manifest, indent=2, sort_keys=True, default=str), encoding="utf-8"
    )


__all__ = [
    "RebalanceLog",
    "SCHEMA_VERSION",
    "write_drawdowns",
    "write_equity",
    "write_metrics",
    "write_rebalance_report",
    "write_run_manifest",
    "write_weights",
]
