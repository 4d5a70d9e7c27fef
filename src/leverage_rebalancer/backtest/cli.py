"""Command line entry point for the leveraged rebalancing backtest."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, TextIO, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..config import RebalanceConfig
from ..data.prices import load_price_book
from .artifacts import (
    RebalanceLog,
    write_drawdowns,
    write_equity,
    write_metrics,
    write_rebalance_report,
    write_run_manifest,
    write_weights,
)
from .engine import BacktestResult, run_backtest

logger = logging.getLogger(__name__)

_ENGINE_FIELDS = [f.name for f in fields(RebalanceConfig)]


class RunConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    csv: Optional[str] = None
    history_csv: Optional[str] = None
    out: str = "bt_out"
    start: Optional[str] = None
    end: Optional[str] = None
    initial_capital: float = Field(gt=0.0, default=10_000.0)
    contribution: float = Field(ge=0.0, default=1_000.0)
    weights: Optional[Dict[str, float]] = None

    leverage: float = Field(gt=0.0, default=2.0)
    min_leverage: float = Field(ge=0.0, default=1.5)
    max_leverage: float = Field(gt=0.0, default=2.5)
    max_weight: float = Field(ge=0.0, le=1.0, default=0.4)
    min_weight: float = Field(ge=0.0, le=1.0, default=0.05)
    drawdown_redeploy_threshold: float = Field(ge=0.0, default=0.12)
    weight_deviation_threshold: float = Field(ge=0.0, default=0.05)
    volatility_lookback_days: int = Field(ge=1, default=63)
    volatility_redeploy_threshold: float = Field(ge=0.0, default=0.18)
    gradual_deploy_factor: float = Field(ge=0.0, le=1.0, default=0.5)
    mean_return_shrinkage: float = Field(ge=0.0, le=1.0, default=0.6)
    risk_free_rate: float = 0.02
    yearly_trading_days: int = Field(ge=1, default=252)
    use_dynamic_sharpe_rebalance: bool = True
    min_periods_for_reoptimization: int = Field(ge=1, default=6)
    min_aligned_observations: int = Field(ge=2, default=20)
    min_history_points: int = Field(ge=2, default=30)

    log_json: Optional[str] = None
    log_level: str = "INFO"
    progress: bool = False
    skip_plot: bool = False
    dry_run: bool = False

    @model_validator(mode="after")
    def check_ranges(self) -> "RunConfig":
        if self.min_weight > self.max_weight:
            raise ValueError("min_weight must not exceed max_weight")
        if not (self.min_leverage <= self.leverage <= self.max_leverage):
            raise ValueError("leverage must lie within [min_leverage, max_leverage]")
        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level '{self.log_level}'")
        return self

    def engine_config(self) -> RebalanceConfig:
        return RebalanceConfig.from_overrides({name: getattr(self, name) for name in _ENGINE_FIELDS})


class _ProgressPrinter:
    """Render incremental progress updates for CLI runs."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._last: Tuple[int, int] = (-1, -1)

    def __call__(self, current: int, total: int) -> None:
        current = max(current, 0)
        total = max(total, 0)
        if (current, total) == self._last:
            return
        self._stream.write(f"Progress: {current}/{total}\n")
        self._stream.flush()
        self._last = (current, total)


def _load_run_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError("Run config must evaluate to a mapping")
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def _validate(raw: Dict[str, Any]) -> RunConfig:
    try:
        return RunConfig.model_validate(raw)
    except ValidationError as exc:
        lines = []
        for err in exc.errors():
            loc = ".".join(map(str, err.get("loc", []))) or "<root>"
            lines.append(f"{loc}: {err.get('msg')}")
        raise SystemExit("Invalid config:\n  " + "\n  ".join(lines))


def _parse_weights(text: str) -> Dict[str, float]:
    weights: Dict[str, float] = {}
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise argparse.ArgumentTypeError(f"weight '{item}' must look like SYMBOL=VALUE")
        symbol, value = item.split("=", 1)
        try:
            weights[symbol.strip()] = float(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"weight '{item}' is not numeric") from exc
    return weights


def build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser for the backtest CLI."""

    parser = argparse.ArgumentParser(description="Leveraged portfolio rebalancing backtest")
    parser.add_argument("--config", type=str, default=None, help="YAML/JSON file containing run parameters")
    parser.add_argument("--csv", type=str, default=None, help="CSV of daily prices (wide or long layout)")
    parser.add_argument(
        "--history-csv",
        type=str,
        default=None,
        help="Optional CSV of prices preceding the simulation window",
    )
    parser.add_argument("--out", type=str, default=None, help="Output directory")
    parser.add_argument("--start", type=str, default=None, help="First rebalance date (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, default=None, help="Last simulated date (YYYY-MM-DD)")
    parser.add_argument("--initial-capital", type=float, default=None)
    parser.add_argument("--contribution", type=float, default=None, help="Contribution per period")
    parser.add_argument(
        "--weights",
        type=_parse_weights,
        default=None,
        help="Initial weights as SYMBOL=VALUE pairs separated by commas",
    )

    engine = parser.add_argument_group("engine")
    engine.add_argument("--leverage", type=float, default=None)
    engine.add_argument("--min-leverage", type=float, default=None)
    engine.add_argument("--max-leverage", type=float, default=None)
    engine.add_argument("--max-weight", type=float, default=None)
    engine.add_argument("--min-weight", type=float, default=None)
    engine.add_argument("--drawdown-redeploy-threshold", type=float, default=None)
    engine.add_argument("--weight-deviation-threshold", type=float, default=None)
    engine.add_argument("--volatility-lookback-days", type=int, default=None)
    engine.add_argument("--volatility-redeploy-threshold", type=float, default=None)
    engine.add_argument("--gradual-deploy-factor", type=float, default=None)
    engine.add_argument("--mean-return-shrinkage", type=float, default=None)
    engine.add_argument("--risk-free-rate", type=float, default=None)
    engine.add_argument("--yearly-trading-days", type=int, default=None)
    engine.add_argument(
        "--use-dynamic-sharpe-rebalance",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Re-optimize weights from accumulated prices once enough periods have passed",
    )
    engine.add_argument("--min-periods-for-reoptimization", type=int, default=None)
    engine.add_argument("--min-aligned-observations", type=int, default=None)
    engine.add_argument("--min-history-points", type=int, default=None)

    parser.add_argument("--log-json", type=str, default=None, help="Stream rebalance events as JSON lines")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default INFO)")
    parser.add_argument("--progress", action="store_true", default=None, help="Print progress to stderr")
    parser.add_argument("--skip-plot", action="store_true", default=None, help="Do not render equity.png")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Validate inputs and write run_config.json without simulating",
    )
    return parser


def _write_outputs(out_dir: Path, result: BacktestResult, skip_plot: bool) -> List[Path]:
    written = [
        out_dir / "equity.csv",
        out_dir / "rebalance_report.csv",
        out_dir / "weights.csv",
        out_dir / "metrics.csv",
        out_dir / "drawdowns.csv",
    ]
    write_equity(written[0], result)
    write_rebalance_report(written[1], result)
    write_weights(written[2], result)
    write_metrics(written[3], result.metrics)
    write_drawdowns(written[4], result.metrics.get("drawdown_events", []))
    if not skip_plot and result.daily_series:
        from .plot import plot_equity

        written.append(plot_equity(written[0], out_dir / "equity.png", overlay_exposure=True))
    return written


def main(args: Optional[Iterable[str]] = None) -> None:
    argv = list(args) if args is not None else sys.argv[1:]
    parser = build_parser()

    preliminary, _ = parser.parse_known_args(args=argv)
    config_path: Optional[Path] = None
    if preliminary.config:
        config_path = Path(preliminary.config)
        file_blob = _validate(_load_run_config(config_path)).model_dump(exclude_unset=True)
        parser.set_defaults(**file_blob)

    parsed = parser.parse_args(args=argv)
    if not parsed.csv:
        raise ValueError("--csv must be provided via CLI or config")
    raw = {
        key: value
        for key, value in vars(parsed).items()
        if key in RunConfig.model_fields and value is not None
    }
    run = _validate(raw)
    try:
        engine_cfg = run.engine_config()
    except (TypeError, ValueError) as exc:
        raise SystemExit(f"Invalid config:\n  {exc}")

    logging.basicConfig(
        level=run.log_level.upper(),
        format="%(asctime)s %(levelname)s: %(message)s",
    )

    out_dir = Path(run.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    prices = load_price_book(Path(run.csv))
    history = load_price_book(Path(run.history_csv)) if run.history_csv else None
    resolved = run.model_dump()

    if run.dry_run:
        write_run_manifest(out_dir, parsed, config_path, resolved)
        print(f"Dry run: {len(prices)} symbols, {prices.first_date()} to {prices.last_date()}")
        return

    rebalance_log: Optional[RebalanceLog] = None
    progress_printer: Optional[_ProgressPrinter] = None
    try:
        if run.log_json:
            rebalance_log = RebalanceLog(Path(run.log_json))
        if run.progress:
            progress_printer = _ProgressPrinter(sys.stderr)

        result = run_backtest(
            prices,
            engine_cfg,
            history=history,
            initial_weights=run.weights,
            start=run.start,
            end=run.end,
            initial_capital=run.initial_capital,
            contribution=run.contribution,
            progress_callback=progress_printer,
            rebalance_callback=rebalance_log,
        )
    finally:
        if rebalance_log is not None:
            rebalance_log.close()

    _write_outputs(out_dir, result, run.skip_plot)
    write_run_manifest(out_dir, parsed, config_path, resolved, result.warnings)

    metrics = result.metrics
    print(f"Rebalances: {metrics['rebalances']} (dynamic {metrics['dynamic_reoptimizations']})")
    print(f"Final equity: {metrics['final_equity']:.2f}  exposure: {metrics['final_exposure']:.2f}")
    print(f"Leverage: {metrics['final_leverage']:.2f}x ({metrics['leverage_status']})")
    print(f"Max drawdown: {metrics['max_drawdown']:.2%}")
    for warning in result.warnings:
        print(f"Warning: {warning}")


if __name__ == "__main__":  # pragma: no cover - CLI guard
    main()
