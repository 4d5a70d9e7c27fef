"""Plot the equity and exposure curves written by a backtest run."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402


def _load_equity(csv_path: Path) -> Tuple[List[str], np.ndarray, Optional[np.ndarray]]:
    if not csv_path.exists():
        raise FileNotFoundError(f"Missing equity file: {csv_path}")
    frame = pd.read_csv(csv_path)
    if "date" not in frame or "equity" not in frame:
        raise ValueError(f"CSV {csv_path} must contain 'date' and 'equity' columns")
    exposure = frame["exposure"].to_numpy(dtype=float) if "exposure" in frame else None
    return frame["date"].astype(str).tolist(), frame["equity"].to_numpy(dtype=float), exposure


def plot_equity(csv_path: Path, out_path: Path, *, overlay_exposure: bool = False) -> Path:
    """Render ``equity.csv`` to a PNG, optionally with the exposure curve."""

    dates, equity, exposure = _load_equity(Path(csv_path))
    x = pd.to_datetime(dates)
    fig, ax = plt.subplots()
    try:
        ax.plot(x, equity, label="equity")
        if overlay_exposure and exposure is not None:
            ax.plot(x, exposure, label="exposure", alpha=0.7)
            ax.legend()
        ax.set_xlabel("Date")
        ax.set_ylabel("USD")
        ax.set_title("Leveraged portfolio")
        fig.autofmt_xdate()
        fig.tight_layout()
        out = Path(out_path)
        fig.savefig(out, dpi=160)
    finally:
        plt.close(fig)
    return out


def main(argv: Iterable[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Plot equity curves from backtest output")
    parser.add_argument("--dir", type=str, required=True, help="Directory containing equity.csv")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Destination PNG path (defaults to <dir>/equity.png)",
    )
    parser.add_argument(
        "--overlay",
        action="store_true",
        help="Overlay the leveraged exposure curve",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    out_dir = Path(args.dir)
    if not out_dir.exists():
        raise FileNotFoundError(f"Output directory not found: {out_dir}")
    out_path = Path(args.out) if args.out else out_dir / "equity.png"
    saved = plot_equity(out_dir / "equity.csv", out_path, overlay_exposure=args.overlay)
    print(f"Saved {saved}")


if __name__ == "__main__":  # pragma: no cover - CLI guard
    main()
