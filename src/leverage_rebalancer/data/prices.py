"""Price series containers and the CSV price loader."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, np.datetime64, pd.Timestamp]


class LoaderError(RuntimeError):
    """Raised when the loader encounters malformed input."""


def to_date(value: DateLike) -> date:
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


@dataclass(frozen=True)
class AssetSeries:
    """Ordered daily closes of a single symbol."""

    symbol: str
    dates: Tuple[date, ...]
    prices: Tuple[float, ...]

    def __post_init__(self) -> None:
        dates = tuple(to_date(d) for d in self.dates)
        prices = tuple(float(p) for p in self.prices)
        if len(dates) != len(prices):
            raise ValueError(
                f"{self.symbol}: {len(dates)} dates but {len(prices)} prices"
            )
        for prev, curr in zip(dates, dates[1:]):
            if curr <= prev:
                raise ValueError(f"{self.symbol}: dates must be strictly increasing ({prev} >= {curr})")
        object.__setattr__(self, "symbol", str(self.symbol))
        object.__setattr__(self, "dates", dates)
        object.__setattr__(self, "prices", prices)

    def __len__(self) -> int:
        return len(self.dates)

    def price_on_or_before(self, when: DateLike) -> Optional[float]:
        idx = bisect.bisect_right(self.dates, to_date(when)) - 1
        # walk back past gaps recorded as NaN
        while idx >= 0:
            price = self.prices[idx]
            if np.isfinite(price):
                return price
            idx -= 1
        return None

    def between(self, start: DateLike, end: DateLike) -> "AssetSeries":
        lo = bisect.bisect_left(self.dates, to_date(start))
        hi = bisect.bisect_right(self.dates, to_date(end))
        return AssetSeries(self.symbol, self.dates[lo:hi], self.prices[lo:hi])

    def before(self, when: DateLike) -> "AssetSeries":
        hi = bisect.bisect_left(self.dates, to_date(when))
        return AssetSeries(self.symbol, self.dates[:hi], self.prices[:hi])

    def finite_prices(self) -> List[float]:
        return [p for p in self.prices if np.isfinite(p)]


def price_on_or_before(series: Optional[AssetSeries], when: DateLike) -> Optional[float]:
    """Latest finite price at or before ``when``; ``None`` when unknown."""

    if series is None:
        return None
    return series.price_on_or_before(when)


class PriceBook(Mapping):
    """Read-only symbol to :class:`AssetSeries` mapping."""

    def __init__(self, series: Iterable[AssetSeries] = ()) -> None:
        data: Dict[str, AssetSeries] = {}
        for item in series:
            if item.symbol in data:
                raise ValueError(f"duplicate series for {item.symbol}")
            data[item.symbol] = item
        self._series = MappingProxyType(data)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "PriceBook":
        """Build from a wide frame indexed by date with one column per symbol."""

        frame = frame.sort_index()
        dates = [to_date(idx) for idx in frame.index]
        series = []
        for column in frame.columns:
            values = frame[column].to_numpy(dtype=float)
            mask = np.isfinite(values)
            series.append(
                AssetSeries(
                    str(column),
                    tuple(d for d, keep in zip(dates, mask) if keep),
                    tuple(values[mask].tolist()),
                )
            )
        return cls(series)

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Tuple[Sequence[DateLike], Sequence[float]]]
    ) -> "PriceBook":
        return cls(AssetSeries(symbol, tuple(d), tuple(p)) for symbol, (d, p) in data.items())

    def __getitem__(self, symbol: str) -> AssetSeries:
        return self._series[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._series)

    def __len__(self) -> int:
        return len(self._series)

    @property
    def symbols(self) -> Tuple[str, ...]:
        return tuple(self._series)

    def price_on_or_before(self, symbol: str, when: DateLike) -> Optional[float]:
        return price_on_or_before(self._series.get(symbol), when)

    def prices_on(self, symbols: Iterable[str], when: DateLike) -> Dict[str, Optional[float]]:
        return {symbol: self.price_on_or_before(symbol, when) for symbol in symbols}

    def between(self, start: DateLike, end: DateLike) -> "PriceBook":
        return PriceBook(s.between(start, end) for s in self._series.values())

    def before(self, when: DateLike) -> "PriceBook":
        return PriceBook(s.before(when) for s in self._series.values())

    def history(self) -> Dict[str, List[float]]:
        """Per-symbol finite prices in date order."""

        return {symbol: s.finite_prices() for symbol, s in self._series.items()}

    def first_date(self) -> Optional[date]:
        firsts = [s.dates[0] for s in self._series.values() if len(s)]
        return min(firsts) if firsts else None

    def last_date(self) -> Optional[date]:
        lasts = [s.dates[-1] for s in self._series.values() if len(s)]
        return max(lasts) if lasts else None

    def to_frame(self) -> pd.DataFrame:
        columns = {
            symbol: pd.Series(s.prices, index=pd.DatetimeIndex(s.dates), dtype=float)
            for symbol, s in self._series.items()
        }
        frame = pd.DataFrame(columns)
        frame.index.name = "date"
        return frame


def _frame_from_long(frame: pd.DataFrame) -> pd.DataFrame:
    lowered = {col.lower(): col for col in frame.columns}
    price_col = lowered.get("price") or lowered.get("close")
    wide = frame.pivot_table(
        index=lowered["date"], columns=lowered["symbol"], values=price_col, aggfunc="last"
    )
    wide.columns = [str(c) for c in wide.columns]
    return wide


def load_price_book(
    path: Union[str, Path],
    *,
    assets: Optional[Sequence[str]] = None,
) -> PriceBook:
    """Load daily prices from CSV.

    Two layouts are accepted: wide (first column ``date``, one column per
    symbol, blank cells for missing prices) and long (``date``, ``symbol`` and
    ``price``/``close`` columns).
    """

    if not isinstance(path, (str, Path)):
        raise TypeError("path must be str or Path")
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Price file not found: {source}")

    try:
        frame = pd.read_csv(source)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise LoaderError(f"Unable to parse price file {source}: {exc}") from exc
    if frame.empty or frame.columns.size < 2:
        raise LoaderError(f"Price file {source} has no price columns")

    lowered = {str(col).lower() for col in frame.columns}
    if {"date", "symbol"} <= lowered and lowered & {"price", "close"}:
        frame = _frame_from_long(frame)
    else:
        frame = frame.set_index(frame.columns[0])

    try:
        frame.index = pd.to_datetime(frame.index)
    except (ValueError, TypeError) as exc:
        raise LoaderError(f"Unparseable dates in {source}: {exc}") from exc
    if frame.index.has_duplicates:
        dup = frame.index[frame.index.duplicated()][0]
        raise LoaderError(f"Duplicate timestamp detected: {dup.date()}")

    if assets:
        wanted = [str(a) for a in assets]
        missing = [name for name in wanted if name not in frame.columns]
        if missing:
            raise LoaderError(f"Requested assets missing from file: {', '.join(missing)}")
        frame = frame[wanted]

    try:
        frame = frame.apply(pd.to_numeric, errors="raise")
    except (ValueError, TypeError) as exc:
        raise LoaderError(f"Non-numeric prices in {source}: {exc}") from exc

    book = PriceBook.from_frame(frame)
    logger.debug("Loaded %d symbols from %s", len(book), source)
    return book


__all__ = [
    "AssetSeries",
    "LoaderError",
    "PriceBook",
    "load_price_book",
    "price_on_or_before",
    "to_date",
]
