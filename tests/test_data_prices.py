from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from leverage_rebalancer.data import (
    AssetSeries,
    LoaderError,
    PriceBook,
    load_price_book,
    price_on_or_before,
)


def test_series_validation() -> None:
    with pytest.raises(ValueError):
        AssetSeries("A", (date(2021, 1, 1),), (1.0, 2.0))
    with pytest.raises(ValueError):
        AssetSeries("A", (date(2021, 1, 2), date(2021, 1, 1)), (1.0, 2.0))
    with pytest.raises(ValueError):
        AssetSeries("A", (date(2021, 1, 1), date(2021, 1, 1)), (1.0, 2.0))


def test_price_on_or_before_walks_back_past_gaps() -> None:
    series = AssetSeries(
        "A",
        ("2021-01-04", "2021-01-05", "2021-01-06"),
        (10.0, float("nan"), 12.0),
    )
    assert series.price_on_or_before(date(2021, 1, 3)) is None
    assert series.price_on_or_before(date(2021, 1, 4)) == 10.0
    assert series.price_on_or_before(date(2021, 1, 5)) == 10.0
    assert series.price_on_or_before("2021-02-01") == 12.0
    assert price_on_or_before(None, date(2021, 1, 4)) is None


def test_series_slicing() -> None:
    series = AssetSeries("A", ("2021-01-04", "2021-01-05", "2021-01-06"), (1.0, 2.0, 3.0))
    assert series.between("2021-01-05", "2021-01-06").prices == (2.0, 3.0)
    assert series.before("2021-01-05").prices == (1.0,)
    assert len(series.before("2021-01-01")) == 0


def test_book_from_frame_drops_missing_cells() -> None:
    frame = pd.DataFrame(
        {"A": [1.0, np.nan, 3.0], "B": [5.0, 6.0, 7.0]},
        index=pd.to_datetime(["2021-01-04", "2021-01-05", "2021-01-06"]),
    )
    book = PriceBook.from_frame(frame)
    assert book.symbols == ("A", "B")
    assert len(book["A"]) == 2
    assert book.price_on_or_before("A", "2021-01-05") == 1.0
    assert book.prices_on(["A", "B", "C"], "2021-01-05") == {"A": 1.0, "B": 6.0, "C": None}
    assert book.first_date() == date(2021, 1, 4)
    assert book.last_date() == date(2021, 1, 6)
    assert book.history() == {"A": [1.0, 3.0], "B": [5.0, 6.0, 7.0]}
    assert list(book.to_frame().columns) == ["A", "B"]


def test_book_rejects_duplicate_symbols() -> None:
    series = AssetSeries("A", ("2021-01-04",), (1.0,))
    with pytest.raises(ValueError):
        PriceBook([series, series])


def test_load_wide_csv(tmp_path: Path) -> None:
    path = tmp_path / "wide.csv"
    path.write_text("date,SPY,GLD\n2021-01-04,100,50\n2021-01-05,,51\n2021-01-06,102,52\n")
    book = load_price_book(path)
    assert set(book) == {"SPY", "GLD"}
    assert book["SPY"].prices == (100.0, 102.0)
    assert book["GLD"].dates[-1] == date(2021, 1, 6)

    subset = load_price_book(path, assets=["GLD"])
    assert subset.symbols == ("GLD",)


def test_load_long_csv(tmp_path: Path) -> None:
    path = tmp_path / "long.csv"
    path.write_text(
        "date,symbol,close\n"
        "2021-01-04,SPY,100\n2021-01-04,GLD,50\n"
        "2021-01-05,SPY,101\n2021-01-05,GLD,51\n"
    )
    book = load_price_book(path)
    assert book["SPY"].prices == (100.0, 101.0)
    assert book["GLD"].prices == (50.0, 51.0)


def test_loader_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_price_book(tmp_path / "missing.csv")
    with pytest.raises(TypeError):
        load_price_book(123)  # type: ignore[arg-type]

    dup = tmp_path / "dup.csv"
    dup.write_text("date,A\n2021-01-04,1\n2021-01-04,2\n")
    with pytest.raises(LoaderError, match="Duplicate timestamp"):
        load_price_book(dup)

    bad = tmp_path / "bad.csv"
    bad.write_text("date,A\n2021-01-04,abc\n")
    with pytest.raises(LoaderError):
        load_price_book(bad)

    lonely = tmp_path / "lonely.csv"
    lonely.write_text("date\n2021-01-04\n")
    with pytest.raises(LoaderError):
        load_price_book(lonely)

    wide = tmp_path / "wide.csv"
    wide.write_text("date,A\n2021-01-04,1\n")
    with pytest.raises(LoaderError, match="missing"):
        load_price_book(wide, assets=["B"])
