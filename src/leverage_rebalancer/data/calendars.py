"""Rebalance calendar helpers."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Sequence

import pandas as pd

from .prices import DateLike, to_date


class CalendarError(RuntimeError):
    """Raised when a rebalance schedule cannot be built."""


def monthly_schedule(start: DateLike, end: DateLike) -> List[date]:
    """Same day-of-month dates from ``start`` through ``end`` inclusive.

    Offsets are taken from ``start`` each time, so a schedule anchored on the
    31st lands on each month's last day without drifting.
    """

    first = pd.Timestamp(to_date(start))
    last = to_date(end)
    if first.date() > last:
        raise CalendarError(f"start {first.date()} is after end {last}")
    out: List[date] = []
    k = 0
    while True:
        current = (first + pd.DateOffset(months=k)).date()
        if current > last:
            break
        out.append(current)
        k += 1
    return out


def period_end(schedule: Sequence[date], index: int) -> date:
    """Last day simulated for period ``index``: the day before the next rebalance."""

    current = schedule[index]
    if index + 1 >= len(schedule):
        return current
    end = schedule[index + 1] - timedelta(days=1)
    return max(end, current)


__all__ = ["CalendarError", "monthly_schedule", "period_end"]
