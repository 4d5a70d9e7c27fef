"""Price data access and rebalance calendars."""

from .calendars import CalendarError, monthly_schedule, period_end
from .prices import AssetSeries, LoaderError, PriceBook, load_price_book, price_on_or_before

__all__ = [
    "AssetSeries",
    "CalendarError",
    "LoaderError",
    "PriceBook",
    "load_price_book",
    "monthly_schedule",
    "period_end",
    "price_on_or_before",
]
