"""Leverage risk helpers."""

from .leverage import (
    LeverageRecommendation,
    LeverageStatus,
    classify_leverage,
    extra_contribution,
    reborrow_purchases,
    recommend,
)

__all__ = [
    "LeverageRecommendation",
    "LeverageStatus",
    "classify_leverage",
    "extra_contribution",
    "reborrow_purchases",
    "recommend",
]
