"""Portfolio state containers."""

from .portfolio import PortfolioState, Position

__all__ = ["PortfolioState", "Position"]
