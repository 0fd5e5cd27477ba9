"""Market data layer: price bars, providers, session origination, indicators."""

from src.market.models import PracticeWindow, StockInfo, StockPrice
from src.market.originator import InsufficientHistoryError, SessionOriginator

__all__ = [
    "InsufficientHistoryError",
    "PracticeWindow",
    "SessionOriginator",
    "StockInfo",
    "StockPrice",
]
