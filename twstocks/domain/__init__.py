"""Domain models."""

from .quotes import DailyQuote, Fundamentals, InstitutionalFlow, StockListing
from .stock import Stock, StockPriceRecord


__all__ = [
    "DailyQuote",
    "Fundamentals",
    "InstitutionalFlow",
    "Stock",
    "StockListing",
    "StockPriceRecord",
]
