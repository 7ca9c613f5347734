"""Quote source protocol.

A quote source knows where a stock's pages live and how to read them. It
never performs I/O itself: the orchestrator fetches each URL through the
``PageFetcher`` and hands the body back for parsing, so every parse method is
a pure function of the page text.
"""

from __future__ import annotations

from datetime import date
from typing import Mapping, Protocol

from twstocks.domain.quotes import DailyQuote, Fundamentals, InstitutionalFlow, StockListing


class QuoteSource(Protocol):
    """Protocol for market data page sources."""

    name: str

    def listing_url(self) -> str:
        """Page listing the tradable stocks."""
        ...

    def parse_listing(self, html: str) -> list[StockListing]:
        ...

    def daily_url(self, code: str, month: date) -> str:
        """Daily quote table for the month containing ``month``."""
        ...

    def parse_daily(self, html: str) -> list[DailyQuote]:
        ...

    def detail_url(self, code: str) -> str:
        """Page carrying point-in-time fundamentals."""
        ...

    def detail_headers(self) -> Mapping[str, str]:
        """Extra request headers the detail and flow pages require."""
        ...

    def parse_detail(self, html: str) -> Fundamentals:
        ...

    def institutional_url(self, code: str) -> str:
        ...

    def parse_institutional(self, html: str) -> dict[date, InstitutionalFlow]:
        ...
