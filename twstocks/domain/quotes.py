"""Intermediate values parsed from source pages, before record building."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class StockListing:
    """A stock to ingest; ``name`` is None when no page showed it."""

    code: str
    name: str | None = None


@dataclass(frozen=True)
class DailyQuote:
    """One row of the monthly daily-quote table."""

    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0
    turnover: int = 0
    transactions: int = 0
    # Change printed by the source against the previous trading day
    change: Decimal | None = None


@dataclass(frozen=True)
class Fundamentals:
    """Point-in-time valuation figures; each may be withheld by the source."""

    pe_ratio: Decimal | None = None
    pb_ratio: Decimal | None = None
    dividend_yield: Decimal | None = None
    market_cap: int | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            v is None for v in (self.pe_ratio, self.pb_ratio, self.dividend_yield, self.market_cap)
        )


@dataclass(frozen=True)
class InstitutionalFlow:
    """Net buy/sell of the three institutional investor groups for one day."""

    foreign_buy: int | None = None
    trust_buy: int | None = None
    dealer_buy: int | None = None
