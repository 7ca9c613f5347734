"""
TWSE / goodinfo quote source.

Pages read:
- TWSE ISIN class list: the tradable stock universe
- TWSE ``STOCK_DAY`` monthly table: one row per trading day
- goodinfo stock detail: P/E, P/B, dividend yield, market cap
- goodinfo buy/sell chart table: institutional net flows per day

Dates on TWSE pages use the ROC calendar (``114/01/02`` is 2025-01-02).
Rows that cannot be read are dropped; nothing is invented in their place.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Mapping

from bs4 import Tag

from twstocks.core.config import Settings, settings as default_settings
from twstocks.core.logging import get_logger
from twstocks.domain.quotes import DailyQuote, Fundamentals, InstitutionalFlow, StockListing
from twstocks.services.scraping.extractor import extract_decimal, extract_integer, parse_document
from twstocks.services.scraping.normalizer import normalize_decimal, normalize_integer


logger = get_logger("data_providers.twse")

ROC_EPOCH = 1911

# Fundamentals labels on the detail page
PE_LABEL = "本益比"
PB_LABEL = "股價淨值比"
YIELD_LABEL = "殖利率"
MARKET_CAP_LABEL = "市值"

# STOCK_DAY columns
DAILY_COLUMNS = 9
(
    COL_DATE,
    COL_VOLUME,
    COL_TURNOVER,
    COL_OPEN,
    COL_HIGH,
    COL_LOW,
    COL_CLOSE,
    COL_CHANGE,
    COL_TRANSACTIONS,
) = range(DAILY_COLUMNS)

_STOCK_CODE = re.compile(r"^\d{1,6}$")
_DATE_PARTS = re.compile(r"^(\d{2,4})[/\-.](\d{1,2})[/\-.](\d{1,2})")


def parse_date_text(text: str) -> date | None:
    """
    Parse a table date.

    Two- and three-digit years are ROC years (``99/12/31``, ``114/01/02``);
    four-digit years are western (``2025/01/02``, ``2025-01-02``). Trailing
    annotations after the date are ignored.
    """
    match = _DATE_PARTS.match(text.strip())
    if not match:
        return None

    year_text, month_text, day_text = match.groups()
    year = int(year_text)
    if len(year_text) < 4:
        year += ROC_EPOCH

    try:
        return date(year, int(month_text), int(day_text))
    except ValueError:
        return None


def _parse_change(text: str) -> Decimal | None:
    # "X" marks ex-rights days, quoted against the reference price
    if text.strip().upper().startswith("X"):
        return None
    return normalize_decimal(text)


def _cells(row: Tag) -> list[str]:
    return [cell.get_text(strip=True) for cell in row.find_all("td")]


class TwseQuoteSource:
    """Quote source backed by TWSE and goodinfo pages."""

    name = "twse"

    def __init__(self, config: Settings | None = None):
        self._settings = config or default_settings

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def listing_url(self) -> str:
        return self._settings.listing_url

    def parse_listing(self, html: str) -> list[StockListing]:
        """Code/name pairs from the ISIN class list, in page order."""
        document = parse_document(html)
        seen: set[str] = set()
        listings: list[StockListing] = []

        for row in document.select("table.h4 tr"):
            cells = _cells(row)
            if len(cells) < 4:
                continue
            code, name = cells[2], cells[3]
            if not _STOCK_CODE.match(code) or not name or code in seen:
                continue
            seen.add(code)
            listings.append(StockListing(code=code, name=name))

        logger.debug(f"Parsed {len(listings)} listings")
        return listings

    # -------------------------------------------------------------------------
    # Daily quotes
    # -------------------------------------------------------------------------

    def daily_url(self, code: str, month: date) -> str:
        return self._settings.daily_url_template.format(
            code=code, month=month.strftime("%Y%m01")
        )

    def parse_daily(self, html: str) -> list[DailyQuote]:
        """Rows of the STOCK_DAY table with a readable date and OHLC."""
        document = parse_document(html)
        quotes: list[DailyQuote] = []

        for row in document.select("table tr"):
            cells = _cells(row)
            if len(cells) < DAILY_COLUMNS:
                continue

            day = parse_date_text(cells[COL_DATE])
            if day is None:
                continue

            ohlc = [
                normalize_decimal(cells[i]) for i in (COL_OPEN, COL_HIGH, COL_LOW, COL_CLOSE)
            ]
            # "--" on days without a trade
            if any(value is None for value in ohlc):
                logger.debug(f"Skipping row without prices on {day}")
                continue
            open_, high, low, close = ohlc

            quotes.append(
                DailyQuote(
                    date=day,
                    open=open_,
                    high=high,
                    low=low,
                    close=close,
                    volume=normalize_integer(cells[COL_VOLUME]) or 0,
                    turnover=normalize_integer(cells[COL_TURNOVER]) or 0,
                    transactions=normalize_integer(cells[COL_TRANSACTIONS]) or 0,
                    change=_parse_change(cells[COL_CHANGE]),
                )
            )

        return quotes

    # -------------------------------------------------------------------------
    # Fundamentals
    # -------------------------------------------------------------------------

    def detail_url(self, code: str) -> str:
        return self._settings.detail_url_template.format(code=code)

    def detail_headers(self) -> Mapping[str, str]:
        return {"Referer": self._settings.detail_referer}

    def parse_detail(self, html: str) -> Fundamentals:
        document = parse_document(html)
        market_cap = extract_integer(document, MARKET_CAP_LABEL)
        if market_cap is not None and market_cap < 0:
            market_cap = None

        return Fundamentals(
            pe_ratio=extract_decimal(document, PE_LABEL),
            pb_ratio=extract_decimal(document, PB_LABEL),
            dividend_yield=extract_decimal(document, YIELD_LABEL),
            market_cap=market_cap,
        )

    # -------------------------------------------------------------------------
    # Institutional flows
    # -------------------------------------------------------------------------

    def institutional_url(self, code: str) -> str:
        return self._settings.institutional_url_template.format(code=code)

    def parse_institutional(self, html: str) -> dict[date, InstitutionalFlow]:
        """Net flows keyed by trading date; unreadable rows are dropped."""
        document = parse_document(html)
        flows: dict[date, InstitutionalFlow] = {}

        for row in document.select("table tr"):
            cells = _cells(row)
            if len(cells) < 4:
                continue

            day = parse_date_text(cells[0])
            if day is None:
                continue

            flow = InstitutionalFlow(
                foreign_buy=normalize_integer(cells[1]),
                trust_buy=normalize_integer(cells[2]),
                dealer_buy=normalize_integer(cells[3]),
            )
            if flow == InstitutionalFlow():
                continue
            flows[day] = flow

        return flows
