"""
Price record assembly.

Combines a parsed daily quote with the optional fundamentals and
institutional flows of the same stock, and derives day-over-day change.

Change rules:
    change         = close - previous_close   (0 without a previous close)
    change_percent = change / previous_close * 100   (0 unless previous_close > 0)

An explicit non-zero ``change`` or ``change_percent`` passed by the caller
replaces the computed value. Existing callers rely on this override.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from twstocks.core.logging import get_logger
from twstocks.domain.quotes import DailyQuote, Fundamentals, InstitutionalFlow
from twstocks.domain.stock import StockPriceRecord


logger = get_logger("services.price_builder")

ZERO = Decimal(0)
HUNDRED = Decimal(100)


def compute_change(close: Decimal, previous_close: Decimal | None) -> tuple[Decimal, Decimal]:
    """Return ``(change, change_percent)`` relative to the previous close."""
    if previous_close is None:
        return ZERO, ZERO

    change = close - previous_close
    if previous_close > 0:
        return change, change / previous_close * HUNDRED
    return change, ZERO


def build_price_record(
    stock_id: uuid.UUID,
    date: date,
    quote: DailyQuote,
    fundamentals: Fundamentals | None = None,
    flow: InstitutionalFlow | None = None,
    previous_close: Decimal | None = None,
    change: Decimal | None = None,
    change_percent: Decimal | None = None,
) -> StockPriceRecord:
    """
    Build a complete price record for one stock and day.

    Args:
        stock_id: Owning stock
        date: Trading date
        quote: OHLCV values for the day
        fundamentals: Valuation figures, or None when unknown
        flow: Institutional net flows, or None when unknown
        previous_close: Close of the prior trading day in the same batch
        change: Explicit change; non-zero wins over the computed value
        change_percent: Explicit percent change; non-zero wins likewise

    Returns:
        StockPriceRecord ready for persistence
    """
    fundamentals = fundamentals or Fundamentals()
    flow = flow or InstitutionalFlow()

    computed_change, computed_percent = compute_change(quote.close, previous_close)
    if change is not None and change != 0:
        computed_change = change
    if change_percent is not None and change_percent != 0:
        computed_percent = change_percent

    return StockPriceRecord(
        stock_id=stock_id,
        date=date,
        open=quote.open,
        high=quote.high,
        low=quote.low,
        close=quote.close,
        volume=quote.volume,
        change=computed_change,
        change_percent=computed_percent,
        turnover=quote.turnover,
        transactions=quote.transactions,
        pe_ratio=fundamentals.pe_ratio,
        pb_ratio=fundamentals.pb_ratio,
        dividend_yield=fundamentals.dividend_yield,
        market_cap=fundamentals.market_cap,
        foreign_buy=flow.foreign_buy,
        trust_buy=flow.trust_buy,
        dealer_buy=flow.dealer_buy,
    )


def build_price_batch(
    stock_id: uuid.UUID,
    quotes: Iterable[DailyQuote],
    fundamentals: Fundamentals | None = None,
    flows: Mapping[date, InstitutionalFlow] | None = None,
) -> list[StockPriceRecord]:
    """Build records for one stock's batch, oldest first.

    The previous close is taken only from the prior row of this batch, so
    concurrently processed stocks never see each other's prices. The first
    row has no prior row; when the source printed its change, the previous
    close is implied as ``close - change``. Fundamentals are a snapshot of
    "now" and attach to the latest day only.
    """
    flows = flows or {}

    by_date: dict[date, DailyQuote] = {}
    for quote in quotes:
        if quote.date in by_date:
            logger.debug(f"Duplicate quote row for {stock_id} on {quote.date}; keeping last")
        by_date[quote.date] = quote

    ordered = [by_date[d] for d in sorted(by_date)]
    if not ordered:
        return []

    latest = ordered[-1].date
    records: list[StockPriceRecord] = []
    previous_close: Decimal | None = None
    if ordered[0].change is not None:
        previous_close = ordered[0].close - ordered[0].change

    for quote in ordered:
        records.append(
            build_price_record(
                stock_id,
                quote.date,
                quote,
                fundamentals=fundamentals if quote.date == latest else None,
                flow=flows.get(quote.date),
                previous_close=previous_close,
            )
        )
        previous_close = quote.close

    return records
