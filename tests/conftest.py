"""Pytest configuration and fixtures."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio

import twstocks.database.connection as db_conn
from twstocks.core.exceptions import PersistenceError
from twstocks.database.orm import Base
from twstocks.domain.stock import Stock, StockPriceRecord
from twstocks.services.data_providers.fetcher import FetchFailure, FetchFailureReason, RawBody


# =============================================================================
# DATABASE
# =============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator:
    """Fresh SQLite database behind the module-level session factory."""
    await db_conn.close_sqlalchemy_engine()
    engine = await db_conn.init_sqlalchemy_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await db_conn.close_sqlalchemy_engine()


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeFetcher:
    """Serves canned pages by URL; unknown URLs answer 404."""

    def __init__(self, pages: Mapping[str, str | FetchFailure] | None = None):
        self.pages: dict[str, str | FetchFailure] = dict(pages or {})
        self.calls: list[str] = []

    async def fetch(self, url, headers=None, timeout=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            return FetchFailure(url=url, reason=FetchFailureReason.HTTP_STATUS, detail="HTTP 404", status_code=404)
        if isinstance(page, FetchFailure):
            return page
        return RawBody(url=url, status_code=200, text=page)


class InMemoryPersister:
    """Persister keeping stocks and prices in dicts."""

    def __init__(self, failing_codes: set[str] | None = None):
        self.stocks: dict[str, Stock] = {}
        self.prices: dict[tuple[uuid.UUID, date], StockPriceRecord] = {}
        self.failing_codes = failing_codes or set()

    async def upsert_stock(self, stock: Stock, refresh_name: bool = True) -> Stock:
        existing = self.stocks.get(stock.code)
        if existing is not None:
            name = stock.name if refresh_name else existing.name
            stock = existing.model_copy(update={"name": name, "last_updated": stock.last_updated})
        self.stocks[stock.code] = stock
        return stock

    async def latest_price_date(self, stock_id: uuid.UUID) -> date | None:
        dates = [d for (sid, d) in self.prices if sid == stock_id]
        return max(dates) if dates else None

    async def upsert_prices(self, records) -> int:
        codes = {code for code, stock in self.stocks.items() if any(r.stock_id == stock.id for r in records)}
        if codes & self.failing_codes:
            raise PersistenceError("Failed to upsert price records", details={"codes": sorted(codes)})
        for record in records:
            self.prices[record.natural_key] = record
        return len(records)

    def prices_for(self, code: str) -> list[StockPriceRecord]:
        stock_id = self.stocks[code].id
        return sorted((r for r in self.prices.values() if r.stock_id == stock_id), key=lambda r: r.date)


# =============================================================================
# SOURCE PAGES
# =============================================================================


def daily_page(rows: list[tuple[str, str, str, str, str]]) -> str:
    """STOCK_DAY table from (roc_date, open, high, low, close) rows."""
    header = (
        "<tr><th>日期</th><th>成交股數</th><th>成交金額</th><th>開盤價</th><th>最高價</th>"
        "<th>最低價</th><th>收盤價</th><th>漲跌價差</th><th>成交筆數</th></tr>"
    )
    body = "".join(
        f"<tr><td>{d}</td><td>25,449,118</td><td>27,474,467,245</td><td>{o}</td><td>{h}</td>"
        f"<td>{lo}</td><td>{c}</td><td>+5.00</td><td>36,436</td></tr>"
        for d, o, h, lo, c in rows
    )
    return f"<html><body><table><thead>{header}</thead><tbody>{body}</tbody></table></body></html>"


LISTING_PAGE = """
<html><body>
<table class="h4">
  <tr><td>頁面編號</td><td>國際證券編碼</td><td>有價證券代號</td><td>有價證券名稱</td><td>市場別</td></tr>
  <tr><td>1</td><td>TW0002330008</td><td>2330</td><td>台積電</td><td>上市</td></tr>
  <tr><td>2</td><td>TW0002317005</td><td>2317</td><td>鴻海</td><td>上市</td></tr>
  <tr><td>3</td><td>TW0000050004</td><td>0050</td><td>元大台灣50</td><td>上市</td></tr>
  <tr><td>4</td><td>TW000T0101A8</td><td>01001T</td><td>土銀富邦R1</td><td>上市</td></tr>
</table>
</body></html>
"""

DETAIL_PAGE = """
<html><body>
<table class="b1">
  <tr><th>本益比</th><td>25.30</td><th>股價淨值比</th><td>6.95</td></tr>
  <tr><th>殖利率</th><td>1.63%</td><th>市值</th><td>278,906億</td></tr>
</table>
</body></html>
"""

INSTITUTIONAL_PAGE = """
<html><body>
<table>
  <tr><th>日期</th><th>外資</th><th>投信</th><th>自營商</th></tr>
  <tr><td>114/01/02</td><td>12,345</td><td>-678</td><td>0</td></tr>
  <tr><td>114/01/03</td><td>-2,000</td><td>150</td><td>-30</td></tr>
</table>
</body></html>
"""


@pytest.fixture
def listing_page() -> str:
    return LISTING_PAGE


@pytest.fixture
def detail_page() -> str:
    return DETAIL_PAGE


@pytest.fixture
def institutional_page() -> str:
    return INSTITUTIONAL_PAGE


@pytest.fixture
def make_daily_page():
    return daily_page


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def make_persister():
    return InMemoryPersister
