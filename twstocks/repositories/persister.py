"""Storage seam used by the ingestion orchestrator."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date
from typing import Protocol

from twstocks.domain.stock import Stock, StockPriceRecord
from twstocks.repositories import stock_prices_orm as prices_repo
from twstocks.repositories import stocks_orm as stocks_repo


class Persister(Protocol):
    """What the orchestrator needs from storage."""

    async def upsert_stock(self, stock: Stock, refresh_name: bool = True) -> Stock:
        """Insert or refresh a stock; returns it with its stored id.

        ``refresh_name=False`` keeps the stored name of an existing stock.
        """
        ...

    async def latest_price_date(self, stock_id: uuid.UUID) -> date | None:
        ...

    async def upsert_prices(self, records: Sequence[StockPriceRecord]) -> int:
        """Write one stock's batch atomically; returns rows written."""
        ...


class SqlPersister:
    """Persister backed by the SQLAlchemy repositories."""

    async def upsert_stock(self, stock: Stock, refresh_name: bool = True) -> Stock:
        return await stocks_repo.upsert_stock(stock, refresh_name=refresh_name)

    async def latest_price_date(self, stock_id: uuid.UUID) -> date | None:
        return await prices_repo.get_latest_price_date(stock_id)

    async def upsert_prices(self, records: Sequence[StockPriceRecord]) -> int:
        return await prices_repo.upsert_prices(records)
