"""
Tests for latest-price snapshots.
"""

from datetime import date
from decimal import Decimal

import pytest

from twstocks.core.exceptions import NotFoundError
from twstocks.domain.stock import Stock, StockPriceRecord
from twstocks.repositories import stock_prices_orm as prices_repo
from twstocks.repositories import stocks_orm as stocks_repo
from twstocks.services.snapshots import (
    get_latest_snapshot,
    list_latest_snapshots,
    require_latest_snapshot,
)


async def seed(code: str, name: str, closes: dict[int, str]) -> Stock:
    stock = await stocks_repo.upsert_stock(Stock(code=code, name=name))
    await prices_repo.upsert_prices(
        [
            StockPriceRecord(
                stock_id=stock.id,
                date=date(2025, 1, day),
                open=Decimal(close),
                high=Decimal(close),
                low=Decimal(close),
                close=Decimal(close),
                volume=1000,
                pe_ratio=Decimal("25.30"),
            )
            for day, close in closes.items()
        ]
    )
    return stock


class TestSnapshots:
    """Tests for the snapshot reads."""

    @pytest.mark.asyncio
    async def test_latest_snapshot(self, database):
        await seed("2330", "台積電", {2: "1075.00", 3: "1095.50"})

        snapshot = await get_latest_snapshot("2330")

        assert snapshot.stock.code == "2330"
        assert snapshot.price.date == date(2025, 1, 3)
        assert snapshot.price.close == Decimal("1095.50")

    @pytest.mark.asyncio
    async def test_payload_keeps_exact_decimals(self, database):
        await seed("2330", "台積電", {3: "1095.50"})

        payload = (await get_latest_snapshot("2330")).to_payload()

        assert payload["price"]["close"] == "1095.50"
        assert payload["price"]["pe_ratio"] == "25.30"
        assert payload["price"]["date"] == "2025-01-03"
        assert payload["stock"]["name"] == "台積電"

    @pytest.mark.asyncio
    async def test_no_prices(self, database):
        await stocks_repo.upsert_stock(Stock(code="2317", name="鴻海"))

        assert await get_latest_snapshot("2317") is None
        assert await get_latest_snapshot("9999") is None
        with pytest.raises(NotFoundError):
            await require_latest_snapshot("2317")

    @pytest.mark.asyncio
    async def test_list_skips_stocks_without_prices(self, database):
        await seed("2330", "台積電", {2: "1075.00"})
        await seed("0050", "元大台灣50", {2: "190.25"})
        await stocks_repo.upsert_stock(Stock(code="2317", name="鴻海"))

        snapshots = await list_latest_snapshots()

        assert [s.stock.code for s in snapshots] == ["0050", "2330"]
