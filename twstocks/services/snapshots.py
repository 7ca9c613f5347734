"""Latest-price snapshots handed to the notification component.

Decimal fields are rendered as exact strings (``"105.50"``), never floats.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from twstocks.core.exceptions import NotFoundError
from twstocks.core.logging import get_logger
from twstocks.domain.stock import Stock, StockPriceRecord
from twstocks.repositories import stock_prices_orm as prices_repo
from twstocks.repositories import stocks_orm as stocks_repo


logger = get_logger("services.snapshots")


class PriceSnapshot(BaseModel):
    """A stock with its most recent price record."""

    stock: Stock
    price: StockPriceRecord

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe dict; decimals as exact text."""
        return self.model_dump(mode="json")


async def get_latest_snapshot(code: str) -> PriceSnapshot | None:
    """Latest snapshot of a stock, or None when it has no stored prices."""
    stock = await stocks_repo.get_stock_by_code(code)
    if stock is None:
        return None

    price = await prices_repo.get_latest_price(stock.id)
    if price is None:
        logger.debug(f"No stored prices for {code}")
        return None

    return PriceSnapshot(stock=stock, price=price)


async def require_latest_snapshot(code: str) -> PriceSnapshot:
    """Like get_latest_snapshot, but raises NotFoundError."""
    snapshot = await get_latest_snapshot(code)
    if snapshot is None:
        raise NotFoundError(f"No price snapshot for {code}", details={"code": code})
    return snapshot


async def list_latest_snapshots() -> list[PriceSnapshot]:
    """Latest snapshot of every stock that has prices, ordered by code."""
    snapshots = []
    for stock in await stocks_repo.list_stocks():
        price = await prices_repo.get_latest_price(stock.id)
        if price is not None:
            snapshots.append(PriceSnapshot(stock=stock, price=price))
    return snapshots
