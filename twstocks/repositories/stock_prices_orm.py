"""Daily price repository using SQLAlchemy ORM.

Usage:
    from twstocks.repositories import stock_prices_orm as prices_repo

    await prices_repo.upsert_prices(records)
    history = await prices_repo.get_prices(stock_id, start=date(2025, 1, 1))
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from twstocks.core.exceptions import PersistenceError
from twstocks.core.logging import get_logger
from twstocks.database.connection import get_session
from twstocks.database.orm import StockPriceRow
from twstocks.domain.stock import StockPriceRecord
from twstocks.repositories.stocks_orm import dialect_insert


logger = get_logger("repositories.stock_prices_orm")

NATURAL_KEY = ("stock_id", "date")

# Everything except identity and natural key is overwritten on re-ingestion
MUTABLE_COLUMNS = (
    "open",
    "high",
    "low",
    "close",
    "volume",
    "change",
    "change_percent",
    "turnover",
    "transactions",
    "pe_ratio",
    "pb_ratio",
    "dividend_yield",
    "market_cap",
    "foreign_buy",
    "trust_buy",
    "dealer_buy",
)


def _to_domain(row: StockPriceRow | None) -> StockPriceRecord | None:
    return StockPriceRecord.model_validate(row) if row is not None else None


def _values(record: StockPriceRecord) -> dict:
    return record.model_dump(include={"id", *NATURAL_KEY, *MUTABLE_COLUMNS})


# =============================================================================
# WRITES
# =============================================================================


async def upsert_prices(records: Sequence[StockPriceRecord]) -> int:
    """Insert or fully overwrite price records in one transaction.

    Conflicts on (stock_id, date) replace every mutable column and keep the
    stored id. Either all records are written or none are.

    Returns:
        Number of records written
    """
    if not records:
        return 0

    try:
        async with get_session() as session:
            stmt = dialect_insert(session, StockPriceRow).values([_values(r) for r in records])
            set_ = {col: stmt.excluded[col] for col in MUTABLE_COLUMNS}
            set_["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=list(NATURAL_KEY), set_=set_)

            await session.execute(stmt)
            await session.commit()
    except SQLAlchemyError as e:
        stock_ids = sorted({str(r.stock_id) for r in records})
        logger.error(f"Failed to upsert {len(records)} prices for {stock_ids}: {e}")
        raise PersistenceError(
            "Failed to upsert price records",
            details={"stock_ids": stock_ids, "count": len(records), "error": str(e)},
        ) from e

    logger.debug(f"Upserted {len(records)} price records")
    return len(records)


async def upsert_price(record: StockPriceRecord) -> StockPriceRecord:
    """Upsert a single record and return it as stored."""
    await upsert_prices([record])
    stored = await get_price_by_key(record.stock_id, record.date)
    if stored is None:
        raise PersistenceError(
            "Upserted price record not found",
            details={"stock_id": str(record.stock_id), "date": record.date.isoformat()},
        )
    return stored


# =============================================================================
# READS
# =============================================================================


async def get_price(price_id: uuid.UUID) -> StockPriceRecord | None:
    """Get a price record by id."""
    async with get_session() as session:
        return _to_domain(await session.get(StockPriceRow, price_id))


async def get_price_by_key(stock_id: uuid.UUID, day: date) -> StockPriceRecord | None:
    """Get the record of one stock on one day."""
    async with get_session() as session:
        result = await session.execute(
            select(StockPriceRow).where(
                StockPriceRow.stock_id == stock_id,
                StockPriceRow.date == day,
            )
        )
        return _to_domain(result.scalar_one_or_none())


async def list_prices(limit: int | None = None) -> list[StockPriceRecord]:
    """All price records, newest first."""
    async with get_session() as session:
        query = select(StockPriceRow).order_by(
            StockPriceRow.date.desc(), StockPriceRow.stock_id
        )
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return [StockPriceRecord.model_validate(row) for row in result.scalars().all()]


async def get_prices(
    stock_id: uuid.UUID,
    start: date | None = None,
    end: date | None = None,
) -> list[StockPriceRecord]:
    """Price history of a stock, newest first.

    Args:
        stock_id: Owning stock
        start: First date (inclusive); open when None
        end: Last date (inclusive); open when None

    Returns:
        Full history when both bounds are None
    """
    query = select(StockPriceRow).where(StockPriceRow.stock_id == stock_id)
    if start is not None:
        query = query.where(StockPriceRow.date >= start)
    if end is not None:
        query = query.where(StockPriceRow.date <= end)

    async with get_session() as session:
        result = await session.execute(query.order_by(StockPriceRow.date.desc()))
        return [StockPriceRecord.model_validate(row) for row in result.scalars().all()]


async def get_latest_price(stock_id: uuid.UUID) -> StockPriceRecord | None:
    """Most recent record of a stock."""
    async with get_session() as session:
        result = await session.execute(
            select(StockPriceRow)
            .where(StockPriceRow.stock_id == stock_id)
            .order_by(StockPriceRow.date.desc())
            .limit(1)
        )
        return _to_domain(result.scalar_one_or_none())


async def get_latest_price_date(stock_id: uuid.UUID) -> date | None:
    """Date of the most recent record of a stock."""
    async with get_session() as session:
        result = await session.execute(
            select(func.max(StockPriceRow.date)).where(StockPriceRow.stock_id == stock_id)
        )
        return result.scalar_one_or_none()
