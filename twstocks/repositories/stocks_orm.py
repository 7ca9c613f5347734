"""Stock repository using SQLAlchemy ORM.

Usage:
    from twstocks.repositories import stocks_orm as stocks_repo

    stock = await stocks_repo.upsert_stock(Stock(code="2330", name="台積電"))
    same = await stocks_repo.get_stock_by_code("2330")
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from twstocks.core.exceptions import PersistenceError
from twstocks.core.logging import get_logger
from twstocks.database.connection import get_session
from twstocks.database.orm import StockRow
from twstocks.domain.stock import Stock


logger = get_logger("repositories.stocks_orm")


def dialect_insert(session: AsyncSession, table: Any):
    """``INSERT`` construct supporting ``ON CONFLICT`` for the session's backend."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def _to_domain(row: StockRow | None) -> Stock | None:
    return Stock.model_validate(row) if row is not None else None


async def upsert_stock(stock: Stock, refresh_name: bool = True) -> Stock:
    """Insert a stock or refresh name and last_updated of the existing code.

    The stored id is kept on conflict, so the returned Stock carries the id
    of the first sighting. With ``refresh_name=False`` an existing row keeps
    its stored name and ``stock.name`` is only used on first insert.
    """
    try:
        async with get_session() as session:
            stmt = dialect_insert(session, StockRow).values(
                id=stock.id,
                code=stock.code,
                name=stock.name,
                last_updated=stock.last_updated,
            )
            set_ = {
                "last_updated": stmt.excluded.last_updated,
                "updated_at": func.now(),
            }
            if refresh_name:
                set_["name"] = stmt.excluded.name
            stmt = stmt.on_conflict_do_update(index_elements=["code"], set_=set_)
            await session.execute(stmt)
            await session.commit()

            result = await session.execute(select(StockRow).where(StockRow.code == stock.code))
            return _to_domain(result.scalar_one())
    except SQLAlchemyError as e:
        logger.error(f"Failed to upsert stock {stock.code}: {e}")
        raise PersistenceError(
            f"Failed to upsert stock {stock.code}",
            details={"code": stock.code, "error": str(e)},
        ) from e


async def get_stock(stock_id: uuid.UUID) -> Stock | None:
    """Get a stock by id."""
    async with get_session() as session:
        return _to_domain(await session.get(StockRow, stock_id))


async def get_stock_by_code(code: str) -> Stock | None:
    """Get a stock by exchange code."""
    async with get_session() as session:
        result = await session.execute(select(StockRow).where(StockRow.code == code.strip()))
        return _to_domain(result.scalar_one_or_none())


async def list_stocks() -> list[Stock]:
    """All stocks ordered by code."""
    async with get_session() as session:
        result = await session.execute(select(StockRow).order_by(StockRow.code))
        return [Stock.model_validate(row) for row in result.scalars().all()]
