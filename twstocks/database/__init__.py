"""Database engine, sessions and ORM models."""

from .connection import (
    check_database,
    close_sqlalchemy_engine,
    get_async_database_url,
    get_session,
    init_sqlalchemy_engine,
)
from .orm import Base, StockPriceRow, StockRow


__all__ = [
    "Base",
    "StockPriceRow",
    "StockRow",
    "check_database",
    "close_sqlalchemy_engine",
    "get_async_database_url",
    "get_session",
    "init_sqlalchemy_engine",
]
