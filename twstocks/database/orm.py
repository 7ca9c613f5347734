"""SQLAlchemy ORM models for the Taiwan stocks store.

Usage:
    from twstocks.database.orm import StockRow, StockPriceRow
    from twstocks.database.connection import get_session

    async with get_session() as session:
        row = await session.get(StockRow, stock_id)
"""

from __future__ import annotations

import uuid
from datetime import date as DateType
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


# Naming convention for constraints and indexes (deterministic names for Alembic)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class ExactDecimal(TypeDecorator):
    """Fixed-point decimal column.

    NUMERIC(precision, scale) on PostgreSQL. Backends without a native
    fixed-point type store the canonical decimal string, so no value ever
    passes through a binary float.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int = 12, scale: int = 2):
        super().__init__(precision=precision, scale=scale, asdecimal=True)
        self.precision = precision
        self.scale = scale
        self._quant = Decimal(1).scaleb(-scale)

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))
        return dialect.type_descriptor(String(self.precision + 2))

    def _quantize(self, value) -> Decimal:
        if isinstance(value, float):
            raise TypeError("binary float is not accepted for ExactDecimal columns")
        return Decimal(value).quantize(self._quant, rounding=ROUND_HALF_UP)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = self._quantize(value)
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Decimal):
            return self._quantize(value)
        return self._quantize(str(value))


# =============================================================================
# STOCKS
# =============================================================================


class StockRow(Base):
    """A listed equity keyed by exchange code."""
    __tablename__ = "stocks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    prices: Mapped[list["StockPriceRow"]] = relationship(back_populates="stock", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("code"),
    )


# =============================================================================
# DAILY PRICES
# =============================================================================


class StockPriceRow(Base):
    """One trading day of a stock."""
    __tablename__ = "stock_prices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stock_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[DateType] = mapped_column(Date, nullable=False)

    open: Mapped[Decimal] = mapped_column(ExactDecimal(12, 2), nullable=False)
    high: Mapped[Decimal] = mapped_column(ExactDecimal(12, 2), nullable=False)
    low: Mapped[Decimal] = mapped_column(ExactDecimal(12, 2), nullable=False)
    close: Mapped[Decimal] = mapped_column(ExactDecimal(12, 2), nullable=False)
    volume: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    change: Mapped[Decimal] = mapped_column(ExactDecimal(12, 2), nullable=False, default=Decimal("0.00"))
    change_percent: Mapped[Decimal] = mapped_column(ExactDecimal(10, 2), nullable=False, default=Decimal("0.00"))
    turnover: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transactions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Point-in-time fundamentals (NULL = unknown)
    pe_ratio: Mapped[Decimal | None] = mapped_column(ExactDecimal(10, 2))
    pb_ratio: Mapped[Decimal | None] = mapped_column(ExactDecimal(10, 2))
    dividend_yield: Mapped[Decimal | None] = mapped_column(ExactDecimal(10, 2))
    market_cap: Mapped[int | None] = mapped_column(BigInteger)

    # Institutional net flows (signed, NULL = unknown)
    foreign_buy: Mapped[int | None] = mapped_column(BigInteger)
    trust_buy: Mapped[int | None] = mapped_column(BigInteger)
    dealer_buy: Mapped[int | None] = mapped_column(BigInteger)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    stock: Mapped["StockRow"] = relationship(back_populates="prices")

    __table_args__ = (
        UniqueConstraint("stock_id", "date"),
        Index("idx_stock_prices_date", "date"),
    )
