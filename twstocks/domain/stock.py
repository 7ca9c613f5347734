"""Stock and daily price domain models.

Type-safe representations of what the crawler observes and persists. Money,
ratio and percent fields are exact ``Decimal`` values quantized to the
storage scale, so a record read back from the database compares equal
digit for digit to the record that was written.
"""

from __future__ import annotations

import uuid
from datetime import date as DateType
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator


# Storage scale for prices, changes, ratios and percentages: NUMERIC(_, 2)
DECIMAL_PLACES = 2
QUANT = Decimal(1).scaleb(-DECIMAL_PLACES)

DECIMAL_FIELDS = ("open", "high", "low", "close", "change", "change_percent")
OPTIONAL_DECIMAL_FIELDS = ("pe_ratio", "pb_ratio", "dividend_yield")


def quantize(value: Decimal) -> Decimal:
    """Round to the storage scale (half up)."""
    return value.quantize(QUANT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Any:
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError("binary float is not accepted for decimal fields; pass Decimal or str")
    if isinstance(value, (int, str)):
        return Decimal(value)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stock(BaseModel):
    """A listed equity, keyed by its exchange code."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Opaque identifier")
    code: str = Field(..., min_length=1, max_length=10, description="Exchange ticker, e.g. 2330")
    name: str = Field(..., max_length=100, description="Display name")
    last_updated: datetime = Field(default_factory=_utcnow, description="Last successful sighting")

    model_config = {
        "from_attributes": True,
    }

    @field_validator("code", "name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class StockPriceRecord(BaseModel):
    """One trading day of a stock."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    stock_id: uuid.UUID
    date: DateType = Field(..., description="Trading date")

    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = Field(default=0, ge=0, description="Shares traded")
    change: Decimal = Decimal("0.00")
    change_percent: Decimal = Decimal("0.00")
    turnover: int = Field(default=0, ge=0, description="Traded value")
    transactions: int = Field(default=0, ge=0, description="Number of trades")

    pe_ratio: Decimal | None = None
    pb_ratio: Decimal | None = None
    dividend_yield: Decimal | None = None
    market_cap: int | None = Field(default=None, ge=0)
    foreign_buy: int | None = None
    trust_buy: int | None = None
    dealer_buy: int | None = None

    model_config = {
        "from_attributes": True,
    }

    @field_validator(*DECIMAL_FIELDS, *OPTIONAL_DECIMAL_FIELDS, mode="before")
    @classmethod
    def reject_float(cls, v: Any) -> Any:
        return _to_decimal(v)

    @field_validator(*DECIMAL_FIELDS, *OPTIONAL_DECIMAL_FIELDS)
    @classmethod
    def to_storage_scale(cls, v: Decimal | None) -> Decimal | None:
        if v is None:
            return None
        if not v.is_finite():
            raise ValueError("decimal fields must be finite")
        return quantize(v)

    @property
    def natural_key(self) -> tuple[uuid.UUID, DateType]:
        return (self.stock_id, self.date)
