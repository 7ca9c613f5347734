"""Initial schema: stocks and daily stock prices.

Revision ID: 001_initial
Revises:
Create Date: 2025-04-25
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stocks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_stocks"),
        sa.UniqueConstraint("code", name="uq_stocks_code"),
    )

    op.create_table(
        "stock_prices",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("stock_id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("open", sa.Numeric(12, 2), nullable=False),
        sa.Column("high", sa.Numeric(12, 2), nullable=False),
        sa.Column("low", sa.Numeric(12, 2), nullable=False),
        sa.Column("close", sa.Numeric(12, 2), nullable=False),
        sa.Column("volume", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("change", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("change_percent", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("turnover", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("transactions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("pe_ratio", sa.Numeric(10, 2)),
        sa.Column("pb_ratio", sa.Numeric(10, 2)),
        sa.Column("dividend_yield", sa.Numeric(10, 2)),
        sa.Column("market_cap", sa.BigInteger()),
        sa.Column("foreign_buy", sa.BigInteger()),
        sa.Column("trust_buy", sa.BigInteger()),
        sa.Column("dealer_buy", sa.BigInteger()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_stock_prices"),
        sa.ForeignKeyConstraint(
            ["stock_id"],
            ["stocks.id"],
            name="fk_stock_prices_stock_id_stocks",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("stock_id", "date", name="uq_stock_prices_stock_id"),
    )
    op.create_index("idx_stock_prices_date", "stock_prices", ["date"])


def downgrade() -> None:
    op.drop_index("idx_stock_prices_date", table_name="stock_prices")
    op.drop_table("stock_prices")
    op.drop_table("stocks")
