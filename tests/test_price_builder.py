"""
Tests for price record building and change derivation.
"""

import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from twstocks.domain.quotes import DailyQuote, Fundamentals, InstitutionalFlow
from twstocks.domain.stock import StockPriceRecord
from twstocks.services.price_builder import build_price_batch, build_price_record, compute_change


STOCK_ID = uuid.UUID("00000000-0000-0000-0000-000000002330")


def quote(day: int, close: str, month: int = 1) -> DailyQuote:
    value = Decimal(close)
    return DailyQuote(
        date=date(2025, month, day),
        open=value,
        high=value,
        low=value,
        close=value,
        volume=1000,
        turnover=100000,
        transactions=10,
    )


class TestComputeChange:
    """Tests for change and change_percent derivation."""

    def test_change_from_previous_close(self):
        change, pct = compute_change(Decimal("105"), Decimal("100"))
        assert change == Decimal("5")
        assert pct == Decimal("5")

    def test_zero_previous_close_gives_zero_percent(self):
        change, pct = compute_change(Decimal("105"), Decimal("0"))
        assert change == Decimal("105")
        assert pct == Decimal("0")

    def test_no_previous_close(self):
        assert compute_change(Decimal("105"), None) == (Decimal("0"), Decimal("0"))


class TestBuildPriceRecord:
    """Tests for build_price_record."""

    def test_derived_change(self):
        record = build_price_record(STOCK_ID, date(2025, 1, 3), quote(3, "105"), previous_close=Decimal("100"))
        assert record.change == Decimal("5.00")
        assert record.change_percent == Decimal("5.00")

    def test_first_day_has_zero_change(self):
        record = build_price_record(STOCK_ID, date(2025, 1, 2), quote(2, "105"))
        assert record.change == Decimal("0.00")
        assert record.change_percent == Decimal("0.00")

    def test_explicit_change_overrides_computed(self):
        record = build_price_record(
            STOCK_ID,
            date(2025, 1, 3),
            quote(3, "105"),
            previous_close=Decimal("100"),
            change=Decimal("7.5"),
            change_percent=Decimal("7.89"),
        )
        assert record.change == Decimal("7.50")
        assert record.change_percent == Decimal("7.89")

    def test_explicit_zero_does_not_override(self):
        record = build_price_record(
            STOCK_ID,
            date(2025, 1, 3),
            quote(3, "105"),
            previous_close=Decimal("100"),
            change=Decimal("0"),
        )
        assert record.change == Decimal("5.00")

    def test_percent_is_quantized_half_up(self):
        # 1 / 3 * 100 = 33.333...
        record = build_price_record(STOCK_ID, date(2025, 1, 3), quote(3, "4"), previous_close=Decimal("3"))
        assert record.change_percent == Decimal("33.33")

    def test_optional_fields_default_to_unknown(self):
        record = build_price_record(STOCK_ID, date(2025, 1, 3), quote(3, "105"))
        assert record.pe_ratio is None
        assert record.market_cap is None
        assert record.foreign_buy is None

    def test_optional_fields_copied(self):
        record = build_price_record(
            STOCK_ID,
            date(2025, 1, 3),
            quote(3, "105"),
            fundamentals=Fundamentals(pe_ratio=Decimal("25.3"), market_cap=0),
            flow=InstitutionalFlow(foreign_buy=-200, trust_buy=0),
        )
        assert record.pe_ratio == Decimal("25.30")
        assert record.market_cap == 0
        assert record.foreign_buy == -200
        assert record.trust_buy == 0
        assert record.dealer_buy is None


class TestBuildPriceBatch:
    """Tests for build_price_batch."""

    def test_chains_previous_close_in_date_order(self):
        records = build_price_batch(STOCK_ID, [quote(6, "110"), quote(2, "100"), quote(3, "105")])

        assert [r.date.day for r in records] == [2, 3, 6]
        assert [r.change for r in records] == [Decimal("0.00"), Decimal("5.00"), Decimal("5.00")]
        assert records[1].change_percent == Decimal("5.00")
        assert records[2].change_percent == Decimal("4.76")

    def test_fundamentals_attach_to_latest_day_only(self):
        records = build_price_batch(
            STOCK_ID,
            [quote(2, "100"), quote(3, "105")],
            fundamentals=Fundamentals(pe_ratio=Decimal("25.30"), dividend_yield=Decimal("1.63")),
        )
        assert records[0].pe_ratio is None
        assert records[1].pe_ratio == Decimal("25.30")
        assert records[1].dividend_yield == Decimal("1.63")

    def test_flows_attach_by_date(self):
        flows = {date(2025, 1, 3): InstitutionalFlow(foreign_buy=12345, trust_buy=-678, dealer_buy=0)}
        records = build_price_batch(STOCK_ID, [quote(2, "100"), quote(3, "105")], flows=flows)
        assert records[0].foreign_buy is None
        assert records[1].foreign_buy == 12345
        assert records[1].trust_buy == -678

    def test_first_row_uses_printed_change(self):
        first = replace(quote(2, "105"), change=Decimal("5.00"))
        records = build_price_batch(STOCK_ID, [quote(3, "110"), first])

        assert records[0].change == Decimal("5.00")
        assert records[0].change_percent == Decimal("5.00")
        # Later rows still chain from the batch
        assert records[1].change == Decimal("5.00")
        assert records[1].change_percent == Decimal("4.76")

    def test_printed_change_on_later_rows_is_ignored(self):
        later = replace(quote(3, "110"), change=Decimal("-1.00"))
        records = build_price_batch(STOCK_ID, [quote(2, "100"), later])
        assert records[1].change == Decimal("10.00")

    def test_empty_batch(self):
        assert build_price_batch(STOCK_ID, []) == []

    def test_batches_do_not_share_previous_close(self):
        other = uuid.uuid4()
        first = build_price_batch(STOCK_ID, [quote(2, "100"), quote(3, "105")])
        second = build_price_batch(other, [quote(3, "50")])
        assert first[-1].change == Decimal("5.00")
        assert second[0].change == Decimal("0.00")


class TestStockPriceRecord:
    """Validation of the record model."""

    def test_rejects_float(self):
        with pytest.raises(ValidationError):
            StockPriceRecord(
                stock_id=STOCK_ID,
                date=date(2025, 1, 2),
                open=0.1,
                high=Decimal("1"),
                low=Decimal("1"),
                close=Decimal("1"),
            )

    def test_accepts_decimal_strings(self):
        record = StockPriceRecord(
            stock_id=STOCK_ID,
            date=date(2025, 1, 2),
            open="0.1",
            high="0.2",
            low="0.1",
            close="0.3",
        )
        assert record.open + record.high == record.close

    def test_rejects_negative_volume(self):
        with pytest.raises(ValidationError):
            StockPriceRecord(
                stock_id=STOCK_ID,
                date=date(2025, 1, 2),
                open=Decimal("1"),
                high=Decimal("1"),
                low=Decimal("1"),
                close=Decimal("1"),
                volume=-1,
            )
