"""
Tests for label-driven value extraction.
"""

from decimal import Decimal

from twstocks.services.scraping.extractor import (
    DEFAULT_STRATEGIES,
    extract,
    extract_decimal,
    extract_integer,
    full_text_strategy,
    next_sibling_strategy,
    parent_sibling_strategy,
    parse_document,
    row_cells_strategy,
)


class TestStrategies:
    """Each strategy in isolation."""

    def test_next_sibling(self):
        doc = parse_document("<table><tr><th>本益比</th><td>15.5</td></tr></table>")
        assert next_sibling_strategy(doc, "本益比") == "15.5"

    def test_next_sibling_skips_unparseable(self):
        doc = parse_document("<table><tr><th>本益比</th><td>N/A</td></tr></table>")
        assert next_sibling_strategy(doc, "本益比") is None

    def test_parent_sibling(self):
        doc = parse_document("<div><div><span>股價淨值比</span></div><div>6.95</div></div>")
        assert next_sibling_strategy(doc, "股價淨值比") is None
        assert parent_sibling_strategy(doc, "股價淨值比") == "6.95"

    def test_row_cells(self):
        doc = parse_document("<table><tr><td>殖利率</td><td>N/A</td><td>1.63%</td></tr></table>")
        assert next_sibling_strategy(doc, "殖利率") is None
        assert parent_sibling_strategy(doc, "殖利率") is None
        assert row_cells_strategy(doc, "殖利率") == "1.63%"

    def test_full_text_inline(self):
        doc = parse_document("<p>本益比 15.5</p>")
        assert full_text_strategy(doc, "本益比").strip() == "15.5"

    def test_full_text_ignores_scripts(self):
        doc = parse_document("<script>var label = '本益比 99';</script><p>nothing here</p>")
        assert full_text_strategy(doc, "本益比") is None

    def test_missing_label(self):
        doc = parse_document("<table><tr><td>成交量</td><td>100</td></tr></table>")
        for strategy in DEFAULT_STRATEGIES:
            assert strategy(doc, "本益比") is None


class TestExtract:
    """Tests for the ordered strategy chain."""

    def test_full_text_fallback_when_no_structure_matches(self):
        doc = parse_document("<html><body><p>本益比 15.5</p></body></html>")
        assert extract_decimal(doc, "本益比") == Decimal("15.5")

    def test_structural_strategy_wins_over_text_scan(self):
        html = (
            "<p>本益比 99.9 (去年)</p>"
            "<table><tr><th>本益比</th><td>15.5</td></tr></table>"
        )
        assert extract_decimal(parse_document(html), "本益比") == Decimal("15.5")

    def test_zero_is_extracted_not_missing(self):
        doc = parse_document("<table><tr><th>殖利率</th><td>0.00</td></tr></table>")
        assert extract_decimal(doc, "殖利率") == Decimal("0.00")

    def test_absent_label_is_none(self):
        doc = parse_document("<html><body><p>沒有資料</p></body></html>")
        assert extract(doc, "本益比") is None
        assert extract_decimal(doc, "本益比") is None

    def test_custom_strategy_order(self):
        doc = parse_document("<p>本益比 20</p><table><tr><th>本益比</th><td>15.5</td></tr></table>")
        assert extract(doc, "本益比", strategies=(full_text_strategy,)).strip() == "20"

    def test_integer_with_magnitude(self):
        doc = parse_document("<table><tr><th>市值</th><td>278,906億</td></tr></table>")
        assert extract_integer(doc, "市值") == 27890600000000


class TestNeighbouringLabels:
    """A withheld field never borrows the value of the next field."""

    def test_next_row_belongs_to_another_label(self):
        html = (
            "<table><tr><th>本益比</th><td>N/A</td></tr>"
            "<tr><th>股價淨值比</th><td>6.95</td></tr></table>"
        )
        doc = parse_document(html)
        assert parent_sibling_strategy(doc, "本益比") is None
        assert full_text_strategy(doc, "本益比") is None
        assert extract_decimal(doc, "本益比") is None
        assert extract_decimal(doc, "股價淨值比") == Decimal("6.95")

    def test_same_row_stops_at_next_label(self):
        doc = parse_document("<table><tr><th>本益比</th><td>N/A</td><th>股價淨值比</th><td>6.95</td></tr></table>")
        assert row_cells_strategy(doc, "本益比") is None
        assert extract(doc, "本益比") is None
        assert extract_decimal(doc, "股價淨值比") == Decimal("6.95")

    def test_value_after_label_in_nested_cell(self):
        doc = parse_document("<table><tr><td><span>殖利率</span></td><td>--</td><td>1.63%</td></tr></table>")
        assert row_cells_strategy(doc, "殖利率") == "1.63%"
