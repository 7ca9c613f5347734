"""Label-driven value extraction from scraped HTML.

Source pages label their figures in loosely structured markup
(``<th>本益比</th><td>15.5</td>``, ``<div>本益比</div><div>15.5</div>`` and
many variations) with no stable schema. Extraction therefore runs an ordered
chain of strategies; each is a pure function ``(document, label) -> text``
and the first one whose text normalizes to a number wins:

1. next sibling of the label element
2. next sibling of the label element's parent
3. a later cell in the label's row, before the next label
4. full-document text scan (most false-positive prone, so last)

A missing selector is a failed strategy, never an error.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from decimal import Decimal

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

from twstocks.services.scraping.normalizer import normalize_decimal, normalize_integer


Strategy = Callable[[BeautifulSoup, str], "str | None"]

# Elements that may carry a field label
LABEL_TAGS = ["td", "th", "dt", "div", "span", "li"]

# Text inside these never holds a displayed value
_IGNORED_PARENTS = {"script", "style", "title", "head", "noscript"}

# Following text nodes inspected when the label node itself has no value
_LOOKAHEAD_NODES = 3

# Two or more ideographs without a number: another field's label
_CJK_WORD = re.compile(r"[\u4e00-\u9fff]{2,}")


def parse_document(html: str) -> BeautifulSoup:
    """Parse raw HTML into a searchable document."""
    return BeautifulSoup(html, "html.parser")


def _text(element: Tag) -> str:
    return element.get_text(strip=True)


def _parses(text: str | None) -> bool:
    return bool(text) and normalize_decimal(text) is not None


def _is_label_text(text: str) -> bool:
    return bool(_CJK_WORD.search(text)) and not _parses(text)


def _holds_label(element: Tag) -> bool:
    """Whether the element or one of its parts reads as a field label."""
    parts = [element, *element.find_all(LABEL_TAGS)]
    return any(_is_label_text(_text(part)) for part in parts)


def find_label_elements(document: BeautifulSoup, label: str) -> list[Tag]:
    """Innermost label-bearing elements whose text contains ``label``, in document order."""
    matches = [el for el in document.find_all(LABEL_TAGS) if label in el.get_text()]
    return [
        el
        for el in matches
        if not any(label in child.get_text() for child in el.find_all(LABEL_TAGS))
    ]


# =============================================================================
# STRATEGIES
# =============================================================================


def next_sibling_strategy(document: BeautifulSoup, label: str) -> str | None:
    """Value in the element right after the label element."""
    for element in find_label_elements(document, label):
        sibling = element.find_next_sibling()
        if sibling is not None and _parses(_text(sibling)):
            return _text(sibling)
    return None


def parent_sibling_strategy(document: BeautifulSoup, label: str) -> str | None:
    """Value in the element right after the label's parent.

    A sibling carrying a label of its own belongs to another field.
    """
    for element in find_label_elements(document, label):
        parent = element.parent
        if not isinstance(parent, Tag) or parent is document:
            continue
        sibling = parent.find_next_sibling()
        if sibling is None or _holds_label(sibling):
            continue
        if _parses(_text(sibling)):
            return _text(sibling)
    return None


def _cells_after(cells: list[Tag], element: Tag) -> list[Tag]:
    for index, cell in enumerate(cells):
        if cell is element or any(parent is cell for parent in element.parents):
            return cells[index + 1:]
    return cells


def row_cells_strategy(document: BeautifulSoup, label: str) -> str | None:
    """First parseable cell after the label in its row, up to the next label."""
    for element in find_label_elements(document, label):
        row = element.find_parent("tr")
        if row is not None:
            cells = row.find_all(["td", "th"])
        elif isinstance(element.parent, Tag) and element.parent is not document:
            cells = element.parent.find_all(True, recursive=False)
        else:
            continue

        for cell in _cells_after(cells, element):
            if label in cell.get_text():
                continue
            if _holds_label(cell):
                break
            if _parses(_text(cell)):
                return _text(cell)
    return None


def _text_nodes(document: BeautifulSoup) -> Iterator[NavigableString]:
    for node in document.find_all(string=True):
        if isinstance(node, (Comment, Doctype)):
            continue
        if node.parent is not None and node.parent.name in _IGNORED_PARENTS:
            continue
        yield node


def full_text_strategy(document: BeautifulSoup, label: str) -> str | None:
    """Split every text node on the label and parse what follows it."""
    for node in _text_nodes(document):
        if label not in node:
            continue

        for part in str(node).split(label)[1:]:
            if _parses(part):
                return part

        # Label alone in its node: the value usually sits in the next nodes,
        # unless another label comes first
        for following in node.find_all_next(string=True, limit=_LOOKAHEAD_NODES):
            if isinstance(following, (Comment, Doctype)) or label in following:
                continue
            if _is_label_text(following):
                break
            if _parses(following):
                return str(following)
    return None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    next_sibling_strategy,
    parent_sibling_strategy,
    row_cells_strategy,
    full_text_strategy,
)


# =============================================================================
# PUBLIC API
# =============================================================================


def extract(
    document: BeautifulSoup,
    label: str,
    strategies: tuple[Strategy, ...] = DEFAULT_STRATEGIES,
) -> str | None:
    """Raw text of the first strategy that yields a parseable value for ``label``."""
    for strategy in strategies:
        text = strategy(document, label)
        if text is not None:
            return text
    return None


def extract_decimal(document: BeautifulSoup, label: str) -> Decimal | None:
    """Extract and normalize a decimal field; None when the page withholds it."""
    return normalize_decimal(extract(document, label))


def extract_integer(document: BeautifulSoup, label: str) -> int | None:
    """Extract and normalize an integer field; None when the page withholds it."""
    return normalize_integer(extract(document, label))
