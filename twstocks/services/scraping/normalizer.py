"""Numeric normalization for scraped text.

Turns the raw text of a table cell or label fragment into an exact
``Decimal`` (or ``int``). Handles the formats Taiwanese quote pages use:

- thousands separators and currency marks: ``"NT$1,234.5"`` -> ``1234.5``
- percent values: ``"12.3%"`` -> ``12.3``
- CJK magnitude words: ``"1.5億"`` -> ``150000000``
- values buried in surrounding text: ``"約 15.5 倍"`` -> ``15.5``

Every function returns ``None`` instead of raising; ``None`` means the value
is unknown and must never be read as zero.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


# Characters removed before any parse attempt
_STRIP_TOKENS = ("NT$", "$", "元", ",", "，", "%", "％", "：", ":")
_BRACKETS = "()[]（）【】"
_WHITESPACE = re.compile(r"\s+")

# Strict decimal literal: no exponent, no NaN/Infinity
_DECIMAL_LITERAL = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)$")
# First signed decimal-looking substring
_DECIMAL_SUBSTRING = re.compile(r"[-+]?\d*\.?\d+")

CJK_MAGNITUDES: dict[str, Decimal] = {
    "億": Decimal("100000000"),
    "萬": Decimal("10000"),
    "万": Decimal("10000"),
    "千": Decimal("1000"),
    "百": Decimal("100"),
    "十": Decimal("10"),
}

_NUMBER = r"\d+(?:\.\d+)?"
_UNITS = "".join(CJK_MAGNITUDES)
# Whole token made of <number><unit> groups plus an optional bare tail number
_MAGNITUDE_TOKEN = re.compile(
    rf"^(?P<sign>[-+]?)(?P<groups>(?:{_NUMBER}[{_UNITS}]+)+)(?P<tail>{_NUMBER})?$"
)
# Stacked units multiply: 百萬 is 10^2 * 10^4
_MAGNITUDE_GROUP = re.compile(rf"({_NUMBER})([{_UNITS}]+)")


def clean_numeric_text(text: str) -> str:
    """Remove separators, currency and percent marks, brackets and whitespace."""
    for token in _STRIP_TOKENS:
        text = text.replace(token, "")
    text = text.translate({ord(c): None for c in _BRACKETS})
    return _WHITESPACE.sub("", text)


def _parse_literal(text: str) -> Decimal | None:
    if not _DECIMAL_LITERAL.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_cjk_magnitude(text: str) -> Decimal | None:
    """Parse a token such as ``1.5億``, ``3億5000萬`` or ``12百萬``.

    The whole token must consist of number+unit groups; magnitude characters
    that are not attached to a number make the token unparseable here.
    """
    match = _MAGNITUDE_TOKEN.match(text)
    if not match:
        return None

    total = Decimal(0)
    for number, units in _MAGNITUDE_GROUP.findall(match.group("groups")):
        value = Decimal(number)
        for unit in units:
            value *= CJK_MAGNITUDES[unit]
        total += value
    if match.group("tail"):
        total += Decimal(match.group("tail"))

    return -total if match.group("sign") == "-" else total


def normalize_decimal(text: str | None) -> Decimal | None:
    """Convert scraped text into an exact Decimal, or None when unparseable."""
    if text is None:
        return None

    cleaned = clean_numeric_text(text)
    if not cleaned:
        return None

    value = _parse_literal(cleaned)
    if value is not None:
        return value

    value = parse_cjk_magnitude(cleaned)
    if value is not None:
        return value

    match = _DECIMAL_SUBSTRING.search(cleaned)
    if match:
        value = _parse_literal(match.group(0))
        if value is not None:
            return value

    # Last resort: whitespace tokens of the original text
    for word in text.split():
        value = _parse_literal(word.strip("".join(_STRIP_TOKENS) + _BRACKETS))
        if value is not None:
            return value

    return None


def normalize_integer(text: str | None) -> int | None:
    """Normalize to an integer, rounding half up when a fraction is present."""
    value = normalize_decimal(text)
    if value is None:
        return None
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))
