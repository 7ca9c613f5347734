"""HTML value extraction and numeric normalization."""

from .extractor import extract, extract_decimal, extract_integer, parse_document
from .normalizer import normalize_decimal, normalize_integer


__all__ = [
    "extract",
    "extract_decimal",
    "extract_integer",
    "normalize_decimal",
    "normalize_integer",
    "parse_document",
]
