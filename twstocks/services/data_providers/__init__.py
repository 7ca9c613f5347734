"""Data providers - page fetching and source parsing."""

from .base import QuoteSource
from .fetcher import FetchFailure, FetchFailureReason, FetchResult, PageFetcher, RawBody
from .twse import TwseQuoteSource


__all__ = [
    "FetchFailure",
    "FetchFailureReason",
    "FetchResult",
    "PageFetcher",
    "QuoteSource",
    "RawBody",
    "TwseQuoteSource",
]
