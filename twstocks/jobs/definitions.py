"""Built-in job definitions.

Jobs:
- prices_daily: Full ingestion cycle (weekdays after the TWSE close)
- stocks_sync: Refresh the stock table from the listing page
"""

from __future__ import annotations

from twstocks.core.exceptions import FetchError, PersistenceError
from twstocks.core.logging import get_logger
from twstocks.domain.stock import Stock
from twstocks.repositories.persister import SqlPersister
from twstocks.services.data_providers.fetcher import FetchFailure, PageFetcher
from twstocks.services.data_providers.twse import TwseQuoteSource
from twstocks.services.ingestion import IngestionConfig, IngestionOrchestrator

from .registry import register_job


logger = get_logger("jobs.definitions")


# =============================================================================
# PRICES DAILY - Ingestion cycle
# =============================================================================


@register_job("prices_daily")
async def prices_daily_job() -> str:
    """
    Ingest today's quotes, fundamentals and institutional flows.

    Stocks come from STOCK_CODES, or from the listing page when unset.
    Per-stock failures are reported in the summary, never raised.

    Schedule: Mon-Fri 14:30 Asia/Taipei
    """
    async with PageFetcher() as fetcher:
        orchestrator = IngestionOrchestrator(
            fetcher=fetcher,
            source=TwseQuoteSource(),
            persister=SqlPersister(),
            config=IngestionConfig.from_settings(),
        )
        summary = await orchestrator.run_cycle()

    return str(summary)


# =============================================================================
# STOCKS SYNC - Listing refresh
# =============================================================================


@register_job("stocks_sync")
async def stocks_sync_job() -> str:
    """
    Upsert every stock found on the listing page.

    Schedule: Weekly
    """
    source = TwseQuoteSource()
    persister = SqlPersister()

    async with PageFetcher() as fetcher:
        page = await fetcher.fetch(source.listing_url())

    if isinstance(page, FetchFailure):
        raise FetchError(
            "Stock listing unavailable",
            details={"url": page.url, "reason": page.reason.value, "detail": page.detail},
        )

    listings = source.parse_listing(page.text)
    synced = 0
    for listing in listings:
        try:
            await persister.upsert_stock(Stock(code=listing.code, name=listing.name))
            synced += 1
        except PersistenceError as e:
            logger.warning(f"Failed to sync stock {listing.code}: {e.message}")

    return f"Synced {synced}/{len(listings)} stocks"
