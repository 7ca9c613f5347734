"""
Ingestion cycle orchestration.

One cycle resolves the target stocks, then runs every stock through

    pending -> fetching -> extracting -> building -> persisting -> done

A stock leaves the chain for ``skipped`` on any non-fatal failure (required
page unavailable, no quotes extracted, storage error, deadline). Failures are
logged as structured events and never stop the other stocks.

Usage:
    async with PageFetcher() as fetcher:
        orchestrator = IngestionOrchestrator(
            fetcher=fetcher,
            source=TwseQuoteSource(),
            persister=SqlPersister(),
            config=IngestionConfig.from_settings(),
        )
        summary = await orchestrator.run_cycle()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

from twstocks.core.config import Settings, settings as default_settings
from twstocks.core.exceptions import AppException, ExtractionError, FetchError
from twstocks.core.logging import cycle_id_var, get_logger, log_event
from twstocks.domain.quotes import Fundamentals, InstitutionalFlow, StockListing
from twstocks.domain.stock import Stock
from twstocks.repositories.persister import Persister
from twstocks.services.data_providers.base import QuoteSource
from twstocks.services.data_providers.fetcher import FetchFailure, FetchResult
from twstocks.services.price_builder import build_price_batch


logger = get_logger("services.ingestion")

# Exchange calendar day
TAIPEI = timezone(timedelta(hours=8))


def taipei_today() -> date:
    return datetime.now(TAIPEI).date()


class Fetcher(Protocol):
    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> FetchResult:
        ...


@dataclass(frozen=True)
class IngestionConfig:
    """Crawl settings for one orchestrator; read once, never from globals mid-cycle."""

    stock_codes: tuple[str, ...] = ()
    max_listing_stocks: int = 50
    max_concurrency: int = 1
    request_delay: float = 1.0
    stock_timeout: float = 120.0

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "IngestionConfig":
        config = config or default_settings
        return cls(
            stock_codes=tuple(config.stock_codes),
            max_listing_stocks=config.max_listing_stocks,
            max_concurrency=config.max_concurrency,
            request_delay=config.request_delay,
            stock_timeout=config.stock_timeout,
        )


class StockIngestState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    BUILDING = "building"
    PERSISTING = "persisting"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass
class StockIngestResult:
    """Outcome of one stock in one cycle."""

    code: str
    state: StockIngestState = StockIngestState.PENDING
    stock_id: uuid.UUID | None = None
    records_written: int = 0
    failed_step: StockIngestState | None = None
    error_code: str | None = None
    error: str | None = None
    # Optional pages that were unavailable; their fields stay unknown
    missing: list[str] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        return self.state == StockIngestState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "state": self.state.value,
            "stock_id": str(self.stock_id) if self.stock_id else None,
            "records_written": self.records_written,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "error_code": self.error_code,
            "error": self.error,
            "missing": self.missing,
        }


@dataclass
class IngestionSummary:
    """Outcome of a whole cycle."""

    cycle_id: str
    started_at: datetime
    finished_at: datetime | None = None
    results: list[StockIngestResult] = field(default_factory=list)

    @property
    def done(self) -> int:
        return sum(1 for r in self.results if r.state == StockIngestState.DONE)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.state == StockIngestState.SKIPPED)

    @property
    def records_written(self) -> int:
        return sum(r.records_written for r in self.results)

    def result_for(self, code: str) -> StockIngestResult | None:
        return next((r for r in self.results if r.code == code), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stocks": len(self.results),
            "done": self.done,
            "skipped": self.skipped,
            "records_written": self.records_written,
        }

    def __str__(self) -> str:
        return (
            f"{len(self.results)} stocks: {self.done} done, {self.skipped} skipped, "
            f"{self.records_written} records written"
        )


class IngestionOrchestrator:
    """Runs ingestion cycles over a quote source into a persister."""

    def __init__(
        self,
        fetcher: Fetcher,
        source: QuoteSource,
        persister: Persister,
        config: IngestionConfig | None = None,
        today: Callable[[], date] = taipei_today,
    ):
        self._fetcher = fetcher
        self._source = source
        self._persister = persister
        self._config = config or IngestionConfig()
        self._today = today

    # -------------------------------------------------------------------------
    # Targets
    # -------------------------------------------------------------------------

    async def resolve_targets(self) -> list[StockListing]:
        """Stocks for this cycle: configured codes, else the listing page."""
        codes = self._config.stock_codes
        listing = await self._fetch_listing()

        if not codes:
            return listing[: self._config.max_listing_stocks]

        # Configured codes take their display name from the listing when it is reachable
        names = {item.code: item.name for item in listing}
        return [StockListing(code=code, name=names.get(code)) for code in dict.fromkeys(codes)]

    async def _fetch_listing(self) -> list[StockListing]:
        page = await self._fetcher.fetch(self._source.listing_url())
        if isinstance(page, FetchFailure):
            log_event(
                logger,
                logging.ERROR,
                "Stock listing unavailable",
                event="listing_unavailable",
                reason=page.reason.value,
                detail=page.detail,
            )
            return []

        try:
            return self._source.parse_listing(page.text)
        except Exception as e:
            logger.exception(f"Failed to parse stock listing: {e}")
            return []

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    async def run_cycle(self, targets: Sequence[StockListing] | None = None) -> IngestionSummary:
        """Ingest every target stock once and report per-stock outcomes."""
        cycle_id = uuid.uuid4().hex
        token = cycle_id_var.set(cycle_id)
        summary = IngestionSummary(cycle_id=cycle_id, started_at=datetime.now(timezone.utc))

        try:
            stocks = list(targets) if targets is not None else await self.resolve_targets()
            log_event(
                logger,
                logging.INFO,
                f"Ingestion cycle started for {len(stocks)} stocks",
                event="cycle_started",
                stocks=len(stocks),
                concurrency=self._config.max_concurrency,
            )

            semaphore = asyncio.Semaphore(max(1, self._config.max_concurrency))
            last_index = len(stocks) - 1

            async def _run(index: int, listing: StockListing) -> StockIngestResult:
                async with semaphore:
                    result = await self.ingest_stock(listing)
                    # Courtesy delay holds the slot so each worker paces its own requests
                    if self._config.request_delay > 0 and index < last_index:
                        await asyncio.sleep(self._config.request_delay)
                    return result

            summary.results = list(
                await asyncio.gather(*(_run(i, listing) for i, listing in enumerate(stocks)))
            )
        finally:
            summary.finished_at = datetime.now(timezone.utc)
            log_event(logger, logging.INFO, "Ingestion cycle finished", event="cycle_finished", **summary.to_dict())
            cycle_id_var.reset(token)

        return summary

    async def ingest_stock(self, listing: StockListing) -> StockIngestResult:
        """Run one stock through the pipeline; never raises."""
        result = StockIngestResult(code=listing.code)

        try:
            await asyncio.wait_for(self._pipeline(listing, result), timeout=self._config.stock_timeout)
        except asyncio.TimeoutError:
            self._skip(
                result,
                "STOCK_TIMEOUT",
                f"Stock pipeline exceeded {self._config.stock_timeout:.0f}s",
            )
        except AppException as e:
            self._skip(result, e.error_code, e.message, e.details)
        except Exception as e:
            logger.exception(f"Unexpected failure ingesting {listing.code}")
            self._skip(result, "INTERNAL_ERROR", str(e))

        return result

    async def _pipeline(self, listing: StockListing, result: StockIngestResult) -> None:
        code = listing.code

        result.state = StockIngestState.FETCHING
        daily_page = await self._fetcher.fetch(self._source.daily_url(code, self._today()))
        if isinstance(daily_page, FetchFailure):
            raise FetchError(
                f"Daily quotes unavailable for {code}",
                details={"url": daily_page.url, "reason": daily_page.reason.value, "detail": daily_page.detail},
            )

        headers = self._source.detail_headers()
        detail_page = await self._fetcher.fetch(self._source.detail_url(code), headers=headers)
        flows_page = await self._fetcher.fetch(self._source.institutional_url(code), headers=headers)

        result.state = StockIngestState.EXTRACTING
        quotes = self._source.parse_daily(daily_page.text)
        if not quotes:
            raise ExtractionError(
                f"No daily quotes extracted for {code}",
                details={"url": daily_page.url},
            )

        fundamentals: Fundamentals | None = None
        if isinstance(detail_page, FetchFailure):
            result.missing.append("fundamentals")
        else:
            fundamentals = self._source.parse_detail(detail_page.text)

        flows: dict[date, InstitutionalFlow] = {}
        if isinstance(flows_page, FetchFailure):
            result.missing.append("institutional")
        else:
            flows = self._source.parse_institutional(flows_page.text)

        result.state = StockIngestState.BUILDING
        # Only a stock with quotes counts as observed; an unseen name never replaces a stored one
        stock = await self._persister.upsert_stock(
            Stock(code=code, name=listing.name or code),
            refresh_name=listing.name is not None,
        )
        result.stock_id = stock.id
        records = build_price_batch(stock.id, quotes, fundamentals, flows)

        result.state = StockIngestState.PERSISTING
        # Rows before the latest stored day keep the values observed back then
        latest = await self._persister.latest_price_date(stock.id)
        if latest is not None:
            records = [r for r in records if r.date >= latest]
        result.records_written = await self._persister.upsert_prices(records)

        result.state = StockIngestState.DONE
        log_event(
            logger,
            logging.INFO,
            f"Ingested {code}",
            event="stock_done",
            code=code,
            quotes=len(quotes),
            records_written=result.records_written,
            missing=result.missing,
        )

    @staticmethod
    def _skip(
        result: StockIngestResult,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        result.failed_step = result.state
        result.state = StockIngestState.SKIPPED
        result.error_code = error_code
        result.error = message
        fields = {
            **(details or {}),
            "event": "stock_skipped",
            "code": result.code,
            "step": result.failed_step.value,
            "error_code": error_code,
        }
        log_event(logger, logging.WARNING, f"Skipped {result.code}: {message}", **fields)
