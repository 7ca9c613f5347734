"""
HTTP page fetcher.

Retrieves raw HTML from source sites with browser-like headers and a bounded
timeout. Failures come back as a ``FetchFailure`` value and never raise into
the caller, so a broken page costs one stock (or one optional field), not the
cycle.

Hardening is opt-in through settings:
- ``fetch_max_attempts`` > 1 retries transport errors and timeouts with
  exponential backoff
- a circuit breaker per host fails fast after consecutive failures
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping
from urllib.parse import urlsplit

import httpx
from bs4.dammit import EncodingDetector

from twstocks.core.config import settings
from twstocks.core.logging import get_logger
from twstocks.services.data_providers.resilience import (
    CircuitOpenError,
    CircuitRegistry,
    RetryExhaustedError,
    retry_async,
)


logger = get_logger("fetcher")


class FetchFailureReason(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    CIRCUIT_OPEN = "circuit_open"


@dataclass(frozen=True)
class RawBody:
    """A successfully fetched page."""

    url: str
    status_code: int
    text: str


@dataclass(frozen=True)
class FetchFailure:
    """Why a page could not be fetched."""

    url: str
    reason: FetchFailureReason
    detail: str
    status_code: int | None = None


FetchResult = RawBody | FetchFailure


def default_headers(user_agent: str | None = None, accept_language: str | None = None) -> dict[str, str]:
    """Headers of an ordinary desktop browser visit."""
    return {
        "User-Agent": user_agent or settings.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": accept_language or settings.accept_language,
    }


def decode_body(response: httpx.Response) -> str:
    """
    Response text in the page's own encoding.

    A charset in the Content-Type header wins. Otherwise the encoding declared
    in the markup (``<meta charset="big5">``) is used, falling back to UTF-8.
    """
    if response.charset_encoding or not response.content:
        return response.text
    declared = EncodingDetector.find_declared_encoding(response.content, is_html=True)
    if not declared:
        return response.text
    try:
        return response.content.decode(declared, errors="replace")
    except LookupError:
        logger.warning(f"Unknown page encoding {declared!r}: {response.url}")
        return response.text


class PageFetcher:
    """
    Fetches source pages over a shared ``httpx.AsyncClient``.

    Usage:
        async with PageFetcher() as fetcher:
            result = await fetcher.fetch("https://www.twse.com.tw/...")
            if isinstance(result, RawBody):
                ...
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        circuits: CircuitRegistry | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        self._timeout = timeout if timeout is not None else settings.fetch_timeout
        self._max_attempts = max_attempts or settings.fetch_max_attempts
        self._retry_delay = retry_delay if retry_delay is not None else settings.fetch_retry_delay
        self._circuits = circuits or CircuitRegistry(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=settings.circuit_recovery_timeout,
        )
        self._headers = dict(headers) if headers is not None else default_headers()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def circuits(self) -> CircuitRegistry:
        return self._circuits

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> FetchResult:
        """
        Fetch one page.

        Args:
            url: Absolute page URL
            headers: Extra headers merged over the browser defaults
            timeout: Per-request timeout override in seconds

        Returns:
            RawBody on a 2xx response, FetchFailure otherwise
        """
        host = urlsplit(url).netloc or url
        breaker = self._circuits.get(host)

        try:
            await breaker.guard()
        except CircuitOpenError as e:
            return self._failure(url, FetchFailureReason.CIRCUIT_OPEN, str(e))

        merged = {**self._headers, **(headers or {})}
        request_timeout = httpx.Timeout(timeout if timeout is not None else self._timeout)

        async def _get() -> httpx.Response:
            return await self._client.get(url, headers=merged, timeout=request_timeout)

        try:
            response = await retry_async(
                _get,
                max_attempts=self._max_attempts,
                base_delay=self._retry_delay,
                retry_on=(httpx.TransportError,),
            )
        except RetryExhaustedError as e:
            breaker.record_failure(e.last_error)
            if isinstance(e.last_error, httpx.TimeoutException):
                return self._failure(url, FetchFailureReason.TIMEOUT, str(e.last_error) or "timed out")
            return self._failure(url, FetchFailureReason.TRANSPORT, str(e.last_error))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            breaker.record_failure(e)
            return self._failure(url, FetchFailureReason.TRANSPORT, str(e))

        if not response.is_success:
            # Only server errors count against the host
            if response.status_code >= 500:
                breaker.record_failure()
            return self._failure(
                url,
                FetchFailureReason.HTTP_STATUS,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        breaker.record_success()
        return RawBody(url=url, status_code=response.status_code, text=decode_body(response))

    @staticmethod
    def _failure(
        url: str,
        reason: FetchFailureReason,
        detail: str,
        status_code: int | None = None,
    ) -> FetchFailure:
        logger.warning(
            f"Fetch failed ({reason.value}): {url}",
            extra={"extra_fields": {"url": url, "reason": reason.value, "detail": detail}},
        )
        return FetchFailure(url=url, reason=reason, detail=detail, status_code=status_code)
