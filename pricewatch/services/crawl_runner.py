"""
Batch Crawl Runner.

Crawls product pages in fixed-size concurrent batches. Pages of a batch are
fetched on the event loop; once the batch resolves, every page is parsed and
persisted sequentially from the calling thread.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from django.conf import settings
from django.db import DatabaseError

from pricewatch.fetchers import FetchError, FetchTimeout, ResourceFetcher
from pricewatch.models import FailureType
from pricewatch.monitoring import capture_crawl_error

from .page_extractor import ExtractedProduct, ExtractionError, PageExtractor
from .product_store import PageFailure, ProductStore

logger = logging.getLogger(__name__)


@dataclass
class PageOutcome:
    """Result of fetching and extracting one page, before persistence."""

    url: str
    html: Optional[str] = None
    status_code: Optional[int] = None
    extracted: Optional[ExtractedProduct] = None
    failure: Optional[PageFailure] = None


@dataclass
class CrawlRunStats:
    """Counts for one call of BatchCrawlRunner.run()."""

    queued: int = 0
    succeeded: int = 0
    failed: int = 0
    not_found: int = 0
    batches: int = 0
    failures_by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def count_failure(self, error_type: str) -> None:
        self.failed += 1
        self.failures_by_type[error_type] = self.failures_by_type.get(error_type, 0) + 1


class BatchCrawlRunner:
    """
    Fetches, extracts and persists a queue of product URLs.
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        loop: asyncio.AbstractEventLoop,
        extractor: Optional[PageExtractor] = None,
        store: Optional[ProductStore] = None,
        concurrency: Optional[int] = None,
        delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            fetcher: Shared ResourceFetcher of the run
            loop: Event loop of the run
            extractor: Page extractor (default strategies if omitted)
            store: Persistence store
            concurrency: Pages fetched at once (default CRAWLER_PAGE_CONCURRENCY)
            delay: Seconds between batches (default CRAWLER_PAGE_DELAY)
            timeout: Per-page timeout (default CRAWLER_PAGE_TIMEOUT)
        """
        self.fetcher = fetcher
        self.loop = loop
        self.extractor = extractor or PageExtractor()
        self.store = store or ProductStore()
        self.concurrency = concurrency or getattr(settings, "CRAWLER_PAGE_CONCURRENCY", 200)
        self.delay = delay if delay is not None else getattr(settings, "CRAWLER_PAGE_DELAY", 0.6)
        self.timeout = timeout or getattr(settings, "CRAWLER_PAGE_TIMEOUT", 40)

    def run(self, urls: Sequence[str]) -> CrawlRunStats:
        """
        Crawl ``urls`` in order.

        Returns:
            CrawlRunStats for the whole queue
        """
        urls = list(urls)
        stats = CrawlRunStats(queued=len(urls))
        total_batches = (len(urls) + self.concurrency - 1) // self.concurrency

        logger.info(f"Crawling {len(urls)} pages in {total_batches} batches of {self.concurrency}")

        for offset in range(0, len(urls), self.concurrency):
            if offset and self.delay:
                time.sleep(self.delay)

            batch = urls[offset:offset + self.concurrency]
            outcomes = self.loop.run_until_complete(self._fetch_batch(batch))

            for outcome in outcomes:
                self._extract(outcome)
                self._persist(outcome, stats)

            stats.batches += 1
            logger.info(
                f"Batch {stats.batches}/{total_batches}: "
                f"{stats.succeeded} succeeded, {stats.failed} failed so far"
            )

        return stats

    async def _fetch_batch(self, urls: Sequence[str]) -> List[PageOutcome]:
        return await asyncio.gather(*[self._fetch_page(url) for url in urls])

    async def _fetch_page(self, url: str) -> PageOutcome:
        try:
            response = await self.fetcher.get(url, timeout=self.timeout)
        except FetchTimeout as e:
            return PageOutcome(url, failure=PageFailure(FailureType.TIMEOUT, str(e)))
        except FetchError as e:
            return PageOutcome(url, failure=PageFailure(FailureType.CONNECTION, str(e)))

        if not response.ok:
            return PageOutcome(url, failure=ProductStore.failure_from_status(response.status_code))

        return PageOutcome(url, html=response.text, status_code=response.status_code)

    def _extract(self, outcome: PageOutcome) -> None:
        """Parse a fetched page in place; pages that already failed are left alone."""
        if outcome.failure is not None:
            return

        try:
            outcome.extracted = self.extractor.extract(outcome.html, url=outcome.url)
        except ExtractionError as e:
            outcome.failure = PageFailure(FailureType.PARSE, str(e), status_code=outcome.status_code)
            return
        finally:
            outcome.html = None

        if not outcome.extracted.has_price:
            outcome.failure = PageFailure(FailureType.NO_PRICE, "No price found on page")

    def _persist(self, outcome: PageOutcome, stats: CrawlRunStats) -> None:
        try:
            if outcome.failure is None:
                self.store.record_success(outcome.url, outcome.extracted)
                stats.succeeded += 1
                return

            self.store.record_failure(outcome.url, outcome.failure)
        except DatabaseError as e:
            logger.error(f"Failed to persist result for {outcome.url}: {e}")
            capture_crawl_error(e, url=outcome.url, stage="persist")
            stats.count_failure(FailureType.UNKNOWN)
            return

        stats.count_failure(outcome.failure.error_type)
        if outcome.failure.is_not_found:
            stats.not_found += 1
        logger.warning(f"Failed {outcome.url}: {outcome.failure.error_type} {outcome.failure.message}")
