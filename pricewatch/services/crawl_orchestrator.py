"""
Crawl Orchestrator.

Selects the URLs for a crawl mode, drives the components of one run and
produces the run summary.

Modes:
- weekly: discover URLs from the current sitemap window, plus known 404s
- daily: refresh every product that is not marked 404
- from-db: re-crawl every product in the store

Each run owns one event loop and one ResourceFetcher; both are closed when
the run ends, whatever the outcome.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from pricewatch.fetchers import ResourceFetcher
from pricewatch.models import PriceRecord, Product, ProductStatus
from pricewatch.monitoring import check_run_error_rate

from .crawl_runner import BatchCrawlRunner
from .local_sitemap_cache import LocalSitemapCache
from .progress_tracker import CrawlProgressTracker
from .sitemap_batch_fetcher import SubSitemapBatchFetcher
from .sitemap_resolver import SitemapIndexResolver
from .url_reconciler import UrlReconciler

logger = logging.getLogger(__name__)


class CrawlMode:
    WEEKLY = "weekly"
    DAILY = "daily"
    FROM_DB = "from-db"

    CHOICES = [WEEKLY, DAILY, FROM_DB]


@dataclass
class CrawlRunSummary:
    """
    Everything worth knowing about one run.
    """

    mode: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    aborted: bool = False
    abort_reason: str = ""

    # Sitemap stage (weekly mode only)
    window: Optional[str] = None
    sub_sitemaps_total: int = 0
    sitemaps_processed: int = 0
    sitemaps_failed: int = 0
    sitemaps_from_cache: int = 0
    sitemaps_retried: int = 0
    sitemaps_recovered: int = 0
    sitemaps_still_empty: int = 0
    index_unchanged: bool = False

    # Reconciliation
    discovered: int = 0
    reconciliation: Dict[str, int] = field(default_factory=dict)
    queued: int = 0
    truncated: int = 0

    # Page crawl
    succeeded: int = 0
    failed: int = 0
    not_found: int = 0
    failures_by_type: Dict[str, int] = field(default_factory=dict)

    # Store totals after the run
    total_products: int = 0
    total_prices: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    @property
    def error_rate(self) -> float:
        return round(self.failed / self.processed, 4) if self.processed else 0.0

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def abort(self, reason: str) -> "CrawlRunSummary":
        self.aborted = True
        self.abort_reason = reason
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        data["failures_by_type"] = {str(k): v for k, v in self.failures_by_type.items()}
        data["error_rate"] = self.error_rate
        data["duration_seconds"] = self.duration_seconds
        return data


class CrawlOrchestrator:
    """
    Runs one crawl in the requested mode.
    """

    def __init__(
        self,
        sitemap_url: Optional[str] = None,
        max_sitemaps: Optional[int] = None,
        max_products: Optional[int] = None,
        page_concurrency: Optional[int] = None,
        sitemap_concurrency: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            sitemap_url: Top-level sitemap (default CRAWLER_SITEMAP_URL)
            max_sitemaps: Sub-sitemaps per run, 0 = all (default CRAWLER_MAX_SITEMAPS_PER_RUN)
            max_products: Pages per run, 0 = all (default CRAWLER_MAX_PRODUCTS_PER_RUN)
            page_concurrency: Pages fetched at once
            sitemap_concurrency: Sub-sitemaps fetched at once
            transport: httpx transport for the run's fetcher (tests)
        """
        self.sitemap_url = sitemap_url or getattr(settings, "CRAWLER_SITEMAP_URL")
        self.max_sitemaps = max_sitemaps
        self.max_products = (
            max_products
            if max_products is not None
            else getattr(settings, "CRAWLER_MAX_PRODUCTS_PER_RUN", 0)
        )
        self.page_concurrency = page_concurrency
        self.sitemap_concurrency = sitemap_concurrency
        self.transport = transport

    def run(self, mode: str = CrawlMode.WEEKLY) -> CrawlRunSummary:
        """
        Run one crawl.

        Returns:
            CrawlRunSummary; ``aborted`` is set when the sitemap index could
            not be resolved and nothing was crawled
        """
        if mode not in CrawlMode.CHOICES:
            raise ValueError(f"Unknown crawl mode: {mode}")

        summary = CrawlRunSummary(mode=mode, started_at=timezone.now())
        logger.info(f"Starting {mode} crawl")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        fetcher = ResourceFetcher(transport=self.transport)

        try:
            if mode == CrawlMode.WEEKLY:
                urls, retry_urls = self._discover(fetcher, loop, summary)
            elif mode == CrawlMode.DAILY:
                urls, retry_urls = self._active_products(), []
            else:
                urls, retry_urls = self._all_products(), []

            if not summary.aborted:
                self._crawl(urls, retry_urls, fetcher, loop, summary)
        finally:
            loop.run_until_complete(fetcher.close())
            loop.close()
            asyncio.set_event_loop(None)

        summary.finished_at = timezone.now()
        summary.total_products = Product.objects.count()
        summary.total_prices = PriceRecord.objects.count()

        self._log_summary(summary)
        if not summary.aborted:
            check_run_error_rate(summary)

        return summary

    def _discover(
        self,
        fetcher: ResourceFetcher,
        loop: asyncio.AbstractEventLoop,
        summary: CrawlRunSummary,
    ) -> Tuple[List[str], List[str]]:
        cache = LocalSitemapCache()
        resolver = SitemapIndexResolver(fetcher, loop, index_url=self.sitemap_url, cache=cache)

        resolved = resolver.resolve()
        if resolved is None:
            summary.abort("sitemap index unavailable")
            return [], []

        summary.index_unchanged = resolved.unchanged

        if resolved.is_urlset:
            discovered = resolved.direct_urls
            resolver.mark_synced(resolved, failures=0)
        else:
            tracker = CrawlProgressTracker(self.max_sitemaps)
            cursor = tracker.load(len(resolved.sub_sitemaps))
            window = tracker.window(cursor)

            batch_fetcher = SubSitemapBatchFetcher(
                fetcher,
                loop,
                site_root=resolved.index_url,
                cache=cache,
                concurrency=self.sitemap_concurrency,
            )
            batch = batch_fetcher.fetch_window(
                resolved.sub_sitemaps, window, prefer_local=resolved.unchanged
            )

            resolver.mark_synced(resolved, batch.failed)
            tracker.advance(cursor, window)

            summary.window = str(window)
            summary.sub_sitemaps_total = window.total
            summary.sitemaps_processed = batch.processed
            summary.sitemaps_failed = batch.failed
            summary.sitemaps_from_cache = batch.from_cache
            summary.sitemaps_retried = batch.retried
            summary.sitemaps_recovered = batch.recovered
            summary.sitemaps_still_empty = batch.still_empty
            discovered = batch.urls

        summary.discovered = len(discovered)
        return discovered, UrlReconciler().collect_retry_urls()

    def _crawl(
        self,
        urls: List[str],
        retry_urls: List[str],
        fetcher: ResourceFetcher,
        loop: asyncio.AbstractEventLoop,
        summary: CrawlRunSummary,
    ) -> None:
        if summary.mode != CrawlMode.WEEKLY:
            summary.discovered = len(urls)

        queue = UrlReconciler().reconcile(urls, retry_urls)
        summary.truncated = queue.truncate(self.max_products)
        summary.reconciliation = queue.to_dict()
        summary.queued = len(queue)

        if summary.truncated:
            logger.info(f"Queue limited to {len(queue)} pages ({summary.truncated} left for later runs)")

        runner = BatchCrawlRunner(fetcher, loop, concurrency=self.page_concurrency)
        stats = runner.run(queue.urls)

        summary.succeeded = stats.succeeded
        summary.failed = stats.failed
        summary.not_found = stats.not_found
        summary.failures_by_type = stats.failures_by_type

    def _active_products(self) -> List[str]:
        return list(
            Product.objects.exclude(status=ProductStatus.NOT_FOUND)
            .order_by(F("last_scraped").asc(nulls_first=True), "id")
            .values_list("url", flat=True)
        )

    def _all_products(self) -> List[str]:
        return list(
            Product.objects.order_by(F("last_scraped").asc(nulls_first=True), "id")
            .values_list("url", flat=True)
        )

    def _log_summary(self, summary: CrawlRunSummary) -> None:
        if summary.aborted:
            logger.error(f"{summary.mode} crawl aborted: {summary.abort_reason}")
            return

        logger.info(
            f"{summary.mode} crawl finished in {summary.duration_seconds:.1f}s: "
            f"{summary.succeeded} succeeded, {summary.failed} failed "
            f"({summary.error_rate:.2%}), {summary.total_products} products, "
            f"{summary.total_prices} price records"
        )
